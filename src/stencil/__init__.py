"""Stencil - pluggable template engines compiled into host methods."""

from stencil._version import __version__
from stencil.boot import boot, load_engine
from stencil.config import StencilConfig, load_config
from stencil.errors import (
    EngineLoadError,
    InvalidEngineError,
    StencilError,
    TemplateEngineNotFound,
    TemplateNotFound,
    TemplateSyntaxError,
)
from stencil.template import (
    InlineTemplates,
    TemplateRegistry,
    engine_for,
    get_registry,
    inline_template,
    register_extensions,
    render,
    reset,
    template_extensions,
    template_for,
    template_name,
)

__all__ = [
    "__version__",
    "boot",
    "load_engine",
    "StencilConfig",
    "load_config",
    "EngineLoadError",
    "InvalidEngineError",
    "StencilError",
    "TemplateEngineNotFound",
    "TemplateNotFound",
    "TemplateSyntaxError",
    "InlineTemplates",
    "TemplateRegistry",
    "engine_for",
    "get_registry",
    "inline_template",
    "register_extensions",
    "render",
    "reset",
    "template_extensions",
    "template_for",
    "template_name",
]
