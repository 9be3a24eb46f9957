"""Boot - populates the template registry from configuration."""

from __future__ import annotations

import importlib
import logging
from typing import Any, Optional

from stencil.config import StencilConfig
from stencil.engines import BUILTIN_ENGINES, ErbEngine, JinjaEngine, TemplateEngine
from stencil.engines.jinja import get_jinja_env
from stencil.errors import EngineLoadError
from stencil.template import TemplateRegistry, get_registry

log = logging.getLogger(__name__)


def load_engine(ref: str) -> Any:
    """Import a template engine from a ``package.module:Engine`` reference.

    Subclasses of :class:`TemplateEngine` are instantiated; anything else
    (e.g. a class exposing a ``compile_template`` classmethod) is returned
    as is.

    Raises:
        EngineLoadError: If the module or attribute cannot be found.
    """
    module_name, sep, attr = ref.partition(":")
    if not sep or not module_name or not attr:
        raise EngineLoadError(ref, "expected 'package.module:Engine'")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        log.error(
            f"Could not import '{module_name}' for template engine '{ref}'. "
            "Make sure the package providing it is installed."
        )
        raise EngineLoadError(ref, str(e)) from e

    engine = getattr(module, attr, None)
    if engine is None:
        raise EngineLoadError(ref, f"module '{module_name}' has no attribute '{attr}'")

    if isinstance(engine, type) and issubclass(engine, TemplateEngine):
        engine = engine()

    log.debug(f"Loaded template engine {ref}")
    return engine


def builtin_engine(name: str, config: StencilConfig) -> TemplateEngine:
    """Build a configured instance of a built-in engine."""
    if name not in BUILTIN_ENGINES:
        raise EngineLoadError(
            name, f"not a built-in engine ({', '.join(BUILTIN_ENGINES)})"
        )
    if name == "erb":
        return ErbEngine(trim=config.erb.trim)
    return JinjaEngine(get_jinja_env(**config.jinja.model_dump()))


def boot(
    config: Optional[StencilConfig] = None,
    registry: Optional[TemplateRegistry] = None,
) -> TemplateRegistry:
    """Register the built-in and configured engines.

    Order of registration (later wins on a shared extension):
    1. Built-in engines for their configured extensions
    2. Third-party engines from ``engines``

    Args:
        config: Configuration to apply. Defaults to ``StencilConfig()``.
        registry: Registry to populate. Defaults to the process-wide one.

    Returns:
        The populated registry.
    """
    config = config or StencilConfig()
    registry = registry or get_registry()

    for name, extensions in config.extensions.items():
        registry.register_extensions(builtin_engine(name, config), extensions)

    for ref, extensions in config.engines.items():
        registry.register_extensions(load_engine(ref), extensions)

    registry.reload_templates = config.reload_templates
    log.debug(f"Booted with extensions: {', '.join(registry.template_extensions())}")
    return registry
