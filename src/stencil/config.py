"""Configuration management for stencil.

Schema of stencil.yaml:
- reload_templates: recompile templates whose file changed on disk
- erb: options of the built-in ERB engine
- jinja: options of the built-in Jinja engine
- extensions: extensions each built-in engine is registered for
- engines: third-party engines, "package.module:Engine" -> extensions
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from stencil.engines import BUILTIN_ENGINES

CONFIG_FILENAME = "stencil.yaml"


class ErbOptions(BaseModel):
    """Options for the ERB engine."""

    trim: bool = Field(
        default=True,
        description="Drop lines holding only a statement or comment tag",
    )


class JinjaOptions(BaseModel):
    """Options for the Jinja engine."""

    autoescape: bool = False
    trim_blocks: bool = False
    lstrip_blocks: bool = False
    strict_undefined: bool = Field(
        default=False, description="Raise on undefined names instead of rendering ''"
    )


def _default_extensions() -> dict[str, list[str]]:
    return {name: list(engine.extensions) for name, engine in BUILTIN_ENGINES.items()}


class StencilConfig(BaseModel):
    """Main stencil.yaml configuration."""

    reload_templates: bool = Field(
        default=False, description="Recompile templates changed on disk"
    )
    erb: ErbOptions = Field(default_factory=ErbOptions)
    jinja: JinjaOptions = Field(default_factory=JinjaOptions)
    extensions: dict[str, list[str]] = Field(
        default_factory=_default_extensions,
        description="Built-in engine name -> extensions",
    )
    engines: dict[str, list[str]] = Field(
        default_factory=dict,
        description="Engine reference (package.module:Engine) -> extensions",
    )

    @field_validator("extensions", "engines")
    @classmethod
    def strip_dots(cls, value: dict[str, list[str]]) -> dict[str, list[str]]:
        """Accept '.erb' as well as 'erb'."""
        return {key: [ext.lstrip(".") for ext in exts] for key, exts in value.items()}


def find_config_file(start: Optional[Path] = None) -> Optional[Path]:
    """Find stencil.yaml in the start directory or its parents."""
    cwd = start or Path.cwd()
    for parent in [cwd] + list(cwd.parents):
        candidate = parent / CONFIG_FILENAME
        if candidate.exists():
            return candidate
    return None


def load_config(path: Path) -> StencilConfig:
    """Load stencil.yaml from path."""
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}

    return StencilConfig.model_validate(data)
