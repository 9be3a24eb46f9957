"""Jinja engine - compiles Jinja2 templates into host methods.

Templates render with the host instance bound to ``this`` and the declared
locals as top-level names. Templates are compiled with their real path as
the filename, so jinja2's traceback rewriting reports failures at the
template's own file and line.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Callable, Optional, Sequence

import jinja2
from jinja2 import Environment, StrictUndefined, Undefined, pass_context

from stencil.engines.base import TemplateEngine, define_method
from stencil.errors import TemplateSyntaxError

log = logging.getLogger(__name__)


def env_var(name: str, default: str = "") -> str:
    """Get an environment variable value.

    Args:
        name: Name of the environment variable.
        default: Default value if not set.

    Returns:
        Environment variable value or default.
    """
    return os.environ.get(name, default)


@pass_context
def include_file(context, path: str, source_dir: Optional[str] = None) -> str:
    """Include file contents at render time.

    Args:
        path: Path to the file (relative to source_dir or absolute).
        source_dir: Base directory for relative paths. Defaults to the
            directory of the template being rendered.

    Returns:
        File contents as string.

    Example:
        {{ include_file('snippets/footer.html') }}
    """
    if source_dir is None:
        source_dir = context.get("__srcdir__") if context is not None else None

    p = Path(path)
    if not p.is_absolute() and source_dir:
        p = Path(source_dir) / p

    if not p.exists():
        raise FileNotFoundError(f"include_file: path not found: {p}")
    if not p.is_file():
        raise IsADirectoryError(f"include_file: path is not a file: {p}")

    return p.read_text(encoding="utf-8")


def get_jinja_env(
    autoescape: bool = False,
    trim_blocks: bool = False,
    lstrip_blocks: bool = False,
    strict_undefined: bool = False,
) -> Environment:
    """Create a Jinja2 Environment with stencil globals.

    Returns:
        Configured Jinja2 Environment.
    """
    env = Environment(
        autoescape=autoescape,
        trim_blocks=trim_blocks,
        lstrip_blocks=lstrip_blocks,
        undefined=StrictUndefined if strict_undefined else Undefined,
        keep_trailing_newline=True,
    )

    env.globals["env"] = env_var
    env.globals["include_file"] = include_file

    return env


class JinjaEngine(TemplateEngine):
    """Jinja2 templates."""

    extensions = ("jinja", "j2", "jinja2")

    def __init__(self, environment: Environment | None = None):
        self.environment = environment or get_jinja_env()

    def compile_template(
        self,
        path: str | Path,
        name: str,
        host: type,
        locals: Sequence[str] = (),
    ) -> str:
        path = str(path)
        source = Path(path).read_text(encoding="utf-8")
        env = self.environment

        try:
            code = env.compile(source, name=Path(path).name, filename=path)
        except jinja2.TemplateSyntaxError as exc:
            raise TemplateSyntaxError(exc.message or str(exc), path, exc.lineno) from exc

        template = env.template_class.from_code(env, code, env.make_globals(None))
        srcdir = str(Path(path).parent)

        def render(self, _locals=None):
            context = {"__srcdir__": srcdir}
            context.update(_locals or {})
            context["this"] = self
            return template.render(context)

        log.debug(f"Compiled jinja template {path}")
        define_method(host, name, render)
        return name

    class Mixin:
        """Capture helper for Jinja templates."""

        def capture_jinja(self, block: Callable[..., Any], *args: Any, **kwargs: Any) -> str:
            """Call a macro or caller block and return its output as a string."""
            return str(block(*args, **kwargs))
