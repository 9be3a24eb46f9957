"""Template engines shipped with stencil.

Built-in engines:
- erb: Erubis-style templates with Python code (.erb, .rhtml)
- jinja: Jinja2 templates (.jinja, .j2, .jinja2)
"""

from stencil.engines.base import TemplateEngine
from stencil.engines.erb import ErbEngine
from stencil.engines.jinja import JinjaEngine

BUILTIN_ENGINES: dict[str, type[TemplateEngine]] = {
    "erb": ErbEngine,
    "jinja": JinjaEngine,
}

__all__ = ["BUILTIN_ENGINES", "ErbEngine", "JinjaEngine", "TemplateEngine"]
