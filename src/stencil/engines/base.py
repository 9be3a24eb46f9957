"""Base class for template engines.

An engine turns one template file into a named method on a host class.
Anything with a ``compile_template`` callable can be registered, so a class
with a classmethod works as well as an instance of a subclass of
:class:`TemplateEngine`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Sequence


class TemplateEngine(ABC):
    """Base class for engines shipped with stencil."""

    #: Extensions this engine handles unless configured otherwise.
    extensions: tuple[str, ...] = ()

    @abstractmethod
    def compile_template(
        self,
        path: str | Path,
        name: str,
        host: type,
        locals: Sequence[str] = (),
    ) -> str:
        """Compile the template at *path* into ``host.<name>``.

        The generated method has the signature ``(self, _locals=None) -> str``
        and must report runtime errors at the template's own file and line.

        Returns:
            The method name.
        """
        ...

    class Mixin:
        """Helpers copied onto the helper host when the engine is registered."""


def define_method(host: type, name: str, fn) -> None:
    """Attach *fn* to *host* as method *name*."""
    fn.__name__ = name
    fn.__qualname__ = f"{host.__qualname__}.{name}"
    setattr(host, name, fn)
