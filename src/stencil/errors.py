"""Stencil Exceptions

Custom exceptions for template registration and compilation, plus helpers
for locating a failure inside a template source file.
"""

from __future__ import annotations

import linecache
import os
from pathlib import Path
from types import TracebackType
from typing import Iterable


class StencilError(Exception):
    """Base exception for all stencil errors."""

    pass


class TemplateEngineNotFound(StencilError, LookupError):
    """Raised when no engine is registered for a template's extension."""

    def __init__(self, path: str, extension: str | None):
        self.path = path
        self.extension = extension
        if extension is None:
            message = f"No template engine for {path} (path has no extension)"
        else:
            message = f"No template engine registered for '.{extension}': {path}"
        super().__init__(message)


class TemplateNotFound(StencilError, LookupError):
    """Raised when an engine-neutral path has no template file on disk."""

    def __init__(self, path: str, extensions: Iterable[str]):
        self.path = path
        self.extensions = list(extensions)
        tried = ",".join(self.extensions) or "no registered extensions"
        super().__init__(f"Template not found: {path}.{{{tried}}}")


class InvalidEngineError(StencilError, TypeError):
    """Raised when registering an object that cannot compile templates."""

    def __init__(self, engine: object):
        self.engine = engine
        super().__init__(
            f"{engine!r} does not have a compile_template method"
        )


class EngineLoadError(StencilError, ImportError):
    """Raised when a configured engine reference cannot be imported."""

    def __init__(self, ref: str, reason: str):
        self.ref = ref
        self.reason = reason
        super().__init__(f"Could not load template engine '{ref}': {reason}")


class TemplateSyntaxError(StencilError):
    """Raised when a template cannot be compiled.

    ``path`` and ``lineno`` always refer to the template source, never to
    code generated from it.
    """

    def __init__(self, message: str, path: str, lineno: int | None = None):
        self.message = message
        self.path = path
        self.lineno = lineno
        location = path if lineno is None else f"{path}:{lineno}"
        super().__init__(f"{location}: {message}")

    @property
    def excerpt(self) -> list[tuple[int, str, bool]]:
        """Source lines around the failing line (empty without a line)."""
        if self.lineno is None:
            return []
        return source_context(self.path, self.lineno, size=2)


def source_context(
    path: str | os.PathLike[str], line: int, size: int = 4
) -> list[tuple[int, str, bool]]:
    """Give some context around a specific line in a file.

    ``size`` works in both directions, so ``size=2`` yields up to five lines.
    Each row is ``(lineno, text, is_target)``.

    Example:
        >>> source_context("views/index.html.erb", 12, 1)  # doctest: +SKIP
        [(11, '<ul>', False), (12, '<%= items() %>', True), (13, '</ul>', False)]
    """
    filename = str(path)
    lines = linecache.getlines(filename)
    if not lines:
        return []

    first = max(1, line - size)
    last = min(len(lines), line + size)
    return [
        (n, lines[n - 1].rstrip("\r\n"), n == line) for n in range(first, last + 1)
    ]


def template_location(
    exc: BaseException, extensions: Iterable[str]
) -> tuple[str, int] | None:
    """Find where inside a template *exc* was raised.

    Walks the traceback from the innermost frame outward and returns the
    ``(filename, lineno)`` of the first frame whose file carries one of
    *extensions*. Returns None when no template frame is present.
    """
    exts = {e.lstrip(".") for e in extensions}
    frames: list[tuple[str, int]] = []
    tb: TracebackType | None = exc.__traceback__
    while tb is not None:
        frames.append((tb.tb_frame.f_code.co_filename, tb.tb_lineno))
        tb = tb.tb_next

    for filename, lineno in reversed(frames):
        basename = Path(filename).name
        if any(basename.endswith(f".{ext}") for ext in exts):
            return filename, lineno
    return None
