"""Template registry - maps extensions to engines and inlines templates.

Public API:
    register_extensions(engine, extensions)

Semipublic API:
    engine_for(path)
    template_name(path)
    inline_template(path, host=None, locals=())
    template_for(path, locals=(), host=None)

Requirements for a template engine:
    An engine is any object with a ``compile_template`` callable taking
    * path: the full path to the template being compiled
    * name: the name of the method that will be inlined
    * host: the class the method will be inlined into
    * locals: names the method must accept through its ``_locals`` mapping

    To support the concat and capture helpers an engine may also provide a
    ``Mixin`` class exposing the internal buffer and a capture method that
    runs a block and returns its output as a string without changing the
    caller's output. Mixin attributes are copied onto the helper host when
    the engine is registered.
"""

from __future__ import annotations

import logging
import os
import re
import threading
from pathlib import Path
from typing import Any, Iterable

from stencil.errors import InvalidEngineError, TemplateEngineNotFound, TemplateNotFound

log = logging.getLogger(__name__)


class InlineTemplates:
    """Default host for compiled template methods."""


def _engine_label(engine: Any) -> str:
    return getattr(engine, "__name__", type(engine).__name__)


class TemplateRegistry:
    """Extension → engine mapping plus the compiled-method cache.

    All mutation happens under one re-entrant lock.
    """

    def __init__(
        self,
        default_host: type = InlineTemplates,
        helper_host: type = InlineTemplates,
    ):
        self.default_host = default_host
        self.helper_host = helper_host
        self.reload_templates = False

        self.extensions: dict[str, Any] = {}
        # engine-neutral path -> method name
        self.method_list: dict[str, str] = {}
        # engine-neutral path -> local names the method accepts
        self.supported_locals: dict[str, set[str]] = {}
        # engine-neutral path -> template file it was compiled from
        self.sources: dict[str, str] = {}
        # template file -> mtime when compiled
        self.mtimes: dict[str, float] = {}

        self._included: list[tuple[type, str]] = []
        self._lock = threading.RLock()

    # -- registry ---------------------------------------------------------

    def register_extensions(self, engine: Any, extensions: Iterable[str]) -> None:
        """Register *engine* for each of *extensions*; later registrations win.

        Raises:
            InvalidEngineError: If *engine* has no compile_template method.
        """
        if not callable(getattr(engine, "compile_template", None)):
            raise InvalidEngineError(engine)
        if isinstance(extensions, str):
            extensions = [extensions]

        exts = [ext.lstrip(".") for ext in extensions]
        with self._lock:
            for ext in exts:
                previous = self.extensions.get(ext)
                if previous is not None and previous is not engine:
                    log.debug(
                        f"'.{ext}' moves from {_engine_label(previous)} "
                        f"to {_engine_label(engine)}"
                    )
                self.extensions[ext] = engine

            mixin = getattr(engine, "Mixin", None)
            if isinstance(mixin, type):
                self._include(mixin)

        log.info(f"Registered {_engine_label(engine)} for {', '.join(exts)}")

    def _include(self, mixin: type) -> None:
        host = self.helper_host
        for klass in reversed(mixin.__mro__):
            if klass is object:
                continue
            for attr, value in vars(klass).items():
                if attr.startswith("__") and attr.endswith("__"):
                    continue
                if hasattr(host, attr):
                    continue
                setattr(host, attr, value)
                self._included.append((host, attr))

    def template_extensions(self) -> list[str]:
        """Registered extensions, in registration order."""
        return list(self.extensions)

    def _match_extension(self, path: str) -> str | None:
        filename = Path(path).name
        matches = [ext for ext in self.extensions if filename.endswith(f".{ext}")]
        return max(matches, key=len) if matches else None

    def engine_for(self, path: str | os.PathLike[str]) -> Any:
        """Engine registered for *path*'s extension.

        Raises:
            TemplateEngineNotFound: If no registered extension matches.
        """
        path = str(path)
        ext = self._match_extension(path)
        if ext is None:
            raise TemplateEngineNotFound(path, Path(path).suffix[1:] or None)
        return self.extensions[ext]

    # -- compilation ------------------------------------------------------

    @staticmethod
    def template_name(path: str | os.PathLike[str]) -> str:
        """Method name for the template at *path*.

        Deterministic in the absolute path and always a valid identifier.
        ``_`` and ``/`` both become ``__``, so ``/t/a_b.erb`` and
        ``/t/a/b.erb`` share the name ``__t__a__b_erb``; the last one
        inlined owns the method.
        """
        path = os.path.abspath(path)
        return re.sub(r"[^.a-zA-Z0-9]", "__", path).replace(".", "_")

    def inline_template(
        self,
        path: str | os.PathLike[str],
        host: type | None = None,
        locals: Iterable[str] = (),
    ) -> str:
        """Compile the template at *path* into a method on *host*.

        Compiling the same path again redefines the same method.

        Returns:
            The generated method name.
        """
        full_path = os.path.abspath(path)
        host = host or self.default_host
        locals = tuple(locals)

        with self._lock:
            ext = self._match_extension(full_path)
            engine = self.engine_for(full_path)
            name = self.template_name(full_path)

            log.debug(
                f"Inlining {full_path} as {host.__name__}.{name} "
                f"with {_engine_label(engine)}"
            )
            engine.compile_template(full_path, name, host, locals=locals)

            neutral = full_path[: -(len(ext) + 1)]
            self.method_list[neutral] = name
            self.supported_locals[neutral] = set(locals)
            self.sources[neutral] = full_path
            self.mtimes[full_path] = os.path.getmtime(full_path)

        return name

    def needs_compilation(
        self,
        path: str | os.PathLike[str],
        locals: Iterable[str] = (),
        host: type | None = None,
    ) -> bool:
        """Whether the engine-neutral *path* has to be (re)compiled."""
        path = os.path.abspath(path)
        name = self.method_list.get(path)
        if name is None:
            return True
        if host is not None and not hasattr(host, name):
            return True
        if not set(locals) <= self.supported_locals.get(path, set()):
            return True

        if self.reload_templates:
            source = self.sources.get(path)
            if source is None or not os.path.isfile(source):
                return True
            if os.path.getmtime(source) != self.mtimes.get(source):
                log.debug(f"{source} changed on disk")
                return True

        return False

    def load_template(self, path: str | os.PathLike[str]) -> str | None:
        """First existing ``<path>.<ext>`` over the registered extensions."""
        path = os.path.abspath(path)
        for ext in self.template_extensions():
            candidate = f"{path}.{ext}"
            if os.path.isfile(candidate):
                return candidate
        return None

    def template_for(
        self,
        path: str | os.PathLike[str],
        locals: Iterable[str] = (),
        host: type | None = None,
    ) -> str:
        """Method name for the template at *path*, compiling when needed.

        *path* is engine-neutral (``views/index.html``); a full template
        file path is accepted too.

        Raises:
            TemplateNotFound: If no template file exists for *path*.
        """
        path = os.path.abspath(path)
        host = host or self.default_host
        locals = set(locals)

        with self._lock:
            ext = self._match_extension(path)
            if ext is not None and os.path.isfile(path):
                path = path[: -(len(ext) + 1)]

            if self.needs_compilation(path, locals, host):
                source = self.sources.get(path)
                if source is None or not os.path.isfile(source):
                    source = self.load_template(path)
                if source is None:
                    raise TemplateNotFound(path, self.template_extensions())

                wanted = self.supported_locals.get(path, set()) | locals
                self.inline_template(source, host, sorted(wanted))

            return self.method_list[path]

    def render(self, instance: Any, path: str | os.PathLike[str], /, **locals: Any) -> str:
        """Render the template at *path* as a method of *instance*."""
        name = self.template_for(path, locals.keys(), host=type(instance))
        return getattr(instance, name)(locals)

    def reset(self) -> None:
        """Forget every registration, cached method and included helper."""
        with self._lock:
            self.extensions.clear()
            self.method_list.clear()
            self.supported_locals.clear()
            self.sources.clear()
            self.mtimes.clear()
            self.reload_templates = False
            for host, attr in self._included:
                if attr in vars(host):
                    delattr(host, attr)
            self._included.clear()


_registry = TemplateRegistry()


def get_registry() -> TemplateRegistry:
    """The process-wide registry."""
    return _registry


def register_extensions(engine: Any, extensions: Iterable[str]) -> None:
    _registry.register_extensions(engine, extensions)


def engine_for(path: str | os.PathLike[str]) -> Any:
    return _registry.engine_for(path)


def template_extensions() -> list[str]:
    return _registry.template_extensions()


def template_name(path: str | os.PathLike[str]) -> str:
    return TemplateRegistry.template_name(path)


def inline_template(
    path: str | os.PathLike[str],
    host: type | None = None,
    locals: Iterable[str] = (),
) -> str:
    return _registry.inline_template(path, host, locals)


def template_for(
    path: str | os.PathLike[str],
    locals: Iterable[str] = (),
    host: type | None = None,
) -> str:
    return _registry.template_for(path, locals, host)


def render(instance: Any, path: str | os.PathLike[str], /, **locals: Any) -> str:
    return _registry.render(instance, path, **locals)


def reset() -> None:
    _registry.reset()
