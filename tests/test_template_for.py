"""Tests for engine-neutral lookup, caching and recompilation."""

import os

import pytest

import stencil
from stencil.engines import ErbEngine
from stencil.errors import TemplateNotFound
from stencil.template import get_registry


class CountingErb(ErbEngine):
    """ERB engine that records every compilation."""

    def __init__(self):
        super().__init__()
        self.compiled = []

    def compile_template(self, path, name, host, locals=()):
        self.compiled.append((path, tuple(locals)))
        return super().compile_template(path, name, host, locals=locals)


class Page:
    def greeting(self):
        return "hello"


@pytest.fixture
def engine():
    engine = CountingErb()
    stencil.register_extensions(engine, ["erb"])
    return engine


@pytest.fixture
def view(tmp_path):
    path = tmp_path / "index.html.erb"
    path.write_text("<p><%= self.greeting() %> <%= name %></p>")
    return path


def test_template_for_finds_file_by_engine_neutral_path(engine, view, tmp_path):
    name = stencil.template_for(tmp_path / "index.html", ["name"], host=Page)

    assert name == stencil.template_name(view)
    assert getattr(Page(), name)({"name": "Ada"}) == "<p>hello Ada</p>"


def test_template_for_accepts_full_template_path(engine, view):
    name = stencil.template_for(view, host=Page)
    assert name == stencil.template_name(view)


def test_template_for_uses_cache(engine, view, tmp_path):
    stencil.template_for(tmp_path / "index.html", ["name"], host=Page)
    stencil.template_for(tmp_path / "index.html", ["name"], host=Page)
    stencil.template_for(tmp_path / "index.html", host=Page)

    assert len(engine.compiled) == 1


def test_template_for_recompiles_for_new_locals(engine, view, tmp_path):
    neutral = tmp_path / "index.html"
    stencil.template_for(neutral, ["name"], host=Page)
    stencil.template_for(neutral, ["title"], host=Page)

    assert len(engine.compiled) == 2
    # Earlier locals stay supported
    assert engine.compiled[-1][1] == ("name", "title")
    registry = get_registry()
    assert registry.supported_locals[str(neutral)] == {"name", "title"}


def test_template_for_recompiles_for_new_host(engine, view, tmp_path):
    class Other(Page):
        pass

    stencil.template_for(tmp_path / "index.html", ["name"], host=Page)
    stencil.template_for(tmp_path / "index.html", ["name"], host=Other)
    # Subclass already inherits the method
    assert len(engine.compiled) == 1

    class Unrelated:
        def greeting(self):
            return "hey"

    stencil.template_for(tmp_path / "index.html", ["name"], host=Unrelated)
    assert len(engine.compiled) == 2


def test_changed_file_is_ignored_without_reload(engine, view, tmp_path):
    neutral = tmp_path / "index.html"
    stencil.template_for(neutral, ["name"], host=Page)

    view.write_text("changed")
    stat = view.stat()
    os.utime(view, (stat.st_atime, stat.st_mtime + 10))

    name = stencil.template_for(neutral, ["name"], host=Page)
    assert len(engine.compiled) == 1
    assert getattr(Page(), name)({"name": "Ada"}) == "<p>hello Ada</p>"


def test_changed_file_is_recompiled_with_reload(engine, view, tmp_path):
    get_registry().reload_templates = True
    neutral = tmp_path / "index.html"
    stencil.template_for(neutral, ["name"], host=Page)

    view.write_text("changed <%= name %>")
    stat = view.stat()
    os.utime(view, (stat.st_atime, stat.st_mtime + 10))

    name = stencil.template_for(neutral, ["name"], host=Page)
    assert len(engine.compiled) == 2
    assert getattr(Page(), name)({"name": "Ada"}) == "changed Ada"


def test_template_for_missing_template_raises(engine, tmp_path):
    with pytest.raises(TemplateNotFound) as excinfo:
        stencil.template_for(tmp_path / "missing.html", host=Page)

    assert isinstance(excinfo.value, LookupError)
    assert excinfo.value.extensions == ["erb"]


def test_load_template_prefers_registration_order(tmp_path):
    registry = get_registry()
    registry.register_extensions(ErbEngine(), ["erb", "rhtml"])
    (tmp_path / "page.rhtml").write_text("r")
    (tmp_path / "page.erb").write_text("e")

    assert registry.load_template(tmp_path / "page") == str(tmp_path / "page.erb")
    assert registry.load_template(tmp_path / "nothing") is None


def test_render_passes_locals(engine, view):
    assert stencil.render(Page(), view, name="Grace") == "<p>hello Grace</p>"


def test_render_engine_neutral_view(templates, registry):
    html = stencil.render(Page(), templates / "views" / "index.html", title="Home")
    assert html == "<h1>Home</h1>\n"


def test_render_list_template(templates, registry):
    html = stencil.render(Page(), templates / "list.html", items=["a", "b"])
    assert html == "<ul>\n  <li>a</li>\n  <li>b</li>\n</ul>\n"
