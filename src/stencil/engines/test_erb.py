"""Tests for the ERB engine."""

import traceback

import pytest

from stencil.engines.erb import ErbEngine
from stencil.errors import TemplateSyntaxError


class Host(ErbEngine.Mixin):
    def shout(self, text):
        return text.upper()


def compile_erb(tmp_path, source, locals=(), trim=True, filename="page.html.erb"):
    path = tmp_path / filename
    path.write_text(source)
    ErbEngine(trim=trim).compile_template(path, "page", Host, locals=locals)
    return path


def render(tmp_path, source, trim=True, **locals):
    compile_erb(tmp_path, source, locals=sorted(locals), trim=trim)
    return Host().page(locals)


def test_plain_text(tmp_path):
    assert render(tmp_path, "just text\n") == "just text\n"


def test_expression(tmp_path):
    assert render(tmp_path, "1 + 1 = <%= 1 + 1 %>") == "1 + 1 = 2"


def test_expression_none_writes_nothing(tmp_path):
    assert render(tmp_path, "[<%= None %>]") == "[]"


def test_escaped_expression(tmp_path):
    out = render(tmp_path, "<%== value %>|<%= value %>", value="<b>&</b>")
    assert out == "&lt;b&gt;&amp;&lt;/b&gt;|<b>&</b>"


def test_self_is_the_host_instance(tmp_path):
    assert render(tmp_path, "<%= self.shout('hi') %>") == "HI"


def test_comment_and_literal_tags(tmp_path):
    out = render(tmp_path, "a<%# ignored %>b <%% not code %%>")
    assert out == "ab <% not code %>"


def test_block_with_trimmed_statement_lines(tmp_path):
    source = "<ul>\n<% for item in items: %>\n  <li><%= item %></li>\n<% end %>\n</ul>\n"
    out = render(tmp_path, source, items=["a", "b"])
    assert out == "<ul>\n  <li>a</li>\n  <li>b</li>\n</ul>\n"


def test_without_trim_statement_lines_are_kept(tmp_path):
    source = "<% for item in items: %>\n<%= item %>\n<% end %>\n"
    out = render(tmp_path, source, trim=False, items=["a"])
    assert out == "\na\n\n"


def test_dash_swallows_newline(tmp_path):
    out = render(tmp_path, "<%= 'a' -%>\nb", trim=False)
    assert out == "ab"


def test_if_elif_else(tmp_path):
    source = (
        "<% if n > 1: %>\n"
        "many\n"
        "<% elif n == 1: %>\n"
        "one\n"
        "<% else: %>\n"
        "none\n"
        "<% end %>\n"
    )
    assert render(tmp_path, source, n=3) == "many\n"
    assert render(tmp_path, source, n=1) == "one\n"
    assert render(tmp_path, source, n=0) == "none\n"


def test_multiline_statement_tag(tmp_path):
    source = "<%\n  total = 0\n  for x in xs:\n      total += x\n%>\ntotal=<%= total %>"
    assert render(tmp_path, source, xs=[1, 2, 3]) == "total=6"


def test_missing_local_is_none(tmp_path):
    compile_erb(tmp_path, "[<%= title %>]", locals=["title"])
    assert Host().page() == "[]"


def test_invalid_local_name(tmp_path):
    with pytest.raises(ValueError):
        compile_erb(tmp_path, "x", locals=["not-a-name"])
    with pytest.raises(ValueError):
        compile_erb(tmp_path, "x", locals=["self"])


def test_capture_and_concat(tmp_path):
    source = (
        "<% def sidebar(label): %>\n"
        "<li><%= label %></li>\n"
        "<% end %>\n"
        "<% self.concat_erb('start|') %>\n"
        "<ul><%= self.capture_erb(sidebar, 'side') %></ul>\n"
    )
    assert render(tmp_path, source) == "start|<ul><li>side</li>\n</ul>\n"


def test_buffer_is_restored_after_render(tmp_path):
    host = Host()
    host._erb_buf = ["outer"]
    compile_erb(tmp_path, "inner")
    assert host.page() == "inner"
    assert host._erb_buf == ["outer"]
    assert host._buffer() == ["outer"]


def test_runtime_error_reports_template_line(tmp_path):
    source = "line one\n<% for i in range(2): %>\n  <%= i %>\n  <%= 1 / i %>\n<% end %>\n"
    path = compile_erb(tmp_path, source)

    with pytest.raises(ZeroDivisionError) as excinfo:
        Host().page()

    frame = traceback.extract_tb(excinfo.value.__traceback__)[-1]
    assert frame.filename == str(path)
    assert frame.lineno == 4
    assert frame.line == "<%= 1 / i %>"


def test_runtime_error_in_multiline_expression(tmp_path):
    source = "a\n<%= self.shout(\n  missing_name\n) %>\n"
    path = compile_erb(tmp_path, source)

    with pytest.raises(NameError) as excinfo:
        Host().page()

    frame = traceback.extract_tb(excinfo.value.__traceback__)[-1]
    assert frame.filename == str(path)
    assert frame.lineno == 3


def test_python_syntax_error_maps_to_template_line(tmp_path):
    with pytest.raises(TemplateSyntaxError) as excinfo:
        compile_erb(tmp_path, "ok\nok\n<% x = = 1 %>\n")

    assert excinfo.value.lineno == 3
    assert excinfo.value.path.endswith("page.html.erb")
    assert (3, "<% x = = 1 %>", True) in excinfo.value.excerpt


def test_unexpected_end(tmp_path):
    with pytest.raises(TemplateSyntaxError, match="unexpected 'end'") as excinfo:
        compile_erb(tmp_path, "a\n<% end %>\n")
    assert excinfo.value.lineno == 2


def test_continuation_outside_block(tmp_path):
    with pytest.raises(TemplateSyntaxError, match="'else' outside of a block"):
        compile_erb(tmp_path, "<% else: %>\n")


def test_unclosed_block_reports_opening_line(tmp_path):
    with pytest.raises(TemplateSyntaxError, match="never closed") as excinfo:
        compile_erb(tmp_path, "a\nb\n<% if True: %>\nc\n")
    assert excinfo.value.lineno == 3


def test_generate_keeps_line_map(tmp_path):
    generated = ErbEngine().generate("a\n<%= b %>\n", "page", locals=["b"])

    assert generated.source.startswith("def page(self, _locals=None):")
    assert len(generated.line_map) == len(generated.source.splitlines())
    b_line = generated.source.splitlines().index("b") + 1
    assert generated.template_line(b_line) == 2


def test_compile_time_syntax_error_maps_to_template_line(tmp_path):
    with pytest.raises(TemplateSyntaxError, match="'break' outside loop") as excinfo:
        compile_erb(tmp_path, "a\n<% break %>\n")

    assert excinfo.value.lineno == 2
    assert isinstance(excinfo.value.__cause__, SyntaxError)


def test_header_on_first_line_takes_rest_as_body(tmp_path):
    source = "<% total = 0 %><% for x in xs:\n     total += x %>\n<%= total %>"
    assert render(tmp_path, source, xs=[1, 2, 3]) == "\n6"


def test_header_body_spans_several_lines(tmp_path):
    source = "<% for x in xs:\n    y = x * 2\n    out.append(y) %>\n<%= out %>"
    assert render(tmp_path, source, xs=[1, 2], out=[]) == "[2, 4]"


def test_block_header_with_trailing_comment(tmp_path):
    source = "<% for item in items:  # each item %>\n<%= item %>\n<% end %>\n"
    assert render(tmp_path, source, items=["a", "b"]) == "a\nb\n"


@pytest.mark.parametrize(
    "local", ["self", "_locals", "_to_s", "_escape", "_stencil_prev_buf"]
)
def test_locals_cannot_shadow_generated_names(tmp_path, local):
    with pytest.raises(ValueError, match="Invalid template local"):
        compile_erb(tmp_path, "<%= 1 %>", locals=[local])
