"""ERB engine - compiles Erubis-style templates into Python methods.

Template syntax:
    <% stmt %>      Python statement(s); a trailing ':' opens a block
    <% end %>       closes the innermost block
    <%= expr %>     writes str(expr) (None writes nothing)
    <%== expr %>    writes expr HTML-escaped
    <%# note %>     comment
    <%%             literal '<%'
    -%>             swallow the newline after the tag

The generated source is parsed with :mod:`ast` and every node is moved back
onto the template line it came from before compiling, with the template's
own path as the code filename. Tracebacks and ``linecache`` therefore point
at the template, not at the generated method.
"""

from __future__ import annotations

import ast
import builtins
import keyword
import linecache
import logging
import re
import textwrap
import tokenize
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, List, Sequence, Tuple

from markupsafe import escape

from stencil.engines.base import TemplateEngine, define_method
from stencil.errors import TemplateSyntaxError

log = logging.getLogger(__name__)

# <%= ... %>, <%== ... %>, <%# ... %>, <%% ... %>, <% ... %> and their -%> forms
TAG = re.compile(r"<%(==|=|#|%)?(.*?)(-?)%>", re.S)
RSPACE = re.compile(r"[ \t]*(\r?\n|\Z)")
NEWLINE = re.compile(r"\r?\n")

BLOCK_CONTINUATIONS = {"else", "elif", "except", "finally"}

BUFFER = "self._erb_buf"

# Body statements live inside `def ...:` and `try:`
BODY_INDENT = 2

# Names the generated method binds itself; locals may not shadow them
RESERVED_NAMES = {"self", "_locals", "_to_s", "_escape", "_stencil_prev_buf"}

GENERATED_LINE_REF = re.compile(r"\bon line (\d+)")


def _to_s(value: Any) -> str:
    return "" if value is None else str(value)


def _escape(value: Any) -> str:
    return "" if value is None else str(escape(value))


def opens_block(code: str) -> bool:
    """Whether a line of Python ends in a block-opening ':'.

    A trailing comment does not count, so ``for x in xs:  # loop`` opens a block.
    """
    try:
        tokens = list(tokenize.generate_tokens(iter([code.strip() + "\n"]).__next__))
    except (tokenize.TokenError, SyntaxError):
        return code.rstrip().endswith(":")

    ignored = (tokenize.COMMENT, tokenize.NL, tokenize.NEWLINE, tokenize.ENDMARKER)
    significant = [tok for tok in tokens if tok.type not in ignored]
    return bool(significant) and significant[-1].string == ":"


@dataclass
class GeneratedCode:
    """Python source for one template method, with its line map."""

    name: str
    path: str
    source: str
    line_map: List[int] = field(default_factory=list)

    def template_line(self, generated_line: int | None) -> int | None:
        """Map a 1-based generated line onto its template line."""
        if generated_line is None or not self.line_map:
            return None
        index = min(max(generated_line, 1), len(self.line_map)) - 1
        return self.line_map[index]


class _Generator:
    """Walks one template and emits Python lines tagged with template lines."""

    def __init__(self, source: str, path: str, trim: bool):
        self.source = source
        self.path = path
        self.trim = trim
        self.lines: List[Tuple[str, int]] = []
        self.indent = BODY_INDENT
        # template line of every open block
        self.blocks: List[int] = []

    def line_of(self, pos: int) -> int:
        return self.source.count("\n", 0, pos) + 1

    def emit(self, code: str, line: int) -> None:
        self.lines.append(("    " * self.indent + code, line))

    def emit_text(self, text: str, line: int) -> None:
        if text:
            self.emit(f"{BUFFER}.append({text!r})", line)

    def run(self) -> List[Tuple[str, int]]:
        source = self.source
        pos = 0

        for match in TAG.finditer(source):
            indicator, code, dash = match.groups()
            start, end = match.span()
            text_end = start

            if indicator == "%":
                # <%% ... %%> is literal text
                if code.endswith("%") and not dash:
                    code = code[:-1]
                self.emit_text(source[pos:start], self.line_of(pos))
                self.emit_text(f"<%{code}{dash}%>", self.line_of(start))
                pos = end
                continue

            trimmed = False
            if self.trim and indicator in (None, "#"):
                line_start = source.rfind("\n", 0, start) + 1
                rspace = RSPACE.match(source, end)
                if (
                    line_start >= pos
                    and not source[line_start:start].strip(" \t")
                    and rspace is not None
                ):
                    text_end = line_start
                    end = rspace.end()
                    trimmed = True

            self.emit_text(source[pos:text_end], self.line_of(pos))

            if dash and not trimmed:
                newline = NEWLINE.match(source, end)
                if newline is not None:
                    end = newline.end()

            line = self.line_of(start)
            if indicator in ("=", "=="):
                self.expression(code, line, escaped=indicator == "==")
            elif indicator is None:
                self.statement(code, line)
            pos = end

        self.emit_text(source[pos:], self.line_of(pos))

        if self.blocks:
            raise TemplateSyntaxError(
                "block is never closed (missing <% end %>)",
                self.path,
                self.blocks[-1],
            )
        return self.lines

    def expression(self, code: str, line: int, escaped: bool) -> None:
        expr = code.strip()
        if not expr:
            return
        first = line + code[: len(code) - len(code.lstrip())].count("\n")
        wrapper = "_escape" if escaped else "_to_s"

        # Own lines for the expression so trailing comments cannot eat the parens
        self.emit(f"{BUFFER}.append({wrapper}((", first)
        for offset, expr_line in enumerate(expr.split("\n")):
            self.lines.append((expr_line.rstrip("\r"), first + offset))
        self.lines.append((")))", first + expr.count("\n")))

    def statement(self, code: str, line: int) -> None:
        numbered = [(line + i, text) for i, text in enumerate(code.split("\n"))]
        while numbered and not numbered[0][1].strip():
            numbered.pop(0)
        while numbered and not numbered[-1][1].strip():
            numbered.pop()
        if not numbered:
            return

        first_no, first = numbered[0]
        head = first.strip()
        rest = textwrap.dedent("\n".join(text for _, text in numbered[1:]))
        # A header on the tag's first line takes the remaining lines as its body
        body_indent = "    " if len(numbered) > 1 and opens_block(head) else ""
        stmts = [(first_no, head)]
        if len(numbered) > 1:
            stmts += [
                (no, body_indent + text.rstrip() if text.strip() else "")
                for (no, _), text in zip(numbered[1:], rest.split("\n"))
            ]

        word = re.split(r"[\s:(]", head, maxsplit=1)[0]

        if len(stmts) == 1 and head == "end":
            if not self.blocks:
                raise TemplateSyntaxError("unexpected 'end'", self.path, first_no)
            self.blocks.pop()
            self.indent -= 1
            return

        if word in BLOCK_CONTINUATIONS:
            if not self.blocks:
                raise TemplateSyntaxError(
                    f"'{word}' outside of a block", self.path, first_no
                )
            self.indent -= 1
            self.blocks.pop()

        for no, text in stmts:
            self.emit(text, no)

        if opens_block(stmts[-1][1]):
            self.blocks.append(first_no)
            self.indent += 1
            self.emit("pass", stmts[-1][0])


class ErbEngine(TemplateEngine):
    """Erubis-style templates with Python code."""

    extensions = ("erb", "rhtml")

    def __init__(self, trim: bool = True):
        self.trim = trim

    def generate(
        self,
        source: str,
        name: str,
        path: str = "<template>",
        locals: Sequence[str] = (),
    ) -> GeneratedCode:
        """Generate the Python source of a template method.

        Raises:
            TemplateSyntaxError: On unbalanced blocks.
            ValueError: If a local name is not a usable identifier.
        """
        for local in locals:
            if (
                not local.isidentifier()
                or keyword.iskeyword(local)
                or local in RESERVED_NAMES
            ):
                raise ValueError(f"Invalid template local: {local!r}")

        body = _Generator(source, path, self.trim).run()
        last = source.count("\n") + 1

        lines: List[Tuple[str, int]] = [
            (f"def {name}(self, _locals=None):", 1),
            ("    _locals = {} if _locals is None else _locals", 1),
        ]
        lines += [(f"    {local} = _locals.get({local!r})", 1) for local in locals]
        lines += [
            ("    _stencil_prev_buf = getattr(self, '_erb_buf', None)", 1),
            (f"    {BUFFER} = []", 1),
            ("    try:", 1),
        ]
        lines += body
        lines += [
            (f"        return ''.join({BUFFER})", last),
            ("    finally:", last),
            (f"        {BUFFER} = _stencil_prev_buf", last),
        ]

        return GeneratedCode(
            name=name,
            path=path,
            source="\n".join(code for code, _ in lines) + "\n",
            line_map=[no for _, no in lines],
        )

    def compile_code(self, generated: GeneratedCode) -> Callable[..., str]:
        """Compile generated source into a function reporting template lines."""
        try:
            tree = ast.parse(generated.source, filename=generated.path)
        except SyntaxError as exc:
            message = GENERATED_LINE_REF.sub(
                lambda m: f"on line {generated.template_line(int(m.group(1)))}",
                exc.msg,
            )
            raise TemplateSyntaxError(
                message, generated.path, generated.template_line(exc.lineno)
            ) from exc

        self._remap_lines(tree, generated)

        # Some errors ('break' outside loop, ...) only surface when compiling
        try:
            code = compile(tree, generated.path, "exec")
        except SyntaxError as exc:
            raise TemplateSyntaxError(exc.msg, generated.path, exc.lineno) from exc

        namespace: dict[str, Any] = {
            "__name__": f"stencil.templates.{generated.name}",
            "__file__": generated.path,
            "__builtins__": builtins,
            "_to_s": _to_s,
            "_escape": _escape,
        }
        exec(code, namespace)
        return namespace[generated.name]

    @staticmethod
    def _remap_lines(tree: ast.AST, generated: GeneratedCode) -> None:
        for node in ast.walk(tree):
            lineno = getattr(node, "lineno", None)
            if lineno is None:
                continue
            node.lineno = generated.template_line(lineno)
            end_lineno = getattr(node, "end_lineno", None)
            if end_lineno is not None:
                node.end_lineno = generated.template_line(end_lineno)
                # Lines folded together can leave the column range inverted
                if (
                    node.lineno == node.end_lineno
                    and node.end_col_offset is not None
                    and node.col_offset > node.end_col_offset
                ):
                    node.end_col_offset = node.col_offset

    def compile_template(
        self,
        path: str | Path,
        name: str,
        host: type,
        locals: Sequence[str] = (),
    ) -> str:
        path = str(path)
        source = Path(path).read_text(encoding="utf-8")
        linecache.checkcache(path)

        generated = self.generate(source, name, path=path, locals=locals)
        log.debug(f"Generated {len(generated.line_map)} lines for {path}")

        define_method(host, name, self.compile_code(generated))
        return name

    class Mixin:
        """Buffer helpers for ERB templates."""

        def _buffer(self) -> list:
            """The output buffer of the template being rendered."""
            return self._erb_buf

        def concat_erb(self, text: Any) -> None:
            """Append *text* to the current template output."""
            self._erb_buf.append(_to_s(text))

        def capture_erb(self, block: Callable[..., Any], *args: Any, **kwargs: Any) -> str:
            """Run *block* against a fresh buffer and return what it wrote.

            The caller's buffer is left untouched.
            """
            previous = getattr(self, "_erb_buf", None)
            self._erb_buf = []
            try:
                block(*args, **kwargs)
                return "".join(self._erb_buf)
            finally:
                self._erb_buf = previous
