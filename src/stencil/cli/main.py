"""Stencil CLI Main Entry Point

Usage:
    stencil render path/to/page.html.erb -l title=Hi   # Render a template
    stencil compile path/to/page.html.erb --source     # Show generated method
    stencil engines                                    # List registered engines
    stencil -V                                         # Show version
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import List, Optional

import typer
from rich.syntax import Syntax
from rich.table import Table

from stencil._version import __version__
from stencil.boot import boot
from stencil.engines import ErbEngine
from stencil.errors import StencilError, template_location
from stencil.template import TemplateRegistry

from .utils import (
    console,
    get_config,
    handle_error,
    parse_locals,
    report_template_error,
    setup_logging,
)

typer_app = typer.Typer(
    help="Compile templates from pluggable engines into rendering methods.",
    no_args_is_help=True,
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"stencil {__version__}")
        raise typer.Exit()


@typer_app.callback()
def cli(
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Verbose logging."),
    version: bool = typer.Option(
        False,
        "-V",
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """Pluggable template engines compiled into host methods."""
    setup_logging(verbose)


def _boot(config_path: Optional[Path]) -> TemplateRegistry:
    try:
        return boot(get_config(config_path))
    except (StencilError, FileNotFoundError) as e:
        handle_error(e)


def _fresh_host(registry: TemplateRegistry) -> type:
    """A new host class inheriting the engine helpers."""
    return type("RenderHost", (registry.helper_host,), {})


@typer_app.command()
def render(
    path: Path = typer.Argument(..., help="Template file to render."),
    local: Optional[List[str]] = typer.Option(
        None, "-l", "--local", help="Template local as key=value (repeatable)."
    ),
    config: Optional[Path] = typer.Option(
        None, "-c", "--config", help="Path to stencil.yaml."
    ),
) -> None:
    """Render a template file and print the result."""
    registry = _boot(config)
    locals_ = parse_locals(local or [])
    host = _fresh_host(registry)

    try:
        output = registry.render(host(), path, **locals_)
    except StencilError as e:
        handle_error(e)
    except Exception as e:
        location = template_location(e, registry.template_extensions())
        if location is None:
            raise
        report_template_error(e, *location)

    typer.echo(output, nl=False)


@typer_app.command("compile")
def compile_command(
    path: Path = typer.Argument(..., help="Template file to compile."),
    source: bool = typer.Option(
        False, "--source", help="Print the generated Python (ERB templates only)."
    ),
    config: Optional[Path] = typer.Option(
        None, "-c", "--config", help="Path to stencil.yaml."
    ),
) -> None:
    """Compile a template file and print the generated method name."""
    registry = _boot(config)

    try:
        engine = registry.engine_for(path)
        name = registry.inline_template(path, _fresh_host(registry))
    except (StencilError, FileNotFoundError) as e:
        handle_error(e)

    typer.echo(name)

    if source:
        if not isinstance(engine, ErbEngine):
            typer.echo("Source listing is only available for ERB templates.", err=True)
            raise typer.Exit(1)
        full_path = os.path.abspath(path)
        generated = engine.generate(
            Path(full_path).read_text(encoding="utf-8"), name, path=full_path
        )
        console.print(Syntax(generated.source, "python"))


@typer_app.command()
def engines(
    config: Optional[Path] = typer.Option(
        None, "-c", "--config", help="Path to stencil.yaml."
    ),
) -> None:
    """List registered extensions and their engines."""
    registry = _boot(config)

    table = Table(title="Template engines")
    table.add_column("Extension")
    table.add_column("Engine")
    for ext in registry.template_extensions():
        engine = registry.extensions[ext]
        table.add_row(f".{ext}", getattr(engine, "__name__", type(engine).__name__))
    console.print(table)


def main() -> None:
    typer_app()


if __name__ == "__main__":
    main()
