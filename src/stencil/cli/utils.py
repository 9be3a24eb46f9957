"""Shared utilities for CLI commands"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import NoReturn, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from stencil.config import StencilConfig, find_config_file, load_config
from stencil.errors import StencilError, TemplateSyntaxError, source_context

console = Console()
err_console = Console(stderr=True)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the stencil CLI.

    Log levels:
    - Normal: Only warnings/errors shown
    - Verbose (-v): INFO level - shows engine registration
    - Debug (STENCIL_DEBUG=1): DEBUG level - shows compilation and caching
    """
    if os.environ.get("STENCIL_DEBUG"):
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    else:
        level = logging.WARNING

    handler = RichHandler(
        console=err_console,
        show_time=verbose,
        show_path=bool(os.environ.get("STENCIL_DEBUG")),
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))

    logger = logging.getLogger("stencil")
    logger.setLevel(level)
    logger.handlers = [handler]
    logger.propagate = False


def get_config(path: Optional[Path] = None) -> StencilConfig:
    """Load the given config, the nearest stencil.yaml, or the defaults."""
    if path is None:
        path = find_config_file()
        if path is None:
            return StencilConfig()
    return load_config(path)


def parse_locals(pairs: list[str]) -> dict[str, str]:
    """Parse key=value pairs into a locals mapping."""
    result: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            exit_with_error(f"Invalid local '{pair}' (expected key=value)")
        result[key.strip()] = value
    return result


def print_source_context(path: str, lineno: int, size: int = 2) -> None:
    """Print the lines around path:lineno, marking the failing one."""
    for number, text, is_target in source_context(path, lineno, size):
        marker = ">" if is_target else " "
        style = "bold red" if is_target else "dim"
        err_console.print(
            f"{marker} {number:>4} | {text}",
            style=style,
            markup=False,
            highlight=False,
            soft_wrap=True,
        )


def report_template_error(error: BaseException, path: str, lineno: int) -> NoReturn:
    """Report an error raised while rendering a template and exit."""
    err_console.print(
        f"{path}:{lineno}: {type(error).__name__}: {error}",
        style="red",
        markup=False,
        highlight=False,
        soft_wrap=True,
    )
    print_source_context(path, lineno)
    sys.exit(1)


def exit_with_error(message: str, exit_code: int = 1) -> NoReturn:
    """Exit the program with an error message."""
    typer.echo(f"Error: {message}", err=True)
    sys.exit(exit_code)


def handle_error(error: Exception) -> NoReturn:
    """Handle and exit on stencil errors."""
    if isinstance(error, TemplateSyntaxError):
        typer.echo(f"Error: {error}", err=True)
        if error.lineno is not None:
            print_source_context(error.path, error.lineno)
        sys.exit(1)
    if isinstance(error, (StencilError, FileNotFoundError)):
        exit_with_error(str(error))
    # Unexpected error
    typer.echo(f"Unexpected error: {error}", err=True)
    sys.exit(1)
