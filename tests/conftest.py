from pathlib import Path

import pytest

import stencil

TEMPLATES = Path(__file__).parent / "templates"


@pytest.fixture(autouse=True)
def clean_registry():
    """Every test starts from an empty registry."""
    stencil.reset()
    yield
    stencil.reset()


@pytest.fixture
def templates() -> Path:
    return TEMPLATES


@pytest.fixture
def registry():
    """The process-wide registry with the built-in engines registered."""
    return stencil.boot()
