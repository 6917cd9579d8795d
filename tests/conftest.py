"""Pytest configuration and fixtures for decypher tests."""

import shutil
import tempfile
from pathlib import Path
from typing import Callable, Generator

import pytest

from decypher_cli.function_index import FunctionIndex
from decypher_cli.parser import JavaScriptParser
from decypher_cli.symbols import SymbolTable, SymbolTableBuilder
from decypher_cli.tree import SyntaxNode


@pytest.fixture(scope="session")
def js_parser() -> JavaScriptParser:
    """One Tree-sitter parser shared by the whole session."""
    return JavaScriptParser()


@pytest.fixture
def parse(js_parser: JavaScriptParser) -> Callable[[str], SyntaxNode]:
    """Parse a JavaScript snippet into a program tree."""
    return js_parser.parse


@pytest.fixture
def build_index(parse) -> Callable[[str], FunctionIndex]:
    """Build a Function Index for a snippet."""
    def _build(source: str) -> FunctionIndex:
        return FunctionIndex.from_tree(parse(source))
    return _build


@pytest.fixture
def build_symbols(parse) -> Callable[..., SymbolTable]:
    """Build a Symbol Table for a snippet; kwargs go to the builder."""
    def _build(source: str, **kwargs) -> SymbolTable:
        return SymbolTableBuilder(**kwargs).build(parse(source))
    return _build


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def sample_bundle_path() -> Path:
    """Path to the sample bundle used across integration tests."""
    return Path(__file__).parent / "fixtures" / "sample_bundle.js"


@pytest.fixture
def sample_bundle_source(sample_bundle_path: Path) -> str:
    return sample_bundle_path.read_text(encoding="utf-8")


@pytest.fixture
def isolated_home(temp_dir: Path, monkeypatch) -> Path:
    """Point the default config location at a temporary directory."""
    config_file = temp_dir / "home" / "config.toml"
    monkeypatch.setattr("decypher_cli.config.CONFIG_FILE", config_file)
    monkeypatch.setattr("decypher_cli.config_manager.CONFIG_FILE", config_file)
    monkeypatch.setattr("decypher_cli.cli.CONFIG_FILE", config_file)
    return config_file
