"""JavaScript parser adapter built on Tree-sitter.

Tree-sitter is error-tolerant: minified or partially broken bundles still
produce a tree, with ``ERROR`` nodes where the grammar gave up.  The
concrete tree is converted once into :class:`~decypher_cli.tree.SyntaxNode`
objects so the analyses never touch the Tree-sitter API directly.
"""

from __future__ import annotations

import importlib
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .errors import ParseError
from .tree import Span, SyntaxNode

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Language <-> file-extension mapping
# ---------------------------------------------------------------------------
LANGUAGE_MAP: Dict[str, str] = {
    ".js": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".jsx": "javascript",
}

SKIPPED_NODE_KINDS = {"comment", "html_comment"}


class JavaScriptParser:
    """Parse JavaScript source into a :class:`SyntaxNode` tree."""

    # Map language name -> module that provides the tree-sitter Language
    _GRAMMAR_MODULES: Dict[str, str] = {
        "javascript": "tree_sitter_javascript",
    }

    def __init__(self, language: str = "javascript") -> None:
        self.language = language
        self._parser: Any = None
        self._init_parser()

    # ------------------------------------------------------------------
    # Initialisation
    # ------------------------------------------------------------------

    def _init_parser(self) -> None:
        mod_name = self._GRAMMAR_MODULES.get(self.language)
        if mod_name is None:
            raise ParseError(f"No grammar module mapped for language '{self.language}'")
        try:
            from tree_sitter import Language, Parser as TSParser
        except ImportError as exc:
            raise ParseError(
                "tree-sitter is not installed. Install with: pip install tree-sitter"
            ) from exc
        try:
            mod = importlib.import_module(mod_name)
        except ImportError as exc:
            raise ParseError(
                f"Grammar package '{mod_name}' not installed for language '{self.language}'. "
                f"Install with: pip install {mod_name.replace('_', '-')}"
            ) from exc

        # tree-sitter >=0.22 per-language packages expose a
        # language() function that returns the Language capsule.
        self._parser = TSParser(Language(mod.language()))
        logger.debug("Loaded tree-sitter parser for %s", self.language)

    def supports_language(self, language: str) -> bool:
        return language == self.language

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------

    def parse(self, source: str) -> SyntaxNode:
        """Parse *source* and return the program node."""
        source_bytes = source.encode("utf-8")
        tree = self._parser.parse(source_bytes)
        if tree.root_node.has_error:
            logger.warning(
                "Source contains syntax errors; analysing the recoverable parts"
            )
        return _convert(tree.root_node, source_bytes)

    def parse_file(self, file_path: Path, source: Optional[str] = None) -> SyntaxNode:
        ext = file_path.suffix
        if LANGUAGE_MAP.get(ext, self.language) != self.language:
            raise ParseError(f"Unsupported file type '{ext}' for {file_path}")
        if source is None:
            try:
                source = file_path.read_text(encoding="utf-8", errors="ignore")
            except OSError as exc:
                raise ParseError(f"Failed to read file '{file_path}': {exc}") from exc
        logger.info("Parsing %s (%d bytes)", file_path, len(source))
        return self.parse(source)


# ===================================================================
# Tree conversion
# ===================================================================

def _make_node(ts_node: Any, source: bytes) -> SyntaxNode:
    return SyntaxNode(
        kind=ts_node.type,
        span=Span(
            start_byte=ts_node.start_byte,
            end_byte=ts_node.end_byte,
            start_line=ts_node.start_point[0] + 1,
            end_line=ts_node.end_point[0] + 1,
        ),
        named=ts_node.is_named,
        source=source,
    )


def _convert(ts_root: Any, source: bytes) -> SyntaxNode:
    """Iteratively mirror the Tree-sitter tree, dropping comments."""
    root = _make_node(ts_root, source)
    stack: List[Tuple[Any, SyntaxNode]] = [(ts_root, root)]
    while stack:
        ts_node, node = stack.pop()
        for index, ts_child in enumerate(ts_node.children):
            if ts_child.type in SKIPPED_NODE_KINDS:
                continue
            child = node.add_child(
                _make_node(ts_child, source),
                ts_node.field_name_for_child(index),
            )
            if ts_child.child_count:
                stack.append((ts_child, child))
    return root
