"""Function Index: one entry per function-like declaration in a program.

Built once, before any other analysis, and shared read-only afterwards.
Ids are derived from the names the code itself uses to reach a function,
so the call graph can match call sites against them.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterator, List, Optional

from .errors import StructuralError
from .models import FunctionNode
from .tree import (
    FUNCTION_DECLARATION_KINDS,
    FUNCTION_KINDS,
    SyntaxNode,
    class_name,
    function_body,
    object_entity_name,
    parameter_count,
    property_key_text,
)

logger = logging.getLogger(__name__)


class FunctionIndex:
    """Function ids in document order, with lookups both ways."""

    def __init__(self) -> None:
        self.functions: List[FunctionNode] = []
        self.by_name: Dict[str, FunctionNode] = {}
        self.errors: List[StructuralError] = []
        self._nodes: Dict[str, SyntaxNode] = {}
        self._ids: Dict[SyntaxNode, str] = {}

    @classmethod
    def from_tree(cls, root: SyntaxNode) -> "FunctionIndex":
        index = cls()
        anonymous = 0
        for node in root.walk():
            if node.kind not in FUNCTION_KINDS:
                continue
            body = function_body(node)
            # Expression-bodied arrows are values, not function bodies.
            if node.kind == "arrow_function" and body is not None and body.kind != "statement_block":
                continue
            try:
                body = _block_body(node)
            except StructuralError as exc:
                logger.warning("Skipping function: %s", exc)
                index.errors.append(exc)
                continue

            name = _declared_name(node)
            if name is None:
                anonymous += 1
                name = f"anonymous_{anonymous}"
            index._add(node, name, body, is_anonymous=name.startswith("anonymous_"))

        logger.info(
            "Indexed %d functions (%d skipped)", len(index.functions), len(index.errors)
        )
        return index

    def _add(self, node: SyntaxNode, name: str, body: SyntaxNode, is_anonymous: bool) -> None:
        func_id = name
        k = 2
        while func_id in self.by_name:
            func_id = f"{name}#{k}"
            k += 1
        entry = FunctionNode(
            id=func_id,
            kind=node.kind,
            param_count=parameter_count(node),
            body_span=body.span,
            statement_count=len(body.named_children),
            is_anonymous=is_anonymous,
        )
        self.functions.append(entry)
        self.by_name[func_id] = entry
        self._nodes[func_id] = node
        self._ids[node] = func_id

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def __iter__(self) -> Iterator[FunctionNode]:
        return iter(self.functions)

    def __len__(self) -> int:
        return len(self.functions)

    def __contains__(self, func_id: object) -> bool:
        return func_id in self.by_name

    @property
    def ids(self) -> List[str]:
        return [f.id for f in self.functions]

    def get(self, func_id: str) -> Optional[FunctionNode]:
        return self.by_name.get(func_id)

    def node_of(self, func_id: str) -> Optional[SyntaxNode]:
        return self._nodes.get(func_id)

    def id_of(self, node: SyntaxNode) -> Optional[str]:
        return self._ids.get(node)

    def is_indexed(self, node: SyntaxNode) -> bool:
        return node in self._ids


def _block_body(node: SyntaxNode) -> SyntaxNode:
    body = function_body(node)
    if body is None or body.kind != "statement_block" or body.span is None:
        raise StructuralError("function has no block body", node.kind, node.span)
    return body


# ---------------------------------------------------------------------------
# Naming
# ---------------------------------------------------------------------------

def _declared_name(node: SyntaxNode) -> Optional[str]:
    own = node.field("name")
    if node.kind in FUNCTION_DECLARATION_KINDS:
        return own.text if own is not None else None

    if node.kind == "method_definition":
        member = property_key_text(own) or (own.text if own is not None else None)
        container = node.parent
        if member is None or container is None:
            return None
        if container.kind == "class_body":
            owner = class_name(container)
        else:
            owner = object_entity_name(container)
        return f"{owner}.{member}" if owner else member

    bound = _binding_name(node)
    if bound is not None:
        return bound
    return own.text if own is not None else None


def _binding_name(node: SyntaxNode) -> Optional[str]:
    """Name of the variable, assignment target or property *node* initialises."""
    parent = node.parent
    while parent is not None and parent.kind == "parenthesized_expression":
        parent = parent.parent
    if parent is None:
        return None
    if parent.kind == "variable_declarator":
        name = parent.field("name")
        if name is not None and name.kind == "identifier":
            return name.text
    elif parent.kind == "assignment_expression":
        left = parent.field("left")
        if left is not None and left.kind in ("identifier", "member_expression"):
            return left.text
    elif parent.kind == "pair":
        key = property_key_text(parent.field("key"))
        container = parent.parent
        if key is not None and container is not None and container.kind == "object":
            return f"{object_entity_name(container)}.{key}"
    return None
