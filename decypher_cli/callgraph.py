"""Directed call graph between indexed functions."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Dict, List, Optional, Set, Tuple

from .function_index import FunctionIndex
from .models import CallEdge
from .symbols import SymbolTable
from .tree import SyntaxNode, unwrap_expression

logger = logging.getLogger(__name__)

UNRESOLVED = "<unresolved>"


class CallGraph:
    """Call edges keyed by ``(caller, callee)``, plus a reverse index."""

    def __init__(self, functions: List[str]) -> None:
        self.functions = list(functions)
        self.edges: Dict[Tuple[str, str], CallEdge] = {}
        self._callees: Dict[str, Dict[str, int]] = defaultdict(dict)
        self._callers: Dict[str, Dict[str, int]] = defaultdict(dict)
        self.total_calls = 0
        self.unresolved_calls = 0
        self.top_level_calls = 0

    def add_call(self, caller: str, callee: str) -> None:
        key = (caller, callee)
        edge = self.edges.get(key)
        if edge is None:
            self.edges[key] = CallEdge(caller, callee, 1)
        else:
            edge.count += 1
        self._callees[caller][callee] = self._callees[caller].get(callee, 0) + 1
        self._callers[callee][caller] = self._callers[callee].get(caller, 0) + 1
        self.total_calls += 1
        if callee == UNRESOLVED:
            self.unresolved_calls += 1

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def edge(self, caller: str, callee: str) -> Optional[CallEdge]:
        return self.edges.get((caller, callee))

    def edge_list(self) -> List[CallEdge]:
        return list(self.edges.values())

    def callees(self, func_id: str) -> Dict[str, int]:
        return dict(self._callees.get(func_id, {}))

    def callers(self, func_id: str) -> Dict[str, int]:
        return dict(self._callers.get(func_id, {}))

    def neighbors(self, func_id: str) -> Set[str]:
        """Callers and callees of *func_id*, without itself or the sentinel."""
        found = set(self._callees.get(func_id, {})) | set(self._callers.get(func_id, {}))
        found.discard(func_id)
        found.discard(UNRESOLVED)
        return found

    def out_degree(self, func_id: str) -> int:
        return sum(self._callees.get(func_id, {}).values())

    def in_degree(self, func_id: str) -> int:
        return sum(self._callers.get(func_id, {}).values())

    @property
    def stats(self) -> Dict[str, int]:
        return {
            "functions": len(self.functions),
            "edges": len(self.edges),
            "total_calls": self.total_calls,
            "unresolved_calls": self.unresolved_calls,
            "top_level_calls": self.top_level_calls,
        }


class CallGraphBuilder:
    """Walk every indexed function body and record the calls it makes."""

    def __init__(self, index: FunctionIndex, symbols: SymbolTable):
        self.index = index
        self.symbols = symbols

    def build(self, root: Optional[SyntaxNode] = None) -> CallGraph:
        graph = CallGraph(self.index.ids)
        nested = self.index.is_indexed

        for func in self.index:
            node = self.index.node_of(func.id)
            body = node.field("body") if node is not None else None
            if body is None:
                continue
            for inner in body.walk(prune=nested):
                if inner.kind == "call_expression":
                    graph.add_call(func.id, self.resolve_callee(inner))

        if root is not None:
            graph.top_level_calls = sum(
                1 for inner in root.walk(prune=nested)
                if inner.kind == "call_expression"
            )

        logger.info(
            "Call graph: %d edges, %d calls (%d unresolved, %d top-level)",
            len(graph.edges), graph.total_calls, graph.unresolved_calls, graph.top_level_calls,
        )
        return graph

    def resolve_callee(self, call: SyntaxNode) -> str:
        """Function id a call expression targets, or :data:`UNRESOLVED`."""
        callee = unwrap_expression(call.field("function"))
        if callee is None:
            return UNRESOLVED
        if callee.kind == "identifier":
            name = callee.text
            if name in self.index:
                return name
            for alias in self.symbols.alias_chain(name):
                if alias in self.index:
                    return alias
            return UNRESOLVED
        func_id = self.index.id_of(callee)
        return func_id if func_id is not None else UNRESOLVED
