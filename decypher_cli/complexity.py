"""Per-function cyclomatic complexity, nesting depth and size metrics."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .errors import StructuralError
from .function_index import FunctionIndex
from .models import ComplexityMetric
from .tree import SyntaxNode

logger = logging.getLogger(__name__)

# Each occurrence adds one independent path.
DECISION_KINDS = {
    "if_statement",
    "ternary_expression",
    "for_statement",
    "for_in_statement",
    "while_statement",
    "do_statement",
    "switch_case",
    "catch_clause",
}

SHORT_CIRCUIT_OPERATORS = {"&&", "||"}

NESTING_KINDS = {
    "if_statement",
    "for_statement",
    "for_in_statement",
    "while_statement",
    "do_statement",
    "switch_statement",
    "try_statement",
}


@dataclass
class ComplexityReport:
    metrics: List[ComplexityMetric] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.by_function: Dict[str, ComplexityMetric] = {m.function: m for m in self.metrics}

    def get(self, func_id: str) -> Optional[ComplexityMetric]:
        return self.by_function.get(func_id)

    def top(self, n: int = 10) -> List[ComplexityMetric]:
        """The *n* most complex functions, ties kept in document order."""
        return sorted(self.metrics, key=lambda m: -m.cyclomatic)[:n]

    @property
    def summary(self) -> Dict[str, object]:
        if not self.metrics:
            return {
                "functions": 0,
                "average_cyclomatic": 0.0,
                "max_cyclomatic": 0,
                "most_complex": None,
                "total_decision_points": 0,
                "average_nesting_depth": 0.0,
                "max_nesting_depth": 0,
            }
        count = len(self.metrics)
        worst = self.top(1)[0]
        return {
            "functions": count,
            "average_cyclomatic": round(sum(m.cyclomatic for m in self.metrics) / count, 2),
            "max_cyclomatic": worst.cyclomatic,
            "most_complex": worst.function,
            "total_decision_points": sum(m.cyclomatic - 1 for m in self.metrics),
            "average_nesting_depth": round(sum(m.nesting_depth for m in self.metrics) / count, 2),
            "max_nesting_depth": max(m.nesting_depth for m in self.metrics),
        }


class ComplexityAnalyzer:
    """Compute one :class:`ComplexityMetric` per indexed function.

    Nested indexed functions are skipped while walking a body; they are
    measured on their own.
    """

    def __init__(self, index: FunctionIndex):
        self.index = index

    def analyze(self) -> ComplexityReport:
        metrics: List[ComplexityMetric] = []
        for func in self.index:
            try:
                metrics.append(self.measure(func.id))
            except StructuralError as exc:
                logger.warning("Skipping complexity for %s: %s", func.id, exc)
        report = ComplexityReport(metrics)
        logger.info("Measured complexity of %d functions", len(metrics))
        return report

    def measure(self, func_id: str) -> ComplexityMetric:
        func = self.index.get(func_id)
        node = self.index.node_of(func_id)
        body = node.field("body") if node is not None else None
        if func is None or body is None:
            raise StructuralError(f"no body for function '{func_id}'")
        cyclomatic, depth = self._walk(body)
        return ComplexityMetric(
            function=func_id,
            cyclomatic=cyclomatic,
            nesting_depth=depth,
            statement_count=func.statement_count,
            param_count=func.param_count,
        )

    def _walk(self, body: SyntaxNode) -> Tuple[int, int]:
        cyclomatic = 1
        max_depth = 0
        stack: List[Tuple[SyntaxNode, int]] = [(child, 0) for child in reversed(body.children)]
        while stack:
            node, depth = stack.pop()
            if self.index.is_indexed(node):
                continue
            if node.kind in DECISION_KINDS or _is_short_circuit(node):
                cyclomatic += 1
            if node.kind in NESTING_KINDS and not _is_else_if(node):
                depth += 1
                max_depth = max(max_depth, depth)
            stack.extend((child, depth) for child in reversed(node.children))
        return cyclomatic, max_depth


def _is_short_circuit(node: SyntaxNode) -> bool:
    if node.kind != "binary_expression":
        return False
    operator = node.field("operator")
    return operator is not None and operator.text in SHORT_CIRCUIT_OPERATORS


def _is_else_if(node: SyntaxNode) -> bool:
    return node.kind == "if_statement" and node.parent is not None and node.parent.kind == "else_clause"
