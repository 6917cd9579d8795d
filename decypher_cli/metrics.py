"""Whole-bundle code metrics: size, declarations, imports and exports."""

from __future__ import annotations

import logging

from .function_index import FunctionIndex
from .models import CodeMetrics
from .tree import SyntaxNode

logger = logging.getLogger(__name__)

DECLARATION_STATEMENT_KINDS = {
    "function_declaration",
    "generator_function_declaration",
    "class_declaration",
    "variable_declaration",
    "lexical_declaration",
}

CLASS_KINDS = {"class_declaration", "class"}


class CodeMetricsCalculator:
    """Count what a bundle is made of.

    Function sizes come from the :class:`FunctionIndex`; everything else
    is one pass over the program tree.
    """

    def __init__(self, index: FunctionIndex):
        self.index = index

    def calculate(self, root: SyntaxNode) -> CodeMetrics:
        statements = classes = variables = imports = exports = 0
        for node in root.walk():
            # anonymous keyword tokens share names with node kinds ("class")
            if not node.named:
                continue
            kind = node.kind
            if kind.endswith("_statement") or kind in DECLARATION_STATEMENT_KINDS:
                statements += 1
            if kind in CLASS_KINDS:
                classes += 1
            elif kind == "variable_declarator":
                variables += 1
            elif kind == "import_statement" or (kind == "call_expression" and _is_import_call(node)):
                imports += 1
            elif kind == "export_statement" or (kind == "assignment_expression" and _is_export_assignment(node)):
                exports += 1

        lengths = [(func.id, func.statement_count) for func in self.index]
        longest = None
        max_length = 0
        for func_id, length in lengths:
            if longest is None or length > max_length:
                longest, max_length = func_id, length
        average = round(sum(length for _, length in lengths) / len(lengths), 2) if lengths else 0.0

        metrics = CodeMetrics(
            total_loc=_non_blank_lines(root),
            statement_count=statements,
            function_count=len(self.index),
            class_count=classes,
            variable_count=variables,
            import_count=imports,
            export_count=exports,
            avg_function_length=average,
            max_function_length=max_length,
            longest_function=longest,
        )
        logger.debug("Code metrics: %s", metrics)
        return metrics


def _non_blank_lines(root: SyntaxNode) -> int:
    text = root.source.decode("utf-8", errors="replace")
    return sum(1 for line in text.splitlines() if line.strip())


def _is_import_call(node: SyntaxNode) -> bool:
    callee = node.field("function")
    if callee is None:
        return False
    if callee.kind == "import":
        return True
    if callee.kind != "identifier" or callee.text != "require":
        return False
    args = node.field("arguments")
    first = args.named_children[0] if args is not None and args.named_children else None
    return first is not None and first.kind == "string"


def _is_export_assignment(node: SyntaxNode) -> bool:
    left = node.field("left")
    if left is None:
        return False
    target = left.text
    return target == "module.exports" or target.startswith(("exports.", "module.exports."))
