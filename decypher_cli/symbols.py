"""Symbol Table: what each declared name holds.

Bindings are collected from three places in one tree walk:

* variable declarations (``var a = "x"``, ``const b = a``),
* getter-style functions whose body is a single ``return <expr>``,
* assignments inside deferred-initializer closures
  (``lazy_init(() => { a = "x", b = `...` })``).

Each right-hand side is classified into a raw value.  References and
template holes are then substituted by :func:`resolve_bindings` in a
bounded number of passes, after which the table is sealed and shared
read-only by the downstream analyses.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, List, Optional, Pattern, Sequence, Set, Tuple, Union

from .config import ResolutionConfig
from .models import (
    CYCLIC,
    HOLE,
    UNKNOWN,
    Cyclic,
    DeferredBlock,
    Literal,
    Provenance,
    Reference,
    Symbol,
    SymbolValue,
    TemplateText,
    Unknown,
)
from .tree import (
    FUNCTION_DECLARATION_KINDS,
    FUNCTION_EXPRESSION_KINDS,
    VARIABLE_DECLARATION_KINDS,
    Span,
    SyntaxNode,
    class_name,
    flatten_sequence,
    has_block_body,
    number_value,
    object_entity_name,
    parameter_count,
    parameter_names,
    property_key_text,
    single_return_expression,
    string_value,
    template_parts,
    unwrap_expression,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Raw (pre-resolution) values
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Hole:
    """A template substitution; ``target`` is set for plain identifiers."""

    target: Optional[str] = None


@dataclass(frozen=True)
class PendingTemplate:
    """Template text whose identifier holes are not substituted yet."""

    parts: Tuple[Union[str, Hole], ...]
    unresolved: bool = False

    @property
    def waiting(self) -> bool:
        return any(isinstance(p, Hole) and p.target is not None for p in self.parts)

    def finalize(self) -> TemplateText:
        chunks: List[str] = []
        unresolved = self.unresolved
        for part in self.parts:
            if isinstance(part, Hole):
                chunks.append(HOLE)
                unresolved = True
            else:
                chunks.append(part)
        return TemplateText("".join(chunks), unresolved)


RawValue = Union[SymbolValue, PendingTemplate]


@dataclass
class RawBinding:
    name: str
    value: RawValue
    provenance: Provenance
    entity: Optional[str] = None
    member: Optional[str] = None
    span: Optional[Span] = None
    node: Optional[SyntaxNode] = field(default=None, repr=False)


# ---------------------------------------------------------------------------
# Fixed-point resolution
# ---------------------------------------------------------------------------


def _is_final(value: RawValue) -> bool:
    return isinstance(value, (Literal, TemplateText, Unknown, Cyclic))


def _substitute(template: PendingTemplate, values: Dict[str, RawValue]) -> RawValue:
    parts: List[Union[str, Hole]] = []
    unresolved = template.unresolved
    for part in template.parts:
        if not isinstance(part, Hole) or part.target is None:
            parts.append(part)
            continue
        if part.target not in values:
            parts.append(Hole())
            continue
        target = values[part.target]
        if isinstance(target, Literal):
            parts.append(target.as_text())
        elif isinstance(target, TemplateText):
            parts.append(target.text)
            unresolved = unresolved or target.has_unresolved_holes
        elif isinstance(target, (Unknown, Cyclic)):
            parts.append(Hole())
        else:
            parts.append(part)

    merged: List[Union[str, Hole]] = []
    for part in parts:
        if isinstance(part, str) and merged and isinstance(merged[-1], str):
            merged[-1] = merged[-1] + part
        else:
            merged.append(part)
    pending = PendingTemplate(tuple(merged), unresolved)
    return pending if pending.waiting else pending.finalize()


def _step(value: RawValue, values: Dict[str, RawValue]) -> RawValue:
    if isinstance(value, Reference):
        if value.target not in values:
            return UNKNOWN
        target = values[value.target]
        return value if isinstance(target, Reference) else target
    if isinstance(value, PendingTemplate):
        return _substitute(value, values)
    return value


def _run_passes(values: Dict[str, RawValue], max_passes: int) -> int:
    passes = 0
    for _ in range(max_passes):
        passes += 1
        changed = False
        for name in list(values):
            current = values[name]
            if _is_final(current):
                continue
            updated = _step(current, values)
            if updated != current:
                values[name] = updated
                changed = True
        if not changed:
            break
    return passes


def resolve_bindings(
    raw: Mapping[str, RawValue], max_passes: int = 10
) -> Tuple[Dict[str, SymbolValue], int]:
    """Resolve references and template holes; return values and passes run.

    *raw* is not modified.  References still pending after *max_passes*
    are loops and become ``Cyclic``; a reference to a name that does not
    exist becomes ``Unknown``.  Template holes that never reach a literal
    value are rendered as ``${...}``.
    """
    values: Dict[str, RawValue] = dict(raw)
    passes = _run_passes(values, max_passes)

    for name, value in values.items():
        if isinstance(value, Reference):
            values[name] = CYCLIC

    # Holes pointing at the loops found above can now settle.
    passes += _run_passes(values, max_passes)

    resolved: Dict[str, SymbolValue] = {}
    for name, value in values.items():
        if isinstance(value, PendingTemplate):
            resolved[name] = value.finalize()
        elif isinstance(value, Reference):
            resolved[name] = CYCLIC
        else:
            resolved[name] = value
    return resolved, passes


# ---------------------------------------------------------------------------
# Sealed table
# ---------------------------------------------------------------------------


class SymbolTable(Mapping):
    """Read-only view of the resolved symbols."""

    def __init__(
        self,
        symbols: Dict[str, Symbol],
        deferred_blocks: Sequence[DeferredBlock] = (),
        bound_nodes: Iterable[SyntaxNode] = (),
        passes: int = 0,
    ) -> None:
        self._symbols = MappingProxyType(dict(symbols))
        self.deferred_blocks: Tuple[DeferredBlock, ...] = tuple(deferred_blocks)
        self.bound_nodes: frozenset = frozenset(bound_nodes)
        self.passes = passes

    def __getitem__(self, name: str) -> Symbol:
        return self._symbols[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._symbols)

    def __len__(self) -> int:
        return len(self._symbols)

    def value_of(self, name: str) -> SymbolValue:
        symbol = self._symbols.get(name)
        return symbol.value if symbol is not None else UNKNOWN

    def resolve_expression(self, expr: Optional[SyntaxNode]) -> SymbolValue:
        """Value of an arbitrary expression, looking identifiers up here.

        Templates are rendered with their identifier holes substituted;
        anything not classifiable is ``Unknown``.
        """
        expr = unwrap_expression(expr)
        if expr is None:
            return UNKNOWN
        if expr.kind == "template_string":
            return self._render_template(expr)
        raw = classify_expression(expr)
        if isinstance(raw, Reference):
            return self.value_of(raw.target)
        if isinstance(raw, (Literal, TemplateText, Cyclic, Unknown)):
            return raw
        return UNKNOWN

    def text_of(self, expr: Optional[SyntaxNode]) -> Optional[str]:
        value = self.resolve_expression(expr)
        if isinstance(value, Literal) and isinstance(value.value, str):
            return value.value
        if isinstance(value, TemplateText):
            return value.text
        return None

    def _render_template(self, node: SyntaxNode) -> TemplateText:
        chunks: List[str] = []
        unresolved = False
        for part in template_parts(node):
            if isinstance(part, str):
                chunks.append(part)
                continue
            hole = unwrap_expression(part)
            value = UNKNOWN if hole is None or _is_parameter(hole) else self.resolve_expression(hole)
            if isinstance(value, Literal):
                chunks.append(value.as_text())
            elif isinstance(value, TemplateText):
                chunks.append(value.text)
                unresolved = unresolved or value.has_unresolved_holes
            else:
                chunks.append(HOLE)
                unresolved = True
        return TemplateText("".join(chunks), unresolved)

    def alias_chain(self, name: str) -> Tuple[str, ...]:
        symbol = self._symbols.get(name)
        return symbol.references if symbol is not None else ()

    def by_entity(self, entity: str) -> List[Symbol]:
        return [s for s in self._symbols.values() if s.entity == entity]

    def is_bound(self, node: SyntaxNode) -> bool:
        return node in self.bound_nodes

    @property
    def stats(self) -> Dict[str, int]:
        values = [s.value for s in self._symbols.values()]
        return {
            "total": len(values),
            "literals": sum(isinstance(v, Literal) for v in values),
            "templates": sum(isinstance(v, TemplateText) for v in values),
            "unknown": sum(isinstance(v, Unknown) for v in values),
            "cyclic": sum(isinstance(v, Cyclic) for v in values),
            "passes": self.passes,
            "deferred_blocks": len(self.deferred_blocks),
        }


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------


class SymbolTableBuilder:
    """Collect bindings from a program tree and resolve them.

    ``deferred_initializers`` and ``deferred_pattern`` decide which callees
    count as run-once initializers; both default to the values in
    :class:`~decypher_cli.config.ResolutionConfig`.
    """

    def __init__(
        self,
        config: Optional[ResolutionConfig] = None,
        deferred_initializers: Optional[Iterable[str]] = None,
        deferred_pattern: Optional[str] = None,
    ) -> None:
        self.config = config or ResolutionConfig()
        names = self.config.deferred_initializers if deferred_initializers is None else deferred_initializers
        self.deferred_initializers: Set[str] = set(names)
        pattern = self.config.deferred_initializer_pattern if deferred_pattern is None else deferred_pattern
        self._deferred_re: Optional[Pattern[str]] = re.compile(pattern) if pattern else None

    def is_deferred_initializer(self, callee: str) -> bool:
        if callee in self.deferred_initializers:
            return True
        return bool(self._deferred_re and self._deferred_re.match(callee))

    def build(self, root: SyntaxNode) -> SymbolTable:
        declarations: List[RawBinding] = []
        getters: List[RawBinding] = []
        deferred: List[RawBinding] = []
        blocks: List[DeferredBlock] = []
        bound: Set[SyntaxNode] = set()

        for node in root.walk():
            if node.kind == "variable_declarator":
                binding = self._from_declarator(node)
                if binding is not None:
                    declarations.append(binding)
            elif node.kind in FUNCTION_DECLARATION_KINDS or node.kind in FUNCTION_EXPRESSION_KINDS:
                binding = self._from_getter(node)
                if binding is not None:
                    getters.append(binding)
            elif node.kind == "method_definition":
                binding = self._from_method(node)
                if binding is not None:
                    getters.append(binding)
            elif node.kind == "call_expression":
                block = self._deferred_block(node)
                if block is not None:
                    blocks.append(block)
                    deferred.extend(self._from_deferred(block))

        raw: Dict[str, RawBinding] = {}
        for binding in declarations + getters + deferred:
            existing = raw.get(binding.name)
            if existing is not None and isinstance(binding.value, Unknown) and not isinstance(existing.value, Unknown):
                continue
            raw[binding.name] = binding
        for binding in raw.values():
            if binding.node is not None:
                bound.add(binding.node)

        resolved, passes = resolve_bindings(
            {name: b.value for name, b in raw.items()}, self.config.max_passes
        )

        symbols: Dict[str, Symbol] = {}
        for name, binding in raw.items():
            symbols[name] = Symbol(
                name=name,
                value=resolved[name],
                provenance=binding.provenance,
                entity=binding.entity,
                member=binding.member,
                references=_alias_chain(name, raw),
                span=binding.span,
            )

        table = SymbolTable(symbols, blocks, bound, passes)
        stats = table.stats
        logger.info(
            "Resolved %d symbols in %d passes (%d unknown, %d cyclic, %d deferred blocks)",
            stats["total"], passes, stats["unknown"], stats["cyclic"], len(blocks),
        )
        return table

    # ------------------------------------------------------------------
    # Binding sources
    # ------------------------------------------------------------------

    def _from_declarator(self, node: SyntaxNode) -> Optional[RawBinding]:
        if node.parent is None or node.parent.kind not in VARIABLE_DECLARATION_KINDS:
            return None
        name = node.field("name")
        value = node.field("value")
        if name is None or name.kind != "identifier" or value is None:
            return None
        expr = unwrap_expression(value)
        if expr is None:
            return None
        raw = classify_expression(expr)
        if raw is None:
            return None
        return RawBinding(name.text, raw, Provenance.DECLARATION, span=node.span, node=expr)

    def _from_getter(self, node: SyntaxNode) -> Optional[RawBinding]:
        name = _function_binding_name(node)
        if name is None:
            return None
        returned = single_return_expression(node)
        if returned is None:
            return None
        returned = unwrap_expression(returned)
        if returned is None:
            return None
        raw = classify_expression(returned, parameter_names(node))
        if raw is None:
            return None
        entity, member = _split_member(node, name)
        return RawBinding(name, raw, Provenance.GETTER, entity, member, node.span, returned)

    def _from_method(self, node: SyntaxNode) -> Optional[RawBinding]:
        member = property_key_text(node.field("name"))
        container = node.parent
        if member is None or container is None:
            return None
        returned = single_return_expression(node)
        if returned is None:
            return None
        returned = unwrap_expression(returned)
        if returned is None:
            return None
        raw = classify_expression(returned, parameter_names(node))
        if raw is None:
            return None
        entity = class_name(container) if container.kind == "class_body" else object_entity_name(container)
        name = f"{entity}.{member}" if entity else member
        return RawBinding(name, raw, Provenance.GETTER, entity, member, node.span, returned)

    def _deferred_block(self, node: SyntaxNode) -> Optional[DeferredBlock]:
        callee = unwrap_expression(node.field("function"))
        args = node.field("arguments")
        if callee is None or callee.kind != "identifier" or args is None:
            return None
        first = args.named_children[0] if args.named_children else None
        if (
            first is None
            or first.kind not in FUNCTION_EXPRESSION_KINDS
            or parameter_count(first) != 0
            or not has_block_body(first)
        ):
            return None

        line = node.span.start_line if node.span is not None else 0
        if not self.is_deferred_initializer(callee.text):
            logger.debug("Rejected deferred-initializer candidate %s() at line %d", callee.text, line)
            return None
        logger.debug("Accepted deferred-initializer call %s() at line %d", callee.text, line)

        assignments: List[Tuple[str, SyntaxNode]] = []
        for statement in first.field("body").named_children:
            if statement.kind != "expression_statement" or not statement.named_children:
                continue
            top = statement.named_children[0]
            while top.kind == "parenthesized_expression" and top.named_children:
                top = top.named_children[-1]
            for expr in flatten_sequence(top):
                if expr.kind != "assignment_expression":
                    continue
                left = expr.field("left")
                right = expr.field("right")
                if left is not None and left.kind == "identifier" and right is not None:
                    assignments.append((left.text, right))
        return DeferredBlock(
            enclosing_symbol=_function_binding_name(node),
            callee=callee.text,
            assignments=assignments,
            span=node.span,
        )

    def _from_deferred(self, block: DeferredBlock) -> List[RawBinding]:
        bindings: List[RawBinding] = []
        for name, rhs in block.assignments:
            expr = unwrap_expression(rhs)
            if expr is None:
                continue
            raw = classify_expression(expr)
            if raw is None:
                continue
            bindings.append(RawBinding(name, raw, Provenance.DEFERRED, span=rhs.span, node=expr))
        return bindings


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


def classify_expression(expr: SyntaxNode, params: Sequence[str] = ()) -> Optional[RawValue]:
    """Raw value of an initializer, or None when it holds nothing we track."""
    kind = expr.kind
    if kind == "string":
        return Literal(string_value(expr))
    if kind == "number":
        number = number_value(expr.text)
        return Literal(number) if number is not None else None
    if kind in ("true", "false"):
        return Literal(kind == "true")
    if kind == "template_string":
        return _classify_template(expr, params)
    if kind == "identifier":
        if expr.text in params:
            return UNKNOWN
        return Reference(expr.text)
    return None


def _classify_template(expr: SyntaxNode, params: Sequence[str]) -> RawValue:
    parts: List[Union[str, Hole]] = []
    for part in template_parts(expr):
        if isinstance(part, str):
            parts.append(part)
            continue
        hole = unwrap_expression(part) if part is not None else None
        if hole is None:
            parts.append(Hole())
        elif hole.kind == "identifier" and hole.text not in params:
            parts.append(Hole(hole.text))
        else:
            value = classify_expression(hole)
            if isinstance(value, Literal):
                parts.append(value.as_text())
            else:
                parts.append(Hole())
    pending = PendingTemplate(tuple(parts))
    return pending if pending.waiting else pending.finalize()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _function_binding_name(node: SyntaxNode) -> Optional[str]:
    """Name a function (or call) is reachable under: its own or its binding's."""
    if node.kind in FUNCTION_DECLARATION_KINDS:
        name = node.field("name")
        return name.text if name is not None else None
    parent = node.parent
    while parent is not None and parent.kind == "parenthesized_expression":
        parent = parent.parent
    if parent is not None and parent.kind == "variable_declarator":
        name = parent.field("name")
        if name is not None and name.kind == "identifier":
            return name.text
    if parent is not None and parent.kind == "pair":
        key = property_key_text(parent.field("key"))
        container = parent.parent
        if key is not None and container is not None and container.kind == "object":
            return f"{object_entity_name(container)}.{key}"
    return None


def _is_parameter(node: SyntaxNode) -> bool:
    """True for an identifier naming a parameter of an enclosing function."""
    if node.kind != "identifier":
        return False
    for ancestor in node.ancestors():
        if (
            ancestor.kind in FUNCTION_DECLARATION_KINDS
            or ancestor.kind in FUNCTION_EXPRESSION_KINDS
            or ancestor.kind == "method_definition"
        ) and node.text in parameter_names(ancestor):
            return True
    return False


def _split_member(node: SyntaxNode, name: str) -> Tuple[Optional[str], Optional[str]]:
    parent = node.parent
    while parent is not None and parent.kind == "parenthesized_expression":
        parent = parent.parent
    if parent is not None and parent.kind == "pair" and "." in name:
        entity, _, member = name.rpartition(".")
        return entity, member
    return None, None


def _alias_chain(name: str, raw: Mapping[str, RawBinding]) -> Tuple[str, ...]:
    chain: List[str] = []
    seen = {name}
    value = raw[name].value
    while isinstance(value, Reference) and value.target not in seen:
        chain.append(value.target)
        seen.add(value.target)
        target = raw.get(value.target)
        if target is None:
            break
        value = target.value
    return tuple(chain)
