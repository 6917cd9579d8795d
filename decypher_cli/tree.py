"""Parser-neutral program tree consumed by every analysis component.

The parser adapter (:mod:`decypher_cli.parser`) converts a concrete
Tree-sitter tree into :class:`SyntaxNode` objects.  Analyses only rely on
node kinds, grammar field names, child order and source spans, so nothing
of the parser's own API leaks past this module.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional, Set

# ---------------------------------------------------------------------------
# Node kinds shared by the analyses
# ---------------------------------------------------------------------------

FUNCTION_DECLARATION_KINDS: Set[str] = {
    "function_declaration",
    "generator_function_declaration",
}

FUNCTION_EXPRESSION_KINDS: Set[str] = {
    "function_expression",
    "generator_function",
    "arrow_function",
}

FUNCTION_KINDS: Set[str] = (
    FUNCTION_DECLARATION_KINDS | FUNCTION_EXPRESSION_KINDS | {"method_definition"}
)

VARIABLE_DECLARATION_KINDS: Set[str] = {"variable_declaration", "lexical_declaration"}


@dataclass(frozen=True)
class Span:
    start_byte: int
    end_byte: int
    start_line: int
    end_line: int


@dataclass(eq=False)
class SyntaxNode:
    """One node of the program tree.

    ``fields`` maps a grammar field name (``name``, ``body``, ``value``...) to
    the first child carrying it.  Text is decoded lazily from the shared
    source buffer.
    """

    kind: str
    span: Optional[Span] = None
    named: bool = True
    children: List["SyntaxNode"] = field(default_factory=list)
    fields: Dict[str, "SyntaxNode"] = field(default_factory=dict)
    parent: Optional["SyntaxNode"] = field(default=None, repr=False)
    source: bytes = field(default=b"", repr=False)

    @property
    def text(self) -> str:
        if self.span is None:
            return ""
        return self.source[self.span.start_byte:self.span.end_byte].decode("utf-8", errors="replace")

    @property
    def named_children(self) -> List["SyntaxNode"]:
        return [c for c in self.children if c.named]

    def field(self, name: str) -> Optional["SyntaxNode"]:
        return self.fields.get(name)

    def add_child(self, child: "SyntaxNode", field_name: Optional[str] = None) -> "SyntaxNode":
        child.parent = self
        self.children.append(child)
        if field_name and field_name not in self.fields:
            self.fields[field_name] = child
        return child

    def walk(self, prune: Optional[Callable[["SyntaxNode"], bool]] = None) -> Iterator["SyntaxNode"]:
        """Yield this node and its descendants in document order.

        Descendants of a node for which *prune* returns True are skipped
        (the node itself is still yielded).
        """
        stack: List[SyntaxNode] = [self]
        while stack:
            node = stack.pop()
            yield node
            if prune is not None and node is not self and prune(node):
                continue
            stack.extend(reversed(node.children))

    def ancestors(self) -> Iterator["SyntaxNode"]:
        node = self.parent
        while node is not None:
            yield node
            node = node.parent


# ---------------------------------------------------------------------------
# Expression helpers
# ---------------------------------------------------------------------------

def unwrap_expression(node: Optional[SyntaxNode]) -> Optional[SyntaxNode]:
    """Strip parentheses and comma forms: ``((0, fn))`` -> ``fn``."""
    while node is not None:
        if node.kind == "parenthesized_expression":
            inner = node.named_children
            node = inner[-1] if inner else None
        elif node.kind == "sequence_expression":
            inner = node.named_children
            node = inner[-1] if inner else None
        else:
            return node
    return None


def flatten_sequence(node: SyntaxNode) -> List[SyntaxNode]:
    """Expand ``a = 1, b = 2`` into its member expressions."""
    out: List[SyntaxNode] = []
    stack = [node]
    while stack:
        current = stack.pop()
        if current.kind == "sequence_expression":
            stack.extend(reversed(current.named_children))
        else:
            out.append(current)
    return out


def function_body(node: SyntaxNode) -> Optional[SyntaxNode]:
    return node.field("body")


def has_block_body(node: SyntaxNode) -> bool:
    body = function_body(node)
    return body is not None and body.kind == "statement_block"


def parameter_names(node: SyntaxNode) -> List[str]:
    single = node.field("parameter")
    if single is not None:
        return [single.text]
    params = node.field("parameters")
    if params is None:
        return []
    names: List[str] = []
    for param in params.named_children:
        target = param
        # default values and rest parameters wrap the binding identifier
        if param.kind in ("assignment_pattern", "rest_pattern"):
            target = param.field("left") or (param.named_children[0] if param.named_children else param)
        names.append(target.text)
    return names


def parameter_count(node: SyntaxNode) -> int:
    if node.field("parameter") is not None:
        return 1
    params = node.field("parameters")
    return len(params.named_children) if params is not None else 0


def single_return_expression(node: SyntaxNode) -> Optional[SyntaxNode]:
    """Expression produced by a function whose body is one ``return``.

    Arrow functions with an expression body count as well.
    """
    body = function_body(node)
    if body is None:
        return None
    if body.kind != "statement_block":
        return body if node.kind == "arrow_function" else None
    statements = body.named_children
    if len(statements) != 1 or statements[0].kind != "return_statement":
        return None
    returned = statements[0].named_children
    return returned[0] if returned else None


def property_key_text(key: Optional[SyntaxNode]) -> Optional[str]:
    if key is None:
        return None
    if key.kind == "string":
        return string_value(key)
    if key.kind in ("property_identifier", "identifier", "private_property_identifier", "number"):
        return key.text
    return None


def object_entity_name(obj: SyntaxNode) -> str:
    """Name under which an object literal is known.

    The binding it initialises wins, then its ``name`` property, then a
    synthetic name derived from its source offset.
    """
    parent = obj.parent
    while parent is not None and parent.kind == "parenthesized_expression":
        parent = parent.parent
    if parent is not None:
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
            if key:
                return key
    for prop in obj.named_children:
        if prop.kind == "pair" and property_key_text(prop.field("key")) == "name":
            value = prop.field("value")
            if value is not None and value.kind == "string":
                return string_value(value)
            if value is not None and value.kind == "identifier":
                return value.text
    start = obj.span.start_byte if obj.span is not None else 0
    return f"object_{start}"


def class_name(class_body: SyntaxNode) -> Optional[str]:
    owner = class_body.parent
    if owner is None:
        return None
    name = owner.field("name")
    if name is not None:
        return name.text
    if owner.parent is not None and owner.parent.kind == "variable_declarator":
        declared = owner.parent.field("name")
        return declared.text if declared is not None else None
    return None


# ---------------------------------------------------------------------------
# Literal decoding
# ---------------------------------------------------------------------------

_SIMPLE_ESCAPES = {
    "n": "\n", "t": "\t", "r": "\r", "b": "\b", "f": "\f", "v": "\v", "0": "\0",
}

_ESCAPE_RE = re.compile(
    r"\\(?P<pair>u[dD][89abAB][0-9a-fA-F]{2}\\u[dD][c-fC-F][0-9a-fA-F]{2})"
    r"|\\(?P<esc>u\{[0-9a-fA-F]+\}|u[0-9a-fA-F]{4}|x[0-9a-fA-F]{2}|\r\n|[\s\S])"
)


def _code_point(value: int) -> str:
    # Lone surrogates cannot be encoded as UTF-8.
    if 0xD800 <= value <= 0xDFFF or value > 0x10FFFF:
        return "\ufffd"
    return chr(value)


def _decode_escape(match: "re.Match[str]") -> str:
    pair = match.group("pair")
    if pair is not None:
        high, low = int(pair[1:5], 16), int(pair[7:11], 16)
        return chr(0x10000 + ((high - 0xD800) << 10) + (low - 0xDC00))
    esc = match.group("esc")
    if esc.startswith("u{"):
        return _code_point(int(esc[2:-1], 16))
    if esc.startswith("u") and len(esc) == 5:
        return _code_point(int(esc[1:], 16))
    if esc.startswith("x") and len(esc) == 3:
        return chr(int(esc[1:], 16))
    if esc in ("\n", "\r\n", "\r", "\u2028", "\u2029"):
        return ""  # line continuation
    return _SIMPLE_ESCAPES.get(esc, esc)


def unescape_js(raw: str) -> str:
    return _ESCAPE_RE.sub(_decode_escape, raw)


def string_value(node: SyntaxNode) -> str:
    """Cooked value of a ``string`` node."""
    raw = node.text
    if len(raw) >= 2 and raw[0] in "\"'" and raw[-1] == raw[0]:
        raw = raw[1:-1]
    return unescape_js(raw)


def template_parts(node: SyntaxNode) -> List[object]:
    """Split a ``template_string`` into text chunks and substitution nodes.

    Text chunks are cooked strings; substitutions are returned as the
    expression node inside ``${...}``.  Offsets are taken from spans so the
    result does not depend on how the grammar exposes template text.
    """
    if node.span is None:
        return []
    parts: List[object] = []
    cursor = node.span.start_byte + 1
    end = node.span.end_byte - 1
    for child in node.children:
        if child.kind != "template_substitution" or child.span is None:
            continue
        if child.span.start_byte > cursor:
            parts.append(unescape_js(node.source[cursor:child.span.start_byte].decode("utf-8", errors="replace")))
        inner = child.named_children
        parts.append(inner[0] if inner else None)
        cursor = child.span.end_byte
    if end > cursor:
        parts.append(unescape_js(node.source[cursor:end].decode("utf-8", errors="replace")))
    return parts


def number_value(text: str) -> Optional[float]:
    cleaned = text.replace("_", "")
    if cleaned.endswith("n"):  # BigInt
        cleaned = cleaned[:-1]
    try:
        if cleaned[:2].lower() in ("0x", "0o", "0b"):
            return float(int(cleaned, 0))
        return float(cleaned)
    except ValueError:
        return None
