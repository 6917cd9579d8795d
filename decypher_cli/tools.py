"""Tool definitions: objects that describe a tool to the model.

A tool object carries a ``name`` plus at least one of a ``description``
getter, a ``prompt`` getter or an ``inputSchema``.  Text members are
resolved through the sealed :class:`~decypher_cli.symbols.SymbolTable`;
input schemas are rebuilt as JSON Schema from schema-builder chains such
as ``z.object({path: z.string().describe("...")})``.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .config import ToolsConfig
from .models import Literal, ToolDefinition, ToolProperties
from .symbols import SymbolTable
from .tree import (
    FUNCTION_EXPRESSION_KINDS,
    SyntaxNode,
    function_body,
    object_entity_name,
    property_key_text,
    unwrap_expression,
)

logger = logging.getLogger(__name__)

Schema = Dict[str, Any]

OBJECT_BUILDERS = ("object", "strictObject", "looseObject")
SCALAR_BUILDERS = ("string", "number", "boolean")

SHORT_DESCRIPTION_LENGTH = 200


def _returned_expression(node: SyntaxNode) -> Optional[SyntaxNode]:
    """Expression of the first top-level ``return`` of a function node."""
    body = function_body(node)
    if body is None:
        return None
    if body.kind != "statement_block":
        return body
    for statement in body.named_children:
        if statement.kind == "return_statement":
            returned = statement.named_children
            return returned[0] if returned else None
    return None


def object_members(obj: SyntaxNode) -> Dict[str, SyntaxNode]:
    """Member name -> value node (pairs) or function node (methods)."""
    members: Dict[str, SyntaxNode] = {}
    for prop in obj.named_children:
        if prop.kind == "pair":
            key = property_key_text(prop.field("key"))
            value = unwrap_expression(prop.field("value"))
            if key is not None and value is not None:
                members.setdefault(key, value)
        elif prop.kind == "method_definition":
            key = property_key_text(prop.field("name"))
            if key is not None:
                members.setdefault(key, prop)
    return members


def _is_function(node: Optional[SyntaxNode]) -> bool:
    return node is not None and (node.kind == "method_definition" or node.kind in FUNCTION_EXPRESSION_KINDS)


def member_expression(node: SyntaxNode) -> Optional[SyntaxNode]:
    """The expression a member stands for: its value, or what it returns."""
    if _is_function(node):
        return unwrap_expression(_returned_expression(node))
    return node


def boolean_value(node: Optional[SyntaxNode]) -> Optional[bool]:
    """``true``/``false`` and the minified ``!0``/``!1``."""
    node = unwrap_expression(node)
    if node is None:
        return None
    if node.kind in ("true", "false"):
        return node.kind == "true"
    if node.kind == "unary_expression":
        operator = node.field("operator")
        argument = node.field("argument")
        if operator is not None and operator.text == "!" and argument is not None and argument.kind == "number":
            return argument.text in ("0", "0.0")
    return None


class SchemaParser:
    """Rebuild JSON Schema from schema-builder call chains.

    ``bound`` holds schemas assigned to names earlier in the bundle so
    that ``inputSchema: S`` can be followed.
    """

    def __init__(self, builders: Iterable[str], symbols: Optional[SymbolTable] = None):
        self.builders = frozenset(builders)
        self.symbols = symbols
        self.bound: Dict[str, Schema] = {}

    def bind_declarations(self, root: SyntaxNode) -> None:
        for node in root.walk():
            if node.kind != "variable_declarator":
                continue
            name = node.field("name")
            value = unwrap_expression(node.field("value"))
            if name is None or name.kind != "identifier" or value is None or value.kind != "call_expression":
                continue
            schema = self.parse(value)
            if schema is not None:
                self.bound[name.text] = schema
        logger.debug("Bound %d named schemas", len(self.bound))

    def parse(self, node: Optional[SyntaxNode]) -> Optional[Schema]:
        parsed = self._parse(node)
        return parsed[0] if parsed is not None else None

    def _parse(self, node: Optional[SyntaxNode]) -> Optional[Tuple[Schema, bool]]:
        """``(schema, optional)`` for a builder chain, None if it is not one."""
        node = unwrap_expression(node)
        if node is None:
            return None
        if node.kind == "identifier":
            schema = self.bound.get(node.text)
            return (copy.deepcopy(schema), False) if schema is not None else None
        if node.kind != "call_expression":
            return None
        callee = node.field("function")
        if callee is None or callee.kind != "member_expression":
            return None
        target = unwrap_expression(callee.field("object"))
        prop = callee.field("property")
        if target is None or prop is None:
            return None
        args_node = node.field("arguments")
        args = args_node.named_children if args_node is not None else []

        if target.kind == "identifier" and target.text in self.builders:
            return self._base(prop.text, args), False

        inner = self._parse(target)
        if inner is None:
            return None
        schema, optional = inner
        method = prop.text
        if method == "describe" and args:
            text = self._text(args[0])
            if text is not None:
                schema["description"] = text
        elif method in ("optional", "nullish"):
            optional = True
        elif method == "nullable":
            schema["nullable"] = True
        elif method == "default" and args:
            schema["default"] = self._literal(args[0])
        return schema, optional

    def _base(self, kind: str, args: List[SyntaxNode]) -> Schema:
        if kind in OBJECT_BUILDERS:
            properties: Dict[str, Schema] = {}
            required: List[str] = []
            shape = unwrap_expression(args[0]) if args else None
            if shape is not None and shape.kind == "object":
                for prop in shape.named_children:
                    if prop.kind != "pair":
                        continue
                    key = property_key_text(prop.field("key"))
                    if key is None:
                        continue
                    parsed = self._parse(prop.field("value"))
                    if parsed is None:
                        logger.debug("Unparseable schema for property '%s'", key)
                        parsed = ({}, False)
                    properties[key] = parsed[0]
                    if not parsed[1]:
                        required.append(key)
            return {"type": "object", "properties": properties, "required": required}
        if kind in SCALAR_BUILDERS:
            return {"type": kind}
        if kind == "array":
            items = self.parse(args[0]) if args else None
            return {"type": "array", "items": items if items is not None else {}}
        if kind == "enum":
            choices = unwrap_expression(args[0]) if args else None
            values = []
            if choices is not None and choices.kind == "array":
                values = [v for v in (self._text(el) for el in choices.named_children) if v is not None]
            return {"type": "string", "enum": values}
        if kind == "literal":
            return {"const": self._literal(args[0]) if args else None}
        return {}

    def _text(self, node: SyntaxNode) -> Optional[str]:
        if self.symbols is None:
            return None
        return self.symbols.text_of(node)

    def _literal(self, node: SyntaxNode) -> Any:
        if self.symbols is None:
            return None
        value = self.symbols.resolve_expression(node)
        return value.value if isinstance(value, Literal) else None


class ToolDefinitionExtractor:
    """Find tool definition objects and read their documentation."""

    def __init__(self, symbols: SymbolTable, config: Optional[ToolsConfig] = None):
        self.symbols = symbols
        self.config = config or ToolsConfig()

    @staticmethod
    def is_tool_object(members: Dict[str, SyntaxNode]) -> bool:
        if "name" not in members:
            return False
        return (
            _is_function(members.get("description"))
            or _is_function(members.get("prompt"))
            or "inputSchema" in members
        )

    def extract(self, root: SyntaxNode) -> List[ToolDefinition]:
        schemas = SchemaParser(self.config.schema_builders, self.symbols)
        schemas.bind_declarations(root)

        tools: List[ToolDefinition] = []
        for node in root.walk():
            if node.kind != "object":
                continue
            members = object_members(node)
            if not self.is_tool_object(members):
                continue
            tool = self._read_tool(node, members, schemas)
            if tool is not None:
                tools.append(tool)

        logger.info("Found %d tool definitions", len(tools))
        return tools

    def _text(self, members: Dict[str, SyntaxNode], name: str) -> Optional[str]:
        member = members.get(name)
        if member is None:
            return None
        return self.symbols.text_of(member_expression(member))

    def _read_tool(
        self, node: SyntaxNode, members: Dict[str, SyntaxNode], schemas: SchemaParser
    ) -> Optional[ToolDefinition]:
        name = self._text(members, "name")
        if not name:
            logger.debug("Skipping tool object with unresolved name at %s", object_entity_name(node))
            return None

        full_prompt = self._text(members, "prompt") or ""
        short = self._text(members, "description") or full_prompt[:SHORT_DESCRIPTION_LENGTH]

        input_schema = output_schema = None
        if "inputSchema" in members:
            input_schema = schemas.parse(member_expression(members["inputSchema"]))
        if "outputSchema" in members:
            output_schema = schemas.parse(member_expression(members["outputSchema"]))

        tool = ToolDefinition(
            name=name,
            entity=object_entity_name(node),
            short_description=short,
            full_prompt=full_prompt,
            input_schema=input_schema,
            output_schema=output_schema,
            properties=self._properties(members),
        )
        tool.confidence = self.confidence(tool)
        return tool

    def _properties(self, members: Dict[str, SyntaxNode]) -> ToolProperties:
        props = ToolProperties()
        flags = {
            "strict": "is_strict",
            "isEnabled": "is_enabled",
            "isReadOnly": "is_read_only",
            "isConcurrencySafe": "is_concurrency_safe",
        }
        for member, attr in flags.items():
            if member in members:
                value = boolean_value(member_expression(members[member]))
                if value is not None:
                    setattr(props, attr, value)
        props.user_facing_name = self._text(members, "userFacingName")
        return props

    @staticmethod
    def confidence(tool: ToolDefinition) -> float:
        score = 0.2
        if len(tool.short_description) > 20:
            score += 0.2
        if len(tool.full_prompt) > 100:
            score += 0.4
        if tool.input_schema is not None:
            score += 0.2
        return round(min(score, 1.0), 2)
