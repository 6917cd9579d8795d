"""Literal inventories: configuration values and interesting strings.

Both extractors read the same stream of literals from the program tree.
Configuration values are short literals whose value or binding name
matches one of the configured patterns (model ids, endpoints, version
and timeout constants).  Interesting strings are every other string worth
a second look, ranked by a fixed relevance table.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, Iterator, List, Optional, Tuple

from .config import StringsConfig
from .models import ConfigCategory, ConfigValue, InterestingString, StringCategory
from .tree import SyntaxNode, object_entity_name, property_key_text, string_value, template_parts

logger = logging.getLogger(__name__)

_MILLISECONDS_RE = re.compile(r"\d+\s*ms\b")

LOG_MARKERS = ("[INFO]", "[WARN]", "[ERROR]", "[DEBUG]")


# ---------------------------------------------------------------------------
# Literal stream
# ---------------------------------------------------------------------------

def literal_key(node: SyntaxNode) -> Optional[str]:
    """Name of the binding *node* initialises, if any.

    ``var K = ...`` gives ``K``, ``{a: ...}`` gives ``Entity.a`` and
    ``x.y = ...`` gives ``x.y``.
    """
    child, parent = node, node.parent
    while parent is not None and parent.kind == "parenthesized_expression":
        child, parent = parent, parent.parent
    if parent is None:
        return None
    if parent.kind == "variable_declarator" and parent.field("value") is child:
        name = parent.field("name")
        return name.text if name is not None and name.kind == "identifier" else None
    if parent.kind == "pair" and parent.field("value") is child:
        key = property_key_text(parent.field("key"))
        if key is None or parent.parent is None:
            return None
        return f"{object_entity_name(parent.parent)}.{key}"
    if parent.kind == "assignment_expression" and parent.field("right") is child:
        left = parent.field("left")
        return left.text if left is not None else None
    return None


def iter_literals(root: SyntaxNode, strings_only: bool = False) -> Iterator[Tuple[SyntaxNode, str, str]]:
    """Yield ``(node, value, value_type)`` for every literal candidate.

    Strings and substitution-free templates come from anywhere except
    property keys; numbers and booleans only when they initialise a named
    binding.
    """
    for node in root.walk():
        if not node.named:
            continue
        if node.kind == "string":
            if not _is_property_key(node):
                yield node, string_value(node), "string"
        elif node.kind == "template_string":
            parts = template_parts(node)
            if all(isinstance(part, str) for part in parts):
                yield node, "".join(p for p in parts if isinstance(p, str)), "string"
        elif strings_only:
            continue
        elif node.kind == "number" and literal_key(node) is not None:
            yield node, node.text, "number"
        elif node.kind in ("true", "false") and literal_key(node) is not None:
            yield node, node.kind, "boolean"


def _is_property_key(node: SyntaxNode) -> bool:
    parent = node.parent
    return parent is not None and parent.kind == "pair" and parent.field("key") is node


def _line(node: SyntaxNode) -> int:
    return node.span.start_line if node.span is not None else 0


# ---------------------------------------------------------------------------
# Configuration values
# ---------------------------------------------------------------------------

def categorize_config(key: str, value: str) -> ConfigCategory:
    text = f"{key} {value}".lower()
    if any(word in text for word in ("sonnet", "opus", "haiku")):
        return ConfigCategory.MODEL
    if "/api/" in text or "anthropic.com" in text or value.lower().startswith(("http://", "https://")):
        return ConfigCategory.API
    if "telemetry" in text or "metric" in text:
        return ConfigCategory.TELEMETRY
    if "/" in text or "\\" in text:
        return ConfigCategory.PATH
    if "timeout" in text or _MILLISECONDS_RE.search(text):
        return ConfigCategory.TIMEOUT
    if "feature" in text or "flag" in text:
        return ConfigCategory.FEATURE
    return ConfigCategory.OTHER


class ConfigValueExtractor:
    """Collect configuration constants embedded in a bundle."""

    def __init__(self, config: Optional[StringsConfig] = None):
        self.config = config or StringsConfig()

    def is_config(self, key: str, value: str) -> bool:
        return any(pattern in value or pattern in key for pattern in self.config.config_patterns)

    def extract(self, root: SyntaxNode) -> List[ConfigValue]:
        values: List[ConfigValue] = []
        unnamed = 0
        for node, value, value_type in iter_literals(root):
            if value_type == "string" and len(value) > self.config.config_max_length:
                continue
            key = literal_key(node)
            if not self.is_config(key or "", value):
                continue
            if key is None:
                unnamed += 1
                key = f"config_{unnamed}"
            values.append(ConfigValue(key, value, value_type, categorize_config(key, value), _line(node)))

        logger.info("Found %d configuration values", len(values))
        return values


# ---------------------------------------------------------------------------
# Interesting strings
# ---------------------------------------------------------------------------

def categorize_string(value: str) -> Tuple[Optional[StringCategory], float]:
    """Category and relevance of *value*; ``(None, 0.0)`` when uninteresting."""
    if value.startswith(("http://", "https://")):
        return StringCategory.URL, 0.9
    if value.startswith("/") or "\\" in value or "./" in value:
        return StringCategory.PATH, 0.7
    if value.startswith(("Error:", "Failed")):
        return StringCategory.ERROR_MESSAGE, 0.8
    if any(marker in value for marker in LOG_MARKERS):
        return StringCategory.LOG_MESSAGE, 0.6
    if len(value) > 50 and ("/**" in value or "///" in value):
        return StringCategory.DOCUMENTATION, 0.5
    if "function" in value or "const " in value or "=>" in value:
        return StringCategory.CODE_SNIPPET, 0.4
    if 20 < len(value) < 200:
        return StringCategory.OTHER, 0.3
    return None, 0.0


class StringExtractor:
    """Rank string literals by how much they say about the program."""

    def __init__(self, config: Optional[StringsConfig] = None):
        self.config = config or StringsConfig()

    def extract(self, root: SyntaxNode) -> List[InterestingString]:
        found: Dict[str, InterestingString] = {}
        for node, value, _ in iter_literals(root, strings_only=True):
            if len(value) < self.config.min_length:
                continue
            existing = found.get(value)
            if existing is not None:
                existing.occurrences += 1
                continue
            category, relevance = categorize_string(value)
            if category is None or relevance < self.config.relevance_threshold:
                continue
            found[value] = InterestingString(value, category, relevance, _line(node))

        # sort is stable, so equal relevance keeps document order
        ranked = sorted(found.values(), key=lambda s: -s.relevance)
        if len(ranked) > self.config.max_strings:
            logger.debug("Keeping %d of %d interesting strings", self.config.max_strings, len(ranked))
            ranked = ranked[: self.config.max_strings]
        logger.info("Found %d interesting strings", len(ranked))
        return ranked
