"""Core data models shared by the analysis components."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple, Union

from .tree import Span, SyntaxNode

# ---------------------------------------------------------------------------
# Symbol values
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Literal:
    value: Union[str, float, bool]

    def as_text(self) -> str:
        if isinstance(self.value, bool):
            return "true" if self.value else "false"
        if isinstance(self.value, float):
            return str(int(self.value)) if self.value.is_integer() else repr(self.value)
        return self.value


@dataclass(frozen=True)
class TemplateText:
    text: str
    has_unresolved_holes: bool = False


@dataclass(frozen=True)
class Reference:
    target: str


@dataclass(frozen=True)
class Unknown:
    pass


@dataclass(frozen=True)
class Cyclic:
    pass


SymbolValue = Union[Literal, TemplateText, Reference, Unknown, Cyclic]

UNKNOWN = Unknown()
CYCLIC = Cyclic()

HOLE = "${...}"


class Provenance(str, Enum):
    DECLARATION = "declaration"
    DEFERRED = "deferred"
    GETTER = "getter"


@dataclass(frozen=True)
class Symbol:
    name: str
    value: SymbolValue
    provenance: Provenance = Provenance.DECLARATION
    entity: Optional[str] = None
    member: Optional[str] = None
    references: Tuple[str, ...] = ()
    span: Optional[Span] = None

    @property
    def text(self) -> Optional[str]:
        """String content of the value, if it has one."""
        if isinstance(self.value, Literal) and isinstance(self.value.value, str):
            return self.value.value
        if isinstance(self.value, TemplateText):
            return self.value.text
        return None


@dataclass
class DeferredBlock:
    enclosing_symbol: Optional[str]
    callee: str
    assignments: List[Tuple[str, SyntaxNode]]
    span: Optional[Span] = None


# ---------------------------------------------------------------------------
# Call graph & metrics
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FunctionNode:
    id: str
    kind: str
    param_count: int
    body_span: Span
    statement_count: int
    is_anonymous: bool = False


@dataclass
class CallEdge:
    caller: str
    callee: str
    count: int = 1


@dataclass(frozen=True)
class ComplexityMetric:
    function: str
    cyclomatic: int
    nesting_depth: int
    statement_count: int
    param_count: int


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


class Category(str, Enum):
    SYSTEM = "system"
    TOOL_DOC = "tool_doc"
    EXAMPLE = "example"
    ERROR = "error"
    INSTRUCTION = "instruction"
    OTHER = "other"


# Tie-break order: most specific first, generic last.
CATEGORY_PRECEDENCE: Tuple[Category, ...] = (
    Category.SYSTEM,
    Category.TOOL_DOC,
    Category.EXAMPLE,
    Category.ERROR,
    Category.INSTRUCTION,
    Category.OTHER,
)


@dataclass
class ExtractionCandidate:
    text: str
    provenance: str
    category: Category = Category.OTHER
    confidence: float = 0.0
    entity: Optional[str] = None
    source: str = "literal"
    matched_categories: Tuple[Category, ...] = ()


# ---------------------------------------------------------------------------
# Literal inventories
# ---------------------------------------------------------------------------


class ConfigCategory(str, Enum):
    MODEL = "model"
    API = "api"
    TELEMETRY = "telemetry"
    PATH = "path"
    TIMEOUT = "timeout"
    FEATURE = "feature"
    OTHER = "other"


@dataclass(frozen=True)
class ConfigValue:
    key: str
    value: str
    value_type: str
    category: ConfigCategory = ConfigCategory.OTHER
    line: int = 0


class StringCategory(str, Enum):
    URL = "url"
    PATH = "path"
    ERROR_MESSAGE = "error_message"
    LOG_MESSAGE = "log_message"
    DOCUMENTATION = "documentation"
    CODE_SNIPPET = "code_snippet"
    OTHER = "other"


@dataclass
class InterestingString:
    value: str
    category: StringCategory
    relevance: float
    line: int = 0
    occurrences: int = 1

    @property
    def length(self) -> int:
        return len(self.value)


@dataclass
class ToolProperties:
    is_strict: bool = False
    is_enabled: bool = True
    is_read_only: bool = False
    is_concurrency_safe: bool = False
    user_facing_name: Optional[str] = None


@dataclass
class ToolDefinition:
    name: str
    entity: str
    short_description: str = ""
    full_prompt: str = ""
    input_schema: Optional[Dict[str, Any]] = None
    output_schema: Optional[Dict[str, Any]] = None
    properties: ToolProperties = field(default_factory=ToolProperties)
    confidence: float = 0.0


@dataclass(frozen=True)
class CodeMetrics:
    total_loc: int = 0
    statement_count: int = 0
    function_count: int = 0
    class_count: int = 0
    variable_count: int = 0
    import_count: int = 0
    export_count: int = 0
    avg_function_length: float = 0.0
    max_function_length: int = 0
    longest_function: Optional[str] = None


# ---------------------------------------------------------------------------
# Module affinity
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ModuleDefinition:
    name: str
    keywords: FrozenSet[str] = frozenset()
    seed_functions: FrozenSet[str] = frozenset()
    fallback: bool = False


@dataclass(frozen=True)
class ModuleAssignment:
    function: str
    module: str
    reason: str = "affinity"
    score: float = 0.0


@dataclass
class AnalysisStats:
    functions: int = 0
    structural_errors: int = 0
    symbols: int = 0
    unknown_symbols: int = 0
    cyclic_symbols: int = 0
    resolution_passes: int = 0
    deferred_blocks: int = 0
    total_calls: int = 0
    unresolved_calls: int = 0
    top_level_calls: int = 0
    artifacts_accepted: int = 0
    artifacts_rejected: int = 0
    fallback_assignments: int = 0
    config_values: int = 0
    interesting_strings: int = 0
    tool_definitions: int = 0
    extraction: Dict[str, int] = field(default_factory=dict)
