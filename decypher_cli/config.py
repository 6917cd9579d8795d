"""Configuration paths and analysis options for decypher."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .errors import ConfigurationError
from .models import ModuleDefinition

BASE_DIR = Path(os.environ.get("DECYPHER_HOME", str(Path.home() / ".decypher"))).expanduser()
CONFIG_FILE = BASE_DIR / "config.toml"
SUPPORTED_EXTENSIONS = {".js", ".mjs", ".cjs"}


def ensure_base_dirs() -> None:
    """Create the base directory for local configuration if needed."""
    BASE_DIR.mkdir(parents=True, exist_ok=True)


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULT_DEFERRED_INITIALIZERS: Tuple[str, ...] = ("lazy_init",)
# Bundlers commonly minify the run-once initializer helper to one capital letter.
DEFAULT_DEFERRED_PATTERN = r"^[A-Z]$"

DEFAULT_CODE_IDIOMS: Tuple[str, ...] = (
    "function(",
    "async function",
    "() =>",
    "=> {",
    "} catch {",
    "throw Error(",
    "throw new Error(",
    "return !",
    "if (!",
    "stdio:",
    ".forEach(",
    ".map(",
    "});",
    "module.exports",
    "require(",
    "#!/bin/",
)

DEFAULT_SIGNATURES: Dict[str, Tuple[str, ...]] = {
    "system": ("You are ", "answer the user", "system prompt", "You are powered by"),
    "tool_doc": ("This tool", "tool", "Usage notes:", "Parameters:", "Returns:", "function_calls", "tool_use"),
    "example": ("Example:", "<example>", "For example", "```"),
    "error": ("Error:", "error", "Failed to", "failed", "Invalid"),
    "instruction": ("IMPORTANT:", "Usage:", "NEVER", "ALWAYS", "You must", "When to use", "When NOT to use", "Note:"),
}

DEFAULT_ENTITY_PATTERNS: Dict[str, Tuple[str, ...]] = {
    "Read": ("Reads a file from the local filesystem",),
    "Write": ("Writes a file to the local filesystem",),
    "Edit": ("Performs exact string replacements",),
    "Bash": ("Executes a given bash command",),
    "Grep": ("A powerful search tool built on ripgrep",),
    "Glob": ("Fast file pattern matching",),
    "Task": ("Launch a new agent",),
    "TodoWrite": ("Use this tool to create and manage a structured task list",),
    "WebFetch": ("Fetches content from a specified URL",),
    "WebSearch": ("Allows Claude to search the web",),
    "NotebookEdit": ("Completely replaces the contents of a specific cell",),
}

DEFAULT_LENGTH_TIERS: Tuple[Tuple[int, float], ...] = (
    (60, 0.15),
    (200, 0.25),
    (500, 0.35),
    (1000, 0.4),
)

DEFAULT_CONFIG_PATTERNS: Tuple[str, ...] = (
    "claude-sonnet",
    "claude-opus",
    "anthropic",
    ".com/",
    "http://",
    "https://",
    "/api/",
    "VERSION",
    "CLAUDE_",
    "API_KEY",
    "TIMEOUT",
)

DEFAULT_SCHEMA_BUILDERS: Tuple[str, ...] = ("z", "k")


# ---------------------------------------------------------------------------
# Option groups
# ---------------------------------------------------------------------------


@dataclass
class ResolutionConfig:
    max_passes: int = 10
    deferred_initializers: Tuple[str, ...] = DEFAULT_DEFERRED_INITIALIZERS
    deferred_initializer_pattern: str = DEFAULT_DEFERRED_PATTERN

    def __post_init__(self) -> None:
        if self.max_passes < 1:
            raise ConfigurationError("resolution.max_passes must be at least 1")
        self.deferred_initializers = tuple(self.deferred_initializers)


@dataclass
class ExtractionConfig:
    min_length: int = 60
    code_idioms: Tuple[str, ...] = DEFAULT_CODE_IDIOMS
    min_idiom_matches: int = 2
    max_code_char_ratio: float = 0.04
    signatures: Dict[str, Tuple[str, ...]] = field(default_factory=lambda: dict(DEFAULT_SIGNATURES))
    entity_patterns: Dict[str, Tuple[str, ...]] = field(default_factory=lambda: dict(DEFAULT_ENTITY_PATTERNS))
    length_tiers: Tuple[Tuple[int, float], ...] = DEFAULT_LENGTH_TIERS
    keyword_bonus: float = 0.15
    keyword_bonus_cap: float = 0.3
    full_doc_bonus: float = 0.3
    full_doc_getters: Tuple[str, ...] = ("prompt",)
    summary_getters: Tuple[str, ...] = ("description",)
    acceptance_threshold: float = 0.3
    dedup_prefix: int = 100

    def __post_init__(self) -> None:
        if not 0.0 <= self.acceptance_threshold <= 1.0:
            raise ConfigurationError("extraction.acceptance_threshold must be within [0, 1]")
        if self.max_code_char_ratio <= 0:
            raise ConfigurationError("extraction.max_code_char_ratio must be positive")
        if min(self.keyword_bonus, self.keyword_bonus_cap, self.full_doc_bonus) < 0:
            raise ConfigurationError("extraction bonuses must not be negative")
        if any(bonus < 0 for _, bonus in self.length_tiers):
            raise ConfigurationError("extraction.length_tiers bonuses must not be negative")
        self.code_idioms = tuple(self.code_idioms)
        self.length_tiers = tuple(sorted((int(n), float(b)) for n, b in self.length_tiers))
        self.signatures = {k: tuple(v) for k, v in self.signatures.items()}
        self.entity_patterns = {k: tuple(v) for k, v in self.entity_patterns.items()}
        self.full_doc_getters = tuple(self.full_doc_getters)
        self.summary_getters = tuple(self.summary_getters)


@dataclass
class AffinityConfig:
    w1: float = 0.4
    w2: float = 0.3
    w3: float = 0.3
    threshold: float = 0.3

    def __post_init__(self) -> None:
        if min(self.w1, self.w2, self.w3) < 0:
            raise ConfigurationError("affinity weights must not be negative")
        if self.threshold < 0:
            raise ConfigurationError("affinity.threshold must not be negative")


@dataclass
class StringsConfig:
    config_patterns: Tuple[str, ...] = DEFAULT_CONFIG_PATTERNS
    config_max_length: int = 200
    min_length: int = 5
    relevance_threshold: float = 0.3
    max_strings: int = 1000

    def __post_init__(self) -> None:
        if not 0.0 <= self.relevance_threshold <= 1.0:
            raise ConfigurationError("strings.relevance_threshold must be within [0, 1]")
        if self.config_max_length < 1 or self.max_strings < 1:
            raise ConfigurationError("strings.config_max_length and strings.max_strings must be at least 1")
        if self.min_length < 0:
            raise ConfigurationError("strings.min_length must not be negative")
        self.config_patterns = tuple(self.config_patterns)


@dataclass
class ToolsConfig:
    # Minified bundles rename the schema library import (``z``, ``k``...).
    schema_builders: Tuple[str, ...] = DEFAULT_SCHEMA_BUILDERS

    def __post_init__(self) -> None:
        self.schema_builders = tuple(self.schema_builders)


@dataclass
class AnalysisConfig:
    resolution: ResolutionConfig = field(default_factory=ResolutionConfig)
    extraction: ExtractionConfig = field(default_factory=ExtractionConfig)
    affinity: AffinityConfig = field(default_factory=AffinityConfig)
    strings: StringsConfig = field(default_factory=StringsConfig)
    tools: ToolsConfig = field(default_factory=ToolsConfig)
    # None selects the built-in module set.
    modules: Optional[List[ModuleDefinition]] = None
