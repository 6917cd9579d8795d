"""Artifact extraction: long descriptive text hidden in a bundle.

Candidates come from resolved symbol values and from string/template
literals that are not bound to any name.  Each one goes through three
stages:

1. code-fragment rejection (text that is really source code),
2. categorization against a table of category matchers,
3. confidence scoring, followed by the acceptance threshold.

Survivors are de-duplicated and returned most-confident first.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .config import ExtractionConfig
from .models import CATEGORY_PRECEDENCE, Category, ExtractionCandidate
from .symbols import SymbolTable
from .tree import SyntaxNode, string_value

logger = logging.getLogger(__name__)

Matcher = Callable[[str], int]

FRAGMENT_STARTS = (",", "}", ")", ";")
CODE_CHARS = set("{};")

_SUBSTITUTION_RE = re.compile(r"\$\{[^}]*\}")
_WORD_RE = re.compile(r"[A-Za-z']+")
_SENTENCE_END_RE = re.compile(r"[.!?:](\s|$)")
_CAPITALIZED_START_RE = re.compile(r"^\W*[A-Z][a-z]")
_IDENTIFIER_RE = re.compile(r"^\w{3,}$")

PROSE_WORDS = {
    "the", "a", "an", "to", "of", "and", "or", "is", "are", "be", "you",
    "your", "this", "that", "with", "for", "when", "use", "not", "in", "on",
    "it", "if", "will", "can", "should", "must",
}


def keyword_matcher(phrases: Iterable[str]) -> Matcher:
    """Matcher scoring one point per phrase contained in the text."""
    phrases = tuple(phrases)

    def match(text: str) -> int:
        return sum(1 for phrase in phrases if phrase in text)

    return match


@dataclass
class ExtractionResult:
    candidates: List[ExtractionCandidate] = field(default_factory=list)
    stats: Dict[str, int] = field(default_factory=dict)

    def by_category(self) -> Dict[str, List[ExtractionCandidate]]:
        grouped: Dict[str, List[ExtractionCandidate]] = {}
        for candidate in self.candidates:
            grouped.setdefault(candidate.category.value, []).append(candidate)
        return grouped


@dataclass
class _Raw:
    text: str
    provenance: str
    source: str
    entity: Optional[str] = None
    member: Optional[str] = None


class ArtifactExtractor:
    """Find, classify and score descriptive text candidates.

    ``matchers`` overrides or extends the category table built from
    ``config.signatures``; every matcher returns how strongly a text
    belongs to its category (0 = not at all).
    """

    def __init__(
        self,
        config: Optional[ExtractionConfig] = None,
        matchers: Optional[Dict[Category, Matcher]] = None,
    ):
        self.config = config or ExtractionConfig()
        self.matchers: Dict[Category, Matcher] = {}
        for name, phrases in self.config.signatures.items():
            try:
                category = Category(name)
            except ValueError:
                logger.warning("Ignoring signature for unknown category '%s'", name)
                continue
            self.matchers[category] = keyword_matcher(phrases)
        if matchers:
            self.matchers.update(matchers)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def extract(self, symbols: SymbolTable, root: Optional[SyntaxNode] = None) -> ExtractionResult:
        stats = {
            "considered": 0,
            "too_short": 0,
            "rejected_code": 0,
            "summaries_discarded": 0,
            "below_threshold": 0,
            "duplicates": 0,
            "accepted": 0,
        }
        raws = self._gather(symbols, root)
        stats["considered"] = len(raws)

        raws, discarded = self._drop_summaries(raws)
        stats["summaries_discarded"] = discarded

        scored: List[ExtractionCandidate] = []
        for raw in raws:
            reason = self.rejection_reason(raw.text)
            if reason is not None:
                logger.debug("Rejected %s as code (%s)", raw.provenance, reason)
                stats["rejected_code"] += 1
                continue
            if len(raw.text.strip()) < self.config.min_length:
                stats["too_short"] += 1
                continue
            candidate = self.score(raw.text, raw.provenance, raw.member, raw.source)
            candidate.entity = raw.entity
            if candidate.confidence < self.config.acceptance_threshold:
                stats["below_threshold"] += 1
                continue
            scored.append(candidate)

        accepted, duplicates = self._deduplicate(scored)
        stats["duplicates"] = duplicates
        accepted.sort(key=lambda c: -c.confidence)
        for candidate in accepted:
            if candidate.entity is None and candidate.category is Category.TOOL_DOC:
                candidate.entity = self.associate_entity(candidate.text)
        stats["accepted"] = len(accepted)

        logger.info(
            "Extracted %d artifacts from %d candidates (%d code, %d short, %d low confidence)",
            len(accepted), stats["considered"], stats["rejected_code"],
            stats["too_short"], stats["below_threshold"],
        )
        return ExtractionResult(accepted, stats)

    def score(
        self,
        text: str,
        provenance: str = "",
        member: Optional[str] = None,
        source: str = "literal",
    ) -> ExtractionCandidate:
        category, matched = self.categorize(text)
        return ExtractionCandidate(
            text=text,
            provenance=provenance,
            category=category,
            confidence=self.confidence(text, len(matched), member),
            source=source,
            matched_categories=matched,
        )

    # ------------------------------------------------------------------
    # Stage 1: code-fragment rejection
    # ------------------------------------------------------------------

    def rejection_reason(self, text: str) -> Optional[str]:
        """Why *text* looks like code rather than prose, or None."""
        stripped = text.strip()
        if not stripped:
            return "empty"
        if stripped.startswith(FRAGMENT_STARTS):
            return "fragment_start"
        idioms = sum(1 for idiom in self.config.code_idioms if idiom in text)
        if idioms >= self.config.min_idiom_matches:
            return "code_idioms"
        plain = _SUBSTITUTION_RE.sub("", text)
        if plain and sum(1 for c in plain if c in CODE_CHARS) / len(plain) > self.config.max_code_char_ratio:
            return "code_characters"
        if _is_identifier_list(stripped):
            return "identifier_list"
        if not _has_prose(stripped):
            return "no_prose"
        return None

    def is_code_fragment(self, text: str) -> bool:
        return self.rejection_reason(text) is not None

    # ------------------------------------------------------------------
    # Stage 2: categorization
    # ------------------------------------------------------------------

    def categorize(self, text: str) -> Tuple[Category, Tuple[Category, ...]]:
        scores = {category: matcher(text) for category, matcher in self.matchers.items()}
        matched = tuple(c for c in CATEGORY_PRECEDENCE if scores.get(c, 0) > 0)
        best = Category.OTHER
        best_score = 0
        for category in CATEGORY_PRECEDENCE:
            if scores.get(category, 0) > best_score:
                best, best_score = category, scores[category]
        return best, matched

    # ------------------------------------------------------------------
    # Stage 3: confidence
    # ------------------------------------------------------------------

    def confidence(self, text: str, matched: int, member: Optional[str] = None) -> float:
        cfg = self.config
        length = len(text)
        score = 0.0
        for minimum, bonus in cfg.length_tiers:
            if length >= minimum:
                score = max(score, bonus)
        score += min(cfg.keyword_bonus_cap, cfg.keyword_bonus * matched)
        if member is not None and member in cfg.full_doc_getters:
            score += cfg.full_doc_bonus
        return round(min(score, 1.0), 4)

    def associate_entity(self, text: str) -> Optional[str]:
        opening = text.lstrip()
        for entity, phrases in self.config.entity_patterns.items():
            if any(opening.startswith(phrase) for phrase in phrases):
                return entity
        return None

    # ------------------------------------------------------------------
    # Candidate collection
    # ------------------------------------------------------------------

    def _gather(self, symbols: SymbolTable, root: Optional[SyntaxNode]) -> List[_Raw]:
        raws: List[_Raw] = []
        for name, symbol in symbols.items():
            text = symbol.text
            if text is None:
                continue
            raws.append(_Raw(text, name, symbol.provenance.value, symbol.entity, symbol.member))

        if root is None:
            return raws
        for node in root.walk(prune=symbols.is_bound):
            if symbols.is_bound(node) or node.kind not in ("string", "template_string"):
                continue
            if _is_property_key(node):
                continue
            text = string_value(node) if node.kind == "string" else symbols.text_of(node)
            line = node.span.start_line if node.span is not None else 0
            offset = node.span.start_byte if node.span is not None else 0
            raws.append(_Raw(text, f"literal:{line}:{offset}", "literal"))
        return raws

    def _drop_summaries(self, raws: Sequence[_Raw]) -> Tuple[List[_Raw], int]:
        """Drop short-summary getter text where the entity also has full docs."""
        documented = {
            raw.entity
            for raw in raws
            if raw.entity is not None and raw.member in self.config.full_doc_getters
        }
        kept: List[_Raw] = []
        discarded = 0
        for raw in raws:
            if raw.entity in documented and raw.member in self.config.summary_getters:
                logger.debug("Discarding summary %s in favour of full documentation", raw.provenance)
                discarded += 1
                continue
            kept.append(raw)
        return kept, discarded

    def _deduplicate(self, candidates: Sequence[ExtractionCandidate]) -> Tuple[List[ExtractionCandidate], int]:
        by_prefix: Dict[str, ExtractionCandidate] = {}
        duplicates = 0
        for candidate in candidates:
            key = candidate.text[: self.config.dedup_prefix]
            existing = by_prefix.get(key)
            if existing is None:
                by_prefix[key] = candidate
                continue
            duplicates += 1
            if (len(candidate.text), candidate.confidence) > (len(existing.text), existing.confidence):
                by_prefix[key] = candidate
        return list(by_prefix.values()), duplicates


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _has_prose(text: str) -> bool:
    if _SENTENCE_END_RE.search(text) or _CAPITALIZED_START_RE.match(text):
        return True
    return any(word.lower() in PROSE_WORDS for word in _WORD_RE.findall(text))


def _is_identifier_list(text: str) -> bool:
    """Whitespace-separated names with no sentences, e.g. ``abs acos acosh``."""
    if ". " in text or ".\n" in text or text.rstrip().endswith((".", "!", "?")):
        return False
    words = text.split()[:20]
    if len(words) < 10:
        return False
    identifiers = sum(1 for word in words if _IDENTIFIER_RE.match(word))
    return identifiers / len(words) > 0.8


def _is_property_key(node: SyntaxNode) -> bool:
    parent = node.parent
    return parent is not None and parent.kind == "pair" and parent.field("key") is node

