"""Exception types raised by the analysis core.

Uncertain analysis outcomes are returned as data (``Unknown``, ``Cyclic``,
the unresolved call sentinel, fallback module assignments).  Exceptions are
reserved for inputs the core cannot work with at all.
"""

from __future__ import annotations

from typing import Optional

from .tree import Span


class DecypherError(Exception):
    """Base class for every error raised by decypher."""


class ParseError(DecypherError):
    """Source text could not be turned into a program tree."""


class StructuralError(DecypherError):
    """A tree node violates a structural precondition of the analysis.

    Raised for a single node (for example a function without a body) and
    caught by the component processing it, so only that node is skipped.
    """

    def __init__(self, message: str, kind: str = "", span: Optional[Span] = None) -> None:
        self.kind = kind
        self.span = span
        location = f" at line {span.start_line}" if span is not None else ""
        super().__init__(f"{message} ({kind}{location})" if kind else message)


class ConfigurationError(DecypherError, ValueError):
    """An analysis option is out of range or inconsistent."""
