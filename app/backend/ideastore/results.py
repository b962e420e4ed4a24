"""
Tagged outcomes for storage reads.

Single-record reads never raise for a missing or damaged document. Instead
they return a LoadResult so callers can tell an ordinary "not found" apart
from a corrupt file or a failing disk, while still falling back to a safe
default for the user-facing path.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


class Outcome(str, Enum):
    """Result kind of a storage operation."""

    OK = "ok"
    NOT_FOUND = "not_found"
    PARSE_ERROR = "parse_error"
    IO_ERROR = "io_error"


@dataclass
class LoadResult(Generic[T]):
    """Outcome of a storage read, optionally carrying a value or an error message."""

    outcome: Outcome
    value: Optional[T] = None
    error: str = ""

    @classmethod
    def ok(cls, value: Any = None) -> "LoadResult":
        return cls(Outcome.OK, value=value)

    @classmethod
    def not_found(cls, error: str = "") -> "LoadResult":
        return cls(Outcome.NOT_FOUND, error=error)

    @classmethod
    def parse_error(cls, error: str) -> "LoadResult":
        return cls(Outcome.PARSE_ERROR, error=error)

    @classmethod
    def io_error(cls, error: str) -> "LoadResult":
        return cls(Outcome.IO_ERROR, error=error)

    @property
    def is_ok(self) -> bool:
        return self.outcome is Outcome.OK

    @property
    def is_not_found(self) -> bool:
        return self.outcome is Outcome.NOT_FOUND

    def unwrap_or(self, default: Any = None) -> Any:
        """Return the carried value, or ``default`` for any non-OK outcome."""
        return self.value if self.is_ok else default

    def map(self, fn) -> "LoadResult":
        """Apply ``fn`` to an OK value; other outcomes pass through unchanged."""
        if not self.is_ok:
            return self
        return LoadResult.ok(fn(self.value))
