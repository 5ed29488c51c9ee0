"""
Unified Result types and error hierarchy for reasonbank.

This module provides:
1. Result[T, E] type for explicit error handling
2. Domain-specific exception hierarchy

Usage:
    from reasonbank.core.result import Ok, Err, Result, PersistenceError

    def write_entry() -> Result[None, PersistenceError]:
        if disk_full:
            return Err(PersistenceError("Cannot write pattern archive"))
        return Ok(None)

    match write_entry():
        case Err(err):
            logger.warning("%s", err)
        case Ok(_):
            pass
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

T = TypeVar("T")
U = TypeVar("U")
E = TypeVar("E", bound=Exception)


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """Represents a successful result containing a value."""

    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        """Return the contained value."""
        return self.value

    def unwrap_or(self, default: T) -> T:
        """Return the contained value (ignores default for Ok)."""
        return self.value

    def map(self, fn: Callable[[T], U]) -> Ok[U]:
        """Apply a function to the contained value."""
        return Ok(fn(self.value))


@dataclass(frozen=True, slots=True)
class Err(Generic[E]):
    """Represents a failed result containing an error."""

    error: E

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> T:
        """Raise the contained error."""
        raise self.error

    def unwrap_or(self, default: T) -> T:
        """Return the default value."""
        return default

    def map(self, fn: Callable[[T], U]) -> Err[E]:
        """No-op for Err - returns self unchanged."""
        return self


# Type alias for Result
Result = Ok[T] | Err[E]


# ---------------------------------------------------------------------------
# Domain-specific error hierarchy
# ---------------------------------------------------------------------------


class ReasonBankError(Exception):
    """Base exception for all reasonbank errors.

    Carries an optional ``context`` mapping that is rendered after the
    message, e.g. ``Pattern archive unreadable [path=/tmp/x.jsonl]``.
    """

    def __init__(self, message: str, *, context: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} [{ctx_str}]"
        return self.message


class ConfigurationError(ReasonBankError):
    """Raised for configuration issues.

    Examples:
    - Config file parse errors
    - Invalid config values
    """


class EmbeddingError(ReasonBankError):
    """Raised when an embedding tier cannot produce a vector.

    Examples:
    - Model service used before initialization
    - External embedding process timed out or returned garbage
    - Vector has the wrong dimension
    """


class PersistenceError(ReasonBankError):
    """Raised (or returned as Err) when the pattern archive fails."""


class VectorIndexError(ReasonBankError):
    """Raised when the accelerated vector index rejects a call."""


class ValidationError(ReasonBankError):
    """Raised for caller misuse.

    Examples:
    - Non-positive result limits
    - Query vectors with the wrong dimension
    """


__all__ = [
    # Result types
    "Ok",
    "Err",
    "Result",
    # Error hierarchy
    "ReasonBankError",
    "ConfigurationError",
    "EmbeddingError",
    "PersistenceError",
    "VectorIndexError",
    "ValidationError",
]
