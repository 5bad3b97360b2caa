"""Error types for Waymark.

Operations that can fail in an expected way return a ``Result`` instead of
raising, so callers decide whether a failure is fatal. Checkpointing is
best-effort, so most failures are logged and absorbed by the caller.

The one hard failure is an unknown checkpoint category, which is raised as
``UnknownCategoryError`` because it means the caller is misconfigured.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

T = TypeVar("T")
E = TypeVar("E")


@dataclass(frozen=True)
class WaymarkError:
    """Structured error with a machine-readable code."""

    code: str
    message: str
    context: dict[str, Any] = field(default_factory=dict)


class UnknownCategoryError(ValueError):
    """Raised when a checkpoint category string is not recognised."""

    def __init__(self, category: str):
        self.category = category
        super().__init__(f"Unknown checkpoint type: {category}")


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful result."""

    value: T

    @property
    def ok(self) -> bool:
        return True

    @property
    def error(self) -> None:
        return None

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.value

    def unwrap_err(self) -> Any:
        raise ValueError("Called unwrap_err() on an Ok result")


@dataclass(frozen=True)
class Err(Generic[E]):
    """Failed result."""

    error: E

    @property
    def ok(self) -> bool:
        return False

    @property
    def value(self) -> None:
        return None

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> Any:
        raise ValueError(f"Called unwrap() on an Err result: {self.error}")

    def unwrap_err(self) -> E:
        return self.error


Result = Ok[T] | Err[E]


def ok(value: T) -> Ok[T]:
    """Wrap a value in a successful result."""
    return Ok(value)


def err(error: E) -> Err[E]:
    """Wrap an error in a failed result."""
    return Err(error)


def format_error(error: WaymarkError | None) -> str:
    """Format an error for console display."""
    if error is None:
        return "Unknown error"
    if error.context:
        details = ", ".join(f"{k}={v}" for k, v in error.context.items())
        return f"{error.message} ({details})"
    return error.message
