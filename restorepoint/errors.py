"""Result types and structured errors for restorepoint.

Operations that can fail for expected reasons (missing checkpoint, broken
chain, I/O trouble) return a Result instead of raising, so callers decide
how to present the failure:

    result = resolve_chain(target, arena)
    if result.is_err():
        print(format_error(result.unwrap_err()))
    chain = result.unwrap()
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar, Union

T = TypeVar("T")
E = TypeVar("E")


# Error codes
CHECKPOINT_NOT_FOUND = "CHECKPOINT_NOT_FOUND"
CHECKPOINT_AMBIGUOUS = "CHECKPOINT_AMBIGUOUS"
CHAIN_BROKEN = "CHAIN_BROKEN"
SNAPSHOT_WRITE_FAILED = "SNAPSHOT_WRITE_FAILED"
BACKUP_FAILED = "BACKUP_FAILED"
SETUP_FAILED = "SETUP_FAILED"


@dataclass(frozen=True)
class RestorePointError:
    """A failure with a stable code, a human message and diagnostic context."""

    code: str
    message: str
    context: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful result."""

    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.value

    def unwrap_err(self):
        raise ValueError(f"Called unwrap_err() on Ok: {self.value!r}")


@dataclass(frozen=True)
class Err(Generic[E]):
    """Failed result."""

    error: E

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self):
        raise ValueError(f"Called unwrap() on Err: {self.error}")

    def unwrap_err(self) -> E:
        return self.error


Result = Union[Ok[T], Err[E]]


def format_error(error: RestorePointError) -> str:
    """Render an error for terminal output, context on indented lines."""
    lines = [f"Error: {error.message}"]
    for key, value in error.context.items():
        lines.append(f"  {key}: {value}")
    return "\n".join(lines)
