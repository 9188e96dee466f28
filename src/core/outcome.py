"""Typed results returned by every core operation."""

from dataclasses import dataclass
from typing import Generic, TypeVar

from .exceptions import LifecycleError

T = TypeVar("T")

ACCEPTED = "accepted"
APPLIED = "applied"
ALREADY_APPLIED = "already-applied"
CLAIMED = "claimed"
REJECTED = "rejected"


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Either an accepted value or a rejection carrying a typed error."""

    status: str
    value: T | None = None
    error: LifecycleError | None = None

    @classmethod
    def ok(cls, value: T, status: str = ACCEPTED) -> "Outcome[T]":
        return cls(status=status, value=value)

    @classmethod
    def rejected(cls, error: LifecycleError) -> "Outcome[T]":
        return cls(status=REJECTED, error=error)

    @property
    def accepted(self) -> bool:
        return self.error is None

    @property
    def reason(self) -> str | None:
        """Stable rejection reason, e.g. ``stale-state`` or ``not-listed``."""
        return self.error.reason if self.error is not None else None

    def unwrap(self) -> T:
        """Return the value or raise the carried error."""
        if self.error is not None:
            raise self.error
        assert self.value is not None
        return self.value

    def __repr__(self) -> str:
        if self.error is not None:
            return f"Outcome(rejected, reason={self.reason!r})"
        return f"Outcome({self.status})"
