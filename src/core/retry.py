"""Retry policy with exponential backoff."""

from dataclasses import dataclass, field

from .exceptions import TransientError


@dataclass
class RetryConfig:
    max_attempts: int = 5
    base_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 30.0
    retryable_exceptions: tuple[type[Exception], ...] = field(
        default_factory=lambda: (TransientError,)
    )

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number ``attempt`` (0-based), capped at ``max_delay``."""
        return min(self.base_delay * (self.multiplier**attempt), self.max_delay)
