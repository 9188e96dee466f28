"""Standardized exception hierarchy for the lifecycle core.

Business rejections are carried inside ``Outcome`` objects rather than raised,
so every class exposes a stable ``reason`` string that callers can render
("too late to cancel" vs "already being prepared").
"""

from typing import Any


class LifecycleError(Exception):
    """Base exception for all lifecycle errors."""

    reason: str = "error"

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        reason: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if reason is not None:
            self.reason = reason


class TransientError(LifecycleError):
    """Errors that may succeed on retry."""

    pass


class PersistenceError(TransientError):
    """Database or state persistence failed."""

    reason = "persistence-error"


class PaymentGatewayError(TransientError):
    """Payment gateway unreachable or answering with 5xx."""

    reason = "gateway-unavailable"


class PermanentError(LifecycleError):
    """Errors that will not succeed on retry."""

    pass


class ValidationError(PermanentError):
    """Malformed request, rejected before touching state."""

    reason = "validation-error"


class NotFoundError(PermanentError):
    """Requested entity does not exist."""

    reason = "not-found"


class InvalidTransitionError(PermanentError):
    """Requested status is not reachable from the current status."""

    reason = "invalid-transition"


class StaleStateError(PermanentError):
    """A conditional write lost a race; the caller must re-read."""

    reason = "stale-state"


class DeadlineExceededError(PermanentError):
    """Cancellation window or resale window has passed."""

    reason = "deadline-exceeded"


class SignatureMismatchError(PermanentError):
    """Payment signature verification failed."""

    reason = "invalid-signature"


class ConfigurationError(PermanentError):
    """Missing or invalid configuration."""

    reason = "configuration-error"
