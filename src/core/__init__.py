"""Shared primitives: errors, outcomes, clocks, correlation."""

from .clock import Clock, SimulationClock, SystemClock
from .exceptions import (
    DeadlineExceededError,
    InvalidTransitionError,
    LifecycleError,
    NotFoundError,
    SignatureMismatchError,
    StaleStateError,
    ValidationError,
)
from .outcome import Outcome

__all__ = [
    "Clock",
    "SimulationClock",
    "SystemClock",
    "LifecycleError",
    "ValidationError",
    "NotFoundError",
    "InvalidTransitionError",
    "StaleStateError",
    "DeadlineExceededError",
    "SignatureMismatchError",
    "Outcome",
]
