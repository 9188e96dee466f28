"""Correlation context carried across a request and the transitions it causes."""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

current_correlation_id: ContextVar[str | None] = ContextVar(
    "correlation_id", default=None
)
current_instance_id: ContextVar[str | None] = ContextVar("instance_id", default=None)


class CorrelationFilter(logging.Filter):
    """Logging filter that adds correlation and instance ids to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = current_correlation_id.get() or "-"
        record.instance_id = current_instance_id.get() or "-"
        return True


def set_instance_id(instance_id: str) -> None:
    """Tag every log line of this process with the scheduler instance id."""
    current_instance_id.set(instance_id)


@contextmanager
def with_correlation(correlation_id: str) -> Iterator[None]:
    """Context manager to set correlation ID for a block of code.

    Usage:
        with with_correlation(order_id):
            logger.info("Claiming listing")  # Will include correlation_id
    """
    token = current_correlation_id.set(correlation_id)
    try:
        yield
    finally:
        current_correlation_id.reset(token)