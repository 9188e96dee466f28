"""Structured logging for the lifecycle service."""

from .context import LogContext, log_context, log_entity_context
from .setup import setup_logging

__all__ = [
    "LogContext",
    "log_context",
    "log_entity_context",
    "setup_logging",
]
