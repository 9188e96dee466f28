"""Automatic status progression driven by SimPy timers."""

from .runner import ProgressionRunner
from .scheduler import ProgressionChain, ProgressionScheduler, entity_key

__all__ = [
    "ProgressionChain",
    "ProgressionRunner",
    "ProgressionScheduler",
    "entity_key",
]
