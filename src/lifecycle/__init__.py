"""Lifecycle state machine for trips and food orders."""

from .state_machine import LifecycleStateMachine
from .types import SYSTEM_ACTOR, ActorContext, ActorRole, EntityKind

__all__ = [
    "LifecycleStateMachine",
    "ActorContext",
    "ActorRole",
    "EntityKind",
    "SYSTEM_ACTOR",
]
