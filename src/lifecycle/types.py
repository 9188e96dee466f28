"""Entity kinds and actor identities accepted by the state machine."""

from dataclasses import dataclass
from enum import Enum

import order
import trip


class EntityKind(str, Enum):
    TRIP = "trip"
    ORDER = "order"


class ActorRole(str, Enum):
    RIDER = "rider"
    CUSTOMER = "customer"
    DRIVER = "driver"
    COURIER = "courier"
    SYSTEM = "system"
    ADMIN = "admin"


@dataclass(frozen=True)
class ActorContext:
    """Who asked for a transition.

    Opaque to the state machine: it is recorded on cancellations and in logs,
    but authorization happens before a request gets here.
    """

    role: ActorRole
    actor_id: str

    def __str__(self) -> str:
        return f"{self.role.value}:{self.actor_id}"


SYSTEM_ACTOR = ActorContext(role=ActorRole.SYSTEM, actor_id="progression")

StatusType = trip.TripStatus | order.OrderStatus

STATUS_TYPES: dict[EntityKind, type[trip.TripStatus] | type[order.OrderStatus]] = {
    EntityKind.TRIP: trip.TripStatus,
    EntityKind.ORDER: order.OrderStatus,
}

TRANSITIONS = {
    EntityKind.TRIP: trip.VALID_TRANSITIONS,
    EntityKind.ORDER: order.VALID_TRANSITIONS,
}

TERMINAL = {
    EntityKind.TRIP: trip.TERMINAL_STATUSES,
    EntityKind.ORDER: order.TERMINAL_STATUSES,
}

TIMESTAMP_COLUMNS = {
    EntityKind.TRIP: trip.STATUS_TIMESTAMPS,
    EntityKind.ORDER: order.STATUS_TIMESTAMPS,
}

PROGRESSION_PATHS = {
    EntityKind.TRIP: trip.PROGRESSION_PATH,
    EntityKind.ORDER: order.PROGRESSION_PATH,
}


def parse_status(kind: EntityKind, status: "str | StatusType") -> StatusType:
    """Coerce a raw status value to the entity kind's enum; raises ValueError."""
    return STATUS_TYPES[kind](status)


def next_progression_status(kind: EntityKind, status: StatusType) -> StatusType | None:
    """Status the automatic progression moves to from ``status``, if any."""
    path = PROGRESSION_PATHS[kind]
    if status not in path:
        return None
    index = path.index(status)  # type: ignore[arg-type]
    if index + 1 >= len(path):
        return None
    return path[index + 1]
