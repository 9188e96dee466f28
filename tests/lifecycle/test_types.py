import pytest

from lifecycle.types import (
    SYSTEM_ACTOR,
    ActorContext,
    ActorRole,
    EntityKind,
    next_progression_status,
    parse_status,
)
from order import OrderStatus
from trip import TripStatus


@pytest.mark.unit
class TestTypes:
    def test_actor_str(self):
        assert str(ActorContext(ActorRole.COURIER, "c1")) == "courier:c1"
        assert str(SYSTEM_ACTOR) == "system:progression"

    def test_parse_status(self):
        assert parse_status(EntityKind.TRIP, "atPickup") == TripStatus.AT_PICKUP
        assert parse_status(EntityKind.ORDER, OrderStatus.PLACED) == OrderStatus.PLACED
        with pytest.raises(ValueError):
            parse_status(EntityKind.ORDER, "atPickup")

    def test_next_progression_status(self):
        assert next_progression_status(EntityKind.ORDER, OrderStatus.PREPARING) == (
            OrderStatus.READY_FOR_PICKUP
        )
        assert next_progression_status(EntityKind.TRIP, TripStatus.STARTED) == TripStatus.COMPLETED
        assert next_progression_status(EntityKind.TRIP, TripStatus.COMPLETED) is None
        assert next_progression_status(EntityKind.ORDER, OrderStatus.CANCELLED) is None
