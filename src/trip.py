"""Trip states, transition table and models."""

from datetime import datetime, timedelta
from enum import Enum
from typing import Self

from pydantic import BaseModel, Field, model_validator

from payment import PaymentRecord

PRICE_TOLERANCE = 1.0


class TripStatus(str, Enum):
    """Trip lifecycle states."""

    CONFIRMED = "confirmed"
    ASSIGNED = "assigned"
    ARRIVING = "arriving"
    AT_PICKUP = "atPickup"
    STARTED = "started"
    COMPLETED = "completed"
    PAID = "paid"
    CANCELLED = "cancelled"

    def to_event_type(self) -> str:
        """Convert status to notification type (e.g., 'ride_assigned')."""
        return f"ride_{self.value}"


VALID_TRANSITIONS: dict[TripStatus, set[TripStatus]] = {
    TripStatus.CONFIRMED: {TripStatus.ASSIGNED, TripStatus.CANCELLED},
    TripStatus.ASSIGNED: {
        TripStatus.ARRIVING,
        TripStatus.AT_PICKUP,
        TripStatus.STARTED,
        TripStatus.CANCELLED,
    },
    TripStatus.ARRIVING: {
        TripStatus.AT_PICKUP,
        TripStatus.STARTED,
        TripStatus.CANCELLED,
    },
    TripStatus.AT_PICKUP: {TripStatus.STARTED, TripStatus.CANCELLED},
    TripStatus.STARTED: {TripStatus.COMPLETED},
    TripStatus.COMPLETED: {TripStatus.PAID},
    TripStatus.PAID: set(),
    TripStatus.CANCELLED: set(),
}

# Forward path followed by automatic progression.
PROGRESSION_PATH: tuple[TripStatus, ...] = (
    TripStatus.CONFIRMED,
    TripStatus.ASSIGNED,
    TripStatus.ARRIVING,
    TripStatus.AT_PICKUP,
    TripStatus.STARTED,
    TripStatus.COMPLETED,
)

TERMINAL_STATUSES = frozenset({TripStatus.PAID, TripStatus.CANCELLED})
NON_CANCELLABLE_STATUSES = frozenset(
    {TripStatus.STARTED, TripStatus.COMPLETED, TripStatus.PAID}
)

# Timestamp column written when a status is reached.
STATUS_TIMESTAMPS: dict[TripStatus, str] = {
    TripStatus.CONFIRMED: "confirmed_at",
    TripStatus.ASSIGNED: "assigned_at",
    TripStatus.ARRIVING: "arriving_at",
    TripStatus.AT_PICKUP: "at_pickup_at",
    TripStatus.STARTED: "started_at",
    TripStatus.COMPLETED: "completed_at",
    TripStatus.PAID: "paid_at",
    TripStatus.CANCELLED: "cancelled_at",
}


class GeoPoint(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lon: float = Field(ge=-180, le=180)
    label: str | None = None


class DriverSnapshot(BaseModel):
    """Driver details copied onto the trip for display without a join."""

    driver_id: str
    name: str | None = None
    phone: str | None = None
    vehicle: str | None = None
    plate: str | None = None
    rating: float | None = Field(default=None, ge=0, le=5)


class TripPricing(BaseModel):
    base_fare: float = Field(ge=0)
    distance_fare: float = Field(ge=0)
    time_fare: float = Field(ge=0)
    food_stop_fare: float = Field(default=0.0, ge=0)
    total_fare: float = Field(ge=0)

    @property
    def components_sum(self) -> float:
        return self.base_fare + self.distance_fare + self.time_fare + self.food_stop_fare

    @model_validator(mode="after")
    def validate_total(self) -> Self:
        if abs(self.total_fare - self.components_sum) > PRICE_TOLERANCE:
            raise ValueError(
                f"Total fare {self.total_fare} does not match sum of fare components "
                f"{self.components_sum}"
            )
        return self


class TripRequest(BaseModel):
    """Booking request; pricing is computed by the backend, never accepted from it."""

    rider_id: str = Field(min_length=1)
    pickup: GeoPoint
    drop: GeoPoint
    distance_km: float = Field(ge=0)
    eta_min: float = Field(ge=0)
    food_stops: int = Field(default=0, ge=0, le=5)


class Trip(BaseModel):
    """Ride with its authoritative pricing and lifecycle timestamps."""

    trip_id: str
    rider_id: str
    driver: DriverSnapshot | None = None
    pickup: GeoPoint
    drop: GeoPoint
    distance_km: float = Field(ge=0)
    eta_min: float = Field(ge=0)
    food_stops: int = Field(default=0, ge=0, le=5)
    pricing: TripPricing
    status: TripStatus = Field(default=TripStatus.CONFIRMED)
    confirmed_at: datetime
    assigned_at: datetime | None = None
    arriving_at: datetime | None = None
    at_pickup_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    paid_at: datetime | None = None
    cancelled_at: datetime | None = None
    payment: PaymentRecord = Field(default_factory=PaymentRecord)
    is_paid: bool = False
    cancelled_by: str | None = None
    cancellation_reason: str | None = None

    @model_validator(mode="after")
    def validate_started_xor_cancelled(self) -> Self:
        if self.started_at is not None and self.cancelled_at is not None:
            raise ValueError("A trip cannot be both started and cancelled")
        return self

    @property
    def driver_id(self) -> str | None:
        return self.driver.driver_id if self.driver else None

    @property
    def payable_amount(self) -> float:
        return self.pricing.total_fare

    def can_transition_to(self, new_status: TripStatus) -> bool:
        return new_status in VALID_TRANSITIONS[self.status]

    def cancellation_deadline(self, window: timedelta) -> datetime:
        return self.confirmed_at + window
