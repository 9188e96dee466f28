"""Trip repository for creation, lookup and conditional status writes."""

from sqlalchemy import select

from payment import PaymentRecord
from trip import DriverSnapshot, GeoPoint, TripPricing, TripStatus
from trip import Trip as TripDomain

from ..schema import Trip
from ..utils import from_db_datetime, to_db_datetime
from .base_entity_repository import BaseEntityRepository

TERMINAL_STATES = {TripStatus.PAID.value, TripStatus.CANCELLED.value}


class TripRepository(BaseEntityRepository[Trip, TripDomain]):
    """Repository for trip rows."""

    model_class = Trip
    id_column = "trip_id"

    def create(self, trip: TripDomain) -> None:
        """Insert a new trip; pricing is written here and never again."""
        row = Trip(
            trip_id=trip.trip_id,
            rider_id=trip.rider_id,
            driver_id=trip.driver_id,
            driver_json=trip.driver.model_dump_json() if trip.driver else None,
            pickup_lat=trip.pickup.lat,
            pickup_lon=trip.pickup.lon,
            pickup_label=trip.pickup.label,
            drop_lat=trip.drop.lat,
            drop_lon=trip.drop.lon,
            drop_label=trip.drop.label,
            distance_km=trip.distance_km,
            eta_min=trip.eta_min,
            food_stops=trip.food_stops,
            base_fare=trip.pricing.base_fare,
            distance_fare=trip.pricing.distance_fare,
            time_fare=trip.pricing.time_fare,
            food_stop_fare=trip.pricing.food_stop_fare,
            total_fare=trip.pricing.total_fare,
            status=trip.status.value,
            confirmed_at=to_db_datetime(trip.confirmed_at),
            is_paid=trip.is_paid,
        )
        self.session.add(row)

    def list_in_flight(self) -> list[TripDomain]:
        """List trips in non-terminal states."""
        stmt = select(Trip).where(Trip.status.notin_(TERMINAL_STATES))
        result = self.session.execute(stmt)
        return [self._to_domain(t) for t in result.scalars().all()]

    def _to_domain(self, trip: Trip) -> TripDomain:
        """Convert ORM model to domain model."""
        return TripDomain(
            trip_id=trip.trip_id,
            rider_id=trip.rider_id,
            driver=(
                DriverSnapshot.model_validate_json(trip.driver_json)
                if trip.driver_json
                else None
            ),
            pickup=GeoPoint(lat=trip.pickup_lat, lon=trip.pickup_lon, label=trip.pickup_label),
            drop=GeoPoint(lat=trip.drop_lat, lon=trip.drop_lon, label=trip.drop_label),
            distance_km=trip.distance_km,
            eta_min=trip.eta_min,
            food_stops=trip.food_stops,
            pricing=TripPricing(
                base_fare=trip.base_fare,
                distance_fare=trip.distance_fare,
                time_fare=trip.time_fare,
                food_stop_fare=trip.food_stop_fare,
                total_fare=trip.total_fare,
            ),
            status=TripStatus(trip.status),
            confirmed_at=from_db_datetime(trip.confirmed_at),
            assigned_at=from_db_datetime(trip.assigned_at),
            arriving_at=from_db_datetime(trip.arriving_at),
            at_pickup_at=from_db_datetime(trip.at_pickup_at),
            started_at=from_db_datetime(trip.started_at),
            completed_at=from_db_datetime(trip.completed_at),
            paid_at=from_db_datetime(trip.paid_at),
            cancelled_at=from_db_datetime(trip.cancelled_at),
            payment=PaymentRecord(
                gateway_order_id=trip.gateway_order_id,
                gateway_payment_id=trip.gateway_payment_id,
                gateway_signature=trip.gateway_signature,
                amount=trip.payment_amount,
            ),
            is_paid=trip.is_paid,
            cancelled_by=trip.cancelled_by,
            cancellation_reason=trip.cancellation_reason,
        )
