"""Lifecycle state machine for trips and orders.

Every write after creation is a compare-and-set on the stored status, so
riders, drivers, payment callbacks and progression timers can race on the same
entity and exactly one of them wins. Business rejections come back as
``Outcome`` objects; only infrastructure failures raise.
"""

import logging
import secrets
import uuid
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from app_logging import log_entity_context
from core.clock import Clock, SystemClock
from core.exceptions import (
    DeadlineExceededError,
    InvalidTransitionError,
    LifecycleError,
    NotFoundError,
    StaleStateError,
    ValidationError,
)
from core.outcome import ALREADY_APPLIED, APPLIED, CLAIMED, Outcome
from db.repositories import OrderRepository, TripRepository
from db.transaction import transaction
from metrics import record_transition
from order import (
    FORCE_CANCEL_STATUSES,
    PREPARATION_STARTED_STATUSES,
    DeliveryLocation,
    Order,
    OrderRequest,
    OrderStatus,
    ResaleStatus,
)
from payment import PaymentRecord
from pricing import (
    DEFAULT_PRICING,
    PricingConfig,
    calculate_order_amounts,
    calculate_trip_fare,
    price_line_item,
)
from settings import LifecycleSettings
from trip import NON_CANCELLABLE_STATUSES, DriverSnapshot, Trip, TripRequest, TripStatus

from .types import (
    TERMINAL,
    TIMESTAMP_COLUMNS,
    TRANSITIONS,
    ActorContext,
    ActorRole,
    EntityKind,
    StatusType,
    parse_status,
)

if TYPE_CHECKING:
    from notifications import NotificationDispatch
    from progression import ProgressionScheduler

logger = logging.getLogger(__name__)

Guard = Callable[[Any, datetime], LifecycleError | None]
ExtraValues = Callable[[Any], Mapping[str, Any]]


def generate_otp() -> str:
    """Four-digit handoff code."""
    return str(1000 + secrets.randbelow(9000))


def not_listed(order_id: str) -> InvalidTransitionError:
    return InvalidTransitionError(f"Order {order_id} is not listed for resale", reason="not-listed")


def not_claimed(order_id: str, buyer_id: str) -> InvalidTransitionError:
    return InvalidTransitionError(
        f"Order {order_id} is not claimed by {buyer_id}", reason="not-claimed"
    )


def already_paid(kind: EntityKind, entity_id: str) -> InvalidTransitionError:
    return InvalidTransitionError(f"{kind.value} {entity_id} is already paid", reason="already-paid")


class LifecycleStateMachine:
    """Validates and applies status transitions for trips and orders."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        settings: LifecycleSettings | None = None,
        pricing: PricingConfig = DEFAULT_PRICING,
        notifications: "NotificationDispatch | None" = None,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._settings = settings or LifecycleSettings()
        self._pricing = pricing
        self._notifications = notifications
        self.scheduler: ProgressionScheduler | None = None  # Set externally once created

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def cancellation_window(self) -> timedelta:
        return timedelta(seconds=self._settings.trip_cancellation_window_seconds)

    @contextmanager
    def _unit_of_work(self) -> Iterator[Session]:
        with self._session_factory() as session, transaction(session):
            yield session

    @staticmethod
    def _repository(kind: EntityKind, session: Session) -> TripRepository | OrderRepository:
        if kind == EntityKind.TRIP:
            return TripRepository(session)
        return OrderRepository(session)

    # --- Reads ---

    def get_trip(self, trip_id: str) -> Trip | None:
        with self._unit_of_work() as session:
            return TripRepository(session).get(trip_id)

    def get_order(self, order_id: str) -> Order | None:
        with self._unit_of_work() as session:
            return OrderRepository(session).get(order_id)

    def get(self, kind: EntityKind, entity_id: str) -> Trip | Order | None:
        if kind == EntityKind.TRIP:
            return self.get_trip(entity_id)
        return self.get_order(entity_id)

    def list_active(self, kind: EntityKind) -> list[Any]:
        """Entities that still have automatic progression ahead of them."""
        with self._unit_of_work() as session:
            if kind == EntityKind.TRIP:
                return TripRepository(session).list_in_flight()
            return OrderRepository(session).list_active()

    def list_orders_by_resale_status(self, resale_status: ResaleStatus) -> list[Order]:
        with self._unit_of_work() as session:
            return OrderRepository(session).list_by_resale_status(resale_status)

    # --- Creation ---

    def create_trip(self, request: TripRequest, trip_id: str | None = None) -> Outcome[Trip]:
        """Price and persist a new ride in ``confirmed``."""
        trip_id = trip_id or str(uuid.uuid4())
        with log_entity_context("trip", trip_id, actor=f"rider:{request.rider_id}"):
            try:
                pricing = calculate_trip_fare(
                    request.distance_km, request.eta_min, request.food_stops, self._pricing
                )
            except ValueError as e:
                return Outcome.rejected(ValidationError(str(e)))

            trip = Trip(
                trip_id=trip_id,
                rider_id=request.rider_id,
                pickup=request.pickup,
                drop=request.drop,
                distance_km=request.distance_km,
                eta_min=request.eta_min,
                food_stops=request.food_stops,
                pricing=pricing,
                status=TripStatus.CONFIRMED,
                confirmed_at=self._clock.now(),
            )
            try:
                with self._unit_of_work() as session:
                    TripRepository(session).create(trip)
            except IntegrityError:
                return Outcome.rejected(ValidationError(f"Trip {trip_id} already exists"))

            logger.info(f"Trip {trip_id} confirmed, fare {pricing.total_fare}")
            record_transition(EntityKind.TRIP.value, TripStatus.CONFIRMED.value, "accepted")
            self._register(EntityKind.TRIP, trip_id, TripStatus.CONFIRMED)
            if self._notifications:
                self._notifications.notify_trip_status(trip)
            return Outcome.ok(trip)

    def place_order(self, request: OrderRequest, order_id: str | None = None) -> Outcome[Order]:
        """Snapshot items against the menu, price the order and start its progression."""
        order_id = order_id or str(uuid.uuid4())
        with log_entity_context("order", order_id, actor=f"customer:{request.customer_id}"):
            items = []
            for line in request.lines:
                entry = request.menu.get(line.menu_item_id)
                if entry is None or not entry.is_available:
                    return Outcome.rejected(
                        ValidationError(
                            f"Menu item {line.menu_item_id} is unavailable",
                            details={"menu_item_id": line.menu_item_id},
                        )
                    )
                items.append(
                    price_line_item(
                        entry.menu_item_id, entry.name, entry.price, line.quantity, line.add_ons
                    )
                )

            try:
                amounts = calculate_order_amounts(
                    sum(item.item_total for item in items),
                    request.distance_km,
                    request.delivery_mode,
                    self._pricing,
                )
            except ValueError as e:
                return Outcome.rejected(ValidationError(str(e)))

            order = Order(
                order_id=order_id,
                customer_id=request.customer_id,
                restaurant_id=request.restaurant_id,
                items=tuple(items),
                delivery_mode=request.delivery_mode,
                payment_mode=request.payment_mode,
                linked_trip_id=request.linked_trip_id,
                delivery=request.delivery,
                amounts=amounts,
                status=OrderStatus.PLACED,
                otp_pickup=generate_otp(),
                otp_drop=generate_otp(),
                eta_minutes=request.eta_minutes,
                placed_at=self._clock.now(),
            )
            try:
                with self._unit_of_work() as session:
                    OrderRepository(session).create(order)
            except IntegrityError:
                return Outcome.rejected(ValidationError(f"Order {order_id} already exists"))

            logger.info(f"Order {order_id} placed, payable {amounts.final_payable}")
            record_transition(EntityKind.ORDER.value, OrderStatus.PLACED.value, "accepted")
            self._register(EntityKind.ORDER, order_id, OrderStatus.PLACED)
            if self._notifications:
                self._notifications.notify_order_status(order)
            return Outcome.ok(order)

    # --- Transitions ---

    def request_transition(
        self,
        kind: EntityKind,
        entity_id: str,
        requested_status: "str | StatusType",
        actor: ActorContext,
        expected_status: "str | StatusType | None" = None,
    ) -> Outcome[Any]:
        """Move an entity to ``requested_status`` if the transition table allows it.

        With ``expected_status`` the request only applies while the entity is
        still in that status; progression hops use this so a hop scheduled
        before a cancel can never overwrite it.
        """
        try:
            requested = parse_status(kind, requested_status)
            expected = parse_status(kind, expected_status) if expected_status is not None else None
        except ValueError as e:
            return Outcome.rejected(ValidationError(str(e)))

        if requested == TripStatus.PAID and kind == EntityKind.TRIP:
            return Outcome.rejected(
                InvalidTransitionError(
                    "Trips become paid through payment reconciliation",
                    reason="payment-required",
                )
            )
        if kind == EntityKind.TRIP and requested == TripStatus.CANCELLED:
            return self.cancel_trip(entity_id, actor, expected_status=expected)
        if kind == EntityKind.ORDER and requested == OrderStatus.CANCELLED:
            return self.cancel_order(entity_id, actor, expected_status=expected)

        return self._transition(kind, entity_id, requested, actor, expected_status=expected)

    def assign_driver(
        self, trip_id: str, driver: DriverSnapshot, actor: ActorContext
    ) -> Outcome[Trip]:
        return self._transition(
            EntityKind.TRIP,
            trip_id,
            TripStatus.ASSIGNED,
            actor,
            extra_values=lambda _trip: {
                "driver_id": driver.driver_id,
                "driver_json": driver.model_dump_json(),
            },
        )

    def assign_courier(
        self, order_id: str, courier_id: str, actor: ActorContext
    ) -> Outcome[Order]:
        """Attach a courier to an active order; the first assignment sticks."""
        with log_entity_context("order", order_id, actor=str(actor)):
            with self._unit_of_work() as session:
                repo = OrderRepository(session)
                order = repo.get(order_id)
                if order is None:
                    return Outcome.rejected(NotFoundError(f"Order {order_id} not found"))
                if order.status in TERMINAL[EntityKind.ORDER]:
                    return Outcome.rejected(
                        InvalidTransitionError(f"Order {order_id} is {order.status.value}")
                    )
                if order.courier_id == courier_id:
                    return Outcome.ok(order)
                if order.courier_id is not None:
                    return Outcome.rejected(
                        InvalidTransitionError(
                            f"Order {order_id} already has a courier",
                            reason="courier-already-assigned",
                        )
                    )
                if not repo.compare_and_set(
                    order_id,
                    {"courier_id": None, "status": order.status},
                    {"courier_id": courier_id},
                ):
                    return Outcome.rejected(StaleStateError(f"Order {order_id} changed"))
                updated = repo.get(order_id)

            logger.info(f"Courier {courier_id} assigned to order {order_id}")
            return Outcome.ok(updated)

    def cancel_trip(
        self,
        trip_id: str,
        actor: ActorContext,
        reason: str | None = None,
        *,
        expected_status: TripStatus | None = None,
    ) -> Outcome[Trip]:
        """Cancel a ride that has not started, within the cancellation window."""
        window = self.cancellation_window

        def guard(trip: Trip, now: datetime) -> LifecycleError | None:
            if trip.status in NON_CANCELLABLE_STATUSES:
                return InvalidTransitionError(
                    f"Trip {trip_id} is already {trip.status.value}",
                    reason="trip-in-progress",
                )
            if trip.status == TripStatus.CANCELLED:
                return None
            if now - trip.confirmed_at > window:
                return DeadlineExceededError(
                    f"Cancellation window of {window.total_seconds():.0f}s has passed",
                    details={"deadline": trip.cancellation_deadline(window).isoformat()},
                    reason="cancellation-window-expired",
                )
            return None

        return self._transition(
            EntityKind.TRIP,
            trip_id,
            TripStatus.CANCELLED,
            actor,
            expected_status=expected_status,
            guard=guard,
            extra_values=lambda _trip: {
                "cancelled_by": str(actor),
                "cancellation_reason": reason,
            },
        )

    def cancel_order(
        self,
        order_id: str,
        actor: ActorContext,
        reason: str | None = None,
        *,
        expected_status: OrderStatus | None = None,
    ) -> Outcome[Order]:
        """Free cancel, allowed only before preparation starts."""

        def guard(order: Order, now: datetime) -> LifecycleError | None:
            if order.status in PREPARATION_STARTED_STATUSES:
                return InvalidTransitionError(
                    f"Order {order_id} is already being prepared",
                    reason="preparation-started",
                )
            return None

        return self._transition(
            EntityKind.ORDER,
            order_id,
            OrderStatus.CANCELLED,
            actor,
            expected_status=expected_status,
            guard=guard,
            extra_values=lambda order: {
                "cancelled_stage": order.status,
                "cancelled_by": str(actor),
                "cancellation_reason": reason,
            },
        )

    def force_cancel_order(
        self,
        order_id: str,
        actor: ActorContext,
        reason: str | None = None,
        resale_price: float | None = None,
        *,
        allowed_from: frozenset[OrderStatus] = FORCE_CANCEL_STATUSES,
    ) -> Outcome[Order]:
        """Paid cancel from any stage before delivery.

        The original customer still owes the full amount. With
        ``resale_price`` the order is listed for resale in the same write.
        """
        listed_at = self._clock.now()

        def values(order: Order) -> dict[str, Any]:
            result: dict[str, Any] = {
                "cancelled_stage": order.status,
                "cancelled_by": str(actor),
                "cancellation_reason": reason,
                "original_customer_pays_full": True,
            }
            if resale_price is not None:
                result.update(
                    resellable=True,
                    resale_status=ResaleStatus.LISTED,
                    resale_price=resale_price,
                    resale_listed_at=listed_at,
                    resale_buyer_id=None,
                    resale_claimed_at=None,
                )
            return result

        return self._transition(
            EntityKind.ORDER,
            order_id,
            OrderStatus.CANCELLED,
            actor,
            allowed_from=allowed_from,
            extra_values=values,
        )

    def confirm_pickup(self, order_id: str, courier_id: str, otp: str) -> Outcome[Order]:
        """Courier collects the order from the restaurant with the pickup OTP."""
        return self._otp_handoff(order_id, courier_id, otp, OrderStatus.PICKED_UP, "otp_pickup")

    def confirm_delivery(self, order_id: str, courier_id: str, otp: str) -> Outcome[Order]:
        """Courier hands the order over with the drop OTP."""
        return self._otp_handoff(order_id, courier_id, otp, OrderStatus.DELIVERED, "otp_drop")

    def _otp_handoff(
        self,
        order_id: str,
        courier_id: str,
        otp: str,
        requested: OrderStatus,
        otp_field: str,
    ) -> Outcome[Order]:
        def guard(order: Order, now: datetime) -> LifecycleError | None:
            if order.courier_id is not None and order.courier_id != courier_id:
                return ValidationError(
                    f"Order {order_id} is assigned to another courier",
                    reason="courier-mismatch",
                )
            if not order.can_transition_to(requested):
                return None
            expected_otp = getattr(order, otp_field).encode()
            if not secrets.compare_digest(str(otp).encode(), expected_otp):
                return ValidationError("Invalid OTP", reason="invalid-otp")
            return None

        return self._transition(
            EntityKind.ORDER,
            order_id,
            requested,
            ActorContext(ActorRole.COURIER, courier_id),
            guard=guard,
            extra_values=lambda _order: {"courier_id": courier_id},
        )

    def _transition(
        self,
        kind: EntityKind,
        entity_id: str,
        requested: StatusType,
        actor: ActorContext,
        *,
        expected_status: StatusType | None = None,
        allowed_from: frozenset[Any] | None = None,
        guard: Guard | None = None,
        extra_values: ExtraValues | None = None,
    ) -> Outcome[Any]:
        with log_entity_context(kind.value, entity_id, actor=str(actor)):
            outcome = self._write_transition(
                kind, entity_id, requested, expected_status, allowed_from, guard, extra_values
            )
            record_transition(
                kind.value, requested.value, outcome.status if outcome.accepted else outcome.reason
            )
            if not outcome.accepted:
                logger.debug(
                    f"{kind.value} {entity_id} -> {requested.value} rejected: {outcome.reason}"
                )
                return outcome

            logger.info(f"{kind.value} {entity_id} -> {requested.value} by {actor}")
            entity = outcome.value
            if entity.status in TERMINAL[kind]:
                self._deregister(kind, entity_id)
            elif actor.role != ActorRole.SYSTEM:
                # Manual moves restart the timer from the new status.
                self._reschedule(kind, entity_id, entity.status)
            self._notify_status(kind, entity)
            return outcome

    def _write_transition(
        self,
        kind: EntityKind,
        entity_id: str,
        requested: StatusType,
        expected_status: StatusType | None,
        allowed_from: frozenset[Any] | None,
        guard: Guard | None,
        extra_values: ExtraValues | None,
    ) -> Outcome[Any]:
        now = self._clock.now()
        with self._unit_of_work() as session:
            repo = self._repository(kind, session)
            entity = repo.get(entity_id)
            if entity is None:
                return Outcome.rejected(NotFoundError(f"{kind.value} {entity_id} not found"))

            current = entity.status
            if expected_status is not None and current != expected_status:
                return Outcome.rejected(
                    StaleStateError(
                        f"{kind.value} {entity_id} is {current.value}, "
                        f"expected {expected_status.value}",
                        details={"current": current.value},
                    )
                )

            if guard is not None:
                error = guard(entity, now)
                if error is not None:
                    return Outcome.rejected(error)

            if allowed_from is not None:
                allowed = current in allowed_from
            else:
                allowed = requested in TRANSITIONS[kind][current]
            if not allowed:
                return Outcome.rejected(
                    InvalidTransitionError(
                        f"Cannot move {kind.value} {entity_id} from {current.value} "
                        f"to {requested.value}",
                        details={"current": current.value, "requested": requested.value},
                    )
                )

            values: dict[str, Any] = {
                "status": requested,
                TIMESTAMP_COLUMNS[kind][requested]: now,
            }
            if extra_values is not None:
                values.update(extra_values(entity))

            if not repo.compare_and_set(entity_id, {"status": current}, values):
                return Outcome.rejected(
                    StaleStateError(f"{kind.value} {entity_id} changed concurrently")
                )
            return Outcome.ok(repo.get(entity_id))

    # --- Payment ---

    def record_payment_intent(
        self, kind: EntityKind, entity_id: str, gateway_order_id: str, amount: float
    ) -> Outcome[Any]:
        """Store the gateway order created for the authoritative amount."""
        with log_entity_context(kind.value, entity_id):
            with self._unit_of_work() as session:
                repo = self._repository(kind, session)
                entity = repo.get(entity_id)
                if entity is None:
                    return Outcome.rejected(NotFoundError(f"{kind.value} {entity_id} not found"))
                if entity.is_paid:
                    return Outcome.rejected(already_paid(kind, entity_id))
                if not repo.compare_and_set(
                    entity_id,
                    {"is_paid": False},
                    {"gateway_order_id": gateway_order_id, "payment_amount": amount},
                ):
                    return Outcome.rejected(StaleStateError(f"{kind.value} {entity_id} changed"))
                updated = repo.get(entity_id)

            logger.info(f"Gateway order {gateway_order_id} recorded for {amount}")
            return Outcome.ok(updated)

    def mark_paid(
        self, kind: EntityKind, entity_id: str, payment: PaymentRecord
    ) -> Outcome[Any]:
        """Mark an entity paid; ``paid_at`` is written exactly once.

        A repeat with the same gateway payment id returns ``already-applied``
        and leaves the row untouched. Trips additionally move
        ``completed -> paid``.
        """
        now = self._clock.now()
        with log_entity_context(kind.value, entity_id):
            with self._unit_of_work() as session:
                repo = self._repository(kind, session)
                entity = repo.get(entity_id)
                if entity is None:
                    return Outcome.rejected(NotFoundError(f"{kind.value} {entity_id} not found"))
                if entity.is_paid:
                    return self._paid_replay(kind, entity_id, entity, payment)

                expected: dict[str, Any] = {"is_paid": False}
                values: dict[str, Any] = {
                    "is_paid": True,
                    "paid_at": now,
                    "gateway_payment_id": payment.gateway_payment_id,
                    "gateway_signature": payment.gateway_signature,
                }
                if payment.gateway_order_id is not None:
                    values["gateway_order_id"] = payment.gateway_order_id
                if kind == EntityKind.TRIP:
                    if entity.status != TripStatus.COMPLETED:
                        return Outcome.rejected(
                            InvalidTransitionError(
                                f"Trip {entity_id} must be completed before payment, "
                                f"it is {entity.status.value}"
                            )
                        )
                    expected["status"] = TripStatus.COMPLETED
                    values["status"] = TripStatus.PAID

                if not repo.compare_and_set(entity_id, expected, values):
                    # A concurrent callback may have applied this same payment.
                    current = repo.get(entity_id)
                    if current is not None and current.is_paid:
                        return self._paid_replay(kind, entity_id, current, payment)
                    return Outcome.rejected(
                        StaleStateError(f"{kind.value} {entity_id} changed concurrently")
                    )
                updated = repo.get(entity_id)

            logger.info(f"{kind.value} {entity_id} paid ({payment.gateway_payment_id})")
            if kind == EntityKind.TRIP:
                record_transition(kind.value, TripStatus.PAID.value, APPLIED)
                self._deregister(kind, entity_id)
                if self._notifications:
                    self._notifications.notify_trip_payment(updated)
            elif self._notifications:
                self._notifications.notify_order_payment(updated)
            return Outcome.ok(updated, status=APPLIED)

    @staticmethod
    def _paid_replay(
        kind: EntityKind, entity_id: str, entity: Any, payment: PaymentRecord
    ) -> Outcome[Any]:
        """Acknowledge a replay of the applied payment; refuse any other one."""
        if (
            payment.gateway_payment_id is not None
            and entity.payment.gateway_payment_id == payment.gateway_payment_id
        ):
            return Outcome.ok(entity, status=ALREADY_APPLIED)
        return Outcome.rejected(already_paid(kind, entity_id))

    # --- Resale sub-state ---

    def expire_listing(self, order_id: str, listed_at: datetime) -> Outcome[Order]:
        """``listed -> expired`` for the listing created at ``listed_at``."""
        return self._resale_write(
            order_id,
            {"resale_status": ResaleStatus.LISTED, "resale_listed_at": listed_at},
            {"resale_status": ResaleStatus.EXPIRED},
            not_listed(order_id),
        )

    def claim_listing(
        self,
        order_id: str,
        buyer_id: str,
        listed_at: datetime,
        delivery: DeliveryLocation | None = None,
    ) -> Outcome[Order]:
        """``listed -> claimed``; the first conditional write wins."""
        values: dict[str, Any] = {
            "resale_status": ResaleStatus.CLAIMED,
            "resale_buyer_id": buyer_id,
            "resale_claimed_at": self._clock.now(),
        }
        if delivery is not None:
            values.update(
                delivery_lat=delivery.lat,
                delivery_lon=delivery.lon,
                delivery_address=delivery.address,
            )
        outcome = self._resale_write(
            order_id,
            {
                "status": OrderStatus.CANCELLED,
                "resellable": True,
                "resale_status": ResaleStatus.LISTED,
                "resale_listed_at": listed_at,
            },
            values,
            not_listed(order_id),
        )
        if outcome.accepted:
            return Outcome.ok(outcome.value, status=CLAIMED)
        return outcome

    def release_claim(
        self, order_id: str, buyer_id: str, claimed_at: datetime
    ) -> Outcome[Order]:
        """``claimed -> listed`` for a claim that went unpaid."""
        return self._resale_write(
            order_id,
            {
                "resale_status": ResaleStatus.CLAIMED,
                "resale_buyer_id": buyer_id,
                "resale_claimed_at": claimed_at,
            },
            {
                "resale_status": ResaleStatus.LISTED,
                "resale_buyer_id": None,
                "resale_claimed_at": None,
                "resale_gateway_order_id": None,
                "resale_payment_amount": None,
            },
            not_claimed(order_id, buyer_id),
        )

    def record_resale_intent(
        self, order_id: str, buyer_id: str, gateway_order_id: str, amount: float
    ) -> Outcome[Order]:
        return self._resale_write(
            order_id,
            {"resale_status": ResaleStatus.CLAIMED, "resale_buyer_id": buyer_id},
            {"resale_gateway_order_id": gateway_order_id, "resale_payment_amount": amount},
            not_claimed(order_id, buyer_id),
        )

    def complete_resale(
        self, order_id: str, buyer_id: str, payment: PaymentRecord
    ) -> Outcome[Order]:
        """``claimed -> sold``; revives the order at the stage it was cancelled in.

        The revived order is paid and its progression chain starts again from
        the revived stage.
        """
        now = self._clock.now()
        with log_entity_context("order", order_id, actor=f"customer:{buyer_id}"):
            with self._unit_of_work() as session:
                repo = OrderRepository(session)
                order = repo.get(order_id)
                if order is None:
                    return Outcome.rejected(NotFoundError(f"Order {order_id} not found"))
                if order.resale.status == ResaleStatus.SOLD:
                    return self._resale_replay(order, payment)
                if order.resale.status != ResaleStatus.CLAIMED or order.resale.buyer_id != buyer_id:
                    return Outcome.rejected(not_claimed(order_id, buyer_id))

                revived = order.cancelled_stage or OrderStatus.PREPARING
                values: dict[str, Any] = {
                    "status": revived,
                    "resale_status": ResaleStatus.SOLD,
                    "resale_gateway_payment_id": payment.gateway_payment_id,
                    "resale_gateway_signature": payment.gateway_signature,
                    "resale_paid_at": now,
                    "is_paid": True,
                }
                if order.paid_at is None:
                    values["paid_at"] = now
                if not repo.compare_and_set(
                    order_id,
                    {
                        "status": OrderStatus.CANCELLED,
                        "resale_status": ResaleStatus.CLAIMED,
                        "resale_buyer_id": buyer_id,
                    },
                    values,
                ):
                    current = repo.get(order_id)
                    if current is not None and current.resale.status == ResaleStatus.SOLD:
                        return self._resale_replay(current, payment)
                    return Outcome.rejected(StaleStateError(f"Order {order_id} changed"))
                updated = repo.get(order_id)

            logger.info(f"Order {order_id} resold to {buyer_id}, resuming at {revived.value}")
            record_transition(EntityKind.ORDER.value, revived.value, APPLIED)
            self._register(EntityKind.ORDER, order_id, revived)
            if self._notifications:
                self._notifications.notify_resale_purchase(updated)
            return Outcome.ok(updated, status=APPLIED)

    @staticmethod
    def _resale_replay(order: Order, payment: PaymentRecord) -> Outcome[Order]:
        if (
            payment.gateway_payment_id is not None
            and order.resale.payment.gateway_payment_id == payment.gateway_payment_id
        ):
            return Outcome.ok(order, status=ALREADY_APPLIED)
        return Outcome.rejected(already_paid(EntityKind.ORDER, order.order_id))

    def _resale_write(
        self,
        order_id: str,
        expected: Mapping[str, Any],
        values: Mapping[str, Any],
        rejection: LifecycleError,
    ) -> Outcome[Order]:
        with log_entity_context("order", order_id):
            with self._unit_of_work() as session:
                repo = OrderRepository(session)
                if repo.get_row(order_id) is None:
                    return Outcome.rejected(NotFoundError(f"Order {order_id} not found"))
                if not repo.compare_and_set(order_id, expected, values):
                    return Outcome.rejected(rejection)
                updated = repo.get(order_id)
            logger.debug(f"Resale state of order {order_id} -> {updated.resale.status.value}")
            return Outcome.ok(updated)

    # --- Collaborators ---

    def _register(self, kind: EntityKind, entity_id: str, status: StatusType) -> None:
        if self.scheduler is not None:
            self.scheduler.register(kind, entity_id, status)

    def _deregister(self, kind: EntityKind, entity_id: str) -> None:
        if self.scheduler is not None:
            self.scheduler.deregister(kind, entity_id)

    def _reschedule(self, kind: EntityKind, entity_id: str, status: StatusType) -> None:
        if self.scheduler is not None:
            self.scheduler.reschedule(kind, entity_id, status)

    def _notify_status(self, kind: EntityKind, entity: Trip | Order) -> None:
        if self._notifications is None:
            return
        if isinstance(entity, Trip):
            self._notifications.notify_trip_status(entity)
        else:
            self._notifications.notify_order_status(entity)

