"""Resale marketplace for orders cancelled after preparation began.

A listing is a sub-state of the cancelled order (``listed -> claimed ->
sold``, or ``expired``). Windows are checked against the clock at request
time, so a listing past its window is never returned or claimable even if no
sweep has run yet; the periodic sweep only catches up on the stored state.
"""

import logging
from collections.abc import Generator
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

import simpy

from app_logging import log_entity_context
from core.clock import Clock, elapsed_since
from core.exceptions import (
    DeadlineExceededError,
    InvalidTransitionError,
    NotFoundError,
    SignatureMismatchError,
    ValidationError,
)
from core.outcome import ALREADY_APPLIED, APPLIED, Outcome
from lifecycle import ActorContext
from metrics import record_payment, record_resale_event
from order import PREPARATION_STARTED_STATUSES, DeliveryLocation, Order, ResaleStatus
from payment import PaymentRecord
from payments import PaymentIntent, PaymentReconciler, make_receipt
from pricing import haversine_distance_km, resale_price, round_half_up
from settings import ResaleSettings

if TYPE_CHECKING:
    from lifecycle import LifecycleStateMachine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResaleListing:
    order: Order
    distance_km: float
    minutes_left: int

    @property
    def price(self) -> float | None:
        return self.order.resale.price


@dataclass(frozen=True)
class SweepResult:
    expired: int = 0
    released: int = 0


class ResaleMarketplace:
    """Lists, claims and sells cancelled orders through the state machine."""

    def __init__(
        self,
        state_machine: "LifecycleStateMachine",
        reconciler: PaymentReconciler,
        settings: ResaleSettings | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._state_machine = state_machine
        self._reconciler = reconciler
        self._settings = settings or ResaleSettings()
        self._clock = clock or state_machine.clock
        self._listing_ttl = timedelta(seconds=self._settings.listing_ttl_seconds)
        self._claim_ttl = timedelta(seconds=self._settings.claim_ttl_seconds)

    def _listing_expired(self, order: Order, now: datetime) -> bool:
        listed_at = order.resale.listed_at
        return listed_at is not None and now - listed_at > self._listing_ttl

    def _claim_expired(self, order: Order, now: datetime) -> bool:
        claimed_at = order.resale.claimed_at
        return (
            claimed_at is not None
            and order.resale.paid_at is None
            and now - claimed_at > self._claim_ttl
        )

    def _expire(self, order: Order) -> bool:
        assert order.resale.listed_at is not None
        outcome = self._state_machine.expire_listing(order.order_id, order.resale.listed_at)
        if outcome.accepted:
            record_resale_event("expired")
            logger.info(f"Resale listing for order {order.order_id} expired")
        return outcome.accepted

    def cancel_and_list(
        self, order_id: str, actor: ActorContext, reason: str | None = None
    ) -> Outcome[Order]:
        """Paid cancel of an order already in preparation, listing it for resale.

        The original customer still pays in full; the listing is offered at a
        fraction of the final payable.
        """
        with log_entity_context("order", order_id, actor=str(actor)):
            order = self._state_machine.get_order(order_id)
            if order is None:
                return Outcome.rejected(NotFoundError(f"Order {order_id} not found"))

            price = resale_price(order.amounts.final_payable, self._settings.price_ratio)
            outcome = self._state_machine.force_cancel_order(
                order_id,
                actor,
                reason or "User cancelled",
                resale_price=price,
                allowed_from=PREPARATION_STARTED_STATUSES,
            )
            if outcome.accepted:
                record_resale_event("listed")
                logger.info(f"Order {order_id} listed for resale at {price}")
            return outcome

    def nearby_listings(
        self, lat: float, lon: float, radius_km: float | None = None
    ) -> list[ResaleListing]:
        """Claimable listings delivering within ``radius_km``, nearest first."""
        radius = radius_km if radius_km is not None else self._settings.default_radius_km
        now = self._clock.now()
        ttl_minutes = self._listing_ttl.total_seconds() / 60

        listings = []
        for order in self._state_machine.list_orders_by_resale_status(ResaleStatus.LISTED):
            if order.resale.listed_at is None:
                continue
            if self._listing_expired(order, now):
                self._expire(order)
                continue

            distance = haversine_distance_km(lat, lon, order.delivery.lat, order.delivery.lon)
            if distance > radius:
                continue
            minutes_listed = (now - order.resale.listed_at).total_seconds() / 60
            listings.append(
                ResaleListing(
                    order=order,
                    distance_km=round_half_up(distance, 1),
                    minutes_left=max(0, int(round_half_up(ttl_minutes - minutes_listed))),
                )
            )

        listings.sort(key=lambda listing: listing.distance_km)
        return listings

    def claim(
        self,
        order_id: str,
        buyer_id: str,
        new_delivery_location: DeliveryLocation | None = None,
    ) -> Outcome[Order]:
        """Reserve a listing for ``buyer_id``; exactly one concurrent claim wins."""
        with log_entity_context("order", order_id, actor=f"customer:{buyer_id}"):
            order = self._state_machine.get_order(order_id)
            if order is None:
                return Outcome.rejected(NotFoundError(f"Order {order_id} not found"))
            if not order.resale.resellable or order.resale.status != ResaleStatus.LISTED:
                return Outcome.rejected(
                    InvalidTransitionError(
                        "Order no longer available for resale", reason="not-listed"
                    )
                )
            assert order.resale.listed_at is not None
            if self._listing_expired(order, self._clock.now()):
                self._expire(order)
                return Outcome.rejected(DeadlineExceededError("Order expired", reason="expired"))

            outcome = self._state_machine.claim_listing(
                order_id, buyer_id, order.resale.listed_at, new_delivery_location
            )
            if outcome.accepted:
                record_resale_event("claimed")
                logger.info(f"Order {order_id} claimed by {buyer_id}")
            return outcome

    def sweep(self) -> SweepResult:
        """Expire stale listings and release claims left unpaid."""
        now = self._clock.now()
        expired = 0
        for order in self._state_machine.list_orders_by_resale_status(ResaleStatus.LISTED):
            if self._listing_expired(order, now) and self._expire(order):
                expired += 1

        released = 0
        for order in self._state_machine.list_orders_by_resale_status(ResaleStatus.CLAIMED):
            if not self._claim_expired(order, now):
                continue
            assert order.resale.buyer_id is not None and order.resale.claimed_at is not None
            outcome = self._state_machine.release_claim(
                order.order_id, order.resale.buyer_id, order.resale.claimed_at
            )
            if outcome.accepted:
                released += 1
                record_resale_event("released")
                logger.info(
                    f"Claim on order {order.order_id} released after "
                    f"{elapsed_since(self._clock, order.resale.claimed_at)} unpaid"
                )

        if expired or released:
            logger.info(f"Resale sweep: {expired} expired, {released} claims released")
        return SweepResult(expired=expired, released=released)

    def start_sweeper(
        self, env: simpy.Environment, interval_seconds: float | None = None
    ) -> simpy.Process:
        interval = interval_seconds or self._settings.sweep_interval_seconds
        return env.process(self._sweep_process(env, interval))

    def _sweep_process(
        self, env: simpy.Environment, interval: float
    ) -> Generator[simpy.Event, Any, None]:
        """Sweep every ``interval`` simulated seconds."""
        while True:
            try:
                self.sweep()
            except Exception:
                logger.exception("Resale sweep failed")
            yield env.timeout(interval)

    def create_resale_gateway_order(
        self, order_id: str, buyer_id: str
    ) -> Outcome[PaymentIntent]:
        """Open a gateway order for the resale price of a claimed listing."""
        with log_entity_context("order", order_id, actor=f"customer:{buyer_id}"):
            order = self._state_machine.get_order(order_id)
            if order is None:
                return Outcome.rejected(NotFoundError(f"Order {order_id} not found"))
            if order.resale.status != ResaleStatus.CLAIMED or order.resale.buyer_id != buyer_id:
                return Outcome.rejected(
                    InvalidTransitionError(
                        f"Order {order_id} is not claimed by {buyer_id}", reason="not-claimed"
                    )
                )
            price = order.resale.price
            if not price or price <= 0:
                return Outcome.rejected(ValidationError(f"Invalid resale price {price}"))

            receipt = make_receipt("rs", order_id)
            created = self._reconciler.open_gateway_order(price, receipt)
            if not created.accepted:
                return Outcome.rejected(created.error)  # type: ignore[arg-type]

            gateway_order_id = created.unwrap()
            recorded = self._state_machine.record_resale_intent(
                order_id, buyer_id, gateway_order_id, price
            )
            if not recorded.accepted:
                return Outcome.rejected(recorded.error)  # type: ignore[arg-type]
            return Outcome.ok(
                PaymentIntent(gateway_order_id, price, self._reconciler.currency, receipt)
            )

    def complete_purchase(
        self,
        order_id: str,
        buyer_id: str,
        gateway_order_id: str,
        gateway_payment_id: str,
        signature: str,
    ) -> Outcome[Order]:
        """Apply the buyer's signed payment and hand the order to them.

        Same contract as payment reconciliation, against the resale payment
        record: replays return ``already-applied``.
        """
        with log_entity_context("order", order_id, actor=f"customer:{buyer_id}"):
            outcome = self._complete_purchase(
                order_id, buyer_id, gateway_order_id, gateway_payment_id, signature
            )
            record_payment("resale", outcome.status if outcome.accepted else outcome.reason)
            if outcome.status == APPLIED:
                record_resale_event("sold")
            elif not outcome.accepted:
                logger.warning(f"Resale payment {gateway_payment_id} rejected: {outcome.reason}")
            return outcome

    def _complete_purchase(
        self,
        order_id: str,
        buyer_id: str,
        gateway_order_id: str,
        gateway_payment_id: str,
        signature: str,
    ) -> Outcome[Order]:
        order = self._state_machine.get_order(order_id)
        if order is None:
            return Outcome.rejected(NotFoundError(f"Order {order_id} not found"))

        resale = order.resale
        if resale.status == ResaleStatus.SOLD:
            if resale.payment.gateway_payment_id == gateway_payment_id:
                return Outcome.ok(order, status=ALREADY_APPLIED)
            return Outcome.rejected(
                InvalidTransitionError(f"Order {order_id} is already sold", reason="already-paid")
            )

        if not self._reconciler.signature_valid(gateway_order_id, gateway_payment_id, signature):
            return Outcome.rejected(SignatureMismatchError("Invalid payment signature"))

        if resale.payment.amount is None or resale.payment.gateway_order_id is None:
            return Outcome.rejected(
                ValidationError(
                    "No gateway order was recorded for this purchase", reason="amount-not-set"
                )
            )
        if resale.payment.gateway_order_id != gateway_order_id:
            return Outcome.rejected(
                ValidationError(
                    "Callback is for a different gateway order", reason="order-mismatch"
                )
            )

        return self._state_machine.complete_resale(
            order_id,
            buyer_id,
            PaymentRecord(
                gateway_order_id=gateway_order_id,
                gateway_payment_id=gateway_payment_id,
                gateway_signature=signature,
                amount=resale.payment.amount,
            ),
        )
