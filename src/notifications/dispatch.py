"""Notification dispatch for trip, order and payment events."""

import logging
from collections.abc import Callable
from concurrent.futures import Executor
from typing import TYPE_CHECKING

from order import Order, OrderStatus
from trip import Trip, TripStatus

if TYPE_CHECKING:
    from .provider import NotificationProvider

logger = logging.getLogger(__name__)

TokenLookup = Callable[[str], str | None]

TRIP_MESSAGES: dict[TripStatus, tuple[str, str]] = {
    TripStatus.CONFIRMED: (
        "Ride Confirmed!",
        "Your ride to {drop} has been confirmed. Searching for drivers...",
    ),
    TripStatus.ASSIGNED: ("Driver Assigned!", "{driver} is on the way to pickup"),
    TripStatus.ARRIVING: (
        "Driver Arriving",
        "Your driver is arriving at the pickup location",
    ),
    TripStatus.AT_PICKUP: (
        "Driver at Pickup",
        "Your driver has reached the pickup location",
    ),
    TripStatus.STARTED: ("Trip Started!", "Your trip has started. Enjoy the ride!"),
    TripStatus.COMPLETED: (
        "Trip Completed",
        "You've reached your destination. Please complete payment.",
    ),
    TripStatus.CANCELLED: ("Ride Cancelled", "Your ride has been cancelled."),
}

ORDER_MESSAGES: dict[OrderStatus, tuple[str, str]] = {
    OrderStatus.PLACED: ("Order Placed!", "Your order has been placed."),
    OrderStatus.ACCEPTED: ("Order Accepted", "The restaurant has accepted your order."),
    OrderStatus.PREPARING: ("Preparing Your Food", "Your food is being prepared."),
    OrderStatus.READY_FOR_PICKUP: ("Order Ready", "Your order is ready for pickup."),
    OrderStatus.PICKED_UP: ("Order Picked Up", "Your courier has picked up your order."),
    OrderStatus.ON_THE_WAY: ("On The Way!", "Your order is on the way."),
    OrderStatus.DELIVERED: ("Order Delivered", "Enjoy your meal!"),
    OrderStatus.CANCELLED: ("Order Cancelled", "Your order has been cancelled."),
}


class NotificationDispatch:
    """Turns lifecycle transitions into push notifications.

    Device tokens are resolved per user through ``token_lookup``; users
    without a token are skipped. Delivery failures are logged and never
    propagate to the caller. With an ``executor`` each send runs on a worker
    thread, so a slow push relay never holds up the transition that caused it;
    without one, sends run inline.
    """

    def __init__(
        self,
        provider: "NotificationProvider",
        token_lookup: TokenLookup,
        executor: Executor | None = None,
    ):
        self._provider = provider
        self._token_lookup = token_lookup
        self._executor = executor

    def notify_trip_status(self, trip: Trip) -> None:
        message = TRIP_MESSAGES.get(trip.status)
        if message is None:
            return
        title, body = message
        driver_name = trip.driver.name if trip.driver and trip.driver.name else None
        body = body.format(
            drop=trip.drop.label or "your destination",
            driver=driver_name or "Your driver",
        )
        self._send(
            trip.rider_id,
            title,
            body,
            {"type": trip.status.to_event_type(), "rideId": trip.trip_id},
        )

    def notify_order_status(self, order: Order) -> None:
        message = ORDER_MESSAGES.get(order.status)
        if message is None:
            return
        title, body = message
        self._send(
            order.customer_id,
            title,
            body,
            {"type": order.status.to_event_type(), "orderId": order.order_id},
        )

    def notify_trip_payment(self, trip: Trip) -> None:
        self._send(
            trip.rider_id,
            "Payment Successful!",
            f"₹{trip.pricing.total_fare:g} paid successfully. Thank you for riding with us!",
            {
                "type": "payment_success",
                "rideId": trip.trip_id,
                "amount": f"{trip.pricing.total_fare:g}",
            },
        )

    def notify_order_payment(self, order: Order) -> None:
        self._send(
            order.customer_id,
            "Payment Successful!",
            f"₹{order.amounts.final_payable:g} paid successfully.",
            {
                "type": "payment_success",
                "orderId": order.order_id,
                "amount": f"{order.amounts.final_payable:g}",
            },
        )

    def notify_resale_purchase(self, order: Order) -> None:
        buyer_id = order.resale.buyer_id
        if buyer_id is None:
            return
        price = order.resale.price or 0.0
        self._send(
            buyer_id,
            "Payment Successful!",
            f"₹{price:g} paid. Your discounted order is on its way.",
            {"type": "resale_purchased", "orderId": order.order_id, "amount": f"{price:g}"},
        )

    def close(self) -> None:
        """Wait for queued sends, then close the provider."""
        if self._executor is not None:
            self._executor.shutdown(wait=True)
        self._provider.close()

    def _send(self, user_id: str, title: str, body: str, data: dict[str, str]) -> None:
        if self._executor is None:
            self._deliver(user_id, title, body, data)
            return
        try:
            self._executor.submit(self._deliver, user_id, title, body, data)
        except RuntimeError:
            logger.warning(f"Notification executor is shut down, dropping '{title}'")

    def _deliver(self, user_id: str, title: str, body: str, data: dict[str, str]) -> None:
        try:
            token = self._token_lookup(user_id)
            if not token:
                logger.debug(f"No device token for user {user_id}, skipping '{title}'")
                return
            self._provider.send(token, title, body, data)
        except Exception:
            logger.exception(f"Notification send error for user {user_id}")
