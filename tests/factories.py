"""Request and entity factories for trips and orders."""

from datetime import UTC, datetime
from typing import Any

from order import (
    DeliveryLocation,
    DeliveryMode,
    MenuEntry,
    Order,
    OrderLine,
    OrderRequest,
)
from pricing import calculate_order_amounts, calculate_trip_fare, price_line_item
from trip import DriverSnapshot, GeoPoint, Trip, TripRequest

TEST_SECRET = "test-secret"
START_TIME = datetime(2026, 3, 14, 12, 0, tzinfo=UTC)

MENU = {
    "m1": MenuEntry(menu_item_id="m1", name="Paneer Tikka", price=180.0),
    "m2": MenuEntry(menu_item_id="m2", name="Garlic Naan", price=40.0),
    "m3": MenuEntry(menu_item_id="m3", name="Mango Lassi", price=60.0, is_available=False),
}

# Restaurant delivery point used by resale tests.
DELIVERY = DeliveryLocation(lat=12.9716, lon=77.5946, address="MG Road, Bengaluru")


def make_trip_request(**overrides: Any) -> TripRequest:
    defaults: dict[str, Any] = {
        "rider_id": "rider1",
        "pickup": GeoPoint(lat=12.9352, lon=77.6245, label="Koramangala"),
        "drop": GeoPoint(lat=12.9716, lon=77.5946, label="MG Road"),
        "distance_km": 6.4,
        "eta_min": 22,
        "food_stops": 0,
    }
    defaults.update(overrides)
    return TripRequest(**defaults)


def make_order_request(**overrides: Any) -> OrderRequest:
    defaults: dict[str, Any] = {
        "customer_id": "cust1",
        "restaurant_id": "rest1",
        "lines": [OrderLine(menu_item_id="m1", quantity=2), OrderLine(menu_item_id="m2", quantity=3)],
        "menu": MENU,
        "delivery": DELIVERY,
        "distance_km": 4.0,
        "delivery_mode": DeliveryMode.DEDICATED,
    }
    defaults.update(overrides)
    return OrderRequest(**defaults)


def make_driver(**overrides: Any) -> DriverSnapshot:
    defaults: dict[str, Any] = {
        "driver_id": "driver1",
        "name": "Ravi Kumar",
        "phone": "9876543210",
        "vehicle": "Swift Dzire",
        "plate": "KA01AB1234",
        "rating": 4.8,
    }
    defaults.update(overrides)
    return DriverSnapshot(**defaults)


def make_trip(**overrides: Any) -> Trip:
    """Persistable trip priced like the default trip request."""
    defaults: dict[str, Any] = {
        "trip_id": "t1",
        "rider_id": "rider1",
        "pickup": GeoPoint(lat=12.9352, lon=77.6245, label="Koramangala"),
        "drop": GeoPoint(lat=12.9716, lon=77.5946, label="MG Road"),
        "distance_km": 6.4,
        "eta_min": 22,
        "pricing": calculate_trip_fare(6.4, 22),
        "confirmed_at": START_TIME,
    }
    defaults.update(overrides)
    return Trip(**defaults)


def make_order(**overrides: Any) -> Order:
    """Persistable order priced like the default order request."""
    items = (
        price_line_item("m1", "Paneer Tikka", 180.0, 2),
        price_line_item("m2", "Garlic Naan", 40.0, 3),
    )
    defaults: dict[str, Any] = {
        "order_id": "o1",
        "customer_id": "cust1",
        "restaurant_id": "rest1",
        "items": items,
        "delivery_mode": DeliveryMode.DEDICATED,
        "delivery": DELIVERY,
        "amounts": calculate_order_amounts(480.0, 4.0, DeliveryMode.DEDICATED),
        "otp_pickup": "1234",
        "otp_drop": "5678",
        "placed_at": START_TIME,
    }
    defaults.update(overrides)
    return Order(**defaults)
