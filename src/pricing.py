"""Backend-authoritative pricing.

Pure functions only: callers pass distances and item snapshots in, and the
returned breakdowns are written once onto the trip or order. Rounding is
half-up so totals match what riders see on the fare preview.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from math import atan2, cos, radians, sin, sqrt
from typing import TYPE_CHECKING

from order import AddOn, DeliveryMode, OrderAmounts, OrderItem
from trip import TripPricing

if TYPE_CHECKING:
    from settings import PricingSettings

EARTH_RADIUS_KM = 6371.0


@dataclass(frozen=True)
class PricingConfig:
    trip_base_fare: float = 50.0
    trip_per_km: float = 12.0
    trip_per_min: float = 2.0
    trip_per_food_stop: float = 15.0
    max_food_stops: int = 5
    order_platform_fee: float = 5.0
    order_base_delivery_fee: float = 20.0
    order_per_km_fee: float = 8.0
    order_tax_rate: float = 0.05
    shared_detour_discount: float = 0.5

    @classmethod
    def from_settings(cls, settings: "PricingSettings") -> "PricingConfig":
        return cls(**settings.model_dump())


DEFAULT_PRICING = PricingConfig()


def round_half_up(value: float, places: int = 0) -> float:
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def calculate_trip_fare(
    distance_km: float,
    eta_min: float,
    food_stops: int = 0,
    config: PricingConfig = DEFAULT_PRICING,
) -> TripPricing:
    """Compute the fare breakdown for a ride."""
    if distance_km < 0 or eta_min < 0:
        raise ValueError("distance_km and eta_min must be non-negative")
    if not 0 <= food_stops <= config.max_food_stops:
        raise ValueError(f"food_stops must be between 0 and {config.max_food_stops}")

    base_fare = config.trip_base_fare
    distance_fare = round_half_up(distance_km * config.trip_per_km)
    time_fare = round_half_up(eta_min * config.trip_per_min)
    food_stop_fare = food_stops * config.trip_per_food_stop

    return TripPricing(
        base_fare=base_fare,
        distance_fare=distance_fare,
        time_fare=time_fare,
        food_stop_fare=food_stop_fare,
        total_fare=base_fare + distance_fare + time_fare + food_stop_fare,
    )


def price_line_item(
    menu_item_id: str,
    name: str,
    unit_price: float,
    quantity: int,
    add_ons: list[AddOn] | tuple[AddOn, ...] = (),
) -> OrderItem:
    """Snapshot a menu item at its current price; add-ons are charged per unit."""
    if quantity < 1:
        raise ValueError("quantity must be at least 1")
    per_unit = unit_price + sum(add_on.price for add_on in add_ons)
    return OrderItem(
        menu_item_id=menu_item_id,
        name=name,
        quantity=quantity,
        unit_price=unit_price,
        add_ons=tuple(add_ons),
        item_total=per_unit * quantity,
    )


def calculate_order_amounts(
    items_total: float,
    distance_km: float,
    delivery_mode: DeliveryMode,
    config: PricingConfig = DEFAULT_PRICING,
) -> OrderAmounts:
    """Compute the payable breakdown for a food order.

    Shared-detour delivery rides along with a cab, so half of the normal
    delivery fee is charged and the other half is shown as a discount.
    """
    if items_total < 0 or distance_km < 0:
        raise ValueError("items_total and distance_km must be non-negative")

    normal_delivery_fee = config.order_base_delivery_fee + distance_km * config.order_per_km_fee
    if delivery_mode == DeliveryMode.SHARED_DETOUR:
        delivery_fee = normal_delivery_fee * (1 - config.shared_detour_discount)
        discounts = normal_delivery_fee * config.shared_detour_discount
    else:
        delivery_fee = normal_delivery_fee
        discounts = 0.0

    subtotal = items_total + config.order_platform_fee + delivery_fee
    tax_amount = round_half_up(subtotal * config.order_tax_rate)
    final_payable = round_half_up(subtotal + tax_amount - discounts)

    return OrderAmounts(
        items_total=items_total,
        platform_fee=config.order_platform_fee,
        delivery_fee=round_half_up(delivery_fee),
        distance_fee=round_half_up(distance_km * config.order_per_km_fee),
        discounts=round_half_up(discounts),
        tax_amount=tax_amount,
        final_payable=final_payable,
    )


def resale_price(final_payable: float, price_ratio: float = 0.5) -> float:
    """Price at which a cancelled, already-prepared order is re-offered."""
    return round_half_up(final_payable * price_ratio)


def haversine_distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points in kilometers."""
    lat1, lon1, lat2, lon2 = map(radians, [lat1, lon1, lat2, lon2])
    dlat = lat2 - lat1
    dlon = lon2 - lon1

    a = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    c = 2 * atan2(sqrt(a), sqrt(1 - a))

    return EARTH_RADIUS_KM * c
