"""Food order states, transition table and models."""

from datetime import datetime
from enum import Enum
from typing import Self

from pydantic import BaseModel, ConfigDict, Field, model_validator

from payment import PaymentRecord

PRICE_TOLERANCE = 1.0


class OrderStatus(str, Enum):
    """Order lifecycle states."""

    PLACED = "placed"
    ACCEPTED = "accepted"
    PREPARING = "preparing"
    READY_FOR_PICKUP = "ready_for_pickup"
    PICKED_UP = "picked_up"
    ON_THE_WAY = "on_the_way"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    def to_event_type(self) -> str:
        return f"order_{self.value}"


class ResaleStatus(str, Enum):
    NONE = "none"
    LISTED = "listed"
    CLAIMED = "claimed"
    EXPIRED = "expired"
    SOLD = "sold"


class DeliveryMode(str, Enum):
    SHARED_DETOUR = "shared_detour"
    DEDICATED = "dedicated"


class PaymentMode(str, Enum):
    ONLINE = "online"
    COD = "cod"


VALID_TRANSITIONS: dict[OrderStatus, set[OrderStatus]] = {
    OrderStatus.PLACED: {OrderStatus.ACCEPTED, OrderStatus.CANCELLED},
    OrderStatus.ACCEPTED: {OrderStatus.PREPARING, OrderStatus.CANCELLED},
    OrderStatus.PREPARING: {OrderStatus.READY_FOR_PICKUP},
    OrderStatus.READY_FOR_PICKUP: {OrderStatus.PICKED_UP},
    OrderStatus.PICKED_UP: {OrderStatus.ON_THE_WAY},
    OrderStatus.ON_THE_WAY: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}

PROGRESSION_PATH: tuple[OrderStatus, ...] = (
    OrderStatus.PLACED,
    OrderStatus.ACCEPTED,
    OrderStatus.PREPARING,
    OrderStatus.READY_FOR_PICKUP,
    OrderStatus.PICKED_UP,
    OrderStatus.ON_THE_WAY,
    OrderStatus.DELIVERED,
)

TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})
FREE_CANCEL_STATUSES = frozenset({OrderStatus.PLACED, OrderStatus.ACCEPTED})
# Stages at which food preparation has begun; cancelling here is the paid path.
PREPARATION_STARTED_STATUSES = frozenset(
    {
        OrderStatus.PREPARING,
        OrderStatus.READY_FOR_PICKUP,
        OrderStatus.PICKED_UP,
        OrderStatus.ON_THE_WAY,
    }
)
FORCE_CANCEL_STATUSES = FREE_CANCEL_STATUSES | PREPARATION_STARTED_STATUSES
ACTIVE_STATUSES = FORCE_CANCEL_STATUSES

STATUS_TIMESTAMPS: dict[OrderStatus, str] = {
    OrderStatus.PLACED: "placed_at",
    OrderStatus.ACCEPTED: "accepted_at",
    OrderStatus.PREPARING: "preparing_at",
    OrderStatus.READY_FOR_PICKUP: "ready_at",
    OrderStatus.PICKED_UP: "picked_up_at",
    OrderStatus.ON_THE_WAY: "on_the_way_at",
    OrderStatus.DELIVERED: "delivered_at",
    OrderStatus.CANCELLED: "cancelled_at",
}


class AddOn(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: str
    price: float = Field(ge=0)


class OrderItem(BaseModel):
    """Menu item snapshot taken at order time; later menu edits never reach it."""

    model_config = ConfigDict(frozen=True)

    menu_item_id: str
    name: str
    quantity: int = Field(ge=1)
    unit_price: float = Field(ge=0)
    add_ons: tuple[AddOn, ...] = ()
    item_total: float = Field(ge=0)


class OrderAmounts(BaseModel):
    model_config = ConfigDict(frozen=True)

    items_total: float = Field(ge=0)
    platform_fee: float = Field(default=0.0, ge=0)
    delivery_fee: float = Field(default=0.0, ge=0)
    distance_fee: float = Field(default=0.0, ge=0)
    discounts: float = Field(default=0.0, ge=0)
    tax_amount: float = Field(default=0.0, ge=0)
    final_payable: float = Field(ge=0)

    @property
    def expected_final(self) -> float:
        return (
            self.items_total
            + self.platform_fee
            + self.delivery_fee
            + self.tax_amount
            - self.discounts
        )

    @model_validator(mode="after")
    def validate_final(self) -> Self:
        if abs(self.final_payable - self.expected_final) > PRICE_TOLERANCE:
            raise ValueError(
                f"Final payable {self.final_payable} does not match items + fees + tax "
                f"- discounts ({self.expected_final})"
            )
        return self


class DeliveryLocation(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lon: float = Field(ge=-180, le=180)
    address: str = Field(min_length=1)


class ResaleRecord(BaseModel):
    resellable: bool = False
    status: ResaleStatus = ResaleStatus.NONE
    price: float | None = Field(default=None, ge=0)
    buyer_id: str | None = None
    listed_at: datetime | None = None
    claimed_at: datetime | None = None
    payment: PaymentRecord = Field(default_factory=PaymentRecord)
    paid_at: datetime | None = None


class OrderLine(BaseModel):
    """Line requested by the customer, priced against the restaurant's menu."""

    menu_item_id: str = Field(min_length=1)
    quantity: int = Field(ge=1)
    add_ons: list[AddOn] = Field(default_factory=list)


class MenuEntry(BaseModel):
    """Current menu data supplied by the caller when placing an order."""

    menu_item_id: str
    name: str
    price: float = Field(ge=0)
    is_available: bool = True


class OrderRequest(BaseModel):
    customer_id: str = Field(min_length=1)
    restaurant_id: str = Field(min_length=1)
    lines: list[OrderLine] = Field(min_length=1)
    menu: dict[str, MenuEntry]
    delivery: DeliveryLocation
    distance_km: float = Field(ge=0)
    delivery_mode: DeliveryMode
    payment_mode: PaymentMode = PaymentMode.ONLINE
    linked_trip_id: str | None = None
    eta_minutes: int | None = Field(default=None, ge=0)


class Order(BaseModel):
    order_id: str
    customer_id: str
    restaurant_id: str
    items: tuple[OrderItem, ...]
    delivery_mode: DeliveryMode
    payment_mode: PaymentMode = PaymentMode.ONLINE
    linked_trip_id: str | None = None
    delivery: DeliveryLocation
    amounts: OrderAmounts
    status: OrderStatus = OrderStatus.PLACED
    courier_id: str | None = None
    otp_pickup: str
    otp_drop: str
    eta_minutes: int | None = None
    cancelled_stage: OrderStatus | None = None
    cancelled_by: str | None = None
    cancellation_reason: str | None = None
    original_customer_pays_full: bool = False
    resale: ResaleRecord = Field(default_factory=ResaleRecord)
    payment: PaymentRecord = Field(default_factory=PaymentRecord)
    is_paid: bool = False
    paid_at: datetime | None = None
    placed_at: datetime
    accepted_at: datetime | None = None
    preparing_at: datetime | None = None
    ready_at: datetime | None = None
    picked_up_at: datetime | None = None
    on_the_way_at: datetime | None = None
    delivered_at: datetime | None = None
    cancelled_at: datetime | None = None

    @property
    def payable_amount(self) -> float:
        return self.amounts.final_payable

    def can_transition_to(self, new_status: OrderStatus) -> bool:
        return new_status in VALID_TRANSITIONS[self.status]
