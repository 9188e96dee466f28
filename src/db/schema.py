"""SQLAlchemy ORM models for lifecycle persistence."""

from datetime import datetime

from sqlalchemy import Boolean, Float, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from .utils import utc_now


class Base(DeclarativeBase):
    pass


class Trip(Base):
    __tablename__ = "trips"

    trip_id: Mapped[str] = mapped_column(String, primary_key=True)
    rider_id: Mapped[str] = mapped_column(String, nullable=False)
    driver_id: Mapped[str | None] = mapped_column(String, nullable=True)
    driver_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    pickup_lat: Mapped[float] = mapped_column(Float, nullable=False)
    pickup_lon: Mapped[float] = mapped_column(Float, nullable=False)
    pickup_label: Mapped[str | None] = mapped_column(String, nullable=True)
    drop_lat: Mapped[float] = mapped_column(Float, nullable=False)
    drop_lon: Mapped[float] = mapped_column(Float, nullable=False)
    drop_label: Mapped[str | None] = mapped_column(String, nullable=True)
    distance_km: Mapped[float] = mapped_column(Float, nullable=False)
    eta_min: Mapped[float] = mapped_column(Float, nullable=False)
    food_stops: Mapped[int] = mapped_column(Integer, default=0)
    base_fare: Mapped[float] = mapped_column(Float, nullable=False)
    distance_fare: Mapped[float] = mapped_column(Float, nullable=False)
    time_fare: Mapped[float] = mapped_column(Float, nullable=False)
    food_stop_fare: Mapped[float] = mapped_column(Float, nullable=False)
    total_fare: Mapped[float] = mapped_column(Float, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False)
    cancelled_by: Mapped[str | None] = mapped_column(String, nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(String, nullable=True)
    confirmed_at: Mapped[datetime] = mapped_column(nullable=False)
    assigned_at: Mapped[datetime | None] = mapped_column(nullable=True)
    arriving_at: Mapped[datetime | None] = mapped_column(nullable=True)
    at_pickup_at: Mapped[datetime | None] = mapped_column(nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    gateway_order_id: Mapped[str | None] = mapped_column(String, nullable=True)
    gateway_payment_id: Mapped[str | None] = mapped_column(String, nullable=True)
    gateway_signature: Mapped[str | None] = mapped_column(String, nullable=True)
    payment_amount: Mapped[float | None] = mapped_column(Float, nullable=True)
    is_paid: Mapped[bool] = mapped_column(Boolean, default=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=lambda: utc_now(),
        onupdate=lambda: utc_now(),
    )

    __table_args__ = (
        Index("idx_trip_status", "status"),
        Index("idx_trip_driver", "driver_id"),
        Index("idx_trip_rider", "rider_id"),
        Index("idx_trip_paid", "is_paid", "completed_at"),
    )


class Order(Base):
    __tablename__ = "orders"

    order_id: Mapped[str] = mapped_column(String, primary_key=True)
    customer_id: Mapped[str] = mapped_column(String, nullable=False)
    restaurant_id: Mapped[str] = mapped_column(String, nullable=False)
    items_json: Mapped[str] = mapped_column(Text, nullable=False)
    delivery_mode: Mapped[str] = mapped_column(String, nullable=False)
    payment_mode: Mapped[str] = mapped_column(String, nullable=False)
    linked_trip_id: Mapped[str | None] = mapped_column(String, nullable=True)
    delivery_lat: Mapped[float] = mapped_column(Float, nullable=False)
    delivery_lon: Mapped[float] = mapped_column(Float, nullable=False)
    delivery_address: Mapped[str] = mapped_column(String, nullable=False)
    items_total: Mapped[float] = mapped_column(Float, nullable=False)
    platform_fee: Mapped[float] = mapped_column(Float, nullable=False)
    delivery_fee: Mapped[float] = mapped_column(Float, nullable=False)
    distance_fee: Mapped[float] = mapped_column(Float, nullable=False)
    discounts: Mapped[float] = mapped_column(Float, nullable=False)
    tax_amount: Mapped[float] = mapped_column(Float, nullable=False)
    final_payable: Mapped[float] = mapped_column(Float, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False)
    courier_id: Mapped[str | None] = mapped_column(String, nullable=True)
    otp_pickup: Mapped[str] = mapped_column(String, nullable=False)
    otp_drop: Mapped[str] = mapped_column(String, nullable=False)
    eta_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    cancelled_stage: Mapped[str | None] = mapped_column(String, nullable=True)
    cancelled_by: Mapped[str | None] = mapped_column(String, nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(String, nullable=True)
    original_customer_pays_full: Mapped[bool] = mapped_column(Boolean, default=False)
    gateway_order_id: Mapped[str | None] = mapped_column(String, nullable=True)
    gateway_payment_id: Mapped[str | None] = mapped_column(String, nullable=True)
    gateway_signature: Mapped[str | None] = mapped_column(String, nullable=True)
    payment_amount: Mapped[float | None] = mapped_column(Float, nullable=True)
    is_paid: Mapped[bool] = mapped_column(Boolean, default=False)
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)
    resellable: Mapped[bool] = mapped_column(Boolean, default=False)
    resale_status: Mapped[str] = mapped_column(String, nullable=False, default="none")
    resale_price: Mapped[float | None] = mapped_column(Float, nullable=True)
    resale_buyer_id: Mapped[str | None] = mapped_column(String, nullable=True)
    resale_listed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    resale_claimed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    resale_gateway_order_id: Mapped[str | None] = mapped_column(String, nullable=True)
    resale_gateway_payment_id: Mapped[str | None] = mapped_column(String, nullable=True)
    resale_gateway_signature: Mapped[str | None] = mapped_column(String, nullable=True)
    resale_payment_amount: Mapped[float | None] = mapped_column(Float, nullable=True)
    resale_paid_at: Mapped[datetime | None] = mapped_column(nullable=True)
    placed_at: Mapped[datetime] = mapped_column(nullable=False)
    accepted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    preparing_at: Mapped[datetime | None] = mapped_column(nullable=True)
    ready_at: Mapped[datetime | None] = mapped_column(nullable=True)
    picked_up_at: Mapped[datetime | None] = mapped_column(nullable=True)
    on_the_way_at: Mapped[datetime | None] = mapped_column(nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        default=lambda: utc_now(),
        onupdate=lambda: utc_now(),
    )

    __table_args__ = (
        Index("idx_order_customer_status", "customer_id", "status"),
        Index("idx_order_restaurant_status", "restaurant_id", "status"),
        Index("idx_order_courier_status", "courier_id", "status"),
        Index("idx_order_resale", "resellable", "resale_status"),
        Index("idx_order_resale_listed", "resale_listed_at"),
    )


class ProgressionLease(Base):
    """Ownership of an entity's progression chain by one service instance."""

    __tablename__ = "progression_leases"

    entity_key: Mapped[str] = mapped_column(String, primary_key=True)
    owner_id: Mapped[str] = mapped_column(String, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(nullable=False)

    __table_args__ = (Index("idx_lease_owner", "owner_id"),)


class ServiceMetadata(Base):
    __tablename__ = "service_metadata"

    key: Mapped[str] = mapped_column(String, primary_key=True)
    value: Mapped[str] = mapped_column(String, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=lambda: utc_now(),
        onupdate=lambda: utc_now(),
    )
