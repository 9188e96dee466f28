import socket
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LifecycleSettings(BaseSettings):
    trip_cancellation_window_seconds: float = Field(
        default=180.0,
        ge=0.0,
        description="Seconds after confirmation during which a rider may cancel a trip",
    )

    model_config = SettingsConfigDict(env_prefix="LIFECYCLE_")


class ProgressionSettings(BaseSettings):
    """Automatic status advancement configuration."""

    enabled: bool = True
    order_delays: dict[str, float] = Field(
        default_factory=lambda: {
            "placed": 10.0,
            "accepted": 15.0,
            "preparing": 120.0,
            "ready_for_pickup": 30.0,
            "picked_up": 10.0,
            "on_the_way": 180.0,
        },
        description="Seconds spent in each order status before the next automatic hop",
    )
    trip_delays: dict[str, float] = Field(
        default_factory=dict,
        description="Seconds spent in each trip status; empty disables trip chains",
    )
    lease_ttl_seconds: float = Field(
        default=600.0,
        ge=1.0,
        description="Lease lifetime; must exceed the longest stage delay",
    )
    instance_id: str = Field(default_factory=socket.gethostname)
    tick_seconds: float = Field(default=0.1, gt=0.0, le=5.0)
    retry_max_attempts: int = Field(
        default=5,
        ge=1,
        description="Failed attempts at a hop before retries are logged as errors",
    )
    retry_base_delay_seconds: float = Field(default=1.0, gt=0.0)
    retry_max_delay_seconds: float = Field(default=30.0, gt=0.0)

    model_config = SettingsConfigDict(env_prefix="PROGRESSION_")

    @field_validator("order_delays", "trip_delays")
    @classmethod
    def validate_delays(cls, v: dict[str, float]) -> dict[str, float]:
        negative = [status for status, delay in v.items() if delay < 0]
        if negative:
            raise ValueError(f"Delays must be non-negative: {', '.join(negative)}")
        return v

    @model_validator(mode="after")
    def validate_lease_outlives_delays(self) -> "ProgressionSettings":
        longest = max([*self.order_delays.values(), *self.trip_delays.values(), 0.0])
        if self.lease_ttl_seconds <= longest:
            raise ValueError(
                f"lease_ttl_seconds ({self.lease_ttl_seconds}) must exceed the "
                f"longest stage delay ({longest})"
            )
        return self


class PricingSettings(BaseSettings):
    trip_base_fare: float = Field(default=50.0, ge=0.0)
    trip_per_km: float = Field(default=12.0, ge=0.0)
    trip_per_min: float = Field(default=2.0, ge=0.0)
    trip_per_food_stop: float = Field(default=15.0, ge=0.0)
    max_food_stops: int = Field(default=5, ge=0)
    order_platform_fee: float = Field(default=5.0, ge=0.0)
    order_base_delivery_fee: float = Field(default=20.0, ge=0.0)
    order_per_km_fee: float = Field(default=8.0, ge=0.0)
    order_tax_rate: float = Field(default=0.05, ge=0.0, le=1.0)
    shared_detour_discount: float = Field(default=0.5, ge=0.0, le=1.0)

    model_config = SettingsConfigDict(env_prefix="PRICING_")


class PaymentSettings(BaseSettings):
    key_id: str = ""
    key_secret: str = ""
    gateway_url: str = "https://api.razorpay.com"
    currency: str = "INR"
    timeout_seconds: float = Field(default=10.0, gt=0.0)

    model_config = SettingsConfigDict(env_prefix="PAYMENT_")

    @field_validator("gateway_url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("Payment gateway URL must start with http:// or https://")
        return v.rstrip("/")

    @model_validator(mode="after")
    def validate_credentials_provided(self) -> "PaymentSettings":
        missing = []
        if not self.key_id:
            missing.append("PAYMENT_KEY_ID")
        if not self.key_secret:
            missing.append("PAYMENT_KEY_SECRET")
        if missing:
            raise ValueError(f"Required credentials not provided: {', '.join(missing)}")
        return self


class ResaleSettings(BaseSettings):
    """Resale marketplace windows and pricing."""

    price_ratio: float = Field(
        default=0.5,
        gt=0.0,
        le=1.0,
        description="Fraction of the original final payable charged to a resale buyer",
    )
    listing_ttl_seconds: float = Field(
        default=45 * 60,
        gt=0.0,
        description="Seconds a listing stays claimable after listed_at",
    )
    claim_ttl_seconds: float = Field(
        default=5 * 60,
        gt=0.0,
        description="Seconds a claimed listing may stay unpaid before release",
    )
    sweep_interval_seconds: float = Field(default=60.0, gt=0.0)
    default_radius_km: float = Field(default=5.0, gt=0.0)

    model_config = SettingsConfigDict(env_prefix="RESALE_")


class DatabaseSettings(BaseSettings):
    path: str = "data/lifecycle.db"
    busy_timeout_seconds: float = Field(default=30.0, gt=0.0)

    model_config = SettingsConfigDict(env_prefix="DB_")


class NotificationSettings(BaseSettings):
    enabled: bool = True
    webhook_url: str = Field(
        default="",
        description="Push relay endpoint; empty logs notifications instead of sending",
    )
    timeout_seconds: float = Field(default=5.0, gt=0.0)
    max_workers: int = Field(
        default=4,
        ge=1,
        description="Threads delivering notifications off the transition path",
    )

    model_config = SettingsConfigDict(env_prefix="NOTIFY_")


class MetricsSettings(BaseSettings):
    enabled: bool = True
    port: int = Field(default=9108, ge=1, le=65535)

    model_config = SettingsConfigDict(env_prefix="METRICS_")


class LoggingSettings(BaseSettings):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["text", "json"] = "text"
    environment: str = "development"

    model_config = SettingsConfigDict(env_prefix="LOG_")


class Settings(BaseSettings):
    lifecycle: LifecycleSettings = Field(default_factory=LifecycleSettings)
    progression: ProgressionSettings = Field(default_factory=ProgressionSettings)
    pricing: PricingSettings = Field(default_factory=PricingSettings)
    payment: PaymentSettings = Field(default_factory=PaymentSettings)
    resale: ResaleSettings = Field(default_factory=ResaleSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)
    metrics: MetricsSettings = Field(default_factory=MetricsSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    model_config = SettingsConfigDict(
        env_nested_delimiter="__",
        case_sensitive=False,
    )


def get_settings() -> Settings:
    """Load and validate settings from environment variables."""
    return Settings()
