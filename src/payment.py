from pydantic import BaseModel, Field


class PaymentRecord(BaseModel):
    """Gateway identifiers for one payment trail of a trip or order."""

    gateway_order_id: str | None = None
    gateway_payment_id: str | None = None
    gateway_signature: str | None = None
    amount: float | None = Field(default=None, ge=0)


class PaymentCallback(BaseModel):
    """Signed payment confirmation presented by a client or gateway webhook."""

    gateway_order_id: str = Field(min_length=1)
    gateway_payment_id: str = Field(min_length=1)
    signature: str = Field(min_length=1)
