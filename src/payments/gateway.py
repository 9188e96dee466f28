"""Payment gateway client.

Only order creation is needed: the gateway returns an order id that the
client checkout completes against, and the signed callback comes back through
reconciliation.
"""

import logging
import time
from typing import Protocol

import httpx

from core.exceptions import PaymentGatewayError, ValidationError
from metrics import lifecycle_gateway_latency_seconds
from pricing import round_half_up
from settings import PaymentSettings

logger = logging.getLogger(__name__)


class PaymentGateway(Protocol):
    def create_order(self, amount: float, currency: str, receipt: str) -> str: ...


def to_minor_units(amount: float) -> int:
    """Gateway amounts are integers in the currency's smallest unit (paise)."""
    return int(round_half_up(amount * 100))


class HttpPaymentGateway:
    """Creates gateway orders over the gateway's REST API."""

    def __init__(
        self,
        base_url: str,
        key_id: str,
        key_secret: str,
        timeout: float = 10.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._auth = (key_id, key_secret)
        self._client = client or httpx.Client(timeout=timeout)

    @classmethod
    def from_settings(cls, settings: PaymentSettings) -> "HttpPaymentGateway":
        return cls(
            base_url=settings.gateway_url,
            key_id=settings.key_id,
            key_secret=settings.key_secret,
            timeout=settings.timeout_seconds,
        )

    def create_order(self, amount: float, currency: str, receipt: str) -> str:
        """Create a gateway order and return its id.

        Raises:
            ValidationError: if the gateway refuses the order (4xx)
            PaymentGatewayError: on timeouts, transport errors and 5xx
        """
        if amount <= 0:
            raise ValidationError(f"Invalid amount {amount}")

        payload = {"amount": to_minor_units(amount), "currency": currency, "receipt": receipt}
        start = time.perf_counter()
        try:
            response = self._client.post(
                f"{self.base_url}/v1/orders", json=payload, auth=self._auth
            )
        except httpx.TimeoutException as e:
            raise PaymentGatewayError(f"Payment gateway timeout: {e}") from e
        except httpx.RequestError as e:
            raise PaymentGatewayError(f"Payment gateway unreachable: {e}") from e
        finally:
            lifecycle_gateway_latency_seconds.observe(time.perf_counter() - start)

        if response.status_code >= 500:
            raise PaymentGatewayError(
                f"Payment gateway error: {response.status_code}",
                details={"status_code": response.status_code},
            )
        if response.status_code >= 400:
            raise ValidationError(
                f"Payment gateway rejected order: {response.status_code}",
                details={"status_code": response.status_code, "body": response.text},
            )

        order_id = response.json().get("id")
        if not order_id:
            raise PaymentGatewayError("Payment gateway response missing order id")
        logger.info(f"Gateway order {order_id} created for {payload['amount']} {currency}")
        return str(order_id)

    def close(self) -> None:
        self._client.close()
