"""Payment reconciliation: gateway orders in, signed callbacks out.

The amount charged always comes from the stored pricing breakdown, never from
the client. A callback is applied at most once: replays with the same payment
id are acknowledged as ``already-applied`` without re-verifying or writing.
"""

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from app_logging import log_entity_context
from core.correlation import with_correlation
from core.exceptions import (
    InvalidTransitionError,
    LifecycleError,
    NotFoundError,
    SignatureMismatchError,
    ValidationError,
)
from core.outcome import ALREADY_APPLIED, Outcome
from lifecycle.types import EntityKind
from metrics import record_payment
from payment import PaymentCallback, PaymentRecord
from trip import TripStatus

from .gateway import PaymentGateway
from .signature import verify_signature

if TYPE_CHECKING:
    from lifecycle import LifecycleStateMachine

logger = logging.getLogger(__name__)

BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"
RECEIPT_PREFIXES = {EntityKind.TRIP: "r", EntityKind.ORDER: "o"}


def to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(BASE36_DIGITS[remainder])
    return "".join(reversed(digits))


def make_receipt(prefix: str, entity_id: str) -> str:
    """Receipt id, kept under the gateway's 40 character limit."""
    timestamp = to_base36(int(time.time() * 1000))[-6:]
    return f"{prefix}_{entity_id[-8:]}_{timestamp}"


@dataclass(frozen=True)
class PaymentIntent:
    """What a client needs to open the gateway checkout."""

    gateway_order_id: str
    amount: float
    currency: str
    receipt: str


class PaymentReconciler:
    """Creates gateway orders and applies verified payment callbacks."""

    def __init__(
        self,
        state_machine: "LifecycleStateMachine",
        gateway: PaymentGateway,
        key_secret: str,
        currency: str = "INR",
    ) -> None:
        self._state_machine = state_machine
        self._gateway = gateway
        self._key_secret = key_secret
        self.currency = currency

    def open_gateway_order(self, amount: float, receipt: str) -> Outcome[str]:
        """Create a gateway order; gateway failures come back as rejections."""
        try:
            return Outcome.ok(self._gateway.create_order(amount, self.currency, receipt))
        except LifecycleError as e:
            logger.warning(f"Gateway order creation failed: {e.message}")
            return Outcome.rejected(e)

    def signature_valid(
        self, gateway_order_id: str, gateway_payment_id: str, signature: str
    ) -> bool:
        return verify_signature(self._key_secret, gateway_order_id, gateway_payment_id, signature)

    def create_gateway_order(self, kind: EntityKind, entity_id: str) -> Outcome[PaymentIntent]:
        """Open a gateway order for the stored payable amount."""
        with log_entity_context(kind.value, entity_id):
            entity: Any = self._state_machine.get(kind, entity_id)
            if entity is None:
                return Outcome.rejected(NotFoundError(f"{kind.value} {entity_id} not found"))
            if entity.is_paid:
                return Outcome.rejected(
                    InvalidTransitionError(
                        f"{kind.value} {entity_id} is already paid", reason="already-paid"
                    )
                )
            if kind == EntityKind.TRIP and entity.status != TripStatus.COMPLETED:
                return Outcome.rejected(
                    InvalidTransitionError("Ride must be completed before payment")
                )

            amount = entity.payable_amount
            if amount <= 0:
                return Outcome.rejected(ValidationError(f"Invalid payable amount {amount}"))

            receipt = make_receipt(RECEIPT_PREFIXES[kind], entity_id)
            created = self.open_gateway_order(amount, receipt)
            if not created.accepted:
                record_payment(kind.value, created.reason or "rejected")
                return Outcome.rejected(created.error)  # type: ignore[arg-type]

            gateway_order_id = created.unwrap()
            recorded = self._state_machine.record_payment_intent(
                kind, entity_id, gateway_order_id, amount
            )
            if not recorded.accepted:
                return Outcome.rejected(recorded.error)  # type: ignore[arg-type]

            return Outcome.ok(PaymentIntent(gateway_order_id, amount, self.currency, receipt))

    def verify_and_apply(
        self,
        kind: EntityKind,
        entity_id: str,
        gateway_order_id: str,
        gateway_payment_id: str,
        signature: str,
    ) -> Outcome[Any]:
        """Verify a signed callback and mark the entity paid.

        Returns ``applied`` or ``already-applied``, or a rejection with reason
        ``not-found``, ``already-paid``, ``invalid-signature``,
        ``amount-not-set`` or ``order-mismatch``.
        """
        with log_entity_context(kind.value, entity_id), with_correlation(gateway_payment_id):
            outcome = self._verify_and_apply(
                kind, entity_id, gateway_order_id, gateway_payment_id, signature
            )
            record_payment(kind.value, outcome.status if outcome.accepted else outcome.reason)
            if outcome.status == ALREADY_APPLIED:
                logger.info(f"Payment {gateway_payment_id} already applied")
            elif not outcome.accepted:
                logger.warning(f"Payment {gateway_payment_id} rejected: {outcome.reason}")
            return outcome

    def apply_callback(
        self, kind: EntityKind, entity_id: str, callback: PaymentCallback
    ) -> Outcome[Any]:
        return self.verify_and_apply(
            kind,
            entity_id,
            callback.gateway_order_id,
            callback.gateway_payment_id,
            callback.signature,
        )

    def _verify_and_apply(
        self,
        kind: EntityKind,
        entity_id: str,
        gateway_order_id: str,
        gateway_payment_id: str,
        signature: str,
    ) -> Outcome[Any]:
        entity: Any = self._state_machine.get(kind, entity_id)
        if entity is None:
            return Outcome.rejected(NotFoundError(f"{kind.value} {entity_id} not found"))

        if entity.is_paid:
            if entity.payment.gateway_payment_id == gateway_payment_id:
                return Outcome.ok(entity, status=ALREADY_APPLIED)
            return Outcome.rejected(
                InvalidTransitionError(
                    f"{kind.value} {entity_id} is already paid", reason="already-paid"
                )
            )

        if not self.signature_valid(gateway_order_id, gateway_payment_id, signature):
            return Outcome.rejected(SignatureMismatchError("Invalid payment signature"))

        if entity.payment.amount is None or entity.payment.gateway_order_id is None:
            return Outcome.rejected(
                ValidationError(
                    "No gateway order was recorded for this payment", reason="amount-not-set"
                )
            )
        if entity.payment.gateway_order_id != gateway_order_id:
            return Outcome.rejected(
                ValidationError(
                    "Callback is for a different gateway order",
                    details={"expected": entity.payment.gateway_order_id},
                    reason="order-mismatch",
                )
            )

        return self._state_machine.mark_paid(
            kind,
            entity_id,
            PaymentRecord(
                gateway_order_id=gateway_order_id,
                gateway_payment_id=gateway_payment_id,
                gateway_signature=signature,
                amount=entity.payment.amount,
            ),
        )
