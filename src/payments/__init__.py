"""Payment gateway integration and reconciliation."""

from .gateway import HttpPaymentGateway, PaymentGateway, to_minor_units
from .reconciliation import PaymentIntent, PaymentReconciler, make_receipt
from .signature import compute_signature, verify_signature

__all__ = [
    "HttpPaymentGateway",
    "PaymentGateway",
    "PaymentIntent",
    "PaymentReconciler",
    "compute_signature",
    "make_receipt",
    "to_minor_units",
    "verify_signature",
]
