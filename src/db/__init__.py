"""Database persistence module."""

from .database import init_database
from .schema import Order, ProgressionLease, ServiceMetadata, Trip
from .transaction import transaction

__all__ = [
    "init_database",
    "Order",
    "ProgressionLease",
    "ServiceMetadata",
    "Trip",
    "transaction",
]
