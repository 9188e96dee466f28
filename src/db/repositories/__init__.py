"""Repository layer for entity persistence."""

from .base_entity_repository import BaseEntityRepository
from .lease_repository import LeaseRepository
from .order_repository import OrderRepository
from .trip_repository import TripRepository

__all__ = [
    "BaseEntityRepository",
    "LeaseRepository",
    "OrderRepository",
    "TripRepository",
]
