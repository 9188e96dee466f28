"""Resale of cancelled, already-prepared orders."""

from .marketplace import ResaleListing, ResaleMarketplace, SweepResult

__all__ = ["ResaleListing", "ResaleMarketplace", "SweepResult"]
