"""Delivery providers."""

from cadence.providers.base import DeliveryTransport

__all__ = [
    "DeliveryTransport",
]
