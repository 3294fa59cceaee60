"""Delivery transport interface for chat providers."""

from typing import Protocol

from cadence.scheduling.types import TargetType


class DeliveryTransport(Protocol):
    """Sends generated content into a conversation."""

    @property
    def name(self) -> str:
        """Provider identifier (e.g., 'telegram')."""
        ...

    async def deliver(
        self, target_type: TargetType, target_id: str, content: list[str]
    ) -> None:
        """Deliver every message in ``content``. Raise on failure."""
        ...
