"""Telegram provider."""

from cadence.providers.telegram.handlers import TelegramWizardHandler
from cadence.providers.telegram.provider import TelegramProvider

__all__ = [
    "TelegramProvider",
    "TelegramWizardHandler",
]
