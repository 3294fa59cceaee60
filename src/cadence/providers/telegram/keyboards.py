"""Render wizard prompts as Telegram inline keyboards."""

from __future__ import annotations

from typing import TYPE_CHECKING

from cadence.wizard.actions import WizardAction, decode_action, encode_action
from cadence.wizard.prompts import Prompt

if TYPE_CHECKING:
    from aiogram.types import InlineKeyboardMarkup

# Maximum length for Telegram callback data (64 bytes)
MAX_CALLBACK_DATA_LEN = 64


def create_prompt_keyboard(prompt: Prompt) -> InlineKeyboardMarkup | None:
    """Create an inline keyboard from a prompt's button rows.

    Raises:
        ActionTooLargeError: A button's payload does not fit in callback data.
    """
    from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup

    if not prompt.buttons:
        return None

    rows = [
        [
            InlineKeyboardButton(
                text=button.label,
                callback_data=encode_action(button.action, MAX_CALLBACK_DATA_LEN),
            )
            for button in row
        ]
        for row in prompt.buttons
    ]
    return InlineKeyboardMarkup(inline_keyboard=rows)


def parse_callback_data(data: str | None) -> WizardAction | None:
    """Decode callback data into a wizard action, or None if it is not one."""
    return decode_action(data, max_length=MAX_CALLBACK_DATA_LEN)
