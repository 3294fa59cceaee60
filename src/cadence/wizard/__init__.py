"""Conversational schedule configuration wizard.

Public API:
- ConfigurationWizard / Actor: the state machine
- WizardAction variants and encode_action / decode_action: the payload codec
- Prompt / Button / Picker: transport-agnostic replies
"""

from cadence.wizard.actions import (
    MAX_ACTION_LENGTH,
    ActionEnvelope,
    ActionTooLargeError,
    ApplyWeekdayPreset,
    ChooseFrequency,
    ConfirmTime,
    ConfirmWeekdays,
    EnableDraft,
    PickMonthday,
    PickTime,
    RedoTime,
    RestartDraft,
    ShowWeekdays,
    StartAnswer,
    ToggleWeekday,
    WeekdayPreset,
    WizardAction,
    decode_action,
    decode_envelope,
    encode_action,
    encode_envelope,
)
from cadence.wizard.machine import Actor, ConfigurationWizard
from cadence.wizard.prompts import Button, Picker, Prompt

__all__ = [
    "MAX_ACTION_LENGTH",
    "ActionEnvelope",
    "ActionTooLargeError",
    "Actor",
    "ApplyWeekdayPreset",
    "Button",
    "ChooseFrequency",
    "ConfigurationWizard",
    "ConfirmTime",
    "ConfirmWeekdays",
    "EnableDraft",
    "PickMonthday",
    "PickTime",
    "Picker",
    "Prompt",
    "RedoTime",
    "RestartDraft",
    "ShowWeekdays",
    "StartAnswer",
    "ToggleWeekday",
    "WeekdayPreset",
    "WizardAction",
    "decode_action",
    "decode_envelope",
    "encode_action",
    "encode_envelope",
]
