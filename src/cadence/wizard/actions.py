"""Compact, size-bounded encoding of wizard actions.

An action travels through a chat surface (inline-keyboard callback data,
postback payload) as::

    pb?v=1&ns=sched&fn=wday&a=<subject>&a=MO

``encode_*`` refuses to produce a payload over the bound instead of
truncating it. ``decode_envelope`` and ``to_action`` are total: malformed
input, unknown namespaces and unknown functions yield ``None``.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import assert_never
from urllib.parse import parse_qsl, urlencode

from cadence.scheduling.types import Frequency, Weekday

logger = logging.getLogger(__name__)

ACTION_PREFIX = "pb?"
PROTOCOL_VERSION = 1
MAX_ACTION_LENGTH = 300

_TIME_RE = re.compile(r"^\s*(\d{1,2})\s*[:.]\s*(\d{2})\s*$", re.ASCII)
_DATE_RE = re.compile(r"^\d{4}-\d{2}-(\d{2})$", re.ASCII)


class ActionTooLargeError(ValueError):
    """An encoded action exceeds the payload bound of its surface."""

    def __init__(self, length: int, limit: int):
        self.length = length
        self.limit = limit
        super().__init__(f"Encoded action is {length} bytes, limit is {limit}")


class Namespace(StrEnum):
    SCHEDULE = "sched"


class WeekdayPreset(StrEnum):
    WORKDAYS = "weekdays"
    WEEKEND = "weekend"
    CLEAR = "clear"


_FREQUENCIES = frozenset(f.value for f in Frequency)
_WEEKDAYS = frozenset(d.value for d in Weekday)
_PRESETS = frozenset(p.value for p in WeekdayPreset)


@dataclass(frozen=True)
class ActionEnvelope:
    """Untyped wire form of an action."""

    namespace: str
    function: str
    args: tuple[str, ...] = ()
    version: int = PROTOCOL_VERSION


# --- Typed actions -----------------------------------------------------------


@dataclass(frozen=True)
class StartAnswer:
    subject_id: str
    accept: bool


@dataclass(frozen=True)
class ChooseFrequency:
    subject_id: str
    frequency: Frequency


@dataclass(frozen=True)
class PickMonthday:
    subject_id: str
    day: int


@dataclass(frozen=True)
class ShowWeekdays:
    subject_id: str


@dataclass(frozen=True)
class ToggleWeekday:
    subject_id: str
    weekday: Weekday


@dataclass(frozen=True)
class ApplyWeekdayPreset:
    subject_id: str
    preset: WeekdayPreset


@dataclass(frozen=True)
class ConfirmWeekdays:
    subject_id: str


@dataclass(frozen=True)
class PickTime:
    subject_id: str
    hour: int
    minute: int


@dataclass(frozen=True)
class RedoTime:
    subject_id: str


@dataclass(frozen=True)
class ConfirmTime:
    subject_id: str
    hour: int
    minute: int


@dataclass(frozen=True)
class EnableDraft:
    subject_id: str


@dataclass(frozen=True)
class RestartDraft:
    subject_id: str


WizardAction = (
    StartAnswer
    | ChooseFrequency
    | PickMonthday
    | ShowWeekdays
    | ToggleWeekday
    | ApplyWeekdayPreset
    | ConfirmWeekdays
    | PickTime
    | RedoTime
    | ConfirmTime
    | EnableDraft
    | RestartDraft
)


# --- Helpers -----------------------------------------------------------------


def parse_time(text: str | None) -> tuple[int, int] | None:
    """Parse ``HH:MM`` (or ``H.MM``) into (hour, minute), or None."""
    if not text:
        return None
    match = _TIME_RE.match(text)
    if not match:
        return None
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        return None
    return hour, minute


def format_hhmm(hour: int, minute: int) -> str:
    return f"{hour:02d}:{minute:02d}"


def parse_day(text: str | None) -> int | None:
    """Parse a day of month from ``15`` or a picker date ``2025-01-15``."""
    if not text:
        return None
    if date_match := _DATE_RE.match(text):
        text = date_match.group(1)
    if not (text.isascii() and text.isdigit()):
        return None
    day = int(text)
    return day if 1 <= day <= 31 else None


# --- Envelope codec ----------------------------------------------------------


def encode_envelope(
    envelope: ActionEnvelope, max_length: int = MAX_ACTION_LENGTH
) -> str:
    """Encode an envelope, failing loudly when it exceeds ``max_length`` bytes.

    Raises:
        ActionTooLargeError: The payload does not fit the bound.
    """
    query = urlencode(
        [
            ("v", str(envelope.version)),
            ("ns", envelope.namespace),
            ("fn", envelope.function),
            *(("a", arg) for arg in envelope.args),
        ]
    )
    data = ACTION_PREFIX + query
    length = len(data.encode("utf-8"))
    if length > max_length:
        raise ActionTooLargeError(length, max_length)
    return data


def decode_envelope(
    data: object, max_length: int = MAX_ACTION_LENGTH
) -> ActionEnvelope | None:
    """Decode a payload. Never raises; returns None on any malformation."""
    if not isinstance(data, str) or not data.startswith(ACTION_PREFIX):
        return None
    try:
        if len(data.encode("utf-8")) > max_length:
            return None
    except UnicodeEncodeError:
        return None

    try:
        pairs = parse_qsl(
            data[len(ACTION_PREFIX) :], keep_blank_values=True, strict_parsing=True
        )
    except ValueError:
        return None

    single: dict[str, str] = {}
    args: list[str] = []
    for key, value in pairs:
        if key == "a":
            args.append(value)
        elif key in ("v", "ns", "fn"):
            if key in single:
                return None
            single[key] = value

    namespace = single.get("ns")
    function = single.get("fn")
    if not namespace or not function:
        return None

    raw_version = single.get("v", str(PROTOCOL_VERSION))
    if not (raw_version.isascii() and raw_version.isdigit()):
        return None

    return ActionEnvelope(
        namespace=namespace,
        function=function,
        args=tuple(args),
        version=int(raw_version),
    )


# --- Typed codec -------------------------------------------------------------


def to_envelope(action: WizardAction) -> ActionEnvelope:
    """Convert a typed action into its wire envelope."""
    ns = Namespace.SCHEDULE.value
    match action:
        case StartAnswer(subject_id=s, accept=accept):
            return ActionEnvelope(ns, "start", (s, "yes" if accept else "no"))
        case ChooseFrequency(subject_id=s, frequency=f):
            return ActionEnvelope(ns, "freq", (s, f.value))
        case PickMonthday(subject_id=s, day=day):
            return ActionEnvelope(ns, "mday", (s, str(day)))
        case ShowWeekdays(subject_id=s):
            return ActionEnvelope(ns, "wdays", (s,))
        case ToggleWeekday(subject_id=s, weekday=wd):
            return ActionEnvelope(ns, "wday", (s, wd.value))
        case ApplyWeekdayPreset(subject_id=s, preset=preset):
            return ActionEnvelope(ns, "wpre", (s, preset.value))
        case ConfirmWeekdays(subject_id=s):
            return ActionEnvelope(ns, "wnext", (s,))
        case PickTime(subject_id=s, hour=h, minute=m):
            return ActionEnvelope(ns, "time", (s, format_hhmm(h, m)))
        case RedoTime(subject_id=s):
            return ActionEnvelope(ns, "redo", (s,))
        case ConfirmTime(subject_id=s, hour=h, minute=m):
            return ActionEnvelope(ns, "tok", (s, format_hhmm(h, m)))
        case EnableDraft(subject_id=s):
            return ActionEnvelope(ns, "enable", (s,))
        case RestartDraft(subject_id=s):
            return ActionEnvelope(ns, "restart", (s,))
        case _:
            assert_never(action)


def encode_action(action: WizardAction, max_length: int = MAX_ACTION_LENGTH) -> str:
    return encode_envelope(to_envelope(action), max_length)


def to_action(
    envelope: ActionEnvelope | None,
    params: Mapping[str, str] | None = None,
) -> WizardAction | None:
    """Convert an envelope into a typed action.

    Args:
        envelope: Decoded envelope (None passes through as None).
        params: Values a picker supplied outside the payload (``time``,
            ``date``); used when the payload itself omits them.

    Returns:
        The action, or None for unknown or malformed actions. Those are
        logged and dropped; stale buttons are expected on chat surfaces.
    """
    if envelope is None:
        return None
    params = params or {}

    if envelope.version != PROTOCOL_VERSION or envelope.namespace != Namespace.SCHEDULE:
        logger.debug(
            "wizard_action_ignored",
            extra={
                "wizard.namespace": envelope.namespace,
                "wizard.function": envelope.function,
                "wizard.version": envelope.version,
            },
        )
        return None

    args = list(envelope.args)
    # Picker values arrive beside the payload rather than inside it.
    if envelope.function in ("time", "tok") and len(args) == 1 and "time" in params:
        args.append(params["time"])
    if envelope.function == "mday" and len(args) == 1 and "date" in params:
        args.append(params["date"])

    action: WizardAction | None = None
    match envelope.function, args:
        case "start", [s, ("yes" | "no") as answer] if s:
            action = StartAnswer(s, answer == "yes")
        case "freq", [s, freq] if s and freq in _FREQUENCIES:
            action = ChooseFrequency(s, Frequency(freq))
        case "mday", [s, raw] if s and (day := parse_day(raw)) is not None:
            action = PickMonthday(s, day)
        case "wdays", [s] if s:
            action = ShowWeekdays(s)
        case "wday", [s, wd] if s and wd in _WEEKDAYS:
            action = ToggleWeekday(s, Weekday(wd))
        case "wpre", [s, preset] if s and preset in _PRESETS:
            action = ApplyWeekdayPreset(s, WeekdayPreset(preset))
        case "wnext", [s] if s:
            action = ConfirmWeekdays(s)
        case "time", [s, raw] if s and (parsed := parse_time(raw)) is not None:
            action = PickTime(s, *parsed)
        case "redo", [s] if s:
            action = RedoTime(s)
        case "tok", [s, raw] if s and (parsed := parse_time(raw)) is not None:
            action = ConfirmTime(s, *parsed)
        case "enable", [s] if s:
            action = EnableDraft(s)
        case "restart", [s] if s:
            action = RestartDraft(s)

    if action is None:
        logger.debug(
            "wizard_action_ignored",
            extra={
                "wizard.namespace": envelope.namespace,
                "wizard.function": envelope.function,
                "wizard.args": len(args),
            },
        )
    return action


def decode_action(
    data: object,
    params: Mapping[str, str] | None = None,
    max_length: int = MAX_ACTION_LENGTH,
) -> WizardAction | None:
    """Decode a payload straight into a typed action, or None."""
    return to_action(decode_envelope(data, max_length), params)
