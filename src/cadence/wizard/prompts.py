"""Transport-agnostic wizard prompts and their English message catalog.

A prompt carries typed actions on its buttons. Each chat surface encodes
them with its own payload bound when rendering.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

from cadence.scheduling.errors import ValidationCode
from cadence.scheduling.types import (
    WEEKDAY_ORDER,
    Frequency,
    Weekday,
    sort_weekdays,
)
from cadence.wizard.actions import (
    ApplyWeekdayPreset,
    ChooseFrequency,
    ConfirmTime,
    ConfirmWeekdays,
    EnableDraft,
    PickMonthday,
    PickTime,
    RedoTime,
    RestartDraft,
    StartAnswer,
    ToggleWeekday,
    WeekdayPreset,
    WizardAction,
    format_hhmm,
)

SELECTED_MARK = "✓ "

TIME_SUGGESTIONS: tuple[tuple[int, int], ...] = (
    (6, 0),
    (7, 0),
    (8, 0),
    (9, 0),
    (12, 0),
    (18, 0),
    (20, 0),
    (21, 0),
    (22, 0),
)

MESSAGES: dict[str, str] = {
    "ask_recur": "Should this run on a schedule?",
    "recur_yes": "Yes, schedule it",
    "recur_no": "No thanks",
    "declined": "Okay, nothing was scheduled.",
    "ask_frequency": "How often should it run?",
    "freq_daily": "Daily",
    "freq_weekly": "Weekly",
    "freq_monthly": "Monthly",
    "frequency_set": "Got it: {label}.",
    "ask_monthday": "Which day of the month?",
    "monthday_set": "Day {day} of each month.",
    "monthday_note": "Months without that day are skipped.",
    "ask_weekdays": "Which days of the week? Tap to toggle, then continue.",
    "weekdays_selected": "Selected: {days}",
    "weekdays_none": "Selected: none",
    "preset_workdays": "Mon-Fri",
    "preset_weekend": "Weekend",
    "preset_clear": "Clear",
    "weekdays_next": "Continue",
    "weekdays_set": "Every {days}.",
    "ask_time": "What time of day? Pick one or reply with HH:MM.",
    "ask_time_again": "Pick another time, or reply with HH:MM.",
    "time_rounded": (
        "{original} is not on a {step}-minute step, so it becomes {rounded}. "
        "Use {rounded}?"
    ),
    "time_exact": "Run at {rounded}?",
    "time_ok": "Use {rounded}",
    "time_redo": "Pick again",
    "final_confirm": "{summary} ({timezone}). Turn it on?",
    "enable": "Turn on",
    "restart": "Start over",
    "enabled": "Scheduled: {summary}. Next run {next_run}.",
    "restarted": "Draft discarded. Let's start again.",
    "no_draft": "There is no schedule being set up. Start again from the menu.",
    "wrong_day_kind": "That choice does not fit this schedule's frequency.",
    "already_running": "This schedule is already running.",
    "no_subjects": "Nothing is available to schedule yet.",
    "choose_subject": "Which one should run on a schedule?",
}

VALIDATION_MESSAGES: dict[ValidationCode, str] = {
    ValidationCode.TIME_REQUIRED: "Pick a time of day first.",
    ValidationCode.WEEKDAY_REQUIRED: "Select at least one weekday.",
    ValidationCode.MONTHDAY_REQUIRED: "Pick a day of the month first.",
    ValidationCode.NEXT_UNCOMPUTABLE: (
        "No upcoming run could be found for this pattern. Adjust it and try again."
    ),
    ValidationCode.INVALID_FREQUENCY: "Choose daily, weekly or monthly.",
    ValidationCode.INVALID_TIME: "That time is not valid. Use HH:MM.",
}

FREQUENCY_LABELS: dict[Frequency, str] = {
    Frequency.DAILY: MESSAGES["freq_daily"],
    Frequency.WEEKLY: MESSAGES["freq_weekly"],
    Frequency.MONTHLY: MESSAGES["freq_monthly"],
}


class Picker(StrEnum):
    """Free-form input a surface may offer beside the buttons."""

    TIME = "time"
    DATE = "date"


@dataclass(frozen=True)
class Button:
    label: str
    action: WizardAction


@dataclass
class Prompt:
    """One outgoing wizard message."""

    text: str
    buttons: list[list[Button]] = field(default_factory=list)
    picker: Picker | None = None

    def actions(self) -> list[WizardAction]:
        return [button.action for row in self.buttons for button in row]


def _text(key: str, **values: object) -> Prompt:
    return Prompt(MESSAGES[key].format(**values))


def _weekday_text(days: list[Weekday]) -> str:
    return ", ".join(day.label for day in sort_weekdays(days))


def ask_recur(subject_id: str) -> Prompt:
    return Prompt(
        MESSAGES["ask_recur"],
        [
            [
                Button(MESSAGES["recur_yes"], StartAnswer(subject_id, True)),
                Button(MESSAGES["recur_no"], StartAnswer(subject_id, False)),
            ]
        ],
    )


def declined() -> Prompt:
    return _text("declined")


def ask_frequency(subject_id: str) -> Prompt:
    return Prompt(
        MESSAGES["ask_frequency"],
        [
            [
                Button(label, ChooseFrequency(subject_id, frequency))
                for frequency, label in FREQUENCY_LABELS.items()
            ]
        ],
    )


def frequency_set(frequency: Frequency) -> Prompt:
    return _text("frequency_set", label=FREQUENCY_LABELS[frequency].lower())


def ask_monthday(subject_id: str) -> Prompt:
    """Day-of-month grid, seven days per row."""
    days = list(range(1, 32))
    rows = [
        [Button(str(day), PickMonthday(subject_id, day)) for day in days[i : i + 7]]
        for i in range(0, len(days), 7)
    ]
    return Prompt(MESSAGES["ask_monthday"], rows, picker=Picker.DATE)


def monthday_set(day: int) -> Prompt:
    return Prompt(
        f"{MESSAGES['monthday_set'].format(day=day)} {MESSAGES['monthday_note']}"
    )


def ask_weekdays(subject_id: str, selected: list[Weekday]) -> Prompt:
    """Weekday multi-select; selected days carry a check mark."""
    chosen = set(selected)
    toggles = [
        Button(
            f"{SELECTED_MARK if day in chosen else ''}{day.label}",
            ToggleWeekday(subject_id, day),
        )
        for day in WEEKDAY_ORDER
    ]
    status = (
        MESSAGES["weekdays_selected"].format(days=_weekday_text(selected))
        if selected
        else MESSAGES["weekdays_none"]
    )
    return Prompt(
        f"{MESSAGES['ask_weekdays']}\n{status}",
        [
            toggles[:4],
            toggles[4:],
            [
                Button(
                    MESSAGES["preset_workdays"],
                    ApplyWeekdayPreset(subject_id, WeekdayPreset.WORKDAYS),
                ),
                Button(
                    MESSAGES["preset_weekend"],
                    ApplyWeekdayPreset(subject_id, WeekdayPreset.WEEKEND),
                ),
                Button(
                    MESSAGES["preset_clear"],
                    ApplyWeekdayPreset(subject_id, WeekdayPreset.CLEAR),
                ),
            ],
            [Button(MESSAGES["weekdays_next"], ConfirmWeekdays(subject_id))],
        ],
    )


def weekdays_set(days: list[Weekday]) -> Prompt:
    return _text("weekdays_set", days=_weekday_text(days))


def ask_time(subject_id: str, *, again: bool = False) -> Prompt:
    buttons = [
        Button(format_hhmm(hour, minute), PickTime(subject_id, hour, minute))
        for hour, minute in TIME_SUGGESTIONS
    ]
    rows = [buttons[i : i + 3] for i in range(0, len(buttons), 3)]
    text = MESSAGES["ask_time_again" if again else "ask_time"]
    return Prompt(text, rows, picker=Picker.TIME)


def confirm_time(
    subject_id: str, hour: int, minute: int, rounded: int, step: int
) -> Prompt:
    """Ask to confirm the picked time, saying whether rounding moved it."""
    original = format_hhmm(hour, minute)
    rounded_text = format_hhmm(hour, rounded)
    if rounded != minute:
        text = MESSAGES["time_rounded"].format(
            original=original, step=step, rounded=rounded_text
        )
    else:
        text = MESSAGES["time_exact"].format(rounded=rounded_text)
    return Prompt(
        text,
        [
            [
                Button(
                    MESSAGES["time_ok"].format(rounded=rounded_text),
                    ConfirmTime(subject_id, hour, rounded),
                ),
                Button(MESSAGES["time_redo"], RedoTime(subject_id)),
            ]
        ],
    )


def final_confirm(subject_id: str, summary: str, timezone: str) -> Prompt:
    return Prompt(
        MESSAGES["final_confirm"].format(summary=summary, timezone=timezone),
        [
            [
                Button(MESSAGES["enable"], EnableDraft(subject_id)),
                Button(MESSAGES["restart"], RestartDraft(subject_id)),
            ]
        ],
    )


def enabled(summary: str, next_run: str) -> Prompt:
    return _text("enabled", summary=summary, next_run=next_run)


def restarted() -> Prompt:
    return _text("restarted")


def no_draft() -> Prompt:
    return _text("no_draft")


def wrong_day_kind() -> Prompt:
    return _text("wrong_day_kind")


def already_running() -> Prompt:
    return _text("already_running")


def no_subjects() -> Prompt:
    return _text("no_subjects")


def choose_subject(subjects: dict[str, str]) -> Prompt:
    """One button per subject id, labelled with its display name."""
    if not subjects:
        return no_subjects()
    return Prompt(
        MESSAGES["choose_subject"],
        [
            [Button(name, StartAnswer(subject_id, True))]
            for subject_id, name in subjects.items()
        ],
    )


def validation_failed(code: ValidationCode) -> Prompt:
    return Prompt(VALIDATION_MESSAGES[code])
