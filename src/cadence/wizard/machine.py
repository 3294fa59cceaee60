"""Conversational schedule configuration.

The wizard keeps no state of its own. Each step reads and writes the
actor's active draft, the newest disabled and undeleted schedule for the
(owner, subject) pair, so any process can handle any action.

Steps::

    start -> frequency -> (monthday | weekdays) -> time -> confirm -> enable
                                                                    \\-> restart
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import assert_never

from cadence.scheduling.errors import ScheduleValidationError, ValidationCode
from cadence.scheduling.recurrence import describe, resolve_zone, round_minutes
from cadence.scheduling.service import ScheduleService
from cadence.scheduling.types import (
    WEEKEND,
    WORKDAYS,
    Frequency,
    Schedule,
    TargetType,
    Weekday,
)
from cadence.wizard import prompts
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
    ShowWeekdays,
    StartAnswer,
    ToggleWeekday,
    WeekdayPreset,
    WizardAction,
    parse_day,
    parse_time,
)
from cadence.wizard.prompts import Prompt

logger = logging.getLogger(__name__)

PRESET_DAYS: dict[WeekdayPreset, tuple[Weekday, ...]] = {
    WeekdayPreset.WORKDAYS: WORKDAYS,
    WeekdayPreset.WEEKEND: WEEKEND,
    WeekdayPreset.CLEAR: (),
}


@dataclass(frozen=True)
class Actor:
    """Who sent an action and from which conversation."""

    owner_id: str
    target_type: TargetType
    target_id: str


class ConfigurationWizard:
    """Turns wizard actions into draft updates and the next prompts."""

    def __init__(self, service: ScheduleService) -> None:
        self._service = service

    @property
    def service(self) -> ScheduleService:
        return self._service

    def start(self, subject_id: str) -> list[Prompt]:
        """Opening question for a subject."""
        return [prompts.ask_recur(subject_id)]

    async def handle(self, actor: Actor, action: WizardAction) -> list[Prompt]:
        """Apply one action and return the prompts to send back."""
        logger.debug(
            "wizard_action",
            extra={
                "wizard.action": type(action).__name__,
                "schedule.owner_id": actor.owner_id,
                "schedule.subject_id": action.subject_id,
            },
        )
        match action:
            case StartAnswer():
                return self._on_start(action)
            case ChooseFrequency():
                return await self._on_frequency(actor, action)
            case PickMonthday():
                return await self._on_monthday(actor, action)
            case ShowWeekdays():
                return await self._on_show_weekdays(actor, action)
            case ToggleWeekday():
                return await self._on_toggle_weekday(actor, action)
            case ApplyWeekdayPreset():
                return await self._on_weekday_preset(actor, action)
            case ConfirmWeekdays():
                return await self._on_confirm_weekdays(actor, action)
            case PickTime():
                return self._on_pick_time(action)
            case RedoTime():
                return [prompts.ask_time(action.subject_id, again=True)]
            case ConfirmTime():
                return await self._on_confirm_time(actor, action)
            case EnableDraft():
                return await self._on_enable(actor, action)
            case RestartDraft():
                return await self._on_restart(actor, action)
            case _:
                assert_never(action)

    async def action_from_text(self, owner_id: str, text: str) -> WizardAction | None:
        """Interpret a typed reply against the owner's latest draft.

        ``HH:MM`` becomes a time pick. A bare day number becomes a monthday
        pick while a monthly draft still lacks its day.
        """
        draft = await self._service.store.find_latest_draft(owner_id)
        if draft is None:
            return None
        if (parsed := parse_time(text)) is not None:
            return PickTime(draft.subject_id, *parsed)
        if draft.frequency is Frequency.MONTHLY and not draft.by_monthday:
            day = parse_day(text.strip())
            if day is not None:
                return PickMonthday(draft.subject_id, day)
        return None

    async def _draft(self, actor: Actor, subject_id: str) -> Schedule | None:
        return await self._service.store.find_active_draft(actor.owner_id, subject_id)

    def _wrong_day_kind(self, draft: Schedule) -> list[Prompt]:
        """Re-ask the day step that matches the draft's frequency."""
        match draft.frequency:
            case Frequency.WEEKLY:
                step = prompts.ask_weekdays(draft.subject_id, draft.by_weekday)
            case Frequency.MONTHLY:
                step = prompts.ask_monthday(draft.subject_id)
            case Frequency.DAILY:
                step = prompts.ask_time(draft.subject_id)
            case _:
                step = prompts.ask_frequency(draft.subject_id)
        return [prompts.wrong_day_kind(), step]

    def _on_start(self, action: StartAnswer) -> list[Prompt]:
        if not action.accept:
            return [prompts.declined()]
        return [prompts.ask_frequency(action.subject_id)]

    async def _on_frequency(
        self, actor: Actor, action: ChooseFrequency
    ) -> list[Prompt]:
        draft = await self._draft(actor, action.subject_id)
        if draft is None:
            draft = await self._service.create_draft(
                actor.owner_id,
                action.subject_id,
                actor.target_type,
                actor.target_id,
                frequency=action.frequency,
            )
        elif draft.frequency is not action.frequency:
            draft = await self._service.reset_draft(
                draft.id, action.frequency, actor.target_type, actor.target_id
            )

        reply = [prompts.frequency_set(action.frequency)]
        match action.frequency:
            case Frequency.DAILY:
                reply.append(prompts.ask_time(action.subject_id))
            case Frequency.WEEKLY:
                reply.append(prompts.ask_weekdays(action.subject_id, draft.by_weekday))
            case Frequency.MONTHLY:
                reply.append(prompts.ask_monthday(action.subject_id))
        return reply

    async def _on_monthday(self, actor: Actor, action: PickMonthday) -> list[Prompt]:
        draft = await self._draft(actor, action.subject_id)
        if draft is None:
            return [prompts.no_draft()]
        if draft.frequency is not Frequency.MONTHLY:
            return self._wrong_day_kind(draft)
        await self._service.update_draft(draft.id, by_monthday=[action.day])
        return [prompts.monthday_set(action.day), prompts.ask_time(action.subject_id)]

    async def _on_show_weekdays(
        self, actor: Actor, action: ShowWeekdays
    ) -> list[Prompt]:
        draft = await self._draft(actor, action.subject_id)
        if draft is None:
            return [prompts.no_draft()]
        if draft.frequency is not Frequency.WEEKLY:
            return self._wrong_day_kind(draft)
        return [prompts.ask_weekdays(action.subject_id, draft.by_weekday)]

    async def _on_toggle_weekday(
        self, actor: Actor, action: ToggleWeekday
    ) -> list[Prompt]:
        draft = await self._draft(actor, action.subject_id)
        if draft is None:
            return [prompts.no_draft()]
        if draft.frequency is not Frequency.WEEKLY:
            return self._wrong_day_kind(draft)
        selected = set(draft.by_weekday)
        selected ^= {action.weekday}
        updated = await self._service.update_draft(draft.id, by_weekday=list(selected))
        return [prompts.ask_weekdays(action.subject_id, updated.by_weekday)]

    async def _on_weekday_preset(
        self, actor: Actor, action: ApplyWeekdayPreset
    ) -> list[Prompt]:
        draft = await self._draft(actor, action.subject_id)
        if draft is None:
            return [prompts.no_draft()]
        if draft.frequency is not Frequency.WEEKLY:
            return self._wrong_day_kind(draft)
        updated = await self._service.update_draft(
            draft.id, by_weekday=list(PRESET_DAYS[action.preset])
        )
        return [prompts.ask_weekdays(action.subject_id, updated.by_weekday)]

    async def _on_confirm_weekdays(
        self, actor: Actor, action: ConfirmWeekdays
    ) -> list[Prompt]:
        draft = await self._draft(actor, action.subject_id)
        if draft is None:
            return [prompts.no_draft()]
        if draft.frequency is not Frequency.WEEKLY:
            return self._wrong_day_kind(draft)
        if not draft.by_weekday:
            return [prompts.validation_failed(ValidationCode.WEEKDAY_REQUIRED)]
        return [
            prompts.weekdays_set(draft.by_weekday),
            prompts.ask_time(action.subject_id),
        ]

    def _on_pick_time(self, action: PickTime) -> list[Prompt]:
        step = self._service.round_step
        rounded = round_minutes(action.minute, step)
        return [
            prompts.confirm_time(
                action.subject_id, action.hour, action.minute, rounded, step
            )
        ]

    async def _on_confirm_time(
        self, actor: Actor, action: ConfirmTime
    ) -> list[Prompt]:
        draft = await self._draft(actor, action.subject_id)
        if draft is None:
            return [prompts.no_draft()]
        updated = await self._service.update_draft(
            draft.id, hour=action.hour, minute=action.minute
        )
        return [
            prompts.final_confirm(
                action.subject_id, describe(updated.pattern), updated.timezone
            )
        ]

    async def _on_enable(self, actor: Actor, action: EnableDraft) -> list[Prompt]:
        draft = await self._draft(actor, action.subject_id)
        if draft is None:
            running = await self._service.list_schedules(
                owner_id=actor.owner_id,
                subject_id=action.subject_id,
                enabled=True,
                limit=1,
            )
            return [prompts.already_running() if running else prompts.no_draft()]

        try:
            schedule = await self._service.enable(draft.id, actor.owner_id)
        except ScheduleValidationError as e:
            logger.info(
                "wizard_enable_rejected",
                extra={"schedule.id": draft.id, "error.code": e.code.value},
            )
            return [prompts.validation_failed(e.code)]

        if schedule.next_run_at is None:
            return [prompts.validation_failed(ValidationCode.NEXT_UNCOMPUTABLE)]
        local = schedule.next_run_at.astimezone(resolve_zone(schedule.timezone))
        next_run = f"{local:%a %Y-%m-%d %H:%M} ({schedule.timezone})"
        return [prompts.enabled(describe(schedule.pattern), next_run)]

    async def _on_restart(self, actor: Actor, action: RestartDraft) -> list[Prompt]:
        await self._service.discard_drafts(actor.owner_id, action.subject_id)
        return [prompts.restarted(), prompts.ask_frequency(action.subject_id)]
