"""Telegram update handlers that drive the schedule wizard."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from aiogram.enums import ChatMemberStatus

from cadence.providers.telegram.keyboards import parse_callback_data
from cadence.providers.telegram.provider import target_type_for_chat
from cadence.scheduling.types import TargetType
from cadence.wizard import prompts
from cadence.wizard.machine import Actor

if TYPE_CHECKING:
    from aiogram.types import CallbackQuery, ChatMemberUpdated
    from aiogram.types import Message as TelegramMessage

    from cadence.config.models import SubjectConfig
    from cadence.providers.telegram.provider import TelegramProvider
    from cadence.wizard.machine import ConfigurationWizard
    from cadence.wizard.prompts import Prompt

logger = logging.getLogger("telegram")

ACTIVE_STATUSES = frozenset(
    {
        ChatMemberStatus.MEMBER,
        ChatMemberStatus.ADMINISTRATOR,
        ChatMemberStatus.CREATOR,
    }
)
GONE_STATUSES = frozenset({ChatMemberStatus.LEFT, ChatMemberStatus.KICKED})


class TelegramWizardHandler:
    """Routes Telegram updates into the configuration wizard.

    Also turns membership changes into schedule cleanup: leaving a group
    deletes its schedules, a user blocking the bot deletes theirs, and being
    added to a group copies the adder's personal schedules onto it.
    """

    def __init__(
        self,
        provider: TelegramProvider,
        wizard: ConfigurationWizard,
        subjects: dict[str, SubjectConfig],
    ):
        self._provider = provider
        self._wizard = wizard
        self._subjects = subjects

    def register(self) -> None:
        """Wire this handler into the provider."""
        self._provider.set_callback_handler(self.handle_callback_query)
        self._provider.set_command_handler(self.handle_schedule_command)
        self._provider.set_text_handler(self.handle_text)
        self._provider.set_membership_handler(self.handle_membership)

    async def _send(self, chat_id: int | str, replies: list[Prompt]) -> None:
        for prompt in replies:
            await self._provider.send_prompt(chat_id, prompt)

    async def handle_callback_query(self, callback_query: CallbackQuery) -> None:
        """Handle a wizard button press."""
        action = parse_callback_data(callback_query.data)
        message = callback_query.message
        if action is None or message is None:
            # Stale or foreign buttons are expected; acknowledge and move on.
            await callback_query.answer()
            return

        if action.subject_id not in self._subjects:
            logger.info(
                "wizard_unknown_subject", extra={"schedule.subject_id": action.subject_id}
            )
            await callback_query.answer("This option is no longer available")
            return

        actor = Actor(
            owner_id=str(callback_query.from_user.id),
            target_type=target_type_for_chat(message.chat.type),
            target_id=str(message.chat.id),
        )
        replies = await self._wizard.handle(actor, action)
        await callback_query.answer()
        await self._send(message.chat.id, replies)

    async def handle_schedule_command(
        self, message: TelegramMessage, args: str | None
    ) -> None:
        """Handle ``/schedule [subject]``."""
        subject_id = (args or "").strip()
        if subject_id in self._subjects:
            replies = self._wizard.start(subject_id)
        elif len(self._subjects) == 1 and not subject_id:
            replies = self._wizard.start(next(iter(self._subjects)))
        else:
            replies = [
                prompts.choose_subject(
                    {sid: subject.name for sid, subject in self._subjects.items()}
                )
            ]
        await self._send(message.chat.id, replies)

    async def handle_text(self, message: TelegramMessage) -> None:
        """Handle a typed time (``HH:MM``) or day reply for the latest draft."""
        if not message.text or message.from_user is None:
            return
        owner_id = str(message.from_user.id)
        action = await self._wizard.action_from_text(owner_id, message.text)
        if action is None:
            return
        actor = Actor(
            owner_id=owner_id,
            target_type=target_type_for_chat(message.chat.type),
            target_id=str(message.chat.id),
        )
        replies = await self._wizard.handle(actor, action)
        await self._send(message.chat.id, replies)

    async def handle_membership(self, update: ChatMemberUpdated) -> None:
        """React to the bot's own membership changing in a chat."""
        old_status = ChatMemberStatus(update.old_chat_member.status)
        new_status = ChatMemberStatus(update.new_chat_member.status)
        chat_id = str(update.chat.id)
        target_type = target_type_for_chat(update.chat.type)
        service = self._wizard.service

        if new_status in GONE_STATUSES:
            if target_type is TargetType.INDIVIDUAL:
                # A private chat going away means the user blocked the bot.
                await service.handle_owner_blocked(str(update.from_user.id))
            else:
                await service.handle_target_removed(target_type, chat_id)
            return

        if (
            new_status in ACTIVE_STATUSES
            and old_status in GONE_STATUSES
            and target_type is not TargetType.INDIVIDUAL
        ):
            owner_id = str(update.from_user.id)
            for subject_id in self._subjects:
                await service.clone_to_target(owner_id, subject_id, target_type, chat_id)
            logger.info(
                "bot_joined_chat",
                extra={"messaging.chat_id": chat_id, "schedule.owner_id": owner_id},
            )
