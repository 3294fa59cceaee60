"""Telegram provider using aiogram."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from aiogram import Bot, Dispatcher, F
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from aiogram.exceptions import TelegramBadRequest
from aiogram.filters import Command, CommandObject
from aiogram.types import CallbackQuery, ChatMemberUpdated, Update
from aiogram.types import Message as TelegramMessage

from cadence.providers.telegram.keyboards import create_prompt_keyboard
from cadence.scheduling.types import TargetType

if TYPE_CHECKING:
    from aiogram.types import InlineKeyboardMarkup

    from cadence.wizard.prompts import Prompt

CallbackHandler = Callable[[CallbackQuery], Awaitable[None]]
CommandHandler = Callable[[TelegramMessage, str | None], Awaitable[None]]
TextHandler = Callable[[TelegramMessage], Awaitable[None]]
MembershipHandler = Callable[[ChatMemberUpdated], Awaitable[None]]

logger = logging.getLogger("telegram")

LOG_PREVIEW_MAX_LEN = 180
MAX_SEND_LENGTH = 4000  # Below Telegram's 4096 limit to leave room for formatting

CHAT_TARGET_TYPES: dict[str, TargetType] = {
    "private": TargetType.INDIVIDUAL,
    "group": TargetType.GROUP,
    "supergroup": TargetType.GROUP,
    "channel": TargetType.ROOM,
}


def target_type_for_chat(chat_type: str) -> TargetType:
    """Map a Telegram chat type onto a delivery target type."""
    return CHAT_TARGET_TYPES.get(chat_type, TargetType.GROUP)


def _truncate(text: str, max_len: int = LOG_PREVIEW_MAX_LEN) -> str:
    """Truncate text for logging (first line only, max length)."""
    first_line, *rest = text.split("\n", 1)
    truncated = len(first_line) > max_len or bool(rest)
    return first_line[:max_len] + "..." if truncated else first_line


def _find_split_point(text: str, max_length: int) -> int:
    """Find the best point to split text, searching backwards from max_length.

    Prefers a blank line, then a line ending a sentence, then any newline.
    Never splits inside a code block.
    """
    in_code_block = False
    last_blank = last_sentence = last_newline = -1

    i = 0
    region = text[:max_length]
    while i < len(region):
        if region.startswith("```", i):
            in_code_block = not in_code_block
            i += 3
            continue
        if not in_code_block and region[i] == "\n":
            if i + 1 < len(region) and region[i + 1] == "\n":
                last_blank = i + 1
            elif i > 0 and region[i - 1] in ".!?)":
                last_sentence = i + 1
            else:
                last_newline = i + 1
        i += 1

    for point in (last_blank, last_sentence, last_newline):
        if point > 0:
            return point
    return max_length


def split_message(text: str, max_length: int = MAX_SEND_LENGTH) -> list[str]:
    """Split text into chunks at paragraph boundaries."""
    if len(text) <= max_length:
        return [text]

    chunks: list[str] = []
    remaining = text
    while remaining:
        if len(remaining) <= max_length:
            chunks.append(remaining)
            break
        split_at = _find_split_point(remaining, max_length)
        chunks.append(remaining[:split_at].rstrip())
        remaining = remaining[split_at:].lstrip()
    return chunks


class TelegramProvider:
    """Telegram delivery transport and wizard surface, built on aiogram 3.x.

    Handlers are registered by the server before polling starts or webhook
    updates arrive; the provider itself only routes updates to them.
    """

    def __init__(
        self,
        bot_token: str,
        allowed_users: list[str] | None = None,
        *,
        bot: Bot | None = None,
    ):
        self._allowed_users = set(allowed_users or [])
        self._bot = bot or Bot(
            token=bot_token,
            default=DefaultBotProperties(parse_mode=ParseMode.MARKDOWN),
        )
        self._dp = Dispatcher()
        self._callback_handler: CallbackHandler | None = None
        self._command_handler: CommandHandler | None = None
        self._text_handler: TextHandler | None = None
        self._membership_handler: MembershipHandler | None = None
        self._handlers_ready = False
        self._running = False

    @property
    def name(self) -> str:
        return "telegram"

    @property
    def bot(self) -> Bot:
        return self._bot

    @property
    def dispatcher(self) -> Dispatcher:
        return self._dp

    def set_callback_handler(self, handler: CallbackHandler) -> None:
        """Set the callback query handler for inline keyboard buttons."""
        self._callback_handler = handler

    def set_command_handler(self, handler: CommandHandler) -> None:
        """Set the handler for the /schedule command."""
        self._command_handler = handler

    def set_text_handler(self, handler: TextHandler) -> None:
        """Set the handler for plain text replies."""
        self._text_handler = handler

    def set_membership_handler(self, handler: MembershipHandler) -> None:
        """Set the handler for the bot joining, leaving or being blocked."""
        self._membership_handler = handler

    def is_user_allowed(self, user_id: int, username: str | None) -> bool:
        if not self._allowed_users:
            return True
        return str(user_id) in self._allowed_users or (
            username is not None and f"@{username}" in self._allowed_users
        )

    async def _send_with_fallback(
        self,
        chat_id: int,
        text: str,
        reply_markup: InlineKeyboardMarkup | None = None,
        parse_mode: ParseMode | None = ParseMode.MARKDOWN,
    ) -> TelegramMessage:
        """Send a message with automatic plain-text fallback on parse errors."""
        try:
            return await self._bot.send_message(
                chat_id=chat_id,
                text=text,
                parse_mode=parse_mode,
                reply_markup=reply_markup,
            )
        except TelegramBadRequest as e:
            if "can't parse" in str(e).lower() and parse_mode is not None:
                logger.debug(f"Markdown parsing failed, sending as plain text: {e}")
                return await self._bot.send_message(
                    chat_id=chat_id,
                    text=text,
                    parse_mode=None,
                    reply_markup=reply_markup,
                )
            raise

    async def deliver(
        self, target_type: TargetType, target_id: str, content: list[str]
    ) -> None:
        """Send generated content to a chat, splitting long messages.

        Errors propagate so the dispatcher records the run as failed.
        """
        chat_id = int(target_id)
        for text in content:
            for chunk in split_message(text):
                await self._send_with_fallback(chat_id, chunk)
        logger.debug(
            "content_delivered",
            extra={
                "messaging.chat_id": target_id,
                "messaging.target_type": target_type.value,
                "message.count": len(content),
                "message.preview": _truncate(content[0]) if content else "",
            },
        )

    async def send_prompt(self, chat_id: str | int, prompt: Prompt) -> str:
        """Send a wizard prompt with its inline keyboard."""
        sent = await self._send_with_fallback(
            int(chat_id),
            prompt.text,
            reply_markup=create_prompt_keyboard(prompt),
            parse_mode=None,
        )
        return str(sent.message_id)

    async def start(self) -> None:
        """Start long polling."""
        self._setup_handlers()
        self._running = True

        logger.info("telegram_bot_starting")
        await self._bot.delete_webhook(drop_pending_updates=False)
        # Disable aiogram's signal handling - let the app handle SIGINT/SIGTERM
        await self._dp.start_polling(
            self._bot,
            handle_signals=False,
            close_bot_session=False,  # We close it ourselves in stop()
        )

    async def stop(self) -> None:
        """Stop polling and close the bot session."""
        if self._running:
            self._running = False
            try:
                await self._dp.stop_polling()
            except RuntimeError as e:
                logger.debug(f"Error stopping polling: {e}")

        await self._bot.session.close()
        logger.info("telegram_bot_stopped")

    async def process_webhook_update(self, update_data: dict[str, Any]) -> None:
        """Feed one webhook update through the dispatcher."""
        self._setup_handlers()
        update = Update.model_validate(update_data, context={"bot": self._bot})
        await self._dp.feed_update(self._bot, update)

    def _setup_handlers(self) -> None:
        """Set up update handlers on the dispatcher (once)."""
        if self._handlers_ready:
            return
        self._handlers_ready = True

        @self._dp.message(Command("schedule"))
        async def handle_schedule(message: TelegramMessage, command: CommandObject):
            """Handle /schedule [subject]."""
            user = message.from_user
            if user is None or not self.is_user_allowed(user.id, user.username):
                return
            if self._command_handler:
                try:
                    await self._command_handler(message, command.args)
                except Exception:
                    logger.exception("Error handling schedule command")

        @self._dp.message(F.text)
        async def handle_text(message: TelegramMessage) -> None:
            """Handle plain text, used for typed times and days."""
            user = message.from_user
            if user is None or not self.is_user_allowed(user.id, user.username):
                return
            if self._text_handler:
                try:
                    await self._text_handler(message)
                except Exception:
                    logger.exception("Error handling text message")

        @self._dp.callback_query()
        async def handle_callback_query(callback_query: CallbackQuery) -> None:
            """Handle callback queries from inline keyboards."""
            user = callback_query.from_user
            if not self.is_user_allowed(user.id, user.username):
                await callback_query.answer("Not allowed", show_alert=True)
                return
            if self._callback_handler:
                try:
                    await self._callback_handler(callback_query)
                except Exception:
                    logger.exception("Error handling callback query")
                    await callback_query.answer(
                        "Error processing your selection", show_alert=True
                    )

        @self._dp.my_chat_member()
        async def handle_my_chat_member(update: ChatMemberUpdated) -> None:
            """Handle the bot being added, removed or blocked."""
            if self._membership_handler:
                try:
                    await self._membership_handler(update)
                except Exception:
                    logger.exception("Error handling membership update")
