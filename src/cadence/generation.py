"""Content generation for scheduled deliveries.

The dispatcher only depends on the ContentGenerator protocol. The Anthropic
implementation turns a configured subject's instructions into a message.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

from cadence.retry import RetryConfig, with_retry
from cadence.scheduling.errors import ExecutionError
from cadence.scheduling.recurrence import resolve_zone
from cadence.scheduling.types import TargetContext

if TYPE_CHECKING:
    import anthropic

    from cadence.config.models import AnthropicConfig, SubjectConfig

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You write short scheduled messages for a chat conversation. "
    "Reply with the message text only, no preamble."
)


class ContentGenerator(Protocol):
    """Produces the message bodies for one scheduled run."""

    async def generate(self, subject_id: str, context: TargetContext) -> list[str]:
        """Return one or more message texts. Raise on failure."""
        ...


class AnthropicContentGenerator:
    """Generate content for configured subjects with the Anthropic API."""

    def __init__(
        self,
        config: AnthropicConfig,
        subjects: dict[str, SubjectConfig],
        *,
        client: anthropic.AsyncAnthropic | None = None,
        retry: RetryConfig | None = None,
    ) -> None:
        if client is None:
            import anthropic

            api_key = config.api_key.get_secret_value() if config.api_key else None
            client = anthropic.AsyncAnthropic(api_key=api_key)
        self._client = client
        self._config = config
        self._subjects = subjects
        self._retry = retry or RetryConfig()

    def _build_prompt(self, subject: SubjectConfig, context: TargetContext) -> str:
        when = ""
        if context.scheduled_for is not None:
            local = context.scheduled_for.astimezone(resolve_zone(context.timezone))
            when = f"\nScheduled for: {local:%A %Y-%m-%d %H:%M} ({context.timezone})"
        return (
            f"Subject: {subject.name}\n"
            f"Audience: {context.target_type.value} conversation{when}\n\n"
            f"{subject.instructions}"
        )

    async def generate(self, subject_id: str, context: TargetContext) -> list[str]:
        subject = self._subjects.get(subject_id)
        if subject is None:
            raise ExecutionError(f"unknown subject: {subject_id}")

        kwargs: dict = {
            "model": self._config.model,
            "max_tokens": self._config.max_tokens,
            "system": SYSTEM_PROMPT,
            "messages": [
                {"role": "user", "content": self._build_prompt(subject, context)}
            ],
        }
        if self._config.temperature is not None:
            kwargs["temperature"] = self._config.temperature

        async def _call():
            return await self._client.messages.create(**kwargs)

        response = await with_retry(
            _call, self._retry, operation_name=f"generate:{subject_id}"
        )
        texts = [
            block.text.strip()
            for block in response.content
            if getattr(block, "type", None) == "text" and block.text.strip()
        ]
        logger.debug(
            "content_generated",
            extra={
                "schedule.id": context.schedule_id,
                "schedule.subject_id": subject_id,
                "gen_ai.usage.input_tokens": response.usage.input_tokens,
                "gen_ai.usage.output_tokens": response.usage.output_tokens,
            },
        )
        return texts
