"""Tests for the Anthropic content generator."""

from datetime import UTC, datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from cadence.config.models import AnthropicConfig, SubjectConfig
from cadence.generation import SYSTEM_PROMPT, AnthropicContentGenerator
from cadence.retry import RetryConfig
from cadence.scheduling.errors import ExecutionError
from cadence.scheduling.types import TargetContext, TargetType


def _response(*texts: str) -> SimpleNamespace:
    return SimpleNamespace(
        content=[SimpleNamespace(type="text", text=t) for t in texts],
        usage=SimpleNamespace(input_tokens=12, output_tokens=34),
    )


@pytest.fixture
def client() -> MagicMock:
    client = MagicMock()
    client.messages.create = AsyncMock(return_value=_response("  A quote.  "))
    return client


@pytest.fixture
def context() -> TargetContext:
    return TargetContext(
        schedule_id="s1",
        owner_id="100",
        target_type=TargetType.GROUP,
        target_id="-42",
        timezone="Asia/Tokyo",
        scheduled_for=datetime(2025, 1, 6, 0, 5, tzinfo=UTC),
    )


def _generator(
    client: MagicMock, subjects: dict[str, SubjectConfig], **config
) -> AnthropicContentGenerator:
    return AnthropicContentGenerator(
        AnthropicConfig(**config),
        subjects,
        client=client,
        retry=RetryConfig(max_retries=1, base_delay_ms=1),
    )


class TestAnthropicContentGenerator:
    async def test_builds_request_from_subject(
        self, client: MagicMock, subjects: dict[str, SubjectConfig], context
    ):
        texts = await _generator(client, subjects).generate("quote", context)

        assert texts == ["A quote."]
        kwargs = client.messages.create.await_args.kwargs
        assert kwargs["system"] == SYSTEM_PROMPT
        assert "temperature" not in kwargs
        prompt = kwargs["messages"][0]["content"]
        assert "Subject: Daily quote" in prompt
        assert "Audience: group conversation" in prompt
        assert "Monday 2025-01-06 09:05 (Asia/Tokyo)" in prompt
        assert prompt.endswith("Share one quote.")

    async def test_temperature_passed_when_set(
        self, client: MagicMock, subjects: dict[str, SubjectConfig], context
    ):
        await _generator(client, subjects, temperature=0.3).generate("quote", context)
        assert client.messages.create.await_args.kwargs["temperature"] == 0.3

    async def test_blank_blocks_dropped(
        self, client: MagicMock, subjects: dict[str, SubjectConfig], context
    ):
        client.messages.create.return_value = _response("one", "   ", "two")
        texts = await _generator(client, subjects).generate("quote", context)
        assert texts == ["one", "two"]

    async def test_unknown_subject(
        self, client: MagicMock, subjects: dict[str, SubjectConfig], context
    ):
        with pytest.raises(ExecutionError, match="unknown subject"):
            await _generator(client, subjects).generate("weather", context)
        client.messages.create.assert_not_awaited()

    async def test_retries_overload(
        self, client: MagicMock, subjects: dict[str, SubjectConfig], context
    ):
        client.messages.create.side_effect = [
            Exception("overloaded_error"),
            _response("ok"),
        ]
        texts = await _generator(client, subjects).generate("quote", context)
        assert texts == ["ok"]
        assert client.messages.create.await_count == 2
