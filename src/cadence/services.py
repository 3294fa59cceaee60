"""Composition root: builds every long-lived service once at startup."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING

from cadence.config.models import AnthropicConfig, CadenceConfig, ConfigError
from cadence.db import Database
from cadence.generation import AnthropicContentGenerator, ContentGenerator
from cadence.scheduling.dispatcher import Dispatcher
from cadence.scheduling.service import ScheduleService
from cadence.scheduling.store import ScheduleStore
from cadence.scheduling.types import Clock, system_clock
from cadence.trigger import TickTrigger
from cadence.wizard.machine import ConfigurationWizard

if TYPE_CHECKING:
    from cadence.providers.base import DeliveryTransport
    from cadence.providers.telegram import TelegramProvider


@dataclass(slots=True)
class Services:
    """Wired runtime dependencies shared by the server and CLI commands."""

    config: CadenceConfig
    database: Database
    store: ScheduleStore
    service: ScheduleService
    wizard: ConfigurationWizard
    dispatcher: Dispatcher
    trigger: TickTrigger
    telegram_provider: TelegramProvider | None = None


def build_database(config: CadenceConfig) -> Database:
    return Database(
        database_url=config.database.url,
        database_path=config.database.path,
    )


def build_services(
    config: CadenceConfig,
    *,
    clock: Clock = system_clock,
    database: Database | None = None,
    generator: ContentGenerator | None = None,
    transport: DeliveryTransport | None = None,
) -> Services:
    """Create the store, services and trigger from configuration.

    ``generator`` and ``transport`` override the configured Anthropic
    generator and Telegram provider.

    Raises:
        ConfigError: No delivery transport is available.
    """
    database = database or build_database(config)
    scheduling = config.scheduling

    store = ScheduleStore(
        database, lease_ttl=timedelta(seconds=scheduling.lease_ttl_seconds)
    )
    service = ScheduleService(
        store,
        clock=clock,
        round_step=scheduling.round_minutes,
        default_timezone=scheduling.default_timezone,
        clone_grace_seconds=scheduling.clone_grace_seconds,
    )

    telegram_provider = None
    if config.telegram and config.telegram.bot_token:
        from cadence.providers.telegram import TelegramProvider

        telegram_provider = TelegramProvider(
            bot_token=config.telegram.bot_token.get_secret_value(),
            allowed_users=config.telegram.allowed_users,
        )

    transport = transport or telegram_provider
    if transport is None:
        raise ConfigError(
            "No delivery transport configured. Set [telegram] bot_token "
            "or TELEGRAM_BOT_TOKEN."
        )

    if generator is None:
        generator = AnthropicContentGenerator(
            config.anthropic or AnthropicConfig(), config.subjects
        )

    failure_backoff = (
        timedelta(seconds=scheduling.failure_backoff_seconds)
        if scheduling.failure_backoff_seconds
        else None
    )
    dispatcher = Dispatcher(
        store, generator, transport, clock=clock, failure_backoff=failure_backoff
    )

    return Services(
        config=config,
        database=database,
        store=store,
        service=service,
        wizard=ConfigurationWizard(service),
        dispatcher=dispatcher,
        trigger=TickTrigger(config.trigger.secret, dispatcher),
        telegram_provider=telegram_provider,
    )
