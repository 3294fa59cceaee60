"""Configuration management."""

from cadence.config.loader import get_default_config, load_config
from cadence.config.models import (
    AnthropicConfig,
    CadenceConfig,
    ConfigError,
    DatabaseConfig,
    SchedulingConfig,
    ServerConfig,
    SubjectConfig,
    TelegramConfig,
    TriggerConfig,
)

__all__ = [
    "AnthropicConfig",
    "CadenceConfig",
    "ConfigError",
    "DatabaseConfig",
    "SchedulingConfig",
    "ServerConfig",
    "SubjectConfig",
    "TelegramConfig",
    "TriggerConfig",
    "get_default_config",
    "load_config",
]
