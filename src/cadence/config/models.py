"""Configuration models using Pydantic."""

import logging
import re
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator

from cadence.config.paths import get_database_path

logger = logging.getLogger(__name__)

# Subject ids travel inside chat button payloads, which are tightly bounded.
SUBJECT_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,24}$")


class SchedulingConfig(BaseModel):
    """Recurrence and dispatch behaviour."""

    default_timezone: str = "Asia/Tokyo"
    round_minutes: int = Field(default=5, ge=1, le=60)
    # A claim older than this is treated as abandoned and may be reclaimed.
    # 0 disables reclaiming entirely.
    lease_ttl_seconds: int = Field(default=900, ge=0)
    # When set, a failed run is pushed forward by this delay instead of
    # keeping its existing next_run_at.
    failure_backoff_seconds: int | None = Field(default=None, ge=1)
    clone_grace_seconds: int = Field(default=60, ge=0)

    @field_validator("default_timezone")
    @classmethod
    def _check_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {value}") from e
        return value


class TriggerConfig(BaseModel):
    """Configuration for the periodic tick trigger."""

    secret: SecretStr | None = None
    url: str = "http://127.0.0.1:8080/jobs/scheduler/tick"
    max_attempts: int = Field(default=3, ge=1)
    backoff_ms: int = Field(default=2000, ge=0)
    timeout_seconds: float = 30.0


class ServerConfig(BaseModel):
    """Configuration for HTTP server."""

    host: str = "127.0.0.1"
    port: int = 8080
    webhook_path: str = "/webhook"


class DatabaseConfig(BaseModel):
    """Configuration for the schedule database."""

    path: Path = Field(default_factory=get_database_path)
    url: str | None = None


class TelegramConfig(BaseModel):
    """Configuration for Telegram provider."""

    bot_token: SecretStr | None = None
    allowed_users: list[str] = []
    webhook_url: str | None = None


class AnthropicConfig(BaseModel):
    """Configuration for the Anthropic content generator."""

    api_key: SecretStr | None = None
    model: str = "claude-haiku-4-5-20251001"
    max_tokens: int = 1024
    temperature: float | None = None


class SubjectConfig(BaseModel):
    """A content definition that schedules execute against."""

    name: str
    instructions: str


class ConfigError(Exception):
    """Configuration error."""

    pass


class CadenceConfig(BaseModel):
    """Root configuration model."""

    scheduling: SchedulingConfig = Field(default_factory=SchedulingConfig)
    trigger: TriggerConfig = Field(default_factory=TriggerConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    telegram: TelegramConfig | None = None
    anthropic: AnthropicConfig | None = None
    subjects: dict[str, SubjectConfig] = Field(default_factory=dict)

    @field_validator("subjects")
    @classmethod
    def _check_subject_ids(
        cls, value: dict[str, SubjectConfig]
    ) -> dict[str, SubjectConfig]:
        for subject_id in value:
            if not SUBJECT_ID_PATTERN.match(subject_id):
                raise ValueError(
                    f"Invalid subject id '{subject_id}': use up to 24 letters, "
                    "digits, '-' or '_'"
                )
        return value

    @model_validator(mode="after")
    def _warn_missing_secret(self) -> "CadenceConfig":
        if self.trigger.secret is None:
            logger.warning(
                "Trigger secret not configured; every tick request will be rejected"
            )
        return self

    def get_subject(self, subject_id: str) -> SubjectConfig:
        """Get a subject definition by id.

        Raises:
            ConfigError: If the subject is not configured.
        """
        if subject_id not in self.subjects:
            available = ", ".join(sorted(self.subjects)) or "none"
            raise ConfigError(
                f"Unknown subject '{subject_id}'. Available: {available}"
            )
        return self.subjects[subject_id]
