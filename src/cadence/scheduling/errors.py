"""Scheduling error types."""

from enum import StrEnum


class ValidationCode(StrEnum):
    """User-facing validation failure codes."""

    TIME_REQUIRED = "time_required"
    WEEKDAY_REQUIRED = "weekday_required"
    MONTHDAY_REQUIRED = "monthday_required"
    NEXT_UNCOMPUTABLE = "next_uncomputable"
    INVALID_FREQUENCY = "invalid_frequency"
    INVALID_TIME = "invalid_time"


class ScheduleError(Exception):
    """Base class for scheduling errors."""


class ScheduleValidationError(ScheduleError):
    """A schedule is missing fields required for the requested change."""

    def __init__(self, code: ValidationCode, message: str | None = None):
        self.code = code
        super().__init__(message or code.value)


class ScheduleNotFoundError(ScheduleError):
    """The schedule does not exist or was soft-deleted."""

    def __init__(self, schedule_id: str):
        self.schedule_id = schedule_id
        super().__init__(f"Schedule not found: {schedule_id}")


class ScheduleForbiddenError(ScheduleError):
    """The caller does not own the schedule."""

    def __init__(self, schedule_id: str):
        self.schedule_id = schedule_id
        super().__init__(f"Not allowed to modify schedule {schedule_id}")


class ExecutionError(ScheduleError):
    """Content generation or delivery failed for a claimed schedule."""


class TriggerAuthError(ScheduleError):
    """A tick invocation carried a missing or wrong shared secret."""
