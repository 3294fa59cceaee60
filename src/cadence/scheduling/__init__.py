"""Scheduling subsystem: recurring deliveries.

Public API:
- compute_next / round_minutes: recurrence math
- ScheduleStore: persistence with an atomic claim
- ScheduleService: draft, enable, disable, patch and cleanup operations
- Dispatcher: claim-drain loop run by each tick
"""

from cadence.scheduling.dispatcher import Dispatcher
from cadence.scheduling.errors import (
    ExecutionError,
    ScheduleError,
    ScheduleForbiddenError,
    ScheduleNotFoundError,
    ScheduleValidationError,
    TriggerAuthError,
    ValidationCode,
)
from cadence.scheduling.recurrence import compute_next, describe, round_minutes
from cadence.scheduling.service import SchedulePatch, ScheduleService
from cadence.scheduling.store import ScheduleStore
from cadence.scheduling.types import (
    Frequency,
    RecurrencePattern,
    Schedule,
    TargetContext,
    TargetType,
    TickResult,
    Weekday,
)

__all__ = [
    "Dispatcher",
    "ExecutionError",
    "Frequency",
    "RecurrencePattern",
    "Schedule",
    "ScheduleError",
    "ScheduleForbiddenError",
    "ScheduleNotFoundError",
    "SchedulePatch",
    "ScheduleService",
    "ScheduleStore",
    "ScheduleValidationError",
    "TargetContext",
    "TargetType",
    "TickResult",
    "TriggerAuthError",
    "ValidationCode",
    "Weekday",
    "compute_next",
    "describe",
    "round_minutes",
]
