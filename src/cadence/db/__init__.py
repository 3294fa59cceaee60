"""Database layer."""

from cadence.db.engine import Database
from cadence.db.models import Base, ScheduleRecord

__all__ = [
    "Base",
    "Database",
    "ScheduleRecord",
]
