"""Schedule CRUD routes.

The caller identifies the owner with the ``X-Owner-Id`` header; every route
is scoped to that owner.
"""

import logging
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fastapi import APIRouter, Header, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator

from cadence.scheduling.errors import (
    ScheduleForbiddenError,
    ScheduleNotFoundError,
    ScheduleValidationError,
)
from cadence.scheduling.service import SchedulePatch, ScheduleService
from cadence.scheduling.types import Frequency, TargetType, Weekday

router = APIRouter()
logger = logging.getLogger(__name__)

MAX_LIST_LIMIT = 200


def _check_timezone(value: str | None) -> str | None:
    if value is None:
        return value
    try:
        ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone: {value}") from e
    return value


class ScheduleCreateRequest(BaseModel):
    subject_id: str
    target_type: TargetType
    target_id: str
    frequency: Frequency | None = None
    by_weekday: list[Weekday] = Field(default_factory=list)
    by_monthday: list[int] = Field(default_factory=list)
    hour: int | None = None
    minute: int | None = None
    timezone: str | None = None

    _timezone = field_validator("timezone")(_check_timezone)


class SchedulePatchRequest(BaseModel):
    frequency: Frequency | None = None
    by_weekday: list[Weekday] | None = None
    by_monthday: list[int] | None = None
    hour: int | None = None
    minute: int | None = None
    timezone: str | None = None

    _timezone = field_validator("timezone")(_check_timezone)


def _service(request: Request) -> ScheduleService:
    return request.app.state.services.service


def _owner(x_owner_id: str | None) -> str:
    if not x_owner_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="X-Owner-Id required"
        )
    return x_owner_id


async def validation_error_handler(
    request: Request, exc: ScheduleValidationError
) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": exc.code.value})


async def not_found_handler(
    request: Request, exc: ScheduleNotFoundError
) -> JSONResponse:
    return JSONResponse(status_code=404, content={"error": "not_found"})


async def forbidden_handler(
    request: Request, exc: ScheduleForbiddenError
) -> JSONResponse:
    return JSONResponse(status_code=403, content={"error": "forbidden"})


EXCEPTION_HANDLERS = {
    ScheduleValidationError: validation_error_handler,
    ScheduleNotFoundError: not_found_handler,
    ScheduleForbiddenError: forbidden_handler,
}


@router.get("")
async def list_schedules(
    request: Request,
    subject_id: str | None = None,
    target_type: TargetType | None = None,
    target_id: str | None = None,
    enabled: bool | None = None,
    limit: int = Query(default=50, ge=1, le=MAX_LIST_LIMIT),
    x_owner_id: str | None = Header(default=None),
) -> dict:
    """List the owner's schedules, newest first."""
    schedules = await _service(request).list_schedules(
        owner_id=_owner(x_owner_id),
        subject_id=subject_id,
        target_type=target_type,
        target_id=target_id,
        enabled=enabled,
        limit=limit,
    )
    return {"schedules": [s.to_dict() for s in schedules]}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_schedule(
    request: Request,
    body: ScheduleCreateRequest,
    x_owner_id: str | None = Header(default=None),
) -> dict:
    """Create a disabled draft."""
    schedule = await _service(request).create_draft(
        _owner(x_owner_id),
        body.subject_id,
        body.target_type,
        body.target_id,
        frequency=body.frequency,
        by_weekday=body.by_weekday,
        by_monthday=body.by_monthday,
        hour=body.hour,
        minute=body.minute,
        timezone=body.timezone,
    )
    return schedule.to_dict()


@router.get("/{schedule_id}")
async def get_schedule(
    request: Request,
    schedule_id: str,
    x_owner_id: str | None = Header(default=None),
) -> dict:
    schedule = await _service(request).get(schedule_id, _owner(x_owner_id))
    return schedule.to_dict()


@router.patch("/{schedule_id}")
async def patch_schedule(
    request: Request,
    schedule_id: str,
    body: SchedulePatchRequest,
    x_owner_id: str | None = Header(default=None),
) -> dict:
    """Partially update a schedule; an enabled one is re-armed."""
    changes = SchedulePatch(**body.model_dump())
    schedule = await _service(request).patch(
        schedule_id, changes, _owner(x_owner_id)
    )
    return schedule.to_dict()


@router.post("/{schedule_id}/enable")
async def enable_schedule(
    request: Request,
    schedule_id: str,
    x_owner_id: str | None = Header(default=None),
) -> dict:
    schedule = await _service(request).enable(schedule_id, _owner(x_owner_id))
    return schedule.to_dict()


@router.post("/{schedule_id}/disable")
async def disable_schedule(
    request: Request,
    schedule_id: str,
    x_owner_id: str | None = Header(default=None),
) -> dict:
    schedule = await _service(request).disable(schedule_id, _owner(x_owner_id))
    return schedule.to_dict()


@router.delete("/{schedule_id}")
async def delete_schedule(
    request: Request,
    schedule_id: str,
    x_owner_id: str | None = Header(default=None),
) -> dict:
    await _service(request).delete(schedule_id, _owner(x_owner_id))
    return {"ok": True}
