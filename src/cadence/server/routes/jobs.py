"""Scheduler job routes, called by an external periodic trigger."""

import logging

from fastapi import APIRouter, Header, Request
from fastapi.responses import JSONResponse

from cadence.scheduling.errors import TriggerAuthError
from cadence.trigger import RID_HEADER, new_rid

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/jobs/scheduler/tick")
async def scheduler_tick(
    request: Request,
    x_internal_token: str | None = Header(default=None),
    x_tick_rid: str | None = Header(default=None),
) -> JSONResponse:
    """Run the dispatcher until no due schedule is left.

    Returns:
        ``{ok, rid, processed, succeeded, failed}``; 403 on a bad token;
        500 when the store fails mid-tick.
    """
    rid = x_tick_rid or new_rid()
    headers = {RID_HEADER: rid}
    trigger = request.app.state.services.trigger

    try:
        result = await trigger.run(x_internal_token, rid)
    except TriggerAuthError:
        return JSONResponse(
            status_code=403,
            content={"ok": False, "rid": rid, "error": "forbidden"},
            headers=headers,
        )
    except Exception as e:
        logger.exception("tick_failed", extra={"tick.rid": rid})
        return JSONResponse(
            status_code=500,
            content={"ok": False, "rid": rid, "error": str(e) or type(e).__name__},
            headers=headers,
        )

    return JSONResponse(
        content={
            "ok": True,
            "rid": rid,
            "processed": result.processed,
            "succeeded": result.succeeded,
            "failed": result.failed,
        },
        headers=headers,
    )
