import logging
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from regulatory_outbox.core.wiring import OutboxComponents
from regulatory_outbox.schemas.outbox import (
    DispatchReportResponse,
    ProcessingStatsResponse,
    RetryRequest,
    RetryResponse,
)
from regulatory_outbox.schemas.response import SuccessResponse

router = APIRouter()
log = logging.getLogger("uvicorn")


def get_outbox(request: Request) -> OutboxComponents:
    """Components built during application startup."""
    outbox = getattr(request.app.state, "outbox", None)
    if outbox is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Outbox is not initialized.")
    return outbox


@router.post("/retry", response_model=SuccessResponse)
async def retry_failed_events_endpoint(payload: RetryRequest, outbox: OutboxComponents = Depends(get_outbox)):
    """
    Resets failed/dead outbox records back to pending with a fresh attempt budget.
    """
    reset = await outbox.operations.retry_failed_events(payload.event_ids)
    log.info(f"Operator retry reset {reset} outbox record(s).")
    data = RetryResponse(reset=reset, message=f"{reset} event(s) queued for redelivery.").model_dump()
    return SuccessResponse(data=data)


@router.get("/stats", response_model=SuccessResponse)
async def processing_stats_endpoint(
    window_days: Optional[int] = Query(None, ge=1, description="Look-back window in days."),
    outbox: OutboxComponents = Depends(get_outbox),
):
    """Counts records per status and total attempts over the window."""
    window = timedelta(days=window_days) if window_days else None
    stats = await outbox.operations.get_processing_stats(window)
    data = ProcessingStatsResponse(**stats.as_dict()).model_dump(mode="json")
    return SuccessResponse(data=data)


@router.post("/dispatch", response_model=SuccessResponse)
async def dispatch_now_endpoint(outbox: OutboxComponents = Depends(get_outbox)):
    """Runs one dispatch cycle immediately instead of waiting for the next tick."""
    report = await outbox.dispatcher.tick()
    if report is None:
        data = DispatchReportResponse(skipped=True)
    else:
        data = DispatchReportResponse(
            claimed=report.claimed,
            processed=report.processed,
            failed=report.failed,
            dead=report.dead,
            released=report.released,
        )
    return SuccessResponse(data=data.model_dump())
