"""
Administrative routes: queue statistics and maintenance.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from jobqueue.constants import API_V1_PREFIX
from jobqueue.db import get_async_session
from jobqueue.queue.lifecycle import JobLifecycle
from jobqueue.queue.reporting import JobReports
from jobqueue.types.api import (
    CleanupRequest,
    ClearDuplicatesRequest,
    CountResponse,
    LengthResponse,
    PendingResponse,
    StatsResponse,
    TypesResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix=f"{API_V1_PREFIX}/admin", tags=["Admin"])

Session = Annotated[AsyncSession, Depends(get_async_session)]


@router.get("/length", response_model=LengthResponse, summary="Active job count")
async def get_length(
    session: Session,
    jobtype: str | None = Query(default=None),
) -> LengthResponse:
    """Number of active jobs, optionally of one type."""
    length = await JobReports(session).get_length(jobtype)
    return LengthResponse(jobtype=jobtype, length=length)


@router.get("/types", response_model=TypesResponse, summary="Job types")
async def get_types(session: Session) -> TypesResponse:
    """Job types present in the queue."""
    return TypesResponse(types=await JobReports(session).get_types())


@router.get("/stats", response_model=StatsResponse, summary="Finished job timings")
async def get_stats(session: Session) -> StatsResponse:
    """Average turnaround, runtime and fetch delay per job type."""
    reports = JobReports(session)
    return StatsResponse(
        stats=await reports.get_stats(),
        last_completed=await reports.last_completed(),
    )


@router.get("/pending", response_model=PendingResponse, summary="Active jobs")
async def get_pending(session: Session) -> PendingResponse:
    """Summaries of all active jobs."""
    return PendingResponse(jobs=await JobReports(session).get_pending_stats())


@router.post("/reset", response_model=CountResponse, summary="Reset active jobs")
async def reset(session: Session) -> CountResponse:
    """Clear claims, failures and progress of every active job."""
    count = await JobLifecycle(session).reset()
    await session.commit()
    logger.warning("Queue reset via API", extra={"count": count})
    return CountResponse(count=count)


@router.post("/cleanup", response_model=CountResponse, summary="Delete old completed jobs")
async def cleanup(
    session: Session,
    request: CleanupRequest | None = None,
) -> CountResponse:
    """Delete jobs completed longer ago than the retention period."""
    retention = request.retention_seconds if request is not None else None
    count = await JobLifecycle(session).clean_old_jobs(retention)
    await session.commit()
    return CountResponse(count=count)


@router.post(
    "/clear-duplicates",
    response_model=CountResponse,
    summary="Delete duplicate active jobs",
)
async def clear_duplicates(
    session: Session,
    request: ClearDuplicatesRequest | None = None,
) -> CountResponse:
    """Delete active jobs with identical type and payload, keeping one per group."""
    request = request or ClearDuplicatesRequest()
    count = await JobLifecycle(session).clear_duplicates(keep=request.keep)
    await session.commit()
    return CountResponse(count=count)
