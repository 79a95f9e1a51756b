"""
Health, readiness, liveness and metrics routes.
"""

from datetime import datetime, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse, Response
from sqlalchemy.ext.asyncio import AsyncSession

from jobqueue import __version__
from jobqueue.db import get_async_session
from jobqueue.exceptions import StoreUnavailable
from jobqueue.observability.metrics import get_metrics
from jobqueue.queue.reporting import JobReports
from jobqueue.types.api import HealthResponse

router = APIRouter(tags=["Health"])

Session = Annotated[AsyncSession, Depends(get_async_session)]


async def _active_jobs(session: AsyncSession) -> int | None:
    """Active job count, or None when the queue table cannot be read."""
    try:
        return await JobReports(session).get_length()
    except StoreUnavailable:
        return None


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health_check(session: Session) -> HealthResponse:
    """Report whether the queue table is reachable and how many jobs are active."""
    active_jobs = await _active_jobs(session)
    reachable = active_jobs is not None

    return HealthResponse(
        status="healthy" if reachable else "degraded",
        version=__version__,
        database="healthy" if reachable else "unhealthy",
        active_jobs=active_jobs,
        timestamp=datetime.now(timezone.utc),
    )


@router.get("/ready", summary="Readiness check")
async def readiness_check(session: Session) -> JSONResponse:
    """Not ready while the queue table is unreachable."""
    ready = await _active_jobs(session) is not None
    return JSONResponse(
        {"ready": ready},
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
    )


@router.get("/live", summary="Liveness check")
async def liveness_check() -> dict:
    return {"alive": True}


@router.get("/metrics", summary="Prometheus metrics")
async def metrics() -> Response:
    collector = get_metrics()
    return Response(content=collector.get_metrics(), media_type=collector.get_content_type())
