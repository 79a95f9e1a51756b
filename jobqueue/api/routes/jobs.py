"""
Job routes: enqueue, lookup and lifecycle reports.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from jobqueue.constants import API_V1_PREFIX
from jobqueue.db import get_async_session
from jobqueue.db.models import QueuedJob
from jobqueue.db.repository import JobRepository
from jobqueue.exceptions import JobNotFound
from jobqueue.queue.lifecycle import JobLifecycle
from jobqueue.queue.reporting import JobReports
from jobqueue.types.api import (
    CreateJobRequest,
    FailureRequest,
    JobResponse,
    OperationResponse,
    ProgressListResponse,
    ProgressRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix=f"{API_V1_PREFIX}/jobs", tags=["Jobs"])

Session = Annotated[AsyncSession, Depends(get_async_session)]
WorkerKey = Annotated[
    str | None,
    Query(description="Only apply the report while this worker holds the claim"),
]


def _job_to_response(job: QueuedJob) -> JobResponse:
    """Convert a QueuedJob model to a JobResponse."""
    return JobResponse(
        id=job.id,
        jobtype=job.jobtype,
        payload=job.payload,
        task_group=job.task_group,
        reference=job.reference,
        status=job.state,
        notbefore=job.notbefore,
        created=job.created,
        fetched=job.fetched,
        completed=job.completed,
        progress=job.progress,
        failed=job.failed,
        failure_message=job.failure_message,
        workerkey=job.workerkey,
    )


@router.post(
    "",
    response_model=JobResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Enqueue a job",
)
async def create_job(request: CreateJobRequest, session: Session) -> JobResponse:
    """
    Add a job to the queue.

    ``notbefore`` wins over ``delay_seconds`` when both are given.
    """
    notbefore = request.notbefore if request.notbefore is not None else request.delay_seconds

    job = await JobLifecycle(session).create_job(
        jobtype=request.jobtype,
        data=request.data,
        notbefore=notbefore,
        group=request.group,
        reference=request.reference,
    )
    await session.commit()

    return _job_to_response(job)


@router.get(
    "/progress",
    response_model=ProgressListResponse,
    summary="Progress of active jobs",
)
async def get_progress(
    session: Session,
    group: str | None = Query(default=None),
    exclude: str | None = Query(default=None, description="Comma separated references"),
) -> ProgressListResponse:
    """List reference, status and progress of every active job."""
    references = exclude.split(",") if exclude else None
    entries = await JobReports(session).find_progress(group=group, exclude=references)
    return ProgressListResponse(jobs=entries)


@router.get(
    "/{job_id}",
    response_model=JobResponse,
    summary="Get job details",
)
async def get_job(job_id: int, session: Session) -> JobResponse:
    """
    Get job details by ID.

    Raises:
        JobNotFound: If the job does not exist.
    """
    job = await JobRepository(session).get(job_id)
    if job is None:
        raise JobNotFound(job_id)
    return _job_to_response(job)


@router.post(
    "/{job_id}/progress",
    response_model=OperationResponse,
    summary="Report progress",
)
async def update_progress(
    job_id: int,
    request: ProgressRequest,
    session: Session,
    workerkey: WorkerKey = None,
) -> OperationResponse:
    """Store the completion fraction of a running job."""
    success = await JobLifecycle(session).update_progress(
        job_id, request.progress, workerkey=workerkey
    )
    await session.commit()
    return OperationResponse(success=success)


@router.post(
    "/{job_id}/done",
    response_model=OperationResponse,
    summary="Mark a job as completed",
)
async def mark_done(
    job_id: int,
    session: Session,
    workerkey: WorkerKey = None,
) -> OperationResponse:
    """Complete a job, removing it from the active set."""
    success = await JobLifecycle(session).mark_job_done(job_id, workerkey=workerkey)
    await session.commit()
    return OperationResponse(success=success)


@router.post(
    "/{job_id}/failed",
    response_model=OperationResponse,
    summary="Report a failed attempt",
)
async def mark_failed(
    job_id: int,
    session: Session,
    request: FailureRequest | None = None,
    workerkey: WorkerKey = None,
) -> OperationResponse:
    """
    Count a failed attempt. The claim is kept; the job is reclaimed after
    its timeout while the retry budget lasts.

    Raises:
        JobNotFound: If the job does not exist.
    """
    message = request.message if request is not None else None
    success = await JobLifecycle(session).mark_job_failed(job_id, message, workerkey=workerkey)
    await session.commit()

    logger.info(
        "Failure reported via API",
        extra={"job_id": job_id, "has_message": message is not None}
    )
    return OperationResponse(success=success)
