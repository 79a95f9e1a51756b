"""
API request and response type definitions.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from jobqueue.constants import DuplicatePolicy, JobState
from jobqueue.types.job import JobTypeStats, PendingJob, ProgressEntry


class CreateJobRequest(BaseModel):
    """Request body for enqueueing a job."""

    jobtype: str = Field(..., description="Task type that can run the job")
    data: Any = Field(default=None, description="JSON payload")
    notbefore: datetime | None = Field(
        default=None, description="Earliest execution time (UTC)"
    )
    delay_seconds: float | None = Field(
        default=None, ge=0, description="Delay relative to now; ignored if notbefore is set"
    )
    group: str | None = Field(default=None, description="Task group")
    reference: str | None = Field(default=None, description="Caller supplied label")


class JobResponse(BaseModel):
    """Full job details response."""

    id: int
    jobtype: str
    payload: Any
    task_group: str | None
    reference: str | None
    status: JobState
    notbefore: datetime | None
    created: datetime
    fetched: datetime | None
    completed: datetime | None
    progress: float
    failed: int
    failure_message: str | None
    workerkey: str | None


class ProgressRequest(BaseModel):
    """Progress report for a running job."""

    progress: float = Field(..., description="Completion fraction, clamped to [0, 1]")


class FailureRequest(BaseModel):
    """Failure report for a running job."""

    message: str | None = Field(
        default=None, description="Failure detail; the previous one is kept if omitted"
    )


class OperationResponse(BaseModel):
    """Outcome of a lifecycle operation."""

    success: bool


class ProgressListResponse(BaseModel):
    """Progress of active jobs."""

    jobs: list[ProgressEntry]


class LengthResponse(BaseModel):
    """Number of active jobs."""

    jobtype: str | None
    length: int


class TypesResponse(BaseModel):
    """Job types present in the queue."""

    types: list[str]


class StatsResponse(BaseModel):
    """Per type timings of finished jobs."""

    stats: list[JobTypeStats]
    last_completed: datetime | None


class PendingResponse(BaseModel):
    """Active jobs."""

    jobs: list[PendingJob]


class CleanupRequest(BaseModel):
    """Request body for deleting old completed jobs."""

    retention_seconds: int | None = Field(
        default=None, ge=0, description="Defaults to the configured cleanup timeout"
    )


class ClearDuplicatesRequest(BaseModel):
    """Request body for deleting duplicate active jobs."""

    keep: DuplicatePolicy = Field(
        default=DuplicatePolicy.OLDEST, description="Which duplicate survives"
    )


class CountResponse(BaseModel):
    """Number of affected jobs."""

    count: int


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    database: str
    active_jobs: int | None = None
    timestamp: datetime


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str
    message: str
    details: dict[str, Any] | None = None
