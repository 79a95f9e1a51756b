"""
Job-related type definitions for internal use.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from jobqueue.constants import JobState


class Capability(BaseModel):
    """
    What a worker can execute, supplied on every poll.

    A job of ``jobtype`` is handed out at most ``retries + 1`` times. A claim
    older than ``timeout`` seconds is considered abandoned. When ``rate`` is
    set, this process dispatches at most one job of the type per ``rate``
    seconds.
    """

    jobtype: str = Field(..., min_length=1)
    timeout: float = Field(..., ge=0)
    retries: int = Field(default=0, ge=0)
    rate: float | None = Field(default=None, ge=0)


class NewJob(BaseModel):
    """Validated enqueue request."""

    jobtype: str = Field(..., min_length=1, max_length=255)
    data: Any = None
    notbefore: datetime | None = None
    task_group: str | None = Field(default=None, max_length=255)
    reference: str | None = Field(default=None, max_length=255)


class JobResult(BaseModel):
    """
    Result of job execution.
    Returned by task handlers after processing.
    """

    success: bool
    error: str | None = None


@dataclass
class JobContext:
    """
    Context passed to task handlers during execution.
    Contains job metadata and a progress callback.
    """

    job_id: int
    jobtype: str
    payload: Any
    reference: str | None
    failed: int
    retries: int
    workerkey: str
    report_progress: Callable[[float], Awaitable[bool]]

    @property
    def is_last_attempt(self) -> bool:
        """Check if this is the last allowed attempt."""
        return self.failed >= self.retries


class JobTypeStats(BaseModel):
    """Average timings of finished jobs of one type, in seconds."""

    jobtype: str
    num: int
    alltime: float | None
    runtime: float | None
    fetchdelay: float | None


class PendingJob(BaseModel):
    """Summary of an active job."""

    id: int
    jobtype: str
    created: datetime
    status: JobState
    fetched: datetime | None
    progress: float
    reference: str | None
    failed: int
    failure_message: str | None


class ProgressEntry(BaseModel):
    """Narrow progress view of an active job, looked up by reference."""

    reference: str | None
    status: JobState
    progress: float | None = None
    failure_message: str | None = None
