"""
Type definitions for the job queue.
Contains input/output type definitions, grouped by module.
"""

from jobqueue.types.api import (
    CleanupRequest,
    ClearDuplicatesRequest,
    CountResponse,
    CreateJobRequest,
    ErrorResponse,
    FailureRequest,
    HealthResponse,
    JobResponse,
    LengthResponse,
    OperationResponse,
    PendingResponse,
    ProgressListResponse,
    ProgressRequest,
    StatsResponse,
    TypesResponse,
)
from jobqueue.types.job import (
    Capability,
    JobContext,
    JobResult,
    JobTypeStats,
    NewJob,
    PendingJob,
    ProgressEntry,
)

__all__ = [
    # API types
    "CreateJobRequest",
    "JobResponse",
    "ProgressRequest",
    "FailureRequest",
    "OperationResponse",
    "ProgressListResponse",
    "LengthResponse",
    "TypesResponse",
    "StatsResponse",
    "PendingResponse",
    "CleanupRequest",
    "ClearDuplicatesRequest",
    "CountResponse",
    "HealthResponse",
    "ErrorResponse",
    # Job types
    "Capability",
    "NewJob",
    "JobContext",
    "JobResult",
    "JobTypeStats",
    "PendingJob",
    "ProgressEntry",
]
