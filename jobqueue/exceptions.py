"""
Job queue exceptions and API error handlers.
"""

import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class JobQueueError(Exception):
    """Base exception for the job queue."""

    def __init__(
        self,
        message: str,
        code: str = "JOBQUEUE_ERROR",
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class InvalidJob(JobQueueError):
    """Enqueue was called with missing or invalid fields. Nothing was persisted."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(
            message=message,
            code="INVALID_JOB",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details={"field": field} if field else {},
        )


class JobNotFound(JobQueueError):
    """The referenced job does not exist."""

    def __init__(self, job_id: Any):
        super().__init__(
            message=f"Job not found: {job_id}",
            code="NOT_FOUND",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"job_id": str(job_id)},
        )


class ClaimConflict(JobQueueError):
    """Another worker claimed the candidate first. Handled inside the allocator."""

    def __init__(self, job_id: int):
        super().__init__(
            message=f"Claim lost for job {job_id}",
            code="CLAIM_CONFLICT",
            status_code=status.HTTP_409_CONFLICT,
            details={"job_id": job_id},
        )


class StoreUnavailable(JobQueueError):
    """The job store could not be reached or the statement failed at transport level."""

    def __init__(self, message: str = "Job store unavailable"):
        super().__init__(
            message=message,
            code="STORE_UNAVAILABLE",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )


def install_exception_handlers(app: FastAPI) -> None:
    """Install job queue exception handlers on a FastAPI app."""

    @app.exception_handler(JobQueueError)
    async def jobqueue_exception_handler(request: Request, exc: JobQueueError):
        if exc.status_code >= 500:
            logger.error("Job queue error: %s", exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": exc.code,
                "message": exc.message,
                "details": exc.details,
            },
        )
