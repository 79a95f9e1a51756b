"""
Job lifecycle operations.

Everything that mutates a job outside of the claim itself: enqueue,
progress, completion, failure and administrative maintenance.
"""

import logging
from collections import defaultdict
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

from pydantic import ValidationError
from sqlalchemy import ColumnElement, and_
from sqlalchemy.ext.asyncio import AsyncSession

from jobqueue.config import get_settings
from jobqueue.constants import (
    DUPLICATE_DELETE_BATCH_SIZE,
    PROGRESS_PRECISION,
    DuplicatePolicy,
)
from jobqueue.db.models import QueuedJob
from jobqueue.db.repository import JobRepository
from jobqueue.exceptions import InvalidJob, JobNotFound
from jobqueue.observability.metrics import get_metrics
from jobqueue.types.job import NewJob
from jobqueue.utils import encode_payload, utcnow

logger = logging.getLogger(__name__)


class JobLifecycle:
    """
    Lifecycle operations on queued jobs.

    Like the repository it wraps, it never commits.
    """

    def __init__(
        self,
        session: AsyncSession,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Initialize with a database session.

        Args:
            session: The async database session.
            clock: Source of the current naive UTC time.
        """
        self._repo = JobRepository(session)
        self._clock = clock
        self._metrics = get_metrics()

    async def create_job(
        self,
        jobtype: str,
        data: Any = None,
        notbefore: datetime | float | None = None,
        group: str | None = None,
        reference: str | None = None,
    ) -> QueuedJob:
        """
        Add a new job to the queue.

        Args:
            jobtype: Task type that can run this job.
            data: JSON-serializable payload.
            notbefore: Earliest execution time, or seconds from now.
            group: Task group the job belongs to.
            reference: Caller supplied label.

        Returns:
            The persisted job.

        Raises:
            InvalidJob: If a field is missing or invalid. Nothing is persisted.
        """
        if isinstance(notbefore, (int, float)):
            notbefore = self._clock() + timedelta(seconds=notbefore)
        elif isinstance(notbefore, datetime) and notbefore.tzinfo is not None:
            notbefore = notbefore.astimezone(timezone.utc).replace(tzinfo=None)

        try:
            new_job = NewJob(
                jobtype=jobtype,
                data=data,
                notbefore=notbefore,
                task_group=group,
                reference=reference,
            )
        except ValidationError as e:
            error = e.errors()[0]
            field = ".".join(str(part) for part in error["loc"])
            raise InvalidJob(f"Invalid job data: {error['msg']}", field=field) from e

        try:
            encoded = encode_payload(new_job.data)
        except (TypeError, ValueError) as e:
            raise InvalidJob(f"Payload is not JSON serializable: {e}", field="data") from e

        job = await self._repo.insert(
            jobtype=new_job.jobtype,
            data=encoded,
            notbefore=new_job.notbefore,
            task_group=new_job.task_group,
            reference=new_job.reference,
            created=self._clock(),
            progress=0.0,
            failed=0,
        )
        self._metrics.record_job_enqueued(job.jobtype)
        return job

    @staticmethod
    def _target(
        job_id: int,
        workerkey: str | None = None,
        active_only: bool = True,
    ) -> ColumnElement[bool]:
        """
        Rows a report may touch.

        With a workerkey the report only lands while that worker still holds
        the claim; after a reclaim it matches nothing.
        """
        conditions = [QueuedJob.id == job_id]
        if active_only:
            conditions.append(QueuedJob.completed.is_(None))
        if workerkey is not None:
            conditions.append(QueuedJob.workerkey == workerkey)
        return and_(*conditions)

    async def update_progress(
        self,
        job_id: int | None,
        progress: float,
        workerkey: str | None = None,
    ) -> bool:
        """
        Record the completion fraction of a running job.

        The value is clamped to [0, 1] and rounded to two decimals.

        Returns:
            False for a falsy id (the store is not touched), an unknown or
            completed job, or a claim held by another worker.
        """
        if not job_id:
            return False

        value = round(min(1.0, max(0.0, float(progress))), PROGRESS_PRECISION)
        count = await self._repo.update_all_where(
            self._target(job_id, workerkey),
            progress=value,
        )
        return count > 0

    async def mark_job_done(self, job_id: int, workerkey: str | None = None) -> bool:
        """
        Mark a job as completed, removing it from the active set.

        Calling it again just moves the completion timestamp.
        """
        count = await self._repo.update_all_where(
            self._target(job_id, workerkey, active_only=False),
            completed=self._clock(),
        )
        if count:
            logger.info("Job completed", extra={"job_id": job_id})
        return count > 0

    async def mark_job_failed(
        self,
        job_id: int,
        message: str | None = None,
        workerkey: str | None = None,
    ) -> bool:
        """
        Count a failed attempt.

        The claim stays in place: the job is handed out again once its
        timeout has passed, as long as the retry budget allows the reclaim.

        Args:
            job_id: The job id.
            message: New failure message; the existing one is kept when None.
            workerkey: Only count the failure while this worker holds the claim.

        Returns:
            False if the job is completed or claimed by another worker.

        Raises:
            JobNotFound: If the job does not exist.
        """
        job = await self._repo.get(job_id)
        if job is None:
            raise JobNotFound(job_id)

        if message is None:
            message = job.failure_message

        count = await self._repo.update_all_where(
            self._target(job_id, workerkey),
            failed=QueuedJob.failed + 1,
            failure_message=message,
        )
        if count:
            logger.warning(
                "Job failed",
                extra={"job_id": job_id, "failed": job.failed + 1, "error": message}
            )
        return count > 0

    async def reset(self) -> int:
        """
        Return every active job to its initial state.

        Administrative recovery only. Returns the number of reset jobs.
        """
        count = await self._repo.update_all_where(
            QueuedJob.completed.is_(None),
            completed=None,
            fetched=None,
            progress=0.0,
            failed=0,
            workerkey=None,
            failure_message=None,
        )
        logger.warning(f"Reset {count} active jobs")
        return count

    async def clean_old_jobs(self, retention_seconds: int | None = None) -> int:
        """
        Delete jobs completed longer than the retention period ago.

        Args:
            retention_seconds: Defaults to the configured cleanup timeout.

        Returns:
            Number of deleted jobs.
        """
        if retention_seconds is None:
            retention_seconds = get_settings().cleanup_timeout_seconds

        cutoff = self._clock() - timedelta(seconds=retention_seconds)
        count = await self._repo.delete_where(QueuedJob.completed < cutoff)

        if count > 0:
            logger.info(
                f"Deleted {count} old jobs",
                extra={"cutoff": cutoff.isoformat()}
            )
        return count

    async def clear_duplicates(
        self,
        keep: DuplicatePolicy = DuplicatePolicy.OLDEST,
    ) -> int:
        """
        Delete active jobs that duplicate another active job.

        Jobs are duplicates when both jobtype and data are identical. Per
        group exactly one job survives: the lowest id for OLDEST, the highest
        for NEWEST.

        Returns:
            Number of deleted jobs.
        """
        rows = await self._repo.select_rows(
            [QueuedJob.id, QueuedJob.jobtype, QueuedJob.data],
            condition=QueuedJob.completed.is_(None),
            order_by=[QueuedJob.id.asc()],
        )

        groups: dict[tuple[str, bytes | None], list[int]] = defaultdict(list)
        for row in rows:
            groups[(row.jobtype, row.data)].append(row.id)

        doomed: list[int] = []
        for ids in groups.values():
            if len(ids) < 2:
                continue
            doomed.extend(ids[1:] if keep == DuplicatePolicy.OLDEST else ids[:-1])

        deleted = 0
        for start in range(0, len(doomed), DUPLICATE_DELETE_BATCH_SIZE):
            batch = doomed[start:start + DUPLICATE_DELETE_BATCH_SIZE]
            deleted += await self._repo.delete_where(QueuedJob.id.in_(batch))

        if deleted:
            logger.info(
                f"Deleted {deleted} duplicate jobs",
                extra={"keep": keep.value}
            )
        return deleted
