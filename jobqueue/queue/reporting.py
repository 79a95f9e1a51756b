"""
Read-only reporting over the job table.
"""

from collections import defaultdict
from collections.abc import Iterable
from datetime import datetime

from sqlalchemy import and_, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from jobqueue.db.models import QueuedJob, job_state
from jobqueue.db.repository import JobRepository
from jobqueue.types.job import JobTypeStats, PendingJob, ProgressEntry


def _average(values: list[float]) -> float | None:
    if not values:
        return None
    return sum(values) / len(values)


class JobReports:
    """Aggregate queries for monitoring. None of them change state."""

    def __init__(self, session: AsyncSession):
        self._repo = JobRepository(session)

    async def get_length(self, jobtype: str | None = None) -> int:
        """Number of active jobs, optionally of a single type."""
        condition = QueuedJob.completed.is_(None)
        if jobtype is not None:
            condition = and_(condition, QueuedJob.jobtype == jobtype)
        return await self._repo.count_where(condition)

    async def get_types(self) -> list[str]:
        """All job types present in the table."""
        rows = await self._repo.select_rows(
            [QueuedJob.jobtype],
            group_by=[QueuedJob.jobtype],
            order_by=[QueuedJob.jobtype],
        )
        return [row.jobtype for row in rows]

    async def get_stats(self) -> list[JobTypeStats]:
        """
        Average timings of finished jobs still in the table, per job type.

        - alltime: completed - created
        - runtime: completed - fetched
        - fetchdelay: fetched - (notbefore or created)

        Durations are computed here rather than in SQL so the query stays
        the same on every backend.
        """
        rows = await self._repo.select_rows(
            [
                QueuedJob.jobtype,
                QueuedJob.created,
                QueuedJob.notbefore,
                QueuedJob.fetched,
                QueuedJob.completed,
            ],
            condition=QueuedJob.completed.is_not(None),
            order_by=[QueuedJob.jobtype],
        )

        alltime: dict[str, list[float]] = defaultdict(list)
        runtime: dict[str, list[float]] = defaultdict(list)
        fetchdelay: dict[str, list[float]] = defaultdict(list)
        counts: dict[str, int] = defaultdict(int)

        for row in rows:
            counts[row.jobtype] += 1
            alltime[row.jobtype].append((row.completed - row.created).total_seconds())
            if row.fetched is not None:
                runtime[row.jobtype].append((row.completed - row.fetched).total_seconds())
                start = row.notbefore or row.created
                fetchdelay[row.jobtype].append((row.fetched - start).total_seconds())

        return [
            JobTypeStats(
                jobtype=jobtype,
                num=num,
                alltime=_average(alltime[jobtype]),
                runtime=_average(runtime[jobtype]),
                fetchdelay=_average(fetchdelay[jobtype]),
            )
            for jobtype, num in counts.items()
        ]

    async def get_pending_stats(self) -> list[PendingJob]:
        """Summaries of all active jobs, oldest first."""
        rows = await self._repo.select_rows(
            [
                QueuedJob.id,
                QueuedJob.jobtype,
                QueuedJob.created,
                QueuedJob.fetched,
                QueuedJob.completed,
                QueuedJob.progress,
                QueuedJob.reference,
                QueuedJob.failed,
                QueuedJob.failure_message,
            ],
            condition=QueuedJob.completed.is_(None),
            order_by=[QueuedJob.id],
        )
        return [
            PendingJob(
                id=row.id,
                jobtype=row.jobtype,
                created=row.created,
                status=job_state(row.fetched, row.completed),
                fetched=row.fetched,
                progress=row.progress,
                reference=row.reference,
                failed=row.failed,
                failure_message=row.failure_message,
            )
            for row in rows
        ]

    async def find_progress(
        self,
        group: str | None = None,
        exclude: Iterable[str] | None = None,
    ) -> list[ProgressEntry]:
        """
        Progress of active jobs, keyed by reference.

        Args:
            group: Only jobs of this task group.
            exclude: References to leave out.

        Returns:
            Entries carrying progress and failure_message only when set.
        """
        filters = [QueuedJob.completed.is_(None)]
        if group is not None:
            filters.append(QueuedJob.task_group == group)
        excluded = [ref.strip() for ref in exclude or () if ref and ref.strip()]
        if excluded:
            filters.append(or_(QueuedJob.reference.is_(None), QueuedJob.reference.not_in(excluded)))

        rows = await self._repo.select_rows(
            [
                QueuedJob.reference,
                QueuedJob.fetched,
                QueuedJob.completed,
                QueuedJob.progress,
                QueuedJob.failure_message,
            ],
            condition=and_(*filters),
            order_by=[QueuedJob.id],
        )
        return [
            ProgressEntry(
                reference=row.reference,
                status=job_state(row.fetched, row.completed),
                progress=row.progress or None,
                failure_message=row.failure_message or None,
            )
            for row in rows
        ]

    async def last_completed(self) -> datetime | None:
        """Timestamp of the most recently completed job."""
        rows = await self._repo.select_rows([func.max(QueuedJob.completed).label("last")])
        return rows[0].last if rows else None
