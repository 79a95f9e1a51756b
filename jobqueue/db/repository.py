"""
Job store for database operations.
Implements the data access primitives the allocator, lifecycle and reporting
layers are built on.
"""

import logging
from collections.abc import Sequence
from datetime import datetime
from typing import Any

from sqlalchemy import (
    ColumnElement,
    Row,
    and_,
    delete,
    func,
    insert,
    select,
    update,
)
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from jobqueue.constants import TIMEOUT_FAILURE_MESSAGE
from jobqueue.db.models import QueuedJob
from jobqueue.exceptions import StoreUnavailable

logger = logging.getLogger(__name__)


class JobRepository:
    """
    Repository for queued job database operations.

    Implements:
    - Insertion of new jobs
    - Single best-candidate lookup
    - Atomic compare-and-swap claim
    - Generic bulk update, delete and count

    The repository never commits; the caller owns the transaction.
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize the repository with a database session.

        Args:
            session: The async database session.
        """
        self._session = session

    async def _execute(self, stmt: Any) -> Any:
        """Execute a statement, translating transport failures."""
        try:
            return await self._session.execute(stmt)
        except (OperationalError, InterfaceError, OSError) as e:
            logger.error("Job store unavailable", extra={"error": str(e)})
            raise StoreUnavailable(str(e)) from e

    async def insert(self, **fields: Any) -> QueuedJob:
        """
        Persist a new job.

        Args:
            **fields: Column values for the new row.

        Returns:
            The inserted QueuedJob with its generated id.
        """
        stmt = insert(QueuedJob).values(completed=None, **fields).returning(QueuedJob)
        result = await self._execute(stmt)
        job = result.scalar_one()

        logger.info(
            "Inserted job",
            extra={"job_id": job.id, "jobtype": job.jobtype}
        )
        return job

    async def get(self, job_id: int) -> QueuedJob | None:
        """
        Get a job by ID.

        Args:
            job_id: The job id.

        Returns:
            The QueuedJob or None if not found.
        """
        stmt = (
            select(QueuedJob)
            .where(QueuedJob.id == job_id)
            .execution_options(populate_existing=True)
        )
        result = await self._execute(stmt)
        return result.scalar_one_or_none()

    async def find_best_candidate(
        self,
        condition: ColumnElement[bool],
        ordering: Sequence[Any],
    ) -> QueuedJob | None:
        """
        Return the single row matching the condition with the lowest ordering key.

        Args:
            condition: Complete WHERE clause.
            ordering: ORDER BY expressions, most significant first.

        Returns:
            The best QueuedJob or None if nothing matches.
        """
        stmt = (
            select(QueuedJob)
            .where(condition)
            .order_by(*ordering)
            .limit(1)
            .execution_options(populate_existing=True)
        )
        result = await self._execute(stmt)
        return result.scalars().first()

    async def claim(self, job: QueuedJob, workerkey: str, now: datetime) -> bool:
        """
        Atomically claim a candidate for a worker.

        A single conditional UPDATE that only matches when the row is still
        active and its fetched/failed values are exactly the ones observed when
        the candidate was selected. If the candidate had been fetched before,
        the same statement records the timeout reclaim.

        Args:
            job: The candidate as returned by find_best_candidate.
            workerkey: Identity of the claiming worker.
            now: Claim timestamp.

        Returns:
            True if this call won the claim, False if the row changed underneath.
        """
        conditions = [
            QueuedJob.id == job.id,
            QueuedJob.completed.is_(None),
            QueuedJob.failed == job.failed,
        ]
        values: dict[str, Any] = {
            "fetched": now,
            "workerkey": workerkey,
        }

        if job.fetched is None:
            conditions.append(QueuedJob.fetched.is_(None))
        else:
            conditions.append(QueuedJob.fetched == job.fetched)
            values["failed"] = QueuedJob.failed + 1
            values["failure_message"] = TIMEOUT_FAILURE_MESSAGE

        stmt = (
            update(QueuedJob)
            .where(and_(*conditions))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self._execute(stmt)
        if result.rowcount != 1:
            return False

        try:
            await self._session.refresh(job)
        except (OperationalError, InterfaceError, OSError) as e:
            raise StoreUnavailable(str(e)) from e
        return True

    async def update_all_where(
        self,
        condition: ColumnElement[bool],
        **fields: Any,
    ) -> int:
        """
        Update every row matching the condition.

        Returns:
            Number of updated rows.
        """
        stmt = (
            update(QueuedJob)
            .where(condition)
            .values(**fields)
            .execution_options(synchronize_session=False)
        )
        result = await self._execute(stmt)
        return result.rowcount

    async def delete_where(self, condition: ColumnElement[bool]) -> int:
        """
        Delete every row matching the condition.

        Returns:
            Number of deleted rows.
        """
        stmt = (
            delete(QueuedJob)
            .where(condition)
            .execution_options(synchronize_session=False)
        )
        result = await self._execute(stmt)
        return result.rowcount

    async def count_where(self, condition: ColumnElement[bool] | None = None) -> int:
        """Count rows matching the condition (all rows if None)."""
        stmt = select(func.count()).select_from(QueuedJob)
        if condition is not None:
            stmt = stmt.where(condition)
        result = await self._execute(stmt)
        return result.scalar() or 0

    async def select_rows(
        self,
        columns: Sequence[Any],
        condition: ColumnElement[bool] | None = None,
        order_by: Sequence[Any] = (),
        group_by: Sequence[Any] = (),
    ) -> Sequence[Row]:
        """
        Read a projection of the table.

        Args:
            columns: Columns or expressions to select.
            condition: Optional WHERE clause.
            order_by: ORDER BY expressions.
            group_by: GROUP BY expressions.

        Returns:
            Result rows.
        """
        stmt = select(*columns)
        if condition is not None:
            stmt = stmt.where(condition)
        if group_by:
            stmt = stmt.group_by(*group_by)
        if order_by:
            stmt = stmt.order_by(*order_by)
        result = await self._execute(stmt)
        return result.all()

    async def truncate(self) -> int:
        """Delete every job."""
        stmt = delete(QueuedJob).execution_options(synchronize_session=False)
        result = await self._execute(stmt)
        count = result.rowcount
        logger.warning(f"Truncated job table ({count} rows)")
        return count
