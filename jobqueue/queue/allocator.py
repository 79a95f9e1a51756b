"""
Job allocation.

Selects the single best eligible job for a worker's capabilities and claims
it. Correctness under concurrent pollers relies entirely on the atomic claim
in JobRepository.claim: the loser of a race re-polls instead of returning a
job it does not own.
"""

import logging
from collections.abc import Callable, Sequence
from datetime import datetime, timedelta

from sqlalchemy import ColumnElement, and_, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from jobqueue.config import get_settings
from jobqueue.constants import SPAN_REQUEST_JOB
from jobqueue.db.models import QueuedJob
from jobqueue.db.repository import JobRepository
from jobqueue.exceptions import ClaimConflict
from jobqueue.observability.metrics import get_metrics
from jobqueue.observability.tracing import get_tracer
from jobqueue.queue.identity import WorkerIdentity
from jobqueue.queue.rate_limit import DispatchRateLimiter
from jobqueue.types.job import Capability
from jobqueue.utils import utcnow

logger = logging.getLogger(__name__)


class JobAllocator:
    """
    Hands out jobs to one worker process.

    Each allocator owns its worker identity and its dispatch rate history.
    Two allocators never share either unless they are constructed with the
    same instances.
    """

    def __init__(
        self,
        identity: WorkerIdentity | None = None,
        rate_limiter: DispatchRateLimiter | None = None,
        clock: Callable[[], datetime] = utcnow,
        max_claim_attempts: int | None = None,
    ):
        """
        Initialize the allocator.

        Args:
            identity: Worker identity written on claims. A new one by default.
            rate_limiter: Dispatch history. A new, empty one by default.
            clock: Source of the current naive UTC time.
            max_claim_attempts: Lost claim races tolerated per request.
        """
        settings = get_settings()

        self.identity = identity or WorkerIdentity()
        self.rate_limiter = rate_limiter or DispatchRateLimiter()
        self._clock = clock
        self.max_claim_attempts = max_claim_attempts or settings.worker_max_claim_attempts
        self._metrics = get_metrics()

    def build_condition(
        self,
        capabilities: Sequence[Capability],
        now: datetime,
        group: str | None = None,
    ) -> ColumnElement[bool] | None:
        """
        Build the eligibility WHERE clause for a poll.

        Returns:
            The clause, or None when every capability is currently throttled.
        """
        per_capability = []
        for capability in capabilities:
            if not self.rate_limiter.allows(capability.jobtype, capability.rate, now):
                logger.debug(
                    "Job type throttled",
                    extra={"jobtype": capability.jobtype, "rate": capability.rate}
                )
                continue

            # A reclaim counts as a failure, so it needs one unit of budget left
            timed_out_before = now - timedelta(seconds=capability.timeout)
            per_capability.append(
                and_(
                    QueuedJob.jobtype == capability.jobtype,
                    or_(QueuedJob.notbefore.is_(None), QueuedJob.notbefore < now),
                    or_(
                        and_(
                            QueuedJob.fetched.is_(None),
                            QueuedJob.failed < capability.retries + 1,
                        ),
                        and_(
                            QueuedJob.fetched < timed_out_before,
                            QueuedJob.failed < capability.retries,
                        ),
                    ),
                )
            )

        if not per_capability:
            return None

        filters = [QueuedJob.completed.is_(None), or_(*per_capability)]
        if group is not None:
            filters.append(QueuedJob.task_group == group)
        return and_(*filters)

    @staticmethod
    def ordering(now: datetime) -> list:
        """
        Earliest-eligible first, FIFO among equals.

        Sorting by notbefore with NULL treated as now is the same as sorting
        by the signed distance between now and notbefore.
        """
        return [func.coalesce(QueuedJob.notbefore, now).asc(), QueuedJob.id.asc()]

    async def request_job(
        self,
        session: AsyncSession,
        capabilities: Sequence[Capability],
        group: str | None = None,
    ) -> QueuedJob | None:
        """
        Find and claim the best eligible job.

        Args:
            session: Session the claim is executed in. The caller commits.
            capabilities: What the worker can execute. Must not be empty.
            group: Only consider jobs of this task group.

        Returns:
            The claimed job, or None if nothing is eligible.

        Raises:
            ValueError: If no capabilities are given.
            StoreUnavailable: If the store cannot be reached.
        """
        if not capabilities:
            raise ValueError("At least one capability is required")

        repo = JobRepository(session)
        workerkey = self.identity.key()

        with get_tracer().start_as_current_span(SPAN_REQUEST_JOB) as span:
            span.set_attribute("jobtypes", ",".join(c.jobtype for c in capabilities))
            if group is not None:
                span.set_attribute("task_group", group)

            for attempt in range(1, self.max_claim_attempts + 1):
                now = self._clock()
                condition = self.build_condition(capabilities, now, group)
                if condition is None:
                    return None

                candidate = await repo.find_best_candidate(condition, self.ordering(now))
                if candidate is None:
                    return None

                reclaimed = candidate.fetched is not None
                try:
                    await self._claim(repo, candidate, workerkey, now)
                except ClaimConflict:
                    self._metrics.record_claim_conflict(candidate.jobtype)
                    logger.info(
                        "Lost claim race, polling again",
                        extra={"job_id": candidate.id, "attempt": attempt}
                    )
                    continue

                self.rate_limiter.record(candidate.jobtype, now)
                self._metrics.record_job_claimed(candidate.jobtype)
                if reclaimed:
                    self._metrics.record_timeout_reclaim(candidate.jobtype)
                    logger.info(
                        "Reclaimed timed out job",
                        extra={"job_id": candidate.id, "failed": candidate.failed}
                    )

                span.set_attribute("job_id", candidate.id)
                logger.info(
                    "Claimed job",
                    extra={
                        "job_id": candidate.id,
                        "jobtype": candidate.jobtype,
                        "workerkey": workerkey,
                    }
                )
                return candidate

        logger.warning(
            f"Gave up after losing {self.max_claim_attempts} claim races",
            extra={"workerkey": workerkey}
        )
        return None

    async def _claim(
        self,
        repo: JobRepository,
        candidate: QueuedJob,
        workerkey: str,
        now: datetime,
    ) -> None:
        if not await repo.claim(candidate, workerkey, now):
            raise ClaimConflict(candidate.id)
