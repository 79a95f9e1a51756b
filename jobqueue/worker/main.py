"""
Worker process for executing jobs.

The worker polls the queue with the capabilities of its registered tasks,
executes what it claims and reports completion or failure back. A worker
that dies mid-job is recovered by the timeout reclaim of the next poll.
"""

import asyncio
import importlib
import logging
import signal
import time

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from jobqueue.config import get_settings
from jobqueue.constants import SPAN_EXECUTE_JOB
from jobqueue.db import close_db, get_session_context, init_db
from jobqueue.db.models import QueuedJob
from jobqueue.observability.logging import bind_context, clear_context, setup_logging
from jobqueue.observability.metrics import get_metrics
from jobqueue.observability.tracing import get_tracer, setup_tracing
from jobqueue.queue.allocator import JobAllocator
from jobqueue.queue.lifecycle import JobLifecycle
from jobqueue.types.job import JobContext, JobResult
from jobqueue.worker.handlers import TaskRegistry, execute_job, registry

logger = logging.getLogger(__name__)


class Worker:
    """
    Job worker that polls for and executes jobs one at a time.

    Features:
    - Atomic claims through the allocator
    - Progress reporting from inside handlers
    - Graceful shutdown on SIGTERM/SIGINT
    """

    def __init__(
        self,
        tasks: TaskRegistry | None = None,
        group: str | None = None,
        poll_interval: float | None = None,
        allocator: JobAllocator | None = None,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
    ):
        """
        Initialize the worker.

        Args:
            tasks: Registered tasks. Defaults to the global registry.
            group: Only take jobs of this task group.
            poll_interval: Seconds between polls when the queue is empty.
            allocator: Allocator to poll with. One per worker by default.
            session_factory: Session factory instead of the global one.
        """
        settings = get_settings()

        self.tasks = tasks or registry
        self.group = group if group is not None else settings.worker_group
        self.poll_interval = poll_interval or settings.worker_poll_interval_seconds
        self.allocator = allocator or JobAllocator()
        self._session_factory = session_factory

        self._running = False
        self._metrics = get_metrics()

    @property
    def workerkey(self) -> str:
        return self.allocator.identity.key()

    async def start(self) -> None:
        """Start the worker."""
        logger.info(
            "Worker starting",
            extra={"jobtypes": self.tasks.jobtypes(), "task_group": self.group}
        )

        self._running = True

        while self._running:
            try:
                processed = await self.run_once()

                if not processed:
                    await asyncio.sleep(self.poll_interval)

            except Exception as e:
                logger.exception(f"Error in worker loop: {e}")
                await asyncio.sleep(self.poll_interval)

        logger.info("Worker stopped")

    async def stop(self) -> None:
        """Stop the worker after the current job."""
        logger.info("Worker stopping")
        self._running = False

    async def run_once(self) -> bool:
        """
        Poll once and execute the claimed job, if any.

        Returns:
            True if a job was executed.
        """
        capabilities = self.tasks.capabilities()
        if not capabilities:
            logger.warning("No tasks registered, nothing to poll for")
            return False

        async with get_session_context(self._session_factory) as session:
            job = await self.allocator.request_job(session, capabilities, self.group)

        if job is None:
            return False

        await self._execute_job(job)
        return True

    async def _execute_job(self, job: QueuedJob) -> None:
        """
        Execute a single claimed job and report the outcome.

        Args:
            job: The claimed job.
        """
        start_time = time.time()
        task = self.tasks.get(job.jobtype)

        context = JobContext(
            job_id=job.id,
            jobtype=job.jobtype,
            payload=job.payload,
            reference=job.reference,
            failed=job.failed,
            retries=task.capability.retries if task else 0,
            workerkey=self.workerkey,
            report_progress=lambda progress: self._report_progress(job.id, progress),
        )

        logger.info(
            "Executing job",
            extra={"job_id": job.id, "jobtype": job.jobtype, "failed": job.failed}
        )

        with get_tracer().start_as_current_span(SPAN_EXECUTE_JOB) as span:
            span.set_attribute("job_id", job.id)
            span.set_attribute("jobtype", job.jobtype)
            span.set_attribute("failed", job.failed)

            result = await execute_job(context, self.tasks)

        duration = time.time() - start_time

        try:
            await self._report_result(job, result)
        except Exception:
            logger.exception(
                "Failed to report job result",
                extra={"job_id": job.id}
            )
            raise
        finally:
            self._metrics.record_job_finished(
                jobtype=job.jobtype,
                outcome="succeeded" if result.success else "failed",
                duration_seconds=duration,
            )

    async def _report_result(self, job: QueuedJob, result: JobResult) -> None:
        async with get_session_context(self._session_factory) as session:
            lifecycle = JobLifecycle(session)
            if result.success:
                reported = await lifecycle.mark_job_done(job.id, workerkey=self.workerkey)
            else:
                reported = await lifecycle.mark_job_failed(
                    job.id,
                    result.error or "Unknown error",
                    workerkey=self.workerkey,
                )

        if not reported:
            logger.warning(
                "Job was reclaimed by another worker, result ignored",
                extra={"job_id": job.id, "success": result.success}
            )

    async def _report_progress(self, job_id: int, progress: float) -> bool:
        async with get_session_context(self._session_factory) as session:
            return await JobLifecycle(session).update_progress(
                job_id, progress, workerkey=self.workerkey
            )


async def run_async() -> None:
    """Run the worker asynchronously."""
    setup_logging()
    setup_tracing("worker")

    # Task modules register their handlers on import
    for module in get_settings().worker_task_modules:
        importlib.import_module(module)

    await init_db()

    worker = Worker()
    bind_context(workerkey=worker.workerkey)

    loop = asyncio.get_running_loop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda: asyncio.create_task(worker.stop())
        )

    try:
        await worker.start()
    finally:
        clear_context()
        await close_db()


def run() -> None:
    """Run the worker."""
    asyncio.run(run_async())


if __name__ == "__main__":
    run()
