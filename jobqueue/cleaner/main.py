"""
Periodic cleanup of finished jobs.

Completed jobs stay in the table for reporting until the retention period
has passed; the cleaner deletes them afterwards. Active jobs are never
touched.
"""

import asyncio
import logging
import signal

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from jobqueue.config import get_settings
from jobqueue.db import close_db, get_session_context, init_db
from jobqueue.observability.logging import setup_logging
from jobqueue.observability.metrics import get_metrics
from jobqueue.observability.tracing import setup_tracing
from jobqueue.queue.lifecycle import JobLifecycle
from jobqueue.queue.reporting import JobReports

logger = logging.getLogger(__name__)


class Cleaner:
    """
    Deletes old completed jobs at a fixed interval.

    Each run also refreshes the queue depth gauge per job type.
    """

    def __init__(
        self,
        interval_seconds: int | None = None,
        retention_seconds: int | None = None,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
    ):
        """
        Initialize the cleaner.

        Args:
            interval_seconds: Seconds between runs.
            retention_seconds: How long completed jobs are kept.
            session_factory: Session factory instead of the global one.
        """
        settings = get_settings()
        self.interval = interval_seconds or settings.cleaner_interval_seconds
        self.retention = retention_seconds or settings.cleanup_timeout_seconds
        self._session_factory = session_factory
        self._running = False
        self._metrics = get_metrics()

    async def start(self) -> None:
        """Start the cleanup loop."""
        logger.info(
            f"Cleaner starting with interval {self.interval}s",
            extra={"retention_seconds": self.retention}
        )
        self._running = True

        while self._running:
            try:
                await self.run_once()
            except Exception as e:
                logger.exception(f"Error in cleaner loop: {e}")

            await asyncio.sleep(self.interval)

        logger.info("Cleaner stopped")

    async def stop(self) -> None:
        """Stop the cleaner."""
        logger.info("Cleaner stopping")
        self._running = False

    async def run_once(self) -> int:
        """
        Run a single cleanup pass (for tests or cron-style execution).

        Returns:
            Number of deleted jobs.
        """
        async with get_session_context(self._session_factory) as session:
            deleted = await JobLifecycle(session).clean_old_jobs(self.retention)

            reports = JobReports(session)
            for jobtype in await reports.get_types():
                self._metrics.update_queue_depth(jobtype, await reports.get_length(jobtype))

        return deleted


async def run_async() -> None:
    """Run the cleaner asynchronously."""
    setup_logging()
    setup_tracing("cleaner")
    await init_db()

    cleaner = Cleaner()

    loop = asyncio.get_running_loop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda: asyncio.create_task(cleaner.stop())
        )

    try:
        await cleaner.start()
    finally:
        await close_db()


def run() -> None:
    """Run the cleaner."""
    asyncio.run(run_async())


if __name__ == "__main__":
    run()
