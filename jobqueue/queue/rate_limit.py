"""
Per job type dispatch throttling.
"""

from datetime import datetime, timedelta


class DispatchRateLimiter:
    """
    In-memory record of the last dispatch time per job type.

    Owned by a single allocator. The history is not persisted and not shared
    between processes, so the limit only holds per worker process.
    """

    def __init__(self) -> None:
        self._history: dict[str, datetime] = {}

    def last_dispatch(self, jobtype: str) -> datetime | None:
        """Get the time of the last successful claim for a job type."""
        return self._history.get(jobtype)

    def allows(self, jobtype: str, rate: float | None, now: datetime) -> bool:
        """
        Check whether a job type may be dispatched again.

        Args:
            jobtype: The job type.
            rate: Minimum seconds between dispatches, None for unthrottled.
            now: Current time.

        Returns:
            True if no rate applies, nothing was dispatched yet, or the
            interval has elapsed.
        """
        if rate is None:
            return True
        last = self._history.get(jobtype)
        if last is None:
            return True
        return now >= last + timedelta(seconds=rate)

    def record(self, jobtype: str, now: datetime) -> None:
        """Record a successful claim."""
        self._history[jobtype] = now

    def reset(self, jobtype: str | None = None) -> None:
        """Forget the history of one job type, or of all of them."""
        if jobtype is None:
            self._history.clear()
        else:
            self._history.pop(jobtype, None)
