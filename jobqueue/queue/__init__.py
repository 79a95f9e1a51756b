"""
Queue core.
Allocation engine, lifecycle operations and reporting.
"""

from jobqueue.queue.allocator import JobAllocator
from jobqueue.queue.identity import WorkerIdentity
from jobqueue.queue.lifecycle import JobLifecycle
from jobqueue.queue.rate_limit import DispatchRateLimiter
from jobqueue.queue.reporting import JobReports

__all__ = [
    "JobAllocator",
    "JobLifecycle",
    "JobReports",
    "DispatchRateLimiter",
    "WorkerIdentity",
]
