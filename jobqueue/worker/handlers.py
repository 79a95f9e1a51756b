"""
Task registry.

A task is an async callable bound to a job type together with the
capability the worker advertises for it. Handlers may run more than once
for the same job (after a timeout reclaim or a failure) and should be
idempotent.
"""

import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from jobqueue.types.job import Capability, JobContext, JobResult

logger = logging.getLogger(__name__)

# Type alias for task handler functions
TaskHandler = Callable[[JobContext], Awaitable[JobResult]]


@dataclass
class RegisteredTask:
    """A handler and the capability advertised for it."""

    capability: Capability
    handler: TaskHandler


class TaskRegistry:
    """Maps job types to registered tasks."""

    def __init__(self) -> None:
        self._tasks: dict[str, RegisteredTask] = {}

    def register(
        self,
        jobtype: str,
        timeout: float = 120,
        retries: int = 1,
        rate: float | None = None,
    ) -> Callable[[TaskHandler], TaskHandler]:
        """
        Decorator to register a task handler.

        Args:
            jobtype: The job type this handler processes.
            timeout: Seconds after which an unfinished claim is reclaimed.
            retries: Additional attempts after the first one.
            rate: Minimum seconds between two dispatches of this type.

        Example:
            @registry.register("send_mail", timeout=60, retries=2)
            async def send_mail(context: JobContext) -> JobResult:
                ...
        """
        capability = Capability(jobtype=jobtype, timeout=timeout, retries=retries, rate=rate)

        def decorator(handler: TaskHandler) -> TaskHandler:
            self._tasks[jobtype] = RegisteredTask(capability=capability, handler=handler)
            logger.info(f"Registered task for job type: {jobtype}")
            return handler
        return decorator

    def get(self, jobtype: str) -> RegisteredTask | None:
        """Get the task registered for a job type."""
        return self._tasks.get(jobtype)

    def capabilities(self) -> list[Capability]:
        """Capabilities of every registered task, in registration order."""
        return [task.capability for task in self._tasks.values()]

    def jobtypes(self) -> list[str]:
        """List all registered job types."""
        return list(self._tasks.keys())


# Default registry used by the worker runtime
registry = TaskRegistry()
register_task = registry.register


async def execute_job(context: JobContext, tasks: TaskRegistry | None = None) -> JobResult:
    """
    Execute a job with its registered handler.

    Handler exceptions are turned into failed results.

    Args:
        context: The job context.
        tasks: Registry to look the handler up in. Defaults to the global one.

    Returns:
        JobResult from the handler.
    """
    tasks = tasks or registry
    task = tasks.get(context.jobtype)

    if task is None:
        logger.error(
            f"No handler for job type: {context.jobtype}",
            extra={"job_id": context.job_id}
        )
        return JobResult(
            success=False,
            error=f"No handler registered for job type: {context.jobtype}",
        )

    start = time.monotonic()
    try:
        result = await task.handler(context)
    except Exception as e:
        logger.exception(
            "Handler raised exception",
            extra={"job_id": context.job_id, "error": str(e)}
        )
        return JobResult(
            success=False,
            error=f"Handler exception: {e}",
        )

    logger.debug(
        "Handler finished",
        extra={
            "job_id": context.job_id,
            "success": result.success,
            "duration": f"{time.monotonic() - start:.2f}s",
        }
    )
    return result
