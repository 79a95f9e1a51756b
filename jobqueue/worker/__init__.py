"""
Worker module.
Contains the polling worker and the task registry.
"""

from jobqueue.worker.handlers import TaskRegistry, register_task, registry
from jobqueue.worker.main import Worker, run

__all__ = ["Worker", "TaskRegistry", "register_task", "registry", "run"]
