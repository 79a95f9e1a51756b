"""
Database module.
Contains database connection, models, and the job store.
"""

from jobqueue.db.connection import (
    close_db,
    create_schema,
    create_session_factory,
    get_async_session,
    get_engine,
    get_session_context,
    init_db,
)
from jobqueue.db.models import Base, QueuedJob

__all__ = [
    "get_async_session",
    "get_session_context",
    "get_engine",
    "init_db",
    "close_db",
    "create_schema",
    "create_session_factory",
    "QueuedJob",
    "Base",
]
