"""
SQLAlchemy database models.
Defines the queued_jobs table.
"""

import json
from datetime import datetime
from typing import Any

from sqlalchemy import (
    DateTime,
    Float,
    Index,
    Integer,
    LargeBinary,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from jobqueue.constants import JobState
from jobqueue.utils import utcnow


def job_state(fetched: datetime | None, completed: datetime | None) -> JobState:
    """Derive the lifecycle state from the claim and completion timestamps."""
    if completed is not None:
        return JobState.COMPLETED
    if fetched is not None:
        return JobState.IN_PROGRESS
    return JobState.QUEUED


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class QueuedJob(Base):
    """
    A unit of work in the queue.

    This is the authoritative source of truth for job state. There is no
    status column: the state is derived from the timestamps.

    - completed IS NULL means the job is still active (pending or in flight)
    - fetched and workerkey record the most recent claim
    - failed counts explicit failures and timeout reclaims
    """

    __tablename__ = "queued_jobs"

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )

    jobtype: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    # Opaque payload; the queue never interprets it
    data: Mapped[bytes | None] = mapped_column(
        LargeBinary,
        nullable=True,
    )

    task_group: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    reference: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    notbefore: Mapped[datetime | None] = mapped_column(
        DateTime,
        nullable=True,
    )
    created: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=utcnow,
    )
    fetched: Mapped[datetime | None] = mapped_column(
        DateTime,
        nullable=True,
    )
    completed: Mapped[datetime | None] = mapped_column(
        DateTime,
        nullable=True,
    )

    progress: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        default=0.0,
    )
    failed: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )
    failure_message: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    workerkey: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
    )

    __table_args__ = (
        # Candidate lookup
        Index("ix_queued_jobs_poll", "completed", "jobtype", "notbefore"),
        Index("ix_queued_jobs_completed", "completed"),
        Index("ix_queued_jobs_reference", "reference"),
    )

    @property
    def payload(self) -> Any:
        """Decode the stored JSON payload."""
        if self.data is None:
            return None
        return json.loads(self.data.decode("utf-8"))

    @property
    def state(self) -> JobState:
        """Derived lifecycle state."""
        return job_state(self.fetched, self.completed)

    def __repr__(self) -> str:
        return (
            f"QueuedJob(id={self.id}, jobtype={self.jobtype}, "
            f"state={self.state}, failed={self.failed})"
        )
