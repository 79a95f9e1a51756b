"""Initial schema with queued_jobs table

Revision ID: 001
Revises: 
Create Date: 2024-01-01 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "queued_jobs",
        sa.Column("id", sa.Integer, autoincrement=True, nullable=False),
        sa.Column("jobtype", sa.String(255), nullable=False),
        sa.Column("data", sa.LargeBinary, nullable=True),
        sa.Column("task_group", sa.String(255), nullable=True),
        sa.Column("reference", sa.String(255), nullable=True),
        sa.Column("notbefore", sa.DateTime, nullable=True),
        sa.Column("created", sa.DateTime, nullable=False),
        sa.Column("fetched", sa.DateTime, nullable=True),
        sa.Column("completed", sa.DateTime, nullable=True),
        sa.Column("progress", sa.Float, nullable=False, server_default="0"),
        sa.Column("failed", sa.Integer, nullable=False, server_default="0"),
        sa.Column("failure_message", sa.Text, nullable=True),
        sa.Column("workerkey", sa.String(64), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_index(
        "ix_queued_jobs_poll",
        "queued_jobs",
        ["completed", "jobtype", "notbefore"],
    )
    op.create_index("ix_queued_jobs_completed", "queued_jobs", ["completed"])
    op.create_index("ix_queued_jobs_reference", "queued_jobs", ["reference"])


def downgrade() -> None:
    op.drop_index("ix_queued_jobs_reference")
    op.drop_index("ix_queued_jobs_completed")
    op.drop_index("ix_queued_jobs_poll")

    op.drop_table("queued_jobs")
