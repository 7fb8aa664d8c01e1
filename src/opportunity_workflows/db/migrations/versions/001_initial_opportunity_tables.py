"""Initial opportunity workflow tables.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

json_type = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    """Create the progress and step tables."""
    # Create opportunity_progress table
    op.create_table(
        "opportunity_progress",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("opportunity_id", sa.String(length=255), nullable=False),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("current_step", sa.Integer(), nullable=False),
        sa.Column("total_steps", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=50), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_activity_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("step_data", json_type, nullable=True),
        sa.Column("cancel_reason", sa.Text(), nullable=True),
        sa.Column("sa_orm_sentinel", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("opportunity_id"),
    )
    op.create_index(
        "ix_opportunity_progress_user_id",
        "opportunity_progress",
        ["user_id"],
    )
    op.create_index(
        "ix_opportunity_progress_status",
        "opportunity_progress",
        ["status"],
    )

    # Create opportunity_steps table
    op.create_table(
        "opportunity_steps",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("progress_id", sa.Uuid(), nullable=False),
        sa.Column("step_number", sa.Integer(), nullable=False),
        sa.Column("step_kind", sa.String(length=50), nullable=False),
        sa.Column("status", sa.String(length=50), nullable=False),
        sa.Column("data", json_type, nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sa_orm_sentinel", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["progress_id"],
            ["opportunity_progress.id"],
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("progress_id", "step_number", name="uq_opportunity_steps_progress_step"),
    )
    op.create_index(
        "ix_opportunity_steps_progress_id",
        "opportunity_steps",
        ["progress_id"],
    )


def downgrade() -> None:
    """Drop the progress and step tables."""
    op.drop_index("ix_opportunity_steps_progress_id", table_name="opportunity_steps")
    op.drop_table("opportunity_steps")

    op.drop_index("ix_opportunity_progress_status", table_name="opportunity_progress")
    op.drop_index("ix_opportunity_progress_user_id", table_name="opportunity_progress")
    op.drop_table("opportunity_progress")
