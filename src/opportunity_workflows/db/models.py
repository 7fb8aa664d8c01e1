"""SQLAlchemy models for opportunity workflow persistence.

This module defines the two tables backing the workflow state:
- ProgressModel: One row per opportunity holding the step pointer and status
- StepModel: One row per step template, owned by a progress row
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from advanced_alchemy.base import UUIDAuditBase
from advanced_alchemy.types import DateTimeUTC
from sqlalchemy import JSON, Enum, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from opportunity_workflows.core.types import ProgressStatus, StepKind, StepStatus

__all__ = ["JSONType", "ProgressModel", "StepModel"]


# Cross-database JSON type: uses JSONB for PostgreSQL, JSON for others (SQLite, MySQL, etc.)
JSONType = JSON().with_variant(JSONB, "postgresql")


class ProgressModel(UUIDAuditBase):
    """Persisted workflow state of a single opportunity.

    Attributes:
        opportunity_id: External CRM opportunity identifier. Unique.
        user_id: Internal identifier of the owning user.
        current_step: Step pointer, between 1 and ``total_steps``.
        total_steps: Number of steps in the definition the row was created from,
            raised lazily when the definition grows.
        status: Aggregate workflow status.
        started_at: When the workflow was started.
        last_activity_at: Refreshed by every mutation.
        completed_at: When the last step was reached.
        step_data: Free-form payload attached to the whole workflow.
        cancel_reason: Reason given when the workflow was cancelled.
        steps: Owned steps ordered by step number.
    """

    __tablename__ = "opportunity_progress"
    __table_args__ = (
        Index("ix_opportunity_progress_user_id", "user_id"),
        Index("ix_opportunity_progress_status", "status"),
    )
    __mapper_args__ = {"confirm_deleted_rows": False}  # noqa: RUF012

    opportunity_id: Mapped[str] = mapped_column(String(255), unique=True)
    user_id: Mapped[str] = mapped_column(String(255))
    current_step: Mapped[int] = mapped_column(Integer, default=1)
    total_steps: Mapped[int] = mapped_column(Integer)
    status: Mapped[ProgressStatus] = mapped_column(
        Enum(ProgressStatus, native_enum=False, length=50),
        default=ProgressStatus.IN_PROGRESS,
    )
    started_at: Mapped[datetime] = mapped_column(DateTimeUTC(timezone=True))
    last_activity_at: Mapped[datetime] = mapped_column(DateTimeUTC(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTimeUTC(timezone=True), nullable=True)
    step_data: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    cancel_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Relationships
    steps: Mapped[list[StepModel]] = relationship(
        back_populates="progress",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
        order_by="StepModel.step_number",
    )


class StepModel(UUIDAuditBase):
    """Persisted state of one step of an opportunity workflow.

    Attributes:
        progress_id: Foreign key to the owning progress row.
        step_number: Position of the step in the workflow.
        step_kind: Business purpose, copied from the step template.
        status: Step status.
        data: Payload supplied at completion or update time, replaced wholesale.
        started_at: When the step moved into progress.
        completed_at: When the step was completed.
    """

    __tablename__ = "opportunity_steps"
    __table_args__ = (
        UniqueConstraint("progress_id", "step_number", name="uq_opportunity_steps_progress_step"),
        Index("ix_opportunity_steps_progress_id", "progress_id"),
    )
    __mapper_args__ = {"confirm_deleted_rows": False}  # noqa: RUF012

    progress_id: Mapped[UUID] = mapped_column(
        ForeignKey("opportunity_progress.id", ondelete="CASCADE"),
    )
    step_number: Mapped[int] = mapped_column(Integer)
    step_kind: Mapped[StepKind] = mapped_column(Enum(StepKind, native_enum=False, length=50))
    status: Mapped[StepStatus] = mapped_column(
        Enum(StepStatus, native_enum=False, length=50),
        default=StepStatus.PENDING,
    )
    data: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTimeUTC(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTimeUTC(timezone=True), nullable=True)

    # Relationships
    progress: Mapped[ProgressModel] = relationship(back_populates="steps")
