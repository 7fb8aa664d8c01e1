"""Repository implementations for opportunity workflow persistence.

This module provides async repositories for the progress and step tables using
advanced-alchemy's repository pattern.
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

from advanced_alchemy.filters import LimitOffset, OrderBy
from advanced_alchemy.repository import SQLAlchemyAsyncRepository
from sqlalchemy import and_, select

from opportunity_workflows.core.types import ProgressStatus
from opportunity_workflows.db.models import ProgressModel, StepModel

if TYPE_CHECKING:
    from collections.abc import Sequence

__all__ = ["ProgressRepository", "StepRepository"]


class ProgressRepository(SQLAlchemyAsyncRepository[ProgressModel]):
    """Repository for progress records.

    Steps are loaded eagerly with every progress row, so callers always get the
    complete workflow state.
    """

    model_type = ProgressModel

    async def get_by_opportunity(
        self,
        opportunity_id: str,
        *,
        refresh: bool = False,
    ) -> ProgressModel | None:
        """Get the progress record of an opportunity.

        Args:
            opportunity_id: The external opportunity identifier.
            refresh: Overwrite any state already held in the session with the
                database row, including the step collection.

        Returns:
            The progress record or None if the opportunity has no workflow.
        """
        stmt = select(ProgressModel).where(ProgressModel.opportunity_id == opportunity_id)
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_by_user(
        self,
        user_id: str,
        status: ProgressStatus | None = None,
    ) -> Sequence[ProgressModel]:
        """Find progress records owned by a user, most recently active first.

        Args:
            user_id: The internal user id.
            status: Optional status filter.

        Returns:
            List of progress records.
        """
        conditions = [ProgressModel.user_id == user_id]

        if status:
            conditions.append(ProgressModel.status == status)

        stmt = select(ProgressModel).where(and_(*conditions)).order_by(ProgressModel.last_activity_at.desc())
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def list_recent(
        self,
        status: ProgressStatus | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> tuple[Sequence[ProgressModel], int]:
        """List progress records across all users, most recently active first.

        Args:
            status: Optional status filter.
            limit: Maximum number of results.
            offset: Number of results to skip.

        Returns:
            Tuple of (progress records, total_count).
        """
        conditions = []

        if status:
            conditions.append(ProgressModel.status == status)

        return await self.list_and_count(
            *conditions,
            LimitOffset(limit=limit, offset=offset),
            OrderBy(field_name="last_activity_at", sort_order="desc"),
        )

    async def remove(self, progress: ProgressModel) -> None:
        """Delete a progress record together with its steps.

        Steps are removed through the ORM cascade before the progress row.

        Args:
            progress: The record to delete.
        """
        await self.session.delete(progress)
        await self.session.flush()

    async def remove_by_user(self, user_id: str) -> int:
        """Delete every progress record owned by a user.

        Args:
            user_id: The internal user id.

        Returns:
            Number of progress records deleted.
        """
        records = await self.find_by_user(user_id)
        for progress in records:
            await self.session.delete(progress)
        await self.session.flush()
        return len(records)


class StepRepository(SQLAlchemyAsyncRepository[StepModel]):
    """Repository for step records."""

    model_type = StepModel

    async def get_step(self, progress_id: UUID, step_number: int) -> StepModel | None:
        """Find the step with a given number.

        Args:
            progress_id: The owning progress id.
            step_number: The step number.

        Returns:
            The step or None.
        """
        stmt = select(StepModel).where(
            and_(
                StepModel.progress_id == progress_id,
                StepModel.step_number == step_number,
            )
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_by_progress(self, progress_id: UUID) -> Sequence[StepModel]:
        """Find all steps of a progress record ordered by step number.

        Args:
            progress_id: The owning progress id.

        Returns:
            List of steps.
        """
        stmt = select(StepModel).where(StepModel.progress_id == progress_id).order_by(StepModel.step_number)
        result = await self.session.execute(stmt)
        return result.scalars().all()
