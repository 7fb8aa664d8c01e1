"""Persistent opportunity workflow engine.

This module provides the transition engine that stores per-opportunity
workflow state in a database using SQLAlchemy and runs side effects through
the :class:`~opportunity_workflows.engine.dispatcher.SideEffectDispatcher`.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from advanced_alchemy.exceptions import IntegrityError as RepositoryIntegrityError
from sqlalchemy.exc import IntegrityError

from opportunity_workflows.config import EngineSettings
from opportunity_workflows.core.definition import DEFAULT_WORKFLOW
from opportunity_workflows.core.models import ProgressData, StepData
from opportunity_workflows.core.types import Outcome, ProgressStatus, StepKind, StepStatus
from opportunity_workflows.db.models import ProgressModel, StepModel
from opportunity_workflows.db.repositories import ProgressRepository, StepRepository
from opportunity_workflows.engine.aggregation import AdminAggregationView, CRMEnricher
from opportunity_workflows.engine.dispatcher import SideEffectDispatcher
from opportunity_workflows.engine.identity import IdentityResolver
from opportunity_workflows.exceptions import (
    InvalidOutcomeError,
    ProgressClosedError,
    ProgressNotFoundError,
    StepNotFoundError,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

    from sqlalchemy.ext.asyncio import AsyncSession

    from opportunity_workflows.config import Collaborators
    from opportunity_workflows.core.definition import StepTemplate, WorkflowDefinition
    from opportunity_workflows.core.models import DispatchReport, EnrichedProgressData
    from opportunity_workflows.core.protocols import EventBus

__all__ = ["OpportunityWorkflowEngine", "progress_to_data"]

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def progress_to_data(model: ProgressModel) -> ProgressData:
    """Convert a progress row and its steps into a detached dataclass."""
    return ProgressData(
        id=model.id,
        opportunity_id=model.opportunity_id,
        user_id=model.user_id,
        current_step=model.current_step,
        total_steps=model.total_steps,
        status=model.status,
        started_at=model.started_at,
        last_activity_at=model.last_activity_at,
        completed_at=model.completed_at,
        step_data=model.step_data,
        steps=[
            StepData(
                id=step.id,
                step_number=step.step_number,
                kind=step.step_kind,
                status=step.status,
                data=step.data,
                started_at=step.started_at,
                completed_at=step.completed_at,
            )
            for step in sorted(model.steps, key=lambda s: s.step_number)
        ],
    )


class OpportunityWorkflowEngine:
    """Transition engine with database persistence.

    Every operation takes the caller's external user reference, runs as one
    short read-modify-write against the progress row of an opportunity and
    returns a detached :class:`ProgressData`.

    Attributes:
        session: SQLAlchemy async session for database operations.
        collaborators: External systems used by identity resolution, side
            effects and listings.
        definition: The workflow definition new progress records are built from.
        settings: Engine settings.
        event_bus: Optional event bus for emitting workflow events.
        last_dispatch: Report of the side effects run by the most recent
            :meth:`complete_step` call.
    """

    def __init__(
        self,
        session: AsyncSession,
        collaborators: Collaborators,
        definition: WorkflowDefinition = DEFAULT_WORKFLOW,
        settings: EngineSettings | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            session: SQLAlchemy async session.
            collaborators: External systems.
            definition: Workflow definition, defaults to the solar sale workflow.
            settings: Engine settings, defaults to :class:`EngineSettings`.
            event_bus: Optional event bus, defaults to the collaborators' bus.
        """
        self.session = session
        self.collaborators = collaborators
        self.definition = definition
        self.settings = settings or EngineSettings()
        self.event_bus = event_bus if event_bus is not None else collaborators.event_bus
        self.last_dispatch: DispatchReport | None = None

        self.identity = IdentityResolver(collaborators.users, self.settings.system_user_id)
        self.dispatcher = SideEffectDispatcher(definition, collaborators, self.settings)

        # Initialize repositories
        self._progress_repo = ProgressRepository(session=session)
        self._step_repo = StepRepository(session=session)

    async def _emit(self, event: str, **payload: Any) -> None:
        # State is already committed when events go out.
        if not self.event_bus:
            return
        try:
            await self.event_bus.emit(event, **payload)
        except Exception:
            logger.exception(
                "Failed to emit %s for opportunity %s",
                event,
                payload.get("opportunity_id", payload.get("user_id")),
            )

    async def _reload(self, opportunity_id: str) -> ProgressModel:
        progress = await self._progress_repo.get_by_opportunity(opportunity_id, refresh=True)
        if progress is None:
            raise ProgressNotFoundError(opportunity_id)
        return progress

    async def _get_owned(self, opportunity_id: str, user_id: str) -> ProgressModel:
        progress = await self._reload(opportunity_id)
        if progress.user_id != user_id:
            raise ProgressNotFoundError(opportunity_id)
        return progress

    def _build_progress(self, opportunity_id: str, user_id: str) -> ProgressModel:
        now = _now()
        return ProgressModel(
            opportunity_id=opportunity_id,
            user_id=user_id,
            current_step=1,
            total_steps=self.definition.total_steps,
            status=ProgressStatus.IN_PROGRESS,
            started_at=now,
            last_activity_at=now,
            steps=[
                StepModel(
                    step_number=template.step_number,
                    step_kind=template.kind,
                    status=StepStatus.IN_PROGRESS if template.step_number == 1 else StepStatus.PENDING,
                    started_at=now if template.step_number == 1 else None,
                )
                for template in self.definition.steps
            ],
        )

    async def _create(self, opportunity_id: str, user_id: str) -> ProgressModel:
        existing = await self._progress_repo.get_by_opportunity(opportunity_id)
        if existing is not None:
            logger.info("Replacing existing workflow for opportunity %s", opportunity_id)
            await self._progress_repo.remove(existing)

        try:
            await self._progress_repo.add(self._build_progress(opportunity_id, user_id), auto_refresh=False)
            await self.session.commit()
        except (IntegrityError, RepositoryIntegrityError):
            await self.session.rollback()
            logger.info("Concurrent start for opportunity %s, returning the existing workflow", opportunity_id)

        return await self._reload(opportunity_id)

    async def start(self, user_ref: str, opportunity_id: str) -> ProgressData:
        """Start a fresh workflow for an opportunity.

        Any existing workflow for the opportunity is deleted first, so starting
        never resumes. A concurrent start that loses the race on the unique
        opportunity id returns the winner's record instead of failing.

        Args:
            user_ref: External reference of the acting user.
            opportunity_id: The opportunity to start.

        Returns:
            The new progress with step 1 in progress and the rest pending.
        """
        user = await self.identity.resolve(user_ref)
        progress = await self._create(opportunity_id, user.id)
        logger.info("Started workflow for opportunity %s owned by %s", opportunity_id, user.id)

        await self._emit("workflow.started", opportunity_id=opportunity_id, progress_id=progress.id)
        return progress_to_data(progress)

    async def get_progress(self, user_ref: str, opportunity_id: str) -> ProgressData:
        """Return the workflow state of an opportunity.

        Raises:
            ProgressNotFoundError: If the opportunity has no workflow.
        """
        await self.identity.resolve(user_ref)
        progress = await self._progress_repo.get_by_opportunity(opportunity_id)
        if progress is None:
            raise ProgressNotFoundError(opportunity_id)
        return progress_to_data(progress)

    def _ensure_open(self, progress: ProgressModel) -> None:
        if progress.status == ProgressStatus.CANCELLED:
            raise ProgressClosedError(progress.opportunity_id, str(progress.status))

    async def update_step(
        self,
        user_ref: str,
        opportunity_id: str,
        step_number: int,
        status: StepStatus | str,
        data: Mapping[str, Any] | None = None,
    ) -> ProgressData:
        """Edit a step out of band without moving the step pointer.

        The step payload is replaced, not merged.

        Args:
            user_ref: External reference of the acting user.
            opportunity_id: The opportunity to edit.
            step_number: The step to edit.
            status: New step status.
            data: New step payload.

        Returns:
            The updated progress.

        Raises:
            StepOutOfRangeError: If the step number is outside the definition.
            ProgressNotFoundError: If the opportunity has no workflow.
            StepNotFoundError: If the progress has no such step.
            ProgressClosedError: If the workflow was cancelled.
        """
        await self.identity.resolve(user_ref)
        self.definition.get_step(step_number)
        new_status = StepStatus(status)

        progress = await self._reload(opportunity_id)
        self._ensure_open(progress)
        step = await self._step_repo.get_step(progress.id, step_number)
        if step is None:
            raise StepNotFoundError(opportunity_id, step_number)

        now = _now()
        step.status = new_status
        step.data = dict(data) if data is not None else None
        if new_status == StepStatus.IN_PROGRESS and step.started_at is None:
            step.started_at = now
        progress.last_activity_at = now
        await self.session.commit()

        return progress_to_data(await self._reload(opportunity_id))

    def _validate_outcome(self, template: StepTemplate, data: Mapping[str, Any] | None) -> None:
        if not data or not self.definition.is_terminal(template.step_number):
            return
        raw = data.get("outcome")
        if raw in (None, ""):
            return
        try:
            Outcome.parse(raw)
        except ValueError:
            raise InvalidOutcomeError(raw) from None

    async def _check_survey(self, opportunity_id: str) -> None:
        surveys = self.collaborators.surveys
        if surveys is None:
            return
        try:
            status = await surveys.get_status(opportunity_id)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Could not verify survey status for opportunity %s: %s", opportunity_id, exc)
            return
        if status not in self.settings.accepted_survey_statuses:
            logger.warning("Survey for opportunity %s is not submitted. Status: %s", opportunity_id, status)

    async def complete_step(
        self,
        user_ref: str,
        opportunity_id: str,
        step_number: int,
        data: Mapping[str, Any] | None = None,
    ) -> ProgressData:
        """Complete a step, run its side effects and advance the pointer.

        Steps can be completed in any order. A step missing from a workflow
        created before the definition gained it is created on the fly. Side
        effect failures never fail the completion; they are recorded in
        :attr:`last_dispatch`. A paused workflow is resumed by the
        completion. Event bus failures are logged and never fail it either.

        Args:
            user_ref: External reference of the acting user.
            opportunity_id: The opportunity to advance.
            step_number: The step to complete.
            data: Completion payload. The terminal step may carry ``outcome``.

        Returns:
            The updated progress.

        Raises:
            StepOutOfRangeError: If the step number is outside the definition.
            InvalidOutcomeError: If the terminal payload names an unknown outcome.
            ProgressNotFoundError: If the opportunity has no workflow.
            ProgressClosedError: If the workflow was cancelled.
        """
        user = await self.identity.resolve(user_ref)
        template = self.definition.get_step(step_number)
        self._validate_outcome(template, data)

        progress = await self._reload(opportunity_id)
        self._ensure_open(progress)

        step = await self._step_repo.get_step(progress.id, step_number)
        if step is None:
            logger.info("Step %d not found, creating it for opportunity %s", step_number, opportunity_id)
            step = StepModel(step_number=step_number, step_kind=template.kind, status=StepStatus.PENDING)
            progress.steps.append(step)
            if progress.total_steps < self.definition.total_steps:
                progress.total_steps = self.definition.total_steps

        if step.step_kind == StepKind.SITE_SURVEY:
            await self._check_survey(opportunity_id)

        step.status = StepStatus.COMPLETED
        step.data = dict(data) if data is not None else None
        step.completed_at = _now()
        await self.session.commit()

        report = await self.dispatcher.dispatch(opportunity_id, user.id, step_number, data)
        self.last_dispatch = report

        progress = await self._reload(opportunity_id)
        now = _now()
        next_step = step_number + 1
        if next_step > progress.total_steps:
            progress.current_step = progress.total_steps
            progress.status = ProgressStatus.COMPLETED
            progress.completed_at = now
        else:
            progress.current_step = next_step
            progress.status = ProgressStatus.IN_PROGRESS
            progress.completed_at = None
        progress.last_activity_at = now
        await self.session.commit()

        progress = await self._reload(opportunity_id)
        await self._emit(
            "workflow.step_completed",
            opportunity_id=opportunity_id,
            step_number=step_number,
            report=report,
        )
        if progress.status == ProgressStatus.COMPLETED:
            await self._emit("workflow.completed", opportunity_id=opportunity_id, progress_id=progress.id)
        return progress_to_data(progress)

    async def reset(self, user_ref: str, opportunity_id: str) -> ProgressData:
        """Discard an opportunity's workflow history and start over.

        Returns:
            The fresh progress.
        """
        user = await self.identity.resolve(user_ref)
        progress = await self._create(opportunity_id, user.id)
        logger.info("Reset workflow for opportunity %s", opportunity_id)

        await self._emit("workflow.reset", opportunity_id=opportunity_id, progress_id=progress.id)
        return progress_to_data(progress)

    async def clear_all(self, user_ref: str) -> int:
        """Delete every workflow owned by a user.

        Args:
            user_ref: External reference of the user. Never falls back to the
                system identity.

        Returns:
            Number of workflows deleted.
        """
        user = await self.identity.resolve(user_ref, strict=True)
        count = await self._progress_repo.remove_by_user(user.id)
        await self.session.commit()
        logger.info("Cleared %d workflows for user %s", count, user_ref)

        await self._emit("workflow.cleared", user_id=user.id, count=count)
        return count

    async def _set_status(
        self,
        user_ref: str,
        opportunity_id: str,
        target: ProgressStatus,
        allowed_from: set[ProgressStatus],
        event: str,
    ) -> ProgressModel:
        user = await self.identity.resolve(user_ref, strict=True)
        progress = await self._get_owned(opportunity_id, user.id)
        if progress.status == target:
            return progress
        if progress.status not in allowed_from:
            raise ProgressClosedError(opportunity_id, str(progress.status))

        progress.status = target
        progress.last_activity_at = _now()
        await self.session.commit()

        progress = await self._reload(opportunity_id)
        await self._emit(event, opportunity_id=opportunity_id, progress_id=progress.id)
        return progress

    async def pause(self, user_ref: str, opportunity_id: str) -> ProgressData:
        """Pause an active workflow owned by the user."""
        progress = await self._set_status(
            user_ref,
            opportunity_id,
            ProgressStatus.PAUSED,
            {ProgressStatus.IN_PROGRESS},
            "workflow.paused",
        )
        return progress_to_data(progress)

    async def resume(self, user_ref: str, opportunity_id: str) -> ProgressData:
        """Resume a paused workflow owned by the user."""
        progress = await self._set_status(
            user_ref,
            opportunity_id,
            ProgressStatus.IN_PROGRESS,
            {ProgressStatus.PAUSED},
            "workflow.resumed",
        )
        return progress_to_data(progress)

    async def cancel(self, user_ref: str, opportunity_id: str, reason: str | None = None) -> ProgressData:
        """Cancel a workflow owned by the user.

        Cancelled workflows reject further step edits. Starting or resetting
        the opportunity creates a fresh workflow.
        """
        user = await self.identity.resolve(user_ref, strict=True)
        progress = await self._get_owned(opportunity_id, user.id)
        if progress.status == ProgressStatus.CANCELLED:
            return progress_to_data(progress)
        if progress.status == ProgressStatus.COMPLETED:
            raise ProgressClosedError(opportunity_id, str(progress.status))

        progress.status = ProgressStatus.CANCELLED
        progress.cancel_reason = reason
        progress.last_activity_at = _now()
        await self.session.commit()
        logger.info("Cancelled workflow for opportunity %s", opportunity_id)

        progress = await self._reload(opportunity_id)
        await self._emit("workflow.canceled", opportunity_id=opportunity_id, progress_id=progress.id, reason=reason)
        return progress_to_data(progress)

    def list_step_templates(self) -> list[StepTemplate]:
        """Return the step templates of the workflow definition."""
        return list(self.definition.steps)

    async def list_user_workflows(self, user_ref: str) -> list[EnrichedProgressData]:
        """List a user's workflows, most recently active first, with CRM details.

        Raises:
            UserNotFoundError: If the user reference cannot be resolved.
        """
        user = await self.identity.resolve(user_ref, strict=True)
        records = [progress_to_data(p) for p in await self._progress_repo.find_by_user(user.id)]
        logger.debug("Found %d workflows for user %s", len(records), user.id)

        enriched = await CRMEnricher(self.collaborators, self.settings).enrich_many(records)
        for item in enriched:
            item.owner = user
        return enriched

    async def list_all_workflows_for_admin(
        self,
        status: ProgressStatus | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> tuple[list[EnrichedProgressData], int]:
        """List workflows across all users with best-effort customer details.

        Args:
            status: Optional status filter.
            limit: Maximum number of results.
            offset: Number of results to skip.

        Returns:
            Tuple of (enriched workflows, total_count).
        """
        models, total = await self._progress_repo.list_recent(status=status, limit=limit, offset=offset)
        records = [progress_to_data(p) for p in models]
        enriched = await AdminAggregationView(self.collaborators, self.settings).build(records)
        return enriched, total
