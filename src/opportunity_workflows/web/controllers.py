"""REST API controllers for opportunity workflows.

This module provides two controller classes:
- OpportunityWorkflowController: Start, advance and inspect workflows
- AdminWorkflowController: Cross-user listing and bulk deletion
"""

from __future__ import annotations

from typing import ClassVar

from litestar import Controller, delete, get, post, put
from litestar.params import HeaderParameter, Parameter
from litestar.status_codes import HTTP_200_OK

from opportunity_workflows.core.types import ProgressStatus
from opportunity_workflows.db.engine import OpportunityWorkflowEngine  # noqa: TC001 - needed for DI
from opportunity_workflows.web.dto import (
    AdminProgressListDTO,
    CancelWorkflowDTO,
    ClearAllResultDTO,
    CompleteStepDTO,
    EnrichedProgressDTO,
    ProgressDTO,
    StartWorkflowDTO,
    StepTemplateDTO,
    UpdateStepDTO,
)

__all__ = ["AdminWorkflowController", "OpportunityWorkflowController"]

USER_REF_HEADER = "X-User-Ref"


class OpportunityWorkflowController(Controller):
    """API controller for the workflow of a single opportunity.

    The acting user is identified by the ``X-User-Ref`` header.

    Tags: Opportunity Workflow
    """

    path = "/"
    tags: ClassVar[list[str]] = ["Opportunity Workflow"]

    @get("/steps")
    async def list_steps(self, workflow_engine: OpportunityWorkflowEngine) -> list[StepTemplateDTO]:
        """List the steps of the workflow definition.

        Args:
            workflow_engine: Injected workflow engine.

        Returns:
            Step templates ordered by step number.
        """
        return [StepTemplateDTO.from_template(t) for t in workflow_engine.list_step_templates()]

    @post("/start")
    async def start_workflow(
        self,
        data: StartWorkflowDTO,
        workflow_engine: OpportunityWorkflowEngine,
        user_ref: str = HeaderParameter(name=USER_REF_HEADER, description="External reference of the acting user"),
    ) -> ProgressDTO:
        """Start a fresh workflow for an opportunity.

        An existing workflow for the opportunity is replaced.

        Args:
            data: Opportunity to start.
            workflow_engine: Injected workflow engine.
            user_ref: External reference of the acting user.

        Returns:
            The new workflow state.
        """
        progress = await workflow_engine.start(user_ref, data.opportunity_id)
        return ProgressDTO.from_data(progress)

    @get("/progress/{opportunity_id:str}")
    async def get_progress(
        self,
        opportunity_id: str,
        workflow_engine: OpportunityWorkflowEngine,
        user_ref: str = HeaderParameter(name=USER_REF_HEADER),
    ) -> ProgressDTO:
        """Get the workflow state of an opportunity."""
        progress = await workflow_engine.get_progress(user_ref, opportunity_id)
        return ProgressDTO.from_data(progress)

    @put("/progress/{opportunity_id:str}/step")
    async def update_step(
        self,
        opportunity_id: str,
        data: UpdateStepDTO,
        workflow_engine: OpportunityWorkflowEngine,
        user_ref: str = HeaderParameter(name=USER_REF_HEADER),
    ) -> ProgressDTO:
        """Edit a step without moving the step pointer.

        Args:
            opportunity_id: The opportunity.
            data: Step number, status and payload.
            workflow_engine: Injected workflow engine.
            user_ref: External reference of the acting user.

        Returns:
            The updated workflow state.
        """
        progress = await workflow_engine.update_step(
            user_ref,
            opportunity_id,
            data.step_number,
            data.status,
            data.data,
        )
        return ProgressDTO.from_data(progress)

    @post("/progress/{opportunity_id:str}/complete-step", status_code=HTTP_200_OK)
    async def complete_step(
        self,
        opportunity_id: str,
        data: CompleteStepDTO,
        workflow_engine: OpportunityWorkflowEngine,
        user_ref: str = HeaderParameter(name=USER_REF_HEADER),
    ) -> ProgressDTO:
        """Complete a step and advance the workflow.

        Side effect failures are logged and never fail this request.

        Args:
            opportunity_id: The opportunity.
            data: Step number and completion payload.
            workflow_engine: Injected workflow engine.
            user_ref: External reference of the acting user.

        Returns:
            The updated workflow state.
        """
        progress = await workflow_engine.complete_step(user_ref, opportunity_id, data.step_number, data.data)
        return ProgressDTO.from_data(progress)

    @put("/progress/{opportunity_id:str}/reset")
    async def reset_workflow(
        self,
        opportunity_id: str,
        workflow_engine: OpportunityWorkflowEngine,
        user_ref: str = HeaderParameter(name=USER_REF_HEADER),
    ) -> ProgressDTO:
        """Discard the workflow history of an opportunity and start over."""
        progress = await workflow_engine.reset(user_ref, opportunity_id)
        return ProgressDTO.from_data(progress)

    @post("/progress/{opportunity_id:str}/pause", status_code=HTTP_200_OK)
    async def pause_workflow(
        self,
        opportunity_id: str,
        workflow_engine: OpportunityWorkflowEngine,
        user_ref: str = HeaderParameter(name=USER_REF_HEADER),
    ) -> ProgressDTO:
        """Pause an active workflow."""
        progress = await workflow_engine.pause(user_ref, opportunity_id)
        return ProgressDTO.from_data(progress)

    @post("/progress/{opportunity_id:str}/resume", status_code=HTTP_200_OK)
    async def resume_workflow(
        self,
        opportunity_id: str,
        workflow_engine: OpportunityWorkflowEngine,
        user_ref: str = HeaderParameter(name=USER_REF_HEADER),
    ) -> ProgressDTO:
        """Resume a paused workflow."""
        progress = await workflow_engine.resume(user_ref, opportunity_id)
        return ProgressDTO.from_data(progress)

    @post("/progress/{opportunity_id:str}/cancel", status_code=HTTP_200_OK)
    async def cancel_workflow(
        self,
        opportunity_id: str,
        data: CancelWorkflowDTO,
        workflow_engine: OpportunityWorkflowEngine,
        user_ref: str = HeaderParameter(name=USER_REF_HEADER),
    ) -> ProgressDTO:
        """Cancel a workflow. Cancelled workflows reject further step edits."""
        progress = await workflow_engine.cancel(user_ref, opportunity_id, data.reason)
        return ProgressDTO.from_data(progress)

    @get("/user/progress")
    async def list_user_workflows(
        self,
        workflow_engine: OpportunityWorkflowEngine,
        user_ref: str = HeaderParameter(name=USER_REF_HEADER),
    ) -> list[EnrichedProgressDTO]:
        """List the acting user's workflows with CRM details, most recent first."""
        items = await workflow_engine.list_user_workflows(user_ref)
        return [EnrichedProgressDTO.from_data(item) for item in items]


class AdminWorkflowController(Controller):
    """API controller for administrative workflow operations.

    Tags: Opportunity Workflow Admin
    """

    path = "/admin"
    tags: ClassVar[list[str]] = ["Opportunity Workflow Admin"]

    @get("/progress")
    async def list_all_workflows(
        self,
        workflow_engine: OpportunityWorkflowEngine,
        status: ProgressStatus | None = Parameter(
            default=None,
            description="Filter by status",
        ),
        limit: int = Parameter(
            default=100,
            ge=1,
            le=500,
            description="Maximum number of results",
        ),
        offset: int = Parameter(
            default=0,
            ge=0,
            description="Number of results to skip",
        ),
    ) -> AdminProgressListDTO:
        """List workflows across all users with best-effort customer details.

        Args:
            workflow_engine: Injected workflow engine.
            status: Optional status filter.
            limit: Maximum number of results.
            offset: Pagination offset.

        Returns:
            A page of enriched workflows and the total count.
        """
        items, total = await workflow_engine.list_all_workflows_for_admin(status=status, limit=limit, offset=offset)
        return AdminProgressListDTO(
            items=[EnrichedProgressDTO.from_data(item) for item in items],
            total=total,
            limit=limit,
            offset=offset,
        )

    @delete("/clear-all", status_code=HTTP_200_OK)
    async def clear_all(
        self,
        workflow_engine: OpportunityWorkflowEngine,
        user_ref: str = HeaderParameter(name=USER_REF_HEADER),
    ) -> ClearAllResultDTO:
        """Delete every workflow owned by the acting user."""
        deleted = await workflow_engine.clear_all(user_ref)
        return ClearAllResultDTO(deleted=deleted)
