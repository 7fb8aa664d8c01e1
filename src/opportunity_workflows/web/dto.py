"""Data Transfer Objects for the opportunity workflow web API.

This module defines DTOs for serializing and deserializing workflow data
in REST API requests and responses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

from opportunity_workflows.core.types import ProgressStatus, StepKind, StepStatus

if TYPE_CHECKING:
    from opportunity_workflows.core.definition import StepTemplate
    from opportunity_workflows.core.models import EnrichedProgressData, ProgressData, StepData, UserRecord

__all__ = [
    "AdminProgressListDTO",
    "CancelWorkflowDTO",
    "ClearAllResultDTO",
    "CompleteStepDTO",
    "EnrichedProgressDTO",
    "OpportunityDetailsDTO",
    "OwnerDTO",
    "ProgressDTO",
    "StartWorkflowDTO",
    "StepDTO",
    "StepTemplateDTO",
    "UpdateStepDTO",
]


@dataclass
class StartWorkflowDTO:
    """DTO for starting a workflow.

    Attributes:
        opportunity_id: CRM opportunity to start the workflow for.
    """

    opportunity_id: str


@dataclass
class UpdateStepDTO:
    """DTO for editing a step out of band.

    Attributes:
        step_number: Step to edit.
        status: New step status.
        data: New step payload, replacing the old one.
    """

    step_number: int
    status: StepStatus
    data: dict[str, Any] | None = None


@dataclass
class CompleteStepDTO:
    """DTO for completing a step.

    Attributes:
        step_number: Step to complete.
        data: Completion payload. The last step may carry ``outcome``
            (``won``, ``lost`` or ``abandoned``), ``dealValue`` and ``notes``.
    """

    step_number: int
    data: dict[str, Any] | None = None


@dataclass
class CancelWorkflowDTO:
    """DTO for cancelling a workflow."""

    reason: str | None = None


@dataclass
class StepTemplateDTO:
    """DTO for a step template of the workflow definition."""

    step_number: int
    kind: StepKind
    title: str
    description: str
    required: bool
    estimated_duration_minutes: int

    @classmethod
    def from_template(cls, template: StepTemplate) -> StepTemplateDTO:
        return cls(
            step_number=template.step_number,
            kind=template.kind,
            title=template.title,
            description=template.description,
            required=template.required,
            estimated_duration_minutes=template.estimated_duration_minutes,
        )


@dataclass
class StepDTO:
    """DTO for a persisted step.

    Attributes:
        step_number: Position in the workflow.
        kind: Business purpose of the step.
        status: Step status.
        data: Step payload.
        started_at: When the step moved into progress.
        completed_at: When the step was completed.
    """

    step_number: int
    kind: StepKind
    status: StepStatus
    data: dict[str, Any] | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @classmethod
    def from_data(cls, step: StepData) -> StepDTO:
        return cls(
            step_number=step.step_number,
            kind=step.kind,
            status=step.status,
            data=step.data,
            started_at=step.started_at,
            completed_at=step.completed_at,
        )


@dataclass
class ProgressDTO:
    """DTO for the workflow state of an opportunity.

    Attributes:
        id: Progress record id.
        opportunity_id: CRM opportunity id.
        user_id: Owning user.
        current_step: Step pointer.
        total_steps: Number of steps.
        status: Aggregate status.
        started_at: When the workflow was started.
        last_activity_at: When the workflow was last changed.
        completed_at: When the last step was reached.
        step_data: Free-form workflow payload.
        steps: Steps ordered by step number.
    """

    id: UUID
    opportunity_id: str
    user_id: str
    current_step: int
    total_steps: int
    status: ProgressStatus
    started_at: datetime
    last_activity_at: datetime
    completed_at: datetime | None = None
    step_data: dict[str, Any] | None = None
    steps: list[StepDTO] = field(default_factory=list)

    @classmethod
    def from_data(cls, progress: ProgressData) -> ProgressDTO:
        return cls(
            id=progress.id,
            opportunity_id=progress.opportunity_id,
            user_id=progress.user_id,
            current_step=progress.current_step,
            total_steps=progress.total_steps,
            status=progress.status,
            started_at=progress.started_at,
            last_activity_at=progress.last_activity_at,
            completed_at=progress.completed_at,
            step_data=progress.step_data,
            steps=[StepDTO.from_data(step) for step in progress.steps],
        )


@dataclass
class OpportunityDetailsDTO:
    """DTO for customer and deal details attached to a workflow listing."""

    customer_name: str | None
    address: str | None = None
    postcode: str | None = None
    contact_email: str | None = None
    contact_phone: str | None = None
    monetary_value: float | None = None
    stage_name: str | None = None


@dataclass
class OwnerDTO:
    """DTO for the user owning a workflow."""

    id: str
    name: str | None = None
    email: str | None = None

    @classmethod
    def from_user(cls, user: UserRecord) -> OwnerDTO:
        return cls(id=user.id, name=user.name, email=user.email)


@dataclass
class EnrichedProgressDTO:
    """DTO for a workflow with best-effort customer details."""

    progress: ProgressDTO
    opportunity_details: OpportunityDetailsDTO
    owner: OwnerDTO | None = None

    @classmethod
    def from_data(cls, item: EnrichedProgressData) -> EnrichedProgressDTO:
        return cls(
            progress=ProgressDTO.from_data(item.progress),
            opportunity_details=OpportunityDetailsDTO(
                customer_name=item.customer.name,
                address=item.customer.address,
                postcode=item.customer.postcode,
                contact_email=item.email,
                contact_phone=item.phone,
                monetary_value=item.monetary_value,
                stage_name=item.stage_name,
            ),
            owner=OwnerDTO.from_user(item.owner) if item.owner else None,
        )


@dataclass
class AdminProgressListDTO:
    """DTO for a page of the admin workflow listing."""

    items: list[EnrichedProgressDTO]
    total: int
    limit: int
    offset: int


@dataclass
class ClearAllResultDTO:
    """DTO for the result of clearing a user's workflows."""

    deleted: int
