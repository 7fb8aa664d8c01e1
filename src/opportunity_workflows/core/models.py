"""Concrete data models for opportunity-workflows.

This module provides the dataclasses that cross the engine boundary: records
returned by external collaborators, the persisted progress state as seen by
callers, and the per-substep report produced by the side-effect dispatcher.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

from opportunity_workflows.core.types import SideEffectStatus

if TYPE_CHECKING:
    from opportunity_workflows.core.types import JSONDocument, ProgressStatus, StepKind, StepStatus


__all__ = [
    "AddressRecord",
    "ContactRecord",
    "CustomerInfo",
    "DispatchReport",
    "EnrichedProgressData",
    "OpportunityRecord",
    "ProgressData",
    "SideEffectOutcome",
    "StepData",
    "SubmissionArtifact",
    "UserRecord",
]


@dataclass
class UserRecord:
    """Internal user as returned by the user directory.

    Attributes:
        id: Internal user identifier, stored as the progress owner.
        external_id: External identity the user was resolved from.
        email: Optional e-mail address.
        name: Optional display name.
    """

    id: str
    external_id: str | None = None
    email: str | None = None
    name: str | None = None


@dataclass
class AddressRecord:
    """Postal address attached to a CRM contact."""

    address1: str | None = None
    city: str | None = None
    postal_code: str | None = None


@dataclass
class ContactRecord:
    """CRM contact linked to an opportunity."""

    first_name: str | None = None
    last_name: str | None = None
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    company_name: str | None = None
    addresses: list[AddressRecord] = field(default_factory=list)


@dataclass
class OpportunityRecord:
    """Opportunity as returned by the CRM client.

    Attributes:
        id: CRM opportunity identifier.
        name: Opportunity title.
        monetary_value: Deal value, if known.
        stage_name: Current pipeline stage.
        contact: Linked contact, if any.
    """

    id: str
    name: str | None = None
    monetary_value: float | None = None
    stage_name: str | None = None
    contact: ContactRecord | None = None


@dataclass
class SubmissionArtifact:
    """A completed e-signature submission and its signed documents."""

    submission_id: str
    documents: list[JSONDocument] = field(default_factory=list)
    completed_at: datetime | None = None

    def to_dict(self) -> JSONDocument:
        return {
            "submission_id": self.submission_id,
            "documents": list(self.documents),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


@dataclass
class CustomerInfo:
    """Customer display data resolved for a progress record.

    Attributes:
        name: Display name of the customer.
        address: First address line, optionally with city.
        postcode: Postal code.
        source: Name of the resolver that supplied the name.
    """

    name: str | None = None
    address: str | None = None
    postcode: str | None = None
    source: str | None = None

    @property
    def is_empty(self) -> bool:
        return not (self.name or self.address or self.postcode)

    def merge(self, other: CustomerInfo | None) -> CustomerInfo:
        """Fill missing fields from ``other`` without overwriting existing ones.

        Args:
            other: A lower-priority source of customer data.

        Returns:
            A new ``CustomerInfo`` with gaps filled in.
        """
        if other is None:
            return self
        return CustomerInfo(
            name=self.name or other.name,
            address=self.address or other.address,
            postcode=self.postcode or other.postcode,
            source=self.source if self.name else other.source,
        )


@dataclass
class SideEffectOutcome:
    """Result of one side-effect substep.

    Attributes:
        name: Substep identifier, such as ``record_outcome``.
        status: Whether the substep succeeded, failed or was skipped.
        detail: Error message or reason for skipping.
    """

    name: str
    status: SideEffectStatus
    detail: str | None = None


@dataclass
class DispatchReport:
    """Collected results of every side-effect substep run for one completion.

    Attributes:
        opportunity_id: The opportunity the completion belonged to.
        step_number: The completed step.
        effects: Substep results in execution order.
    """

    opportunity_id: str
    step_number: int
    effects: list[SideEffectOutcome] = field(default_factory=list)

    def add(self, name: str, status: SideEffectStatus, detail: str | None = None) -> SideEffectOutcome:
        outcome = SideEffectOutcome(name=name, status=status, detail=detail)
        self.effects.append(outcome)
        return outcome

    def get(self, name: str) -> SideEffectOutcome | None:
        """Return the result of a named substep, if it ran."""
        return next((e for e in self.effects if e.name == name), None)

    @property
    def failed(self) -> list[SideEffectOutcome]:
        return [e for e in self.effects if e.status == SideEffectStatus.FAILED]

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> JSONDocument:
        return {
            "opportunity_id": self.opportunity_id,
            "step_number": self.step_number,
            "effects": [{"name": e.name, "status": str(e.status), "detail": e.detail} for e in self.effects],
        }


@dataclass
class StepData:
    """State of one persisted step.

    Attributes:
        step_number: Position in the workflow.
        kind: Business purpose of the step.
        status: Current step status.
        data: Payload supplied at completion or update time.
        started_at: When the step moved into progress.
        completed_at: When the step was completed.
    """

    step_number: int
    kind: StepKind
    status: StepStatus
    data: JSONDocument | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    id: UUID | None = None


@dataclass
class ProgressData:
    """State of one opportunity's workflow, as returned by engine operations.

    Attributes:
        id: Primary key of the progress record.
        opportunity_id: External opportunity identifier.
        user_id: Owning internal user.
        current_step: Step pointer, between 1 and ``total_steps``.
        total_steps: Number of steps the progress was created with.
        status: Aggregate status.
        started_at: Creation time.
        last_activity_at: Time of the most recent mutation.
        completed_at: Time the final step was reached.
        step_data: Free-form payload attached to the whole progress.
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
    step_data: JSONDocument | None = None
    steps: list[StepData] = field(default_factory=list)

    def get_step(self, step_number: int) -> StepData | None:
        return next((s for s in self.steps if s.step_number == step_number), None)


@dataclass
class EnrichedProgressData:
    """A progress record decorated with customer and deal details.

    Used by the admin listing and the per-user listing. The enrichment is
    best-effort and never authoritative.
    """

    progress: ProgressData
    customer: CustomerInfo
    owner: UserRecord | None = None
    email: str | None = None
    phone: str | None = None
    monetary_value: float | None = None
    stage_name: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)
