"""Collaborator protocols for opportunity-workflows.

The workflow engine never talks to a concrete CRM, document store or signature
service. It depends on the structural interfaces below, which host applications
implement (or fake, in tests). Every method is a coroutine because every
collaborator call is a network round-trip from the engine's point of view.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from opportunity_workflows.core.models import OpportunityRecord, SubmissionArtifact, UserRecord
    from opportunity_workflows.core.types import ArchiveBucket, JSONDocument, Outcome


__all__ = [
    "CRMClient",
    "CalculatorRecords",
    "DocumentArchive",
    "EventBus",
    "OutcomeRecorder",
    "SignatureClient",
    "SurveyRecords",
    "UserDirectory",
]


@runtime_checkable
class UserDirectory(Protocol):
    """Resolves external identities to internal users."""

    async def resolve_user(self, external_id: str) -> UserRecord | None:
        """Resolve an external identity.

        Args:
            external_id: Identity as presented by the caller.

        Returns:
            The matching user, or ``None`` when the identity is unknown.
        """
        ...

    async def get_user(self, user_id: str) -> UserRecord | None:
        """Load a user by internal identifier."""
        ...


@runtime_checkable
class CRMClient(Protocol):
    """Reads opportunities and moves them through the sales pipeline."""

    async def fetch_opportunity(self, opportunity_id: str) -> OpportunityRecord | None:
        """Fetch an opportunity with its linked contact.

        Returns:
            The opportunity, or ``None`` when the CRM does not know it.
        """
        ...

    async def transition_stage(self, opportunity_id: str, target_stage: str) -> Any:
        """Move an opportunity to the named pipeline stage."""
        ...


@runtime_checkable
class DocumentArchive(Protocol):
    """Copies generated documents into the per-customer folder structure."""

    async def copy_documents(
        self,
        opportunity_id: str,
        customer_name: str,
        bucket: ArchiveBucket,
        file_refs: Mapping[str, Any],
        *,
        postcode: str | None = None,
        include_survey_images: bool = False,
    ) -> Any:
        """Copy a named set of files into an outcome folder.

        Implementations must tolerate being called twice with the same files.

        Args:
            opportunity_id: The opportunity the files belong to.
            customer_name: Display name used to name the customer folder.
            bucket: Destination folder family.
            file_refs: Mapping of document role to file reference.
            postcode: Postcode used to disambiguate the customer folder.
            include_survey_images: Whether to bundle the survey images stored for
                the opportunity.
        """
        ...


@runtime_checkable
class SignatureClient(Protocol):
    """Reads completed e-signature submissions."""

    async def fetch_completed_submissions(self, opportunity_id: str) -> Sequence[SubmissionArtifact]:
        """Return every completed signed submission for an opportunity."""
        ...


@runtime_checkable
class OutcomeRecorder(Protocol):
    """Persists the terminal classification of an opportunity."""

    async def record_outcome(
        self,
        opportunity_id: str,
        user_id: str,
        outcome: Outcome,
        value: float,
        notes: str,
        *,
        stage_at_outcome: str | None = None,
    ) -> Any:
        """Record a won, lost or abandoned outcome.

        Re-recording the same outcome for an opportunity must be safe.
        """
        ...


@runtime_checkable
class SurveyRecords(Protocol):
    """Read access to on-site survey records."""

    async def get_status(self, opportunity_id: str) -> str | None:
        """Return the survey status for an opportunity, or ``None`` if there is no survey."""
        ...

    async def get_many(self, opportunity_ids: Sequence[str]) -> Mapping[str, JSONDocument]:
        """Return survey documents keyed by opportunity id.

        Each document carries the survey pages, e.g. ``{"page1": {...}}``.
        """
        ...


@runtime_checkable
class CalculatorRecords(Protocol):
    """Read access to saved calculator sessions."""

    async def get_many(self, opportunity_ids: Sequence[str]) -> Mapping[str, JSONDocument]:
        """Return saved calculator data keyed by opportunity id."""
        ...


@runtime_checkable
class EventBus(Protocol):
    """Receives workflow lifecycle events."""

    async def emit(self, event: str, **payload: Any) -> None:
        """Publish an event with keyword payload."""
        ...
