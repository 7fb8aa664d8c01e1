"""Configuration for the opportunity workflow engine."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from opportunity_workflows.core.protocols import (
        CalculatorRecords,
        CRMClient,
        DocumentArchive,
        EventBus,
        OutcomeRecorder,
        SignatureClient,
        SurveyRecords,
        UserDirectory,
    )

__all__ = ["Collaborators", "EngineSettings"]


@dataclass
class EngineSettings:
    """Tunable behavior of the workflow engine.

    Attributes:
        system_user_id: Internal user that owns workflows started by callers whose
            identity cannot be resolved. When ``None``, such calls fail with
            :class:`~opportunity_workflows.exceptions.UnresolvedIdentityError`.
        signed_contract_stage: CRM pipeline stage a won opportunity is moved to.
        working_output_dir: Directory holding generated presentation exports.
            Cleanup is skipped when unset.
        working_file_prefix: Prefix of generated working files, followed by the
            opportunity id and an underscore.
        accepted_survey_statuses: Survey statuses that satisfy the site-survey step.
        placeholder_address: Address shown when none can be resolved.
        max_concurrent_crm_fetches: Upper bound on CRM lookups a listing runs at once.
    """

    system_user_id: str | None = None
    signed_contract_stage: str = "Signed Contract"
    working_output_dir: Path | None = None
    working_file_prefix: str = "presentation_"
    accepted_survey_statuses: frozenset[str] = frozenset({"SUBMITTED", "APPROVED"})
    placeholder_address: str = "Address not available"
    max_concurrent_crm_fetches: int = 10

    def __post_init__(self) -> None:
        if self.working_output_dir is not None and not isinstance(self.working_output_dir, Path):
            self.working_output_dir = Path(self.working_output_dir)


@dataclass
class Collaborators:
    """External systems the engine talks to.

    Only the user directory is mandatory. Any other collaborator left as ``None``
    turns the side effects that need it into skipped substeps.
    """

    users: UserDirectory
    crm: CRMClient | None = None
    archive: DocumentArchive | None = None
    signatures: SignatureClient | None = None
    outcomes: OutcomeRecorder | None = None
    surveys: SurveyRecords | None = None
    calculators: CalculatorRecords | None = None
    event_bus: EventBus | None = None
