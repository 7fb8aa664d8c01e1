"""Core domain module for opportunity-workflows.

This module exports the building blocks shared by every layer: step and status
types, the workflow definition, collaborator protocols and data models.
"""

from __future__ import annotations

from opportunity_workflows.core.definition import DEFAULT_WORKFLOW, StepTemplate, WorkflowDefinition
from opportunity_workflows.core.models import (
    AddressRecord,
    ContactRecord,
    CustomerInfo,
    DispatchReport,
    EnrichedProgressData,
    OpportunityRecord,
    ProgressData,
    SideEffectOutcome,
    StepData,
    SubmissionArtifact,
    UserRecord,
)
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
from opportunity_workflows.core.types import (
    ArchiveBucket,
    JSONDocument,
    Outcome,
    ProgressStatus,
    SideEffectStatus,
    StepKind,
    StepStatus,
)

__all__ = [
    "DEFAULT_WORKFLOW",
    "AddressRecord",
    "ArchiveBucket",
    "CRMClient",
    "CalculatorRecords",
    "ContactRecord",
    "CustomerInfo",
    "DispatchReport",
    "DocumentArchive",
    "EnrichedProgressData",
    "EventBus",
    "JSONDocument",
    "OpportunityRecord",
    "Outcome",
    "OutcomeRecorder",
    "ProgressData",
    "ProgressStatus",
    "SideEffectOutcome",
    "SideEffectStatus",
    "SignatureClient",
    "StepData",
    "StepKind",
    "StepStatus",
    "StepTemplate",
    "SubmissionArtifact",
    "SurveyRecords",
    "UserDirectory",
    "UserRecord",
    "WorkflowDefinition",
]
