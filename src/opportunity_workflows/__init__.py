"""Opportunity Workflows - Persisted sales workflows for Litestar.

This package tracks solar-sale opportunities through a fixed, ordered sequence
of business steps and triggers side effects in external systems when specific
steps are completed.

Key Features:
    - Persisted per-opportunity progress with an ordered step set
    - Idempotent, race-tolerant workflow start
    - Best-effort side effects with a per-substep report
    - Customer enrichment for user and admin listings
    - Litestar plugin with a ready-made REST API

Example:
    >>> from opportunity_workflows import Collaborators, OpportunityWorkflowEngine
    >>>
    >>> engine = OpportunityWorkflowEngine(session, Collaborators(users=directory))
    >>> progress = await engine.start("user-1", "opp-1")
    >>> progress = await engine.complete_step("user-1", "opp-1", 1, {})
    >>> progress.current_step
    2
"""

from __future__ import annotations

from opportunity_workflows.__metadata__ import __project__, __version__
from opportunity_workflows.config import Collaborators, EngineSettings
from opportunity_workflows.core.definition import DEFAULT_WORKFLOW, StepTemplate, WorkflowDefinition
from opportunity_workflows.core.types import Outcome, ProgressStatus, StepKind, StepStatus
from opportunity_workflows.db.engine import OpportunityWorkflowEngine
from opportunity_workflows.exceptions import (
    InvalidOutcomeError,
    NotFoundError,
    OpportunityWorkflowError,
    ProgressClosedError,
    ProgressNotFoundError,
    StepNotFoundError,
    StepOutOfRangeError,
    UnresolvedIdentityError,
    UserNotFoundError,
    WorkflowDefinitionError,
    WorkflowValidationError,
)
from opportunity_workflows.plugin import OpportunityWorkflowPlugin, OpportunityWorkflowPluginConfig

__all__ = (
    "DEFAULT_WORKFLOW",
    "Collaborators",
    "EngineSettings",
    "InvalidOutcomeError",
    "NotFoundError",
    "OpportunityWorkflowEngine",
    "OpportunityWorkflowError",
    "OpportunityWorkflowPlugin",
    "OpportunityWorkflowPluginConfig",
    "Outcome",
    "ProgressClosedError",
    "ProgressNotFoundError",
    "ProgressStatus",
    "StepKind",
    "StepNotFoundError",
    "StepOutOfRangeError",
    "StepStatus",
    "StepTemplate",
    "UnresolvedIdentityError",
    "UserNotFoundError",
    "WorkflowDefinition",
    "WorkflowDefinitionError",
    "WorkflowValidationError",
    "__project__",
    "__version__",
)
