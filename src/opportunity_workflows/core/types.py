"""Core type definitions for opportunity-workflows.

This module defines the enums and type aliases shared by the workflow definition,
the persistence layer and the side-effect dispatcher.
"""

from __future__ import annotations

from enum import StrEnum, auto
from typing import Any, TypeAlias

__all__ = [
    "ArchiveBucket",
    "JSONDocument",
    "Outcome",
    "ProgressStatus",
    "SideEffectStatus",
    "StepKind",
    "StepStatus",
]

JSONDocument: TypeAlias = dict[str, Any]
"""Schema-less key-value payload attached to progress records and steps."""


class StepKind(StrEnum):
    """Business purpose of a workflow step.

    Step kinds are copied by value into every persisted step, so a kind stays
    meaningful even after the workflow definition is reordered.
    """

    INITIAL_CONTACT = "INITIAL_CONTACT"
    SURVEY_SCHEDULING = "SURVEY_SCHEDULING"
    SITE_SURVEY = "SITE_SURVEY"
    PROPOSAL_GENERATION = "PROPOSAL_GENERATION"
    CONTRACT_SIGNING = "CONTRACT_SIGNING"
    INSTALLATION_SCHEDULING = "INSTALLATION_SCHEDULING"
    FOLLOW_UP = "FOLLOW_UP"
    OPEN_SOLAR = "OPEN_SOLAR"
    CALCULATOR = "CALCULATOR"
    SOLAR_PROJECTION = "SOLAR_PROJECTION"
    EMAIL_CONFIRMATION = "EMAIL_CONFIRMATION"
    PAYMENT = "PAYMENT"
    EXPRESS_CONSENT = "EXPRESS_CONSENT"
    WELCOME_EMAIL = "WELCOME_EMAIL"
    INSTALLATION_BOOKING = "INSTALLATION_BOOKING"


class StepStatus(StrEnum):
    """Status of a single persisted step.

    Attributes:
        PENDING: Step has not been started.
        IN_PROGRESS: Step is being worked on.
        COMPLETED: Step has been completed.
        SKIPPED: Step was explicitly skipped.
    """

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    SKIPPED = "SKIPPED"


class ProgressStatus(StrEnum):
    """Aggregate status of a progress record.

    Attributes:
        IN_PROGRESS: Workflow is active.
        COMPLETED: Every step has been reached. Terminal.
        PAUSED: Workflow was paused and can be resumed.
        CANCELLED: Workflow was cancelled. Terminal.
    """

    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    PAUSED = "PAUSED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        """Whether no further transitions are expected from this status."""
        return self in {ProgressStatus.COMPLETED, ProgressStatus.CANCELLED}


class Outcome(StrEnum):
    """Terminal classification of an opportunity recorded at the last step."""

    WON = auto()
    LOST = auto()
    ABANDONED = auto()

    @classmethod
    def parse(cls, value: Any) -> Outcome:
        """Normalize a payload value into an outcome.

        Args:
            value: Raw ``outcome`` value from a step payload, in any letter case.

        Returns:
            The matching outcome.

        Raises:
            ValueError: If the value does not name a known outcome.
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            msg = f"Outcome must be a string, got {type(value).__name__}"
            raise ValueError(msg)
        return cls(value.strip().lower())


class ArchiveBucket(StrEnum):
    """Destination folder family used by the document archive.

    Attributes:
        QUOTATIONS: Proposal documents produced before an outcome is known.
        WON: Document bundle of a won opportunity.
        LOST: Document bundle of a lost opportunity.
    """

    QUOTATIONS = auto()
    WON = auto()
    LOST = auto()


class SideEffectStatus(StrEnum):
    """Result of one side-effect substep.

    Attributes:
        SUCCEEDED: The collaborator call completed.
        FAILED: The collaborator call raised and the error was swallowed.
        SKIPPED: The substep did not apply or had nothing to do.
    """

    SUCCEEDED = auto()
    FAILED = auto()
    SKIPPED = auto()
