"""Exception hierarchy for opportunity-workflows."""

from __future__ import annotations

__all__ = (
    "InvalidOutcomeError",
    "NotFoundError",
    "OpportunityWorkflowError",
    "ProgressClosedError",
    "ProgressNotFoundError",
    "StepNotFoundError",
    "StepOutOfRangeError",
    "UnresolvedIdentityError",
    "UserNotFoundError",
    "WorkflowDefinitionError",
    "WorkflowValidationError",
)


class OpportunityWorkflowError(Exception):
    """Base exception for all opportunity-workflows errors.

    All exceptions raised by opportunity-workflows inherit from this class, so
    callers can catch every workflow-related error with a single except clause.
    """


class NotFoundError(OpportunityWorkflowError):
    """Base class for missing users, progress records and steps.

    These are client-correctable errors and are surfaced as 404 responses by
    the web layer.
    """


class UserNotFoundError(NotFoundError):
    """Raised when an external user reference does not resolve to a user.

    Attributes:
        user_ref: The external user reference that could not be resolved.
    """

    def __init__(self, user_ref: str) -> None:
        """Initialize the exception with the user reference.

        Args:
            user_ref: The external user reference that could not be resolved.
        """
        self.user_ref = user_ref
        super().__init__(f"User '{user_ref}' not found")


class UnresolvedIdentityError(UserNotFoundError):
    """Raised when a user reference is unknown and no system identity is configured.

    Unlike :class:`UserNotFoundError` this is raised by operations that accept a
    configured system identity as a fallback, to signal that the fallback was
    unavailable too.
    """

    def __init__(self, user_ref: str, system_user_id: str | None = None) -> None:
        """Initialize the exception.

        Args:
            user_ref: The external user reference that could not be resolved.
            system_user_id: The configured system identity, if any.
        """
        super().__init__(user_ref)
        self.system_user_id = system_user_id
        msg = f"User '{user_ref}' could not be resolved"
        if system_user_id:
            msg += f" and system identity '{system_user_id}' is unknown"
        else:
            msg += " and no system identity is configured"
        self.args = (msg,)


class ProgressNotFoundError(NotFoundError):
    """Raised when no workflow progress exists for an opportunity.

    Attributes:
        opportunity_id: The opportunity identifier.
    """

    def __init__(self, opportunity_id: str) -> None:
        """Initialize the exception with the opportunity id.

        Args:
            opportunity_id: The opportunity identifier.
        """
        self.opportunity_id = opportunity_id
        super().__init__(f"Workflow progress for opportunity '{opportunity_id}' not found")


class StepNotFoundError(NotFoundError):
    """Raised when a step record does not exist for a progress record.

    Attributes:
        opportunity_id: The opportunity identifier.
        step_number: The step number that was requested.
    """

    def __init__(self, opportunity_id: str, step_number: int) -> None:
        """Initialize the exception with step details.

        Args:
            opportunity_id: The opportunity identifier.
            step_number: The step number that was requested.
        """
        self.opportunity_id = opportunity_id
        self.step_number = step_number
        super().__init__(f"Step {step_number} not found for opportunity '{opportunity_id}'")


class WorkflowValidationError(OpportunityWorkflowError):
    """Raised when a request is rejected before any state is mutated.

    Surfaced as a 400 response by the web layer.
    """


class StepOutOfRangeError(WorkflowValidationError):
    """Raised when a step number lies outside the workflow definition.

    Attributes:
        step_number: The offending step number.
        total_steps: Number of steps in the workflow definition.
    """

    def __init__(self, step_number: int, total_steps: int) -> None:
        """Initialize the exception.

        Args:
            step_number: The offending step number.
            total_steps: Number of steps in the workflow definition.
        """
        self.step_number = step_number
        self.total_steps = total_steps
        super().__init__(f"Step {step_number} is outside the workflow range 1..{total_steps}")


class InvalidOutcomeError(WorkflowValidationError):
    """Raised when a terminal step payload carries an unknown outcome.

    Attributes:
        value: The rejected outcome value.
    """

    def __init__(self, value: object) -> None:
        """Initialize the exception.

        Args:
            value: The rejected outcome value.
        """
        self.value = value
        super().__init__(f"Invalid outcome {value!r}; expected one of won, lost, abandoned")


class ProgressClosedError(WorkflowValidationError):
    """Raised when a step is modified on a cancelled workflow.

    Attributes:
        opportunity_id: The opportunity identifier.
        status: The terminal status of the progress record.
    """

    def __init__(self, opportunity_id: str, status: str) -> None:
        """Initialize the exception.

        Args:
            opportunity_id: The opportunity identifier.
            status: The terminal status of the progress record.
        """
        self.opportunity_id = opportunity_id
        self.status = status
        super().__init__(f"Workflow for opportunity '{opportunity_id}' is already {status}")


class WorkflowDefinitionError(OpportunityWorkflowError):
    """Raised when a workflow definition violates its structural invariants.

    Attributes:
        errors: List of validation error messages.
    """

    def __init__(self, errors: list[str]) -> None:
        """Initialize the exception with validation errors.

        Args:
            errors: List of validation error messages.
        """
        self.errors = errors
        super().__init__(f"Workflow definition invalid: {'; '.join(errors)}")
