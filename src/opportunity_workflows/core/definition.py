"""Workflow definition structures.

This module provides the static, compiled-in catalog of step templates that every
opportunity workflow is created from, along with the default solar-sale workflow.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from opportunity_workflows.core.types import StepKind
from opportunity_workflows.exceptions import StepOutOfRangeError, WorkflowDefinitionError

if TYPE_CHECKING:
    from collections.abc import Iterable

__all__ = ["DEFAULT_WORKFLOW", "StepTemplate", "WorkflowDefinition"]


@dataclass(frozen=True)
class StepTemplate:
    """Static definition of one stage in the business process.

    Attributes:
        step_number: Position of the step, starting at 1.
        kind: Business purpose of the step.
        title: Short human-readable title.
        description: Longer description shown to the user.
        required: Whether the step must be completed.
        estimated_duration_minutes: Rough time the step is expected to take.
        archives_proposal: Whether completing this step copies generated proposal
            documents into the quotations archive.
    """

    step_number: int
    kind: StepKind
    title: str
    description: str = ""
    required: bool = True
    estimated_duration_minutes: int = 0
    archives_proposal: bool = False

    def to_dict(self) -> dict[str, object]:
        """Serialize the template for listing endpoints."""
        return {
            "step_number": self.step_number,
            "kind": str(self.kind),
            "title": self.title,
            "description": self.description,
            "required": self.required,
            "estimated_duration_minutes": self.estimated_duration_minutes,
        }


@dataclass(frozen=True)
class WorkflowDefinition:
    """Ordered, immutable catalog of step templates.

    The definition is validated on construction: step numbers must be unique and
    contiguous starting at 1. The last template is the terminal step and is the
    only one whose completion payload may carry an ``outcome``.

    Attributes:
        name: Identifier of the workflow.
        steps: Step templates ordered by step number.
        description: Human-readable description.

    Example:
        >>> definition = WorkflowDefinition(
        ...     name="mini",
        ...     steps=(
        ...         StepTemplate(1, StepKind.SITE_SURVEY, "Survey"),
        ...         StepTemplate(2, StepKind.WELCOME_EMAIL, "Welcome"),
        ...     ),
        ... )
        >>> definition.total_steps
        2
    """

    name: str
    steps: tuple[StepTemplate, ...]
    description: str = ""
    _by_number: dict[int, StepTemplate] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        steps = tuple(sorted(self.steps, key=lambda s: s.step_number))
        errors = self.validate(steps)
        if errors:
            raise WorkflowDefinitionError(errors)
        object.__setattr__(self, "steps", steps)
        object.__setattr__(self, "_by_number", {s.step_number: s for s in steps})

    @staticmethod
    def validate(steps: Iterable[StepTemplate]) -> list[str]:
        """Check the structural invariants of a set of templates.

        Args:
            steps: Templates to check.

        Returns:
            A list of error messages, empty when the templates are valid.
        """
        errors: list[str] = []
        numbers = [s.step_number for s in steps]
        if not numbers:
            errors.append("Workflow must define at least one step")
            return errors

        seen: set[int] = set()
        for number in numbers:
            if number in seen:
                errors.append(f"Duplicate step number {number}")
            seen.add(number)

        expected = set(range(1, len(seen) + 1))
        if seen != expected:
            errors.append(f"Step numbers must be contiguous from 1, got {sorted(seen)}")
        return errors

    @property
    def total_steps(self) -> int:
        """Number of steps, equal to the highest step number."""
        return self.steps[-1].step_number

    @property
    def terminal_step(self) -> StepTemplate:
        """The last step of the workflow."""
        return self.steps[-1]

    def get_step(self, step_number: int) -> StepTemplate:
        """Look up a template by step number.

        Args:
            step_number: Step number to look up.

        Returns:
            The matching template.

        Raises:
            StepOutOfRangeError: If the number lies outside ``1..total_steps``.
        """
        try:
            return self._by_number[step_number]
        except KeyError:
            raise StepOutOfRangeError(step_number, self.total_steps) from None

    def is_terminal(self, step_number: int) -> bool:
        """Whether ``step_number`` is the terminal step."""
        return step_number == self.total_steps

    def find_kind(self, kind: StepKind) -> StepTemplate | None:
        """Return the first template with the given kind, if any."""
        return next((s for s in self.steps if s.kind == kind), None)


DEFAULT_WORKFLOW = WorkflowDefinition(
    name="solar_opportunity",
    description="Solar sale from site survey through installation booking",
    steps=(
        StepTemplate(1, StepKind.SITE_SURVEY, "Survey", "Conduct the on-site survey", True, 60),
        StepTemplate(2, StepKind.OPEN_SOLAR, "OpenSolar", "Access OpenSolar platform for design", True, 30),
        StepTemplate(3, StepKind.CALCULATOR, "Calculate", "Choose between Off Peak and Flux options", True, 15),
        StepTemplate(
            4,
            StepKind.FOLLOW_UP,
            "Proposal",
            "Present the final proposal to the customer",
            True,
            30,
            archives_proposal=True,
        ),
        StepTemplate(
            5,
            StepKind.SOLAR_PROJECTION,
            "Solar Projection",
            "Review detailed solar projection data and financial analysis",
            True,
            10,
        ),
        StepTemplate(
            6, StepKind.INSTALLATION_SCHEDULING, "Hometree", "Visit Hometree for installation services", True, 15
        ),
        StepTemplate(
            7,
            StepKind.PROPOSAL_GENERATION,
            "Contract Generation",
            "Generate contract and proposal documents",
            True,
            30,
        ),
        StepTemplate(8, StepKind.CONTRACT_SIGNING, "Contract Signing", "Sign the installation contract", True, 20),
        StepTemplate(
            9, StepKind.EMAIL_CONFIRMATION, "Email Confirmation", "Sign the booking confirmation letter", True, 10
        ),
        StepTemplate(10, StepKind.PAYMENT, "Payment", "Process payment for the installation", True, 10),
        StepTemplate(
            11,
            StepKind.INSTALLATION_BOOKING,
            "Book Installation",
            "Schedule your solar installation appointment",
            True,
            15,
        ),
        StepTemplate(
            12,
            StepKind.WELCOME_EMAIL,
            "Send Welcome Email",
            "Send welcome email to customer with installation details",
            True,
            5,
        ),
    ),
)
"""The twelve-step solar sale workflow used when no definition is configured."""
