"""Side effects triggered by step completion.

The dispatcher inspects a completed step and its payload and fans out to the
external collaborators: archiving proposal documents, recording the terminal
outcome, moving the CRM stage, archiving won or lost document bundles and
deleting generated working files.

Every substep is best-effort. A collaborator failure is logged and recorded in
the returned :class:`~opportunity_workflows.core.models.DispatchReport`; it is
never raised to the caller.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from opportunity_workflows.core.models import CustomerInfo, DispatchReport, SideEffectOutcome
from opportunity_workflows.core.types import ArchiveBucket, Outcome, SideEffectStatus
from opportunity_workflows.engine.cleanup import WorkingFileCleaner
from opportunity_workflows.engine.customers import customer_from_crm, customer_from_payload

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Mapping

    from opportunity_workflows.config import Collaborators, EngineSettings
    from opportunity_workflows.core.definition import StepTemplate, WorkflowDefinition

__all__ = ["SideEffectDispatcher", "SkipSideEffect"]

logger = logging.getLogger(__name__)

DEFAULT_CUSTOMER_NAME = "Customer"


class SkipSideEffect(Exception):
    """Raised by a substep that has nothing to do."""


class SideEffectDispatcher:
    """Run the side effects of a step completion.

    Attributes:
        definition: The workflow definition step numbers refer to.
        collaborators: External systems used by the substeps.
        settings: Engine settings.
    """

    def __init__(
        self,
        definition: WorkflowDefinition,
        collaborators: Collaborators,
        settings: EngineSettings,
    ) -> None:
        self.definition = definition
        self.collaborators = collaborators
        self.settings = settings
        self.cleaner = (
            WorkingFileCleaner(settings.working_output_dir, settings.working_file_prefix)
            if settings.working_output_dir is not None
            else None
        )

    async def dispatch(
        self,
        opportunity_id: str,
        user_id: str,
        step_number: int,
        data: Mapping[str, Any] | None,
    ) -> DispatchReport:
        """Run every side effect that applies to a completed step.

        Args:
            opportunity_id: The opportunity whose step was completed.
            user_id: Internal id of the acting user.
            step_number: The completed step.
            data: The completion payload.

        Returns:
            A report with one entry per substep that applied.
        """
        report = DispatchReport(opportunity_id=opportunity_id, step_number=step_number)
        payload: Mapping[str, Any] = data or {}
        template = self.definition.get_step(step_number)

        if template.archives_proposal:
            report.effects.append(
                await self._run("archive_proposal", opportunity_id, self._archive_proposal, opportunity_id, payload)
            )

        if self.definition.is_terminal(step_number) and payload.get("outcome"):
            outcome = Outcome.parse(payload["outcome"])
            logger.info("Opportunity %s marked as %s", opportunity_id, outcome.upper())
            await self._dispatch_outcome(report, template, user_id, outcome, payload)

        return report

    async def _dispatch_outcome(
        self,
        report: DispatchReport,
        template: StepTemplate,
        user_id: str,
        outcome: Outcome,
        payload: Mapping[str, Any],
    ) -> None:
        opportunity_id = report.opportunity_id
        report.effects.append(
            await self._run(
                "record_outcome",
                opportunity_id,
                self._record_outcome,
                opportunity_id,
                user_id,
                outcome,
                template,
                payload,
            )
        )

        if outcome == Outcome.WON:
            stage_result, archive_results = await asyncio.gather(
                self._run("transition_stage", opportunity_id, self._transition_stage, opportunity_id),
                self._archive_won(opportunity_id, payload),
            )
            report.effects.append(stage_result)
            report.effects.extend(archive_results)
        elif outcome == Outcome.LOST:
            report.effects.append(
                await self._run("archive_lost", opportunity_id, self._archive_lost, opportunity_id, payload)
            )
        else:
            return

        report.effects.append(
            await self._run("cleanup_working_files", opportunity_id, self._cleanup, opportunity_id)
        )

    async def _run(
        self,
        name: str,
        opportunity_id: str,
        func: Callable[..., Awaitable[str | None]],
        *args: Any,
    ) -> SideEffectOutcome:
        try:
            detail = await func(*args)
        except SkipSideEffect as skip:
            logger.warning("Skipped %s for opportunity %s: %s", name, opportunity_id, skip)
            return SideEffectOutcome(name, SideEffectStatus.SKIPPED, str(skip) or None)
        except Exception as exc:
            logger.exception("Side effect %s raised for opportunity %s", name, opportunity_id)
            return SideEffectOutcome(name, SideEffectStatus.FAILED, str(exc) or type(exc).__name__)
        return SideEffectOutcome(name, SideEffectStatus.SUCCEEDED, detail)

    async def _archive_proposal(self, opportunity_id: str, payload: Mapping[str, Any]) -> str | None:
        archive = self.collaborators.archive
        if archive is None:
            raise SkipSideEffect("no document archive configured")

        proposal_files = payload.get("proposalFiles") or {}
        if not isinstance(proposal_files, dict) or not (
            proposal_files.get("pptxPath") or proposal_files.get("pdfPath")
        ):
            raise SkipSideEffect("no proposal files in payload")

        customer_name = customer_from_payload(payload).name or DEFAULT_CUSTOMER_NAME
        await archive.copy_documents(
            opportunity_id,
            customer_name,
            ArchiveBucket.QUOTATIONS,
            proposal_files,
            include_survey_images=True,
        )
        return f"copied proposal for {customer_name}"

    async def _record_outcome(
        self,
        opportunity_id: str,
        user_id: str,
        outcome: Outcome,
        template: StepTemplate,
        payload: Mapping[str, Any],
    ) -> str | None:
        recorder = self.collaborators.outcomes
        if recorder is None:
            raise SkipSideEffect("no outcome recorder configured")

        value = _deal_value(payload.get("dealValue"))
        notes = payload.get("notes") or f"Marked as {outcome} in workflow step {template.step_number}"
        await recorder.record_outcome(
            opportunity_id,
            user_id,
            outcome,
            value,
            notes,
            stage_at_outcome=str(template.kind),
        )
        logger.info("Recorded %s outcome for opportunity %s", outcome, opportunity_id)
        return f"{outcome} worth {value:g}"

    async def _transition_stage(self, opportunity_id: str) -> str | None:
        crm = self.collaborators.crm
        if crm is None:
            raise SkipSideEffect("no CRM client configured")

        stage = self.settings.signed_contract_stage
        await crm.transition_stage(opportunity_id, stage)
        logger.info("Moved opportunity %s to stage %r", opportunity_id, stage)
        return stage

    async def _archive_won(self, opportunity_id: str, payload: Mapping[str, Any]) -> list[SideEffectOutcome]:
        results: list[SideEffectOutcome] = []
        submissions: list[dict[str, Any]] = []

        async def fetch_submissions() -> str | None:
            client = self.collaborators.signatures
            if client is None:
                raise SkipSideEffect("no e-signature client configured")
            artifacts = await client.fetch_completed_submissions(opportunity_id)
            submissions.extend(artifact.to_dict() for artifact in artifacts)
            return f"{len(submissions)} completed submissions"

        results.append(await self._run("fetch_signed_submissions", opportunity_id, fetch_submissions))

        async def copy_bundle() -> str | None:
            archive = self.collaborators.archive
            if archive is None:
                raise SkipSideEffect("no document archive configured")

            documents = _won_documents(payload)
            if submissions:
                documents["signedSubmissions"] = submissions
            if not documents:
                raise SkipSideEffect("no documents to archive")

            customer = await self._archive_customer(opportunity_id, payload, need_postcode=False)
            await archive.copy_documents(
                opportunity_id,
                customer.name or DEFAULT_CUSTOMER_NAME,
                ArchiveBucket.WON,
                documents,
            )
            return ", ".join(sorted(documents))

        results.append(await self._run("archive_won", opportunity_id, copy_bundle))
        return results

    async def _archive_lost(self, opportunity_id: str, payload: Mapping[str, Any]) -> str | None:
        archive = self.collaborators.archive
        if archive is None:
            raise SkipSideEffect("no document archive configured")

        files = _lost_files(payload)
        if not files:
            raise SkipSideEffect("no files to archive")

        customer = await self._archive_customer(opportunity_id, payload, need_postcode=True)
        await archive.copy_documents(
            opportunity_id,
            customer.name or DEFAULT_CUSTOMER_NAME,
            ArchiveBucket.LOST,
            files,
            postcode=customer.postcode or "",
        )
        return ", ".join(sorted(files))

    async def _archive_customer(
        self,
        opportunity_id: str,
        payload: Mapping[str, Any],
        *,
        need_postcode: bool,
    ) -> CustomerInfo:
        customer = customer_from_payload(payload)
        needs_name = customer.name in (None, DEFAULT_CUSTOMER_NAME)
        if not needs_name and not (need_postcode and not customer.postcode):
            return customer

        crm = self.collaborators.crm
        if crm is None:
            return customer
        try:
            record = await crm.fetch_opportunity(opportunity_id)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Could not fetch customer details for opportunity %s: %s", opportunity_id, exc)
            return customer

        crm_customer = customer_from_crm(record)
        if needs_name:
            return crm_customer.merge(customer)
        return customer.merge(crm_customer)

    async def _cleanup(self, opportunity_id: str) -> str | None:
        if self.cleaner is None:
            raise SkipSideEffect("no working output directory configured")
        removed = await self.cleaner.clean(opportunity_id)
        return f"removed {len(removed)} files"


def _deal_value(raw: Any) -> float:
    if isinstance(raw, bool) or raw is None:
        return 0.0
    try:
        return float(raw)
    except (TypeError, ValueError):
        return 0.0


def _won_documents(payload: Mapping[str, Any]) -> dict[str, Any]:
    documents: dict[str, Any] = {}
    if payload.get("proposalFiles"):
        documents["proposalFiles"] = payload["proposalFiles"]
    if payload.get("contractFiles"):
        documents["contractFiles"] = payload["contractFiles"]
    contract_submission = payload.get("contractSubmissionId") or payload.get("submissionId")
    if contract_submission:
        documents["contractSubmissionId"] = contract_submission
    booking_submission = payload.get("bookingConfirmationSubmissionId") or payload.get(
        "emailConfirmationSubmissionId"
    )
    if booking_submission:
        documents["bookingConfirmationSubmissionId"] = booking_submission
    return documents


def _lost_files(payload: Mapping[str, Any]) -> dict[str, Any]:
    files: dict[str, Any] = {}
    proposal_files = payload.get("proposalFiles")
    if isinstance(proposal_files, dict):
        proposal_path = proposal_files.get("pptxPath") or proposal_files.get("pdfPath")
        if proposal_path:
            files["proposalPath"] = proposal_path
    if payload.get("calculatorPath"):
        files["calculatorPath"] = payload["calculatorPath"]
    if payload.get("surveyPath"):
        files["surveyPath"] = payload["surveyPath"]
    return files
