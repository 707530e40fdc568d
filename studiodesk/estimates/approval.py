"""Approving an estimate and the follow-on project and invoice steps.

Approval runs once per (estimate, package, requested steps): the estimate is
marked approved, then optionally the linked project moves to pre-production,
then optionally an invoice is created. If a later step fails the earlier ones
are undone and the user sees a single error.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping

from studiodesk.board import ProjectBoard
from studiodesk.config import InvoiceConfig
from studiodesk.estimates.service import EstimateService
from studiodesk.estimates.status_change import (
    ApprovalOptions,
    ChangeWithOptions,
    resolve_status_change,
)
from studiodesk.gateway.errors import FormValidationError, GatewayError
from studiodesk.invoices.api import InvoiceRepository
from studiodesk.invoices.form import InvoiceForm
from studiodesk.models import EstimateStatus, Invoice, ProjectStatus
from studiodesk.mutation import MutationOutcome, MutationState
from studiodesk.notifications import Notifier, describe_failure, error, success

logger = logging.getLogger(__name__)

Compensation = Callable[[], Awaitable[MutationOutcome]]


@dataclass
class ApprovalResult:
    key: str
    completed: bool
    project_status: ProjectStatus | None = None
    invoice: Invoice | None = None
    failed_step: str | None = None
    # Steps whose undo failed; the store may disagree with local state
    not_undone: list[str] = field(default_factory=list)


@dataclass
class _Run:
    compensations: list[tuple[str, Compensation]] = field(default_factory=list)


class ApprovalWorkflow:
    def __init__(
        self,
        estimates: EstimateService,
        board: ProjectBoard,
        invoices: InvoiceRepository,
        notifier: Notifier,
        invoice_config: InvoiceConfig | None = None,
    ):
        self.estimates = estimates
        self.board = board
        self.invoices = invoices
        self.notifier = notifier
        self.invoice_config = invoice_config or invoices.config
        self._completed: dict[str, ApprovalResult] = {}
        self._running: set[str] = set()

    @staticmethod
    def idempotency_key(
        estimate_id: str,
        selected_package_index: int | None,
        options: ApprovalOptions = ApprovalOptions(),
    ) -> str:
        """Approvals asking for different follow-on steps are distinct requests."""
        steps = "+".join(
            name
            for name, wanted in (
                ("project", options.is_project_requested),
                ("invoice", options.is_invoice_requested),
            )
            if wanted
        )
        return f"approve:{estimate_id}:{selected_package_index}:{steps or 'none'}"

    async def approve(
        self,
        estimate_id: str,
        options: ApprovalOptions | Mapping[str, Any] | None = None,
        selected_package_index: int | None = None,
    ) -> ApprovalResult:
        """Approve ``estimate_id`` and run the requested follow-on steps.

        Repeating a completed approval with the same options, or starting one
        that is already running, issues no remote calls and returns the
        earlier result. Asking again with more steps runs the new ones; steps
        already done settle as no-ops.
        """
        change = resolve_status_change(options or ApprovalOptions(), selected_package_index)
        if not isinstance(change, ChangeWithOptions):
            raise TypeError("Approval takes approval options, not a negotiated amount")

        key = self.idempotency_key(estimate_id, change.selected_package_index, change.options)
        if key in self._completed:
            logger.info("approval_repeated: key=%s", key)
            return self._completed[key]
        if key in self._running:
            logger.info("approval_in_progress: key=%s", key)
            return ApprovalResult(key=key, completed=False, failed_step="in_progress")

        self._running.add(key)
        try:
            result = await self._run(key, estimate_id, change)
        finally:
            self._running.discard(key)

        if result.completed:
            self._completed[key] = result
        return result

    async def _run(self, key: str, estimate_id: str, change: ChangeWithOptions) -> ApprovalResult:
        run = _Run()
        previous = self.estimates.get(estimate_id)

        outcome = await self.estimates.apply(estimate_id, EstimateStatus.APPROVED, change)
        if not outcome.succeeded:
            return ApprovalResult(key=key, completed=False, failed_step="estimate")
        if outcome.state is MutationState.APPLIED:
            run.compensations.append(
                ("estimate", lambda: self.estimates.restore(previous, silent=True))
            )

        result = ApprovalResult(key=key, completed=True)
        approved = self.estimates.get(estimate_id)

        if change.options.is_project_requested:
            project_id = approved.project_id
            if project_id is None or project_id not in self.board.controller.entities:
                logger.warning("approval_without_project: estimate=%s", estimate_id)
                return await self._fail(
                    run, key, "project", "No project is linked to this estimate."
                )

            prior_status = self.board.get(project_id).status
            moved = await self.board.set_status(
                project_id, ProjectStatus.PRE_PRODUCTION, silent=True
            )
            if not moved.succeeded:
                return await self._fail(
                    run,
                    key,
                    "project",
                    describe_failure(moved.error, "update the project status")
                    if moved.error
                    else "The project status could not be updated.",
                )
            if moved.state is MutationState.APPLIED:
                run.compensations.append(
                    ("project", lambda: self.board.set_status(project_id, prior_status, silent=True))
                )
            result.project_status = ProjectStatus.PRE_PRODUCTION

        if change.options.is_invoice_requested:
            try:
                invoice, form_data = InvoiceForm.from_estimate(
                    approved, self.invoice_config
                ).build_submission()
                result.invoice = await self.invoices.create(invoice, form_data)
            except FormValidationError as exc:
                logger.warning("approval_invoice_invalid: estimate=%s errors=%s", estimate_id, exc.errors)
                return await self._fail(
                    run, key, "invoice", next(iter(exc.errors.values()), str(exc))
                )
            except GatewayError as exc:
                logger.error("approval_invoice_failed: estimate=%s error=%s", estimate_id, exc.message)
                return await self._fail(
                    run, key, "invoice", describe_failure(exc, "create the invoice")
                )
            success(self.notifier, "Invoice created", result.invoice.reference)

        logger.info(
            "approval_completed: key=%s project=%s invoice=%s",
            key,
            result.project_status,
            result.invoice.id if result.invoice else None,
        )
        return result

    async def _fail(self, run: _Run, key: str, step: str, description: str) -> ApprovalResult:
        """Undo earlier steps and report the failure as one notice."""
        not_undone = await self._compensate(run)
        if not_undone:
            description += f" Some changes could not be undone ({', '.join(not_undone)})."
        error(self.notifier, "Approval not completed", description)
        return ApprovalResult(key=key, completed=False, failed_step=step, not_undone=not_undone)

    async def _compensate(self, run: _Run) -> list[str]:
        not_undone: list[str] = []
        for name, undo in reversed(run.compensations):
            logger.info("approval_compensating: step=%s", name)
            outcome = await undo()
            if not outcome.succeeded:
                logger.error(
                    "approval_compensation_failed: step=%s state=%s error=%s",
                    name,
                    outcome.state.value,
                    outcome.error.message if outcome.error else None,
                )
                not_undone.append(name)
        return not_undone
