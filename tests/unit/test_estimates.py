"""Unit tests for estimate rules, the estimate service and approval."""

from __future__ import annotations

import pytest

from studiodesk.board import ProjectBoard, project_from_row
from studiodesk.estimates import (
    ApprovalOptions,
    ApprovalWorkflow,
    ChangeWithOptions,
    EstimateService,
    LegacyChange,
    SimpleChange,
    apply_status_change,
    derive_estimate_amount,
    estimate_from_row,
    filter_by_tab,
    resolve_status_change,
    validate_packages,
)
from studiodesk.gateway.errors import TransportError
from studiodesk.invoices.api import InvoiceRepository
from studiodesk.models import EstimatePackage, EstimateStatus, PackageEvent, ProjectStatus
from studiodesk.mutation import MutationState


class TestResolveStatusChange:
    """Test mapping call shapes onto status-change variants."""

    def test_nothing_is_simple(self):
        """Test no argument is a plain status change."""
        assert resolve_status_change() == SimpleChange()

    def test_options_mapping(self):
        """Test an options mapping is read as approval options."""
        change = resolve_status_change({"isProjectRequested": True}, 1)

        assert isinstance(change, ChangeWithOptions)
        assert change.options == ApprovalOptions(is_project_requested=True)
        assert change.selected_package_index == 1

    def test_string_is_negotiated_amount(self):
        """Test a string argument is a negotiated amount."""
        change = resolve_status_change("₹70,000", 0)

        assert change == LegacyChange(negotiated_amount="₹70,000", selected_package_index=0)

    def test_unsupported_shape(self):
        """Test an unsupported argument shape is rejected."""
        with pytest.raises(TypeError):
            resolve_status_change(42)


class TestRules:
    """Test amount derivation and status application."""

    def test_selected_package_drives_amount(self, sample_estimate):
        """Test the selected package sets the amount."""
        estimate = sample_estimate.model_copy(update={"selected_package_index": 1})

        assert derive_estimate_amount(estimate) == "₹80000.00"

    def test_items_sum_without_package(self, itemized_estimate):
        """Test line items are summed when no package is chosen."""
        assert derive_estimate_amount(itemized_estimate) == "₹12500.50"

    def test_negotiated_amount_replaces_selected_package(self, sample_estimate):
        """Test a negotiated amount replaces the selected package."""
        updated = apply_status_change(
            sample_estimate,
            EstimateStatus.NEGOTIATING,
            LegacyChange(negotiated_amount="₹70,000", selected_package_index=1),
        )

        assert updated.status is EstimateStatus.NEGOTIATING
        assert updated.amount == "₹70000.00"
        assert updated.packages[1].amount == "₹70000.00"
        assert updated.packages[0].amount == "₹50,000.00"
        assert sample_estimate.packages[1].amount == "₹80,000.00"

    def test_negotiated_amount_scales_all_packages(self, sample_estimate):
        """Without a selection every package keeps its proportion."""
        updated = apply_status_change(
            sample_estimate, EstimateStatus.NEGOTIATING, LegacyChange(negotiated_amount="60000")
        )

        assert updated.amount == "₹60000.00"
        assert [p.amount for p in updated.packages] == ["₹60000.00", "₹96000.00"]

    def test_out_of_range_package(self, sample_estimate):
        """Test a package index out of range is rejected."""
        with pytest.raises(IndexError):
            apply_status_change(
                sample_estimate, EstimateStatus.APPROVED, SimpleChange(selected_package_index=5)
            )

    def test_validate_packages(self):
        """Test package validation."""
        assert validate_packages([]) == ["Please add at least one estimate option with services."]

        problems = validate_packages(
            [EstimatePackage(amount="", services=[PackageEvent(event="Haldi")], deliverables=[])]
        )

        assert len(problems) == 3
        assert "event details in package 1" in problems[0]

    def test_pending_tab_includes_negotiating(self, sample_estimate, itemized_estimate):
        """Test the pending tab includes negotiating estimates."""
        negotiating = itemized_estimate.model_copy(update={"status": EstimateStatus.NEGOTIATING})
        approved = sample_estimate.model_copy(update={"status": EstimateStatus.APPROVED})

        assert filter_by_tab([negotiating, approved], "pending") == [negotiating]
        assert filter_by_tab([negotiating, approved], "approved") == [approved]
        assert len(filter_by_tab([negotiating, approved], "all")) == 2

    def test_estimate_from_row(self):
        """Test mapping a stored row into an estimate."""
        estimate = estimate_from_row(
            {"estimate_uuid": "e-9", "client_name": "Neha", "status": "negotiating", "amount": 1200}
        )

        assert estimate.id == "e-9"
        assert estimate.status is EstimateStatus.NEGOTIATING
        assert estimate.amount == "1200"


def _echo_rpc(calls: list[str], fail: set[str] = frozenset()):
    """RPC double echoing requested statuses; names in ``fail`` answer success=false."""

    async def rpc(name, args=None):
        calls.append(name)
        if name in fail:
            return {"success": False, "error": f"{name} rejected"}
        if name == "update_estimate_status":
            return {"success": True, "status": args["p_new_status"]}
        if name == "update_project_status":
            return {"success": True, "project_status": args["p_new_status"]}
        if name == "save_invoice_items_form_data":
            return {"success": True, "invoice_uuid": "inv-1"}
        raise AssertionError(f"unexpected rpc {name}")

    return rpc


async def _select_one(table, *, filters=None, columns="*"):
    if table == "photography_owner_table":
        return {"photography_owner_phno": "9999999999"}
    if table == "invoice_items_table":
        return {
            "invoice_uuid": "inv-1",
            "invoice_status": "draft",
            "invoice_form_data": {
                "clientDetails": {"name": "Asha Sharma"},
                "paymentTracking": {"totalAmount": "80000.00"},
            },
        }
    return None


class TestEstimateService:
    """Test optimistic estimate status changes."""

    @pytest.mark.asyncio
    async def test_negotiation_persists_once(self, gateway, identity, notifier, sample_estimate):
        """Test a negotiation is persisted with a single call."""
        calls: list[str] = []
        gateway.rpc.side_effect = _echo_rpc(calls)
        service = EstimateService(gateway, identity, notifier)
        service.controller.reset({sample_estimate.id: sample_estimate})

        outcome = await service.change_status("est-1", "negotiating", "₹70,000", 1)

        assert outcome.state is MutationState.APPLIED
        assert calls == ["update_estimate_status"]
        args = gateway.rpc.await_args.args[1]
        assert args["p_amount"] == "₹70000.00"
        assert args["p_selected_package_index"] == 1
        assert service.get("est-1").amount == "₹70000.00"
        assert notifier.history[-1].description == "Estimate status updated to negotiating."

    @pytest.mark.asyncio
    async def test_failure_restores_amount_and_packages(
        self, gateway, identity, notifier, sample_estimate
    ):
        """Test a failed negotiation restores amount and packages."""
        gateway.rpc.side_effect = TransportError("offline")
        service = EstimateService(gateway, identity, notifier)
        service.controller.reset({sample_estimate.id: sample_estimate})

        outcome = await service.change_status("est-1", "negotiating", "₹70,000", 1)

        assert outcome.state is MutationState.ROLLED_BACK
        restored = service.get("est-1")
        assert restored.status is EstimateStatus.PENDING
        assert restored.amount == "₹50,000.00"
        assert restored.packages[1].amount == "₹80,000.00"
        assert len(notifier.errors) == 1

    @pytest.mark.asyncio
    async def test_load_and_filter(self, gateway, identity, notifier):
        """Test loading estimates and filtering by tab."""
        gateway.select.return_value = [
            {"id": "a", "client_name": "A", "status": "pending"},
            {"id": "b", "client_name": "B", "status": "declined"},
        ]
        service = EstimateService(gateway, identity, notifier)

        await service.load()

        assert [e.id for e in service.filtered("declined")] == ["b"]
        gateway.select.assert_awaited_once_with(
            "estimates", filters={"user_id": "owner-1"}, order=[("created_at", False)]
        )
        assert service.load_error is None

    @pytest.mark.asyncio
    async def test_load_failure_is_recorded(self, gateway, identity, notifier):
        """Test a failed load notifies and exposes the error to callers."""
        gateway.select.side_effect = TransportError("offline")
        service = EstimateService(gateway, identity, notifier)

        assert await service.load() == []
        assert isinstance(service.load_error, TransportError)
        assert notifier.errors[0].title == "Could not load estimates"


@pytest.fixture
def workflow_parts(gateway, identity, notifier, sample_estimate, project_rows):
    estimates = EstimateService(gateway, identity, notifier)
    estimates.controller.reset({sample_estimate.id: sample_estimate})
    board = ProjectBoard(gateway, identity, notifier)
    projects = [project_from_row(row) for row in project_rows]
    board.controller.reset({p.id: p for p in projects})
    invoices = InvoiceRepository(gateway)
    workflow = ApprovalWorkflow(estimates, board, invoices, notifier)
    return workflow, estimates, board


class TestApprovalWorkflow:
    """Test approval ordering, idempotency and compensation."""

    @pytest.mark.asyncio
    async def test_steps_run_once_in_order(self, gateway, notifier, workflow_parts, project_id):
        """Test approval steps run once, in order."""
        workflow, estimates, board = workflow_parts
        calls: list[str] = []
        gateway.rpc.side_effect = _echo_rpc(calls)
        gateway.select_one.side_effect = _select_one
        options = ApprovalOptions(is_project_requested=True, is_invoice_requested=True)

        result = await workflow.approve("est-1", options, 1)

        assert result.completed
        assert calls == [
            "update_estimate_status",
            "update_project_status",
            "save_invoice_items_form_data",
        ]
        assert estimates.get("est-1").status is EstimateStatus.APPROVED
        assert board.get(project_id).status is ProjectStatus.PRE_PRODUCTION
        assert result.invoice.id == "inv-1"

        save_args = gateway.rpc.await_args_list[2].args[1]
        assert save_args["p_client_phno"] == "9876543210"
        assert save_args["p_project_estimate_uuid"] == "est-1"
        items = save_args["p_invoice_form_data"]["invoiceItems"]
        assert items == [{"description": "Photography Package: Gold", "amount": "80000.00"}]

    @pytest.mark.asyncio
    async def test_repeated_approval_is_noop(self, gateway, workflow_parts):
        """Test repeating an approval does nothing."""
        workflow, _, _ = workflow_parts
        calls: list[str] = []
        gateway.rpc.side_effect = _echo_rpc(calls)
        gateway.select_one.side_effect = _select_one
        options = {"isProjectRequested": True, "isInvoiceRequested": True}

        first = await workflow.approve("est-1", options, 1)
        second = await workflow.approve("est-1", options, 1)

        assert second is first
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_invoice_failure_compensates(
        self, gateway, notifier, workflow_parts, project_id
    ):
        """Test an invoice failure undoes the earlier steps."""
        workflow, estimates, board = workflow_parts
        calls: list[str] = []
        gateway.rpc.side_effect = _echo_rpc(calls, fail={"save_invoice_items_form_data"})
        gateway.select_one.side_effect = _select_one
        options = ApprovalOptions(is_project_requested=True, is_invoice_requested=True)

        result = await workflow.approve("est-1", options, 1)

        assert not result.completed
        assert result.failed_step == "invoice"
        assert calls == [
            "update_estimate_status",
            "update_project_status",
            "save_invoice_items_form_data",
            "update_project_status",
            "update_estimate_status",
        ]
        assert board.get(project_id).status is ProjectStatus.PROSPECT
        reverted = estimates.get("est-1")
        assert reverted.status is EstimateStatus.PENDING
        assert reverted.amount == "₹50,000.00"
        assert [n.title for n in notifier.errors] == ["Approval not completed"]

    @pytest.mark.asyncio
    async def test_failed_approval_can_be_retried(self, gateway, workflow_parts):
        """Test a failed approval can be run again."""
        workflow, _, _ = workflow_parts
        calls: list[str] = []
        gateway.rpc.side_effect = _echo_rpc(calls, fail={"update_project_status"})
        options = ApprovalOptions(is_project_requested=True)

        failed = await workflow.approve("est-1", options)
        gateway.rpc.side_effect = _echo_rpc(calls)
        retried = await workflow.approve("est-1", options)

        assert failed.failed_step == "project"
        assert retried.completed
        assert retried.project_status is ProjectStatus.PRE_PRODUCTION

    @pytest.mark.asyncio
    async def test_estimate_failure_stops_workflow(self, gateway, workflow_parts):
        """Test an estimate failure stops the workflow."""
        workflow, _, _ = workflow_parts
        calls: list[str] = []
        gateway.rpc.side_effect = _echo_rpc(calls, fail={"update_estimate_status"})

        result = await workflow.approve("est-1", ApprovalOptions(True, True))

        assert result.failed_step == "estimate"
        assert calls == ["update_estimate_status"]

    @pytest.mark.asyncio
    async def test_negotiated_amount_rejected(self, workflow_parts):
        """Test an invalid negotiated amount is rejected."""
        workflow, _, _ = workflow_parts

        with pytest.raises(TypeError):
            await workflow.approve("est-1", "₹70,000")


    @pytest.mark.asyncio
    async def test_project_failure_reports_single_error(
        self, gateway, notifier, workflow_parts
    ):
        """Test a failed project step yields one notice and reverts the estimate."""
        workflow, estimates, _ = workflow_parts
        calls: list[str] = []
        gateway.rpc.side_effect = _echo_rpc(calls, fail={"update_project_status"})

        result = await workflow.approve("est-1", ApprovalOptions(is_project_requested=True), 1)

        assert result.failed_step == "project"
        assert result.not_undone == []
        assert estimates.get("est-1").status is EstimateStatus.PENDING
        assert [n.title for n in notifier.errors] == ["Approval not completed"]

    @pytest.mark.asyncio
    async def test_failed_undo_is_reported(self, gateway, notifier, workflow_parts):
        """Test an undo that fails is named in the single error notice."""
        workflow, _, _ = workflow_parts
        calls: list[str] = []
        echo = _echo_rpc(calls, fail={"save_invoice_items_form_data"})

        async def rpc(name, args=None):
            if name == "update_estimate_status" and args["p_new_status"] == "pending":
                calls.append(name)
                return {"success": False, "error": "Estimate locked"}
            return await echo(name, args)

        gateway.rpc.side_effect = rpc
        gateway.select_one.side_effect = _select_one

        result = await workflow.approve("est-1", ApprovalOptions(is_invoice_requested=True), 1)

        assert result.failed_step == "invoice"
        assert result.not_undone == ["estimate"]
        assert len(notifier.errors) == 1
        assert "could not be undone (estimate)" in notifier.errors[0].description

    @pytest.mark.asyncio
    async def test_requesting_more_steps_runs_only_new_ones(self, gateway, workflow_parts):
        """Test asking for an invoice after a project-only approval creates it."""
        workflow, _, _ = workflow_parts
        calls: list[str] = []
        gateway.rpc.side_effect = _echo_rpc(calls)
        gateway.select_one.side_effect = _select_one

        first = await workflow.approve("est-1", {"isProjectRequested": True}, 1)
        second = await workflow.approve(
            "est-1", {"isProjectRequested": True, "isInvoiceRequested": True}, 1
        )

        assert first.invoice is None
        assert second.invoice.id == "inv-1"
        assert second.key != first.key
        assert calls == [
            "update_estimate_status",
            "update_project_status",
            "save_invoice_items_form_data",
        ]
