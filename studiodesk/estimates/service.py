"""Estimate list state and status changes."""

from __future__ import annotations

import logging
from typing import Any

from studiodesk import derivation
from studiodesk.auth import IdentityProvider
from studiodesk.estimates.rules import apply_status_change, filter_by_tab
from studiodesk.estimates.status_change import StatusChange, resolve_status_change
from studiodesk.gateway.client import GatewayClient
from studiodesk.gateway.errors import GatewayError, unwrap_envelope
from studiodesk.models import Estimate, EstimateStatus
from studiodesk.mutation import MutationOutcome, MutationState, OptimisticMutationController
from studiodesk.notifications import Notice, NoticeLevel, Notifier, describe_failure, error

logger = logging.getLogger(__name__)

ESTIMATE_TABLE = "estimates"

STATUS_MESSAGES = {
    EstimateStatus.APPROVED: "Estimate has been approved! Proceeding to next steps.",
    EstimateStatus.DECLINED: "Estimate has been declined.",
    EstimateStatus.NEGOTIATING: "Estimate status updated to negotiating.",
    EstimateStatus.PENDING: "Estimate status updated to pending.",
}


def estimate_from_row(row: dict[str, Any]) -> Estimate:
    return Estimate.model_validate(
        {
            "id": str(row.get("estimate_uuid") or row["id"]),
            "client_name": row.get("client_name") or "",
            "client_email": row.get("client_email") or "",
            "client_phone": row.get("client_phone") or "",
            "project_name": row.get("project_name") or "",
            "project_id": row.get("project_uuid") or row.get("project_id"),
            "items": row.get("items") or [],
            "packages": row.get("packages") or [],
            "selected_package_index": row.get("selected_package_index"),
            "status": row.get("status") or EstimateStatus.PENDING,
            "amount": str(row.get("amount") or ""),
            "created_at": row.get("created_at"),
        }
    )


def _parse_status(value: Any) -> EstimateStatus | None:
    try:
        return EstimateStatus(value)
    except ValueError:
        return None


class EstimateService:
    """Owner's estimates with optimistic status changes."""

    def __init__(
        self,
        gateway: GatewayClient,
        identity: IdentityProvider,
        notifier: Notifier,
        *,
        table: str = ESTIMATE_TABLE,
        currency_symbol: str = derivation.DEFAULT_SYMBOL,
    ):
        self.gateway = gateway
        self.identity = identity
        self.notifier = notifier
        self.table = table
        self.currency_symbol = currency_symbol
        self.load_error: GatewayError | None = None
        self.controller: OptimisticMutationController[str, Estimate] = (
            OptimisticMutationController(notifier)
        )

    @property
    def estimates(self) -> list[Estimate]:
        return list(self.controller.entities.values())

    def get(self, estimate_id: str) -> Estimate:
        return self.controller.entities[estimate_id]

    async def load(self) -> list[Estimate]:
        try:
            who = await self.identity.current()
            rows = await self.gateway.select(
                self.table, filters={"user_id": who.user_id}, order=[("created_at", False)]
            )
        except GatewayError as exc:
            logger.error("estimates_load_failed: %s", exc.message)
            self.load_error = exc
            error(self.notifier, "Could not load estimates", describe_failure(exc, "load estimates"))
            return self.estimates

        estimates = [estimate_from_row(row) for row in rows]
        self.controller.reset({e.id: e for e in estimates})
        self.load_error = None
        return estimates

    def filtered(self, tab: str) -> list[Estimate]:
        """Estimates shown on a tab; ``pending`` also lists negotiating ones."""
        return filter_by_tab(self.estimates, tab)

    async def change_status(
        self,
        estimate_id: str,
        status: EstimateStatus | str,
        amount_or_options: Any = None,
        selected_package_index: int | None = None,
        *,
        announce: bool = True,
    ) -> MutationOutcome:
        """Change an estimate's status, accepting every historical call shape."""
        change = resolve_status_change(amount_or_options, selected_package_index)
        return await self.apply(estimate_id, EstimateStatus(status), change, announce=announce)

    async def apply(
        self,
        estimate_id: str,
        status: EstimateStatus,
        change: StatusChange,
        *,
        announce: bool = True,
    ) -> MutationOutcome:
        current = self.get(estimate_id)
        updated = apply_status_change(current, status, change, self.currency_symbol)
        outcome = await self._mutate(current, updated)
        if announce and outcome.state is MutationState.APPLIED:
            level = NoticeLevel.ERROR if status is EstimateStatus.DECLINED else NoticeLevel.SUCCESS
            message = STATUS_MESSAGES.get(status, "Estimate status has been updated.")
            self.notifier.notify(Notice(level, "Status Updated", message))
        return outcome

    async def restore(self, snapshot: Estimate, *, silent: bool = False) -> MutationOutcome:
        """Write an earlier copy of an estimate back, e.g. to undo an approval."""
        return await self._mutate(self.get(snapshot.id), snapshot, silent=silent)

    async def _mutate(
        self, current: Estimate, updated: Estimate, *, silent: bool = False
    ) -> MutationOutcome:
        patch = {
            "amount": updated.amount,
            "packages": updated.packages,
            "selected_package_index": updated.selected_package_index,
        }
        if patch == {
            "amount": current.amount,
            "packages": current.packages,
            "selected_package_index": current.selected_package_index,
        }:
            patch = {}

        async def persist(key: str, target: EstimateStatus) -> Any:
            data = await self.gateway.rpc(
                "update_estimate_status",
                {
                    "p_estimate_uuid": key,
                    "p_new_status": target.value,
                    "p_amount": updated.amount,
                    "p_selected_package_index": updated.selected_package_index,
                    "p_packages": [p.model_dump(mode="json") for p in updated.packages],
                },
            )
            return unwrap_envelope(data, "update_estimate_status").get("status")

        return await self.controller.mutate(
            current.id,
            "status",
            updated.status,
            persist,
            verify=_parse_status,
            patch=patch,
            action="update the estimate status",
            silent=silent,
        )

    async def approve(
        self, estimate_id: str, selected_package_index: int | None = None
    ) -> MutationOutcome:
        return await self.change_status(
            estimate_id, EstimateStatus.APPROVED, None, selected_package_index
        )

    async def delete(self, estimate_id: str) -> bool:
        try:
            await self.gateway.delete(self.table, filters={"estimate_uuid": estimate_id})
        except GatewayError as exc:
            logger.error("estimate_delete_failed: %s %s", estimate_id, exc.message)
            error(self.notifier, "Estimate not deleted", describe_failure(exc, "delete the estimate"))
            return False

        self.controller.entities.pop(estimate_id, None)
        return True

    def dispose(self) -> None:
        self.controller.dispose()
