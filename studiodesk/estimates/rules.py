"""Pure estimate rules: derived amount, status transitions, package checks."""

from __future__ import annotations

from decimal import Decimal

from studiodesk import derivation
from studiodesk.estimates.status_change import LegacyChange, StatusChange
from studiodesk.models import Estimate, EstimatePackage, EstimateStatus


def derive_estimate_amount(estimate: Estimate, symbol: str = derivation.DEFAULT_SYMBOL) -> str:
    """Selected package price when a package is selected, else the item sum."""
    package = estimate.selected_package
    if package is not None:
        return derivation.format_currency(package.amount, symbol)
    return derivation.format_currency(derivation.subtotal(estimate.items), symbol)


def apply_status_change(
    estimate: Estimate,
    status: EstimateStatus,
    change: StatusChange,
    symbol: str = derivation.DEFAULT_SYMBOL,
) -> Estimate:
    """Return a copy of ``estimate`` with the status change applied.

    A negotiated amount replaces the selected package's price; without a
    selection every package is scaled by the same ratio.
    """
    index = change.selected_package_index
    if index is None:
        index = estimate.selected_package_index
    if index is not None and not 0 <= index < len(estimate.packages):
        raise IndexError(f"Package index {index} out of range")

    packages = [p.model_copy() for p in estimate.packages]
    negotiated = change.negotiated_amount if isinstance(change, LegacyChange) else None

    if negotiated:
        negotiated_value = derivation.parse_amount(negotiated)
        if index is not None:
            packages[index] = packages[index].model_copy(
                update={"amount": derivation.format_currency(negotiated_value, symbol)}
            )
        elif packages:
            previous = derivation.parse_amount(estimate.amount)
            ratio = negotiated_value / previous if previous else Decimal("1")
            packages = [
                p.model_copy(
                    update={
                        "amount": derivation.format_currency(
                            derivation.parse_amount(p.amount) * ratio, symbol
                        )
                    }
                )
                for p in packages
            ]

    updated = estimate.model_copy(
        update={"status": status, "selected_package_index": index, "packages": packages}
    )
    if negotiated:
        amount = derivation.format_currency(derivation.parse_amount(negotiated), symbol)
    elif index is None and not estimate.items:
        amount = estimate.amount
    else:
        amount = derive_estimate_amount(updated, symbol)
    return updated.model_copy(update={"amount": amount})


def validate_packages(packages: list[EstimatePackage]) -> list[str]:
    """Problems preventing an estimate preview from being generated."""
    if not packages:
        return ["Please add at least one estimate option with services."]

    problems: list[str] = []
    for number, package in enumerate(packages, start=1):
        if not package.services:
            problems.append(
                f"Package option {number} has no events. Please add at least one event."
            )
        elif any(not s.event or not s.date for s in package.services):
            problems.append(f"Please fill in all required event details in package {number}.")
        if not package.amount.strip():
            problems.append(f"Please provide a total amount for package option {number}.")
        if not package.deliverables or any(not d.strip() for d in package.deliverables):
            problems.append(
                f"Please ensure all deliverables in package {number} are properly filled."
            )
    return problems


TAB_STATUSES: dict[str, tuple[EstimateStatus, ...]] = {
    "pending": (EstimateStatus.PENDING, EstimateStatus.NEGOTIATING),
    "approved": (EstimateStatus.APPROVED,),
    "declined": (EstimateStatus.DECLINED,),
}


def filter_by_tab(estimates: list[Estimate], tab: str) -> list[Estimate]:
    statuses = TAB_STATUSES.get(tab)
    if statuses is None:
        return list(estimates)
    return [e for e in estimates if e.status in statuses]
