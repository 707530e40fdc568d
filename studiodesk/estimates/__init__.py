"""Estimates: status changes, package checks and the approval workflow."""

from studiodesk.estimates.approval import ApprovalResult, ApprovalWorkflow
from studiodesk.estimates.rules import (
    apply_status_change,
    derive_estimate_amount,
    filter_by_tab,
    validate_packages,
)
from studiodesk.estimates.service import EstimateService, estimate_from_row
from studiodesk.estimates.status_change import (
    ApprovalOptions,
    ChangeWithOptions,
    LegacyChange,
    SimpleChange,
    StatusChange,
    resolve_status_change,
)

__all__ = [
    "ApprovalOptions",
    "ApprovalResult",
    "ApprovalWorkflow",
    "ChangeWithOptions",
    "EstimateService",
    "LegacyChange",
    "SimpleChange",
    "StatusChange",
    "apply_status_change",
    "derive_estimate_amount",
    "estimate_from_row",
    "filter_by_tab",
    "resolve_status_change",
    "validate_packages",
]
