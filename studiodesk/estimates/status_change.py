"""Estimate status-change requests.

Callers historically passed either nothing, an options object, or a
negotiated amount plus package index. ``resolve_status_change`` turns those
shapes into one tagged variant at the boundary; everything downstream matches
on the variant.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Mapping, Union


@dataclass(frozen=True, slots=True)
class ApprovalOptions:
    is_project_requested: bool = False
    is_invoice_requested: bool = False


@dataclass(frozen=True, slots=True)
class SimpleChange:
    selected_package_index: int | None = None
    kind: Literal["simple"] = "simple"


@dataclass(frozen=True, slots=True)
class ChangeWithOptions:
    options: ApprovalOptions = field(default_factory=ApprovalOptions)
    selected_package_index: int | None = None
    kind: Literal["withOptions"] = "withOptions"


@dataclass(frozen=True, slots=True)
class LegacyChange:
    negotiated_amount: str | None = None
    selected_package_index: int | None = None
    kind: Literal["legacy"] = "legacy"


StatusChange = Union[SimpleChange, ChangeWithOptions, LegacyChange]


def resolve_status_change(
    amount_or_options: str | ApprovalOptions | Mapping[str, Any] | None = None,
    selected_package_index: int | None = None,
) -> StatusChange:
    """Map the accepted call shapes onto a ``StatusChange`` variant.

    - nothing -> ``SimpleChange``
    - an ``ApprovalOptions`` or a mapping with ``isProjectRequested`` /
      ``isInvoiceRequested`` (or snake_case) keys -> ``ChangeWithOptions``
    - a string -> ``LegacyChange`` carrying the negotiated amount
    """
    if amount_or_options is None:
        return SimpleChange(selected_package_index=selected_package_index)
    if isinstance(amount_or_options, ApprovalOptions):
        return ChangeWithOptions(amount_or_options, selected_package_index)
    if isinstance(amount_or_options, Mapping):
        options = ApprovalOptions(
            is_project_requested=bool(
                amount_or_options.get(
                    "is_project_requested", amount_or_options.get("isProjectRequested", False)
                )
            ),
            is_invoice_requested=bool(
                amount_or_options.get(
                    "is_invoice_requested", amount_or_options.get("isInvoiceRequested", False)
                )
            ),
        )
        return ChangeWithOptions(options, selected_package_index)
    if isinstance(amount_or_options, str):
        return LegacyChange(
            negotiated_amount=amount_or_options or None,
            selected_package_index=selected_package_index,
        )
    raise TypeError(f"Unsupported status change argument: {amount_or_options!r}")
