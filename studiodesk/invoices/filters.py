"""Searching and sorting invoice lists."""

from __future__ import annotations

from datetime import date
from enum import Enum
from typing import Callable

from studiodesk.derivation import parse_amount
from studiodesk.models import Invoice


class SearchType(str, Enum):
    CLIENT = "client"
    INVOICE = "invoice"


class SortOption(str, Enum):
    CLIENT_ASC = "client_asc"
    CLIENT_DESC = "client_desc"
    INVOICE_NUMBER_ASC = "invoiceNumber_asc"
    INVOICE_NUMBER_DESC = "invoiceNumber_desc"
    DATE_ASC = "date_asc"
    DATE_DESC = "date_desc"
    AMOUNT_ASC = "amount_asc"
    AMOUNT_DESC = "amount_desc"
    BALANCE_ASC = "balance_asc"
    BALANCE_DESC = "balance_desc"
    STATUS_ASC = "status_asc"
    STATUS_DESC = "status_desc"

    # Older spellings kept for saved preferences
    DATE = "date"
    AMOUNT = "amount"
    BALANCE_HIGH_TO_LOW = "balanceHighToLow"
    BALANCE_LOW_TO_HIGH = "balanceLowToHigh"


_LEGACY = {
    SortOption.DATE: SortOption.DATE_DESC,
    SortOption.AMOUNT: SortOption.AMOUNT_DESC,
    SortOption.BALANCE_HIGH_TO_LOW: SortOption.BALANCE_DESC,
    SortOption.BALANCE_LOW_TO_HIGH: SortOption.BALANCE_ASC,
}


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return date.min


_KEYS: dict[str, Callable[[Invoice], object]] = {
    "client": lambda inv: inv.client.lower(),
    "invoiceNumber": lambda inv: inv.reference.lower(),
    "date": lambda inv: _parse_date(inv.date),
    "amount": lambda inv: parse_amount(inv.amount),
    "balance": lambda inv: parse_amount(inv.balance_amount),
    "status": lambda inv: inv.status.value,
}


def filter_invoices(
    invoices: list[Invoice],
    search: str = "",
    status: str | None = None,
    search_type: SearchType = SearchType.CLIENT,
) -> list[Invoice]:
    query = search.strip().lower()
    result = []
    for invoice in invoices:
        if query:
            haystack = invoice.client if search_type is SearchType.CLIENT else invoice.reference
            if query not in haystack.lower():
                continue
        if status and invoice.status.value != status.lower():
            continue
        result.append(invoice)
    return result


def sort_invoices(invoices: list[Invoice], sort_by: SortOption | str) -> list[Invoice]:
    """Return a sorted copy; unrecognized options keep the original order."""
    try:
        option = SortOption(sort_by)
    except ValueError:
        return list(invoices)
    option = _LEGACY.get(option, option)
    key_name, _, direction = option.value.rpartition("_")
    return sorted(invoices, key=_KEYS[key_name], reverse=direction == "desc")
