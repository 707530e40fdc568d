"""Invoice form, persistence, payments and list helpers."""

from studiodesk.invoices.api import InvoiceRepository, map_row, reconstruct_form_data
from studiodesk.invoices.filters import SearchType, SortOption, filter_invoices, sort_invoices
from studiodesk.invoices.form import ClientDetails, InvoiceForm
from studiodesk.invoices.payments import record_payment, validate_payment_amount

__all__ = [
    "ClientDetails",
    "InvoiceForm",
    "InvoiceRepository",
    "map_row",
    "reconstruct_form_data",
    "record_payment",
    "validate_payment_amount",
    "SearchType",
    "SortOption",
    "filter_invoices",
    "sort_invoices",
]
