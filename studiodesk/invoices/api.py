"""Invoice persistence against ``invoice_items_table`` and its RPCs."""

from __future__ import annotations

import logging
from typing import Any

from studiodesk import derivation
from studiodesk.config import InvoiceConfig
from studiodesk.gateway.client import GatewayClient
from studiodesk.gateway.errors import (
    FormValidationError,
    NotFoundError,
    unwrap_envelope,
)
from studiodesk.models import Invoice, InvoiceStatus, InvoiceVersion, LineItem, Payment

logger = logging.getLogger(__name__)

_STATUS_FROM_DURABLE = {"paid": InvoiceStatus.PAID, "sent": InvoiceStatus.PARTIAL}
_STATUS_TO_DURABLE = {
    InvoiceStatus.PAID: "paid",
    InvoiceStatus.PARTIAL: "sent",
    InvoiceStatus.PENDING: "draft",
}


def status_from_durable(value: str | None) -> InvoiceStatus:
    return _STATUS_FROM_DURABLE.get((value or "").lower(), InvoiceStatus.PENDING)


def status_to_durable(status: InvoiceStatus) -> str:
    return _STATUS_TO_DURABLE[status]


def map_row(row: dict[str, Any]) -> Invoice:
    """Convert an ``invoice_items_table`` row into an Invoice."""
    data = row.get("invoice_form_data") or {}
    client = data.get("clientDetails") or {}
    tracking = data.get("paymentTracking") or {}
    totals = data.get("totals") or {}
    payment = data.get("paymentDetails") or {}

    items = [
        LineItem(description=i.get("description", ""), amount=i.get("amount", ""))
        for i in data.get("invoiceItems") or []
    ]
    payments = [Payment.model_validate(p) for p in data.get("payments") or []]
    versions = [InvoiceVersion.model_validate(v) for v in row.get("version_history") or []]

    return Invoice(
        id=str(row["invoice_uuid"]),
        display_number=row.get("invoice_number"),
        client=client.get("name", ""),
        client_email=client.get("email", ""),
        date=row.get("invoice_date") or data.get("invoiceDate") or "",
        amount=str(tracking.get("totalAmount") or totals.get("total") or "0"),
        paid_amount=str(tracking.get("paidAmount") or "0"),
        balance_amount=str(
            tracking.get("balanceAmount") or tracking.get("totalAmount") or "0"
        ),
        status=status_from_durable(row.get("invoice_status")),
        items=items,
        estimate_id=row.get("project_estimate_uuid"),
        notes=tracking.get("notes", ""),
        payment_date=payment.get("paymentDate") or tracking.get("paymentDate") or "",
        payment_method=payment.get("paymentMethod", ""),
        gst_rate=str(totals.get("gstRate") or data.get("gstRate") or "0"),
        payments=payments,
        form_data=data,
        version_history=versions,
        current_version=row.get("current_version"),
    )


def reconstruct_form_data(invoice: Invoice) -> dict[str, Any]:
    """Stored form data, or a best-effort rebuild from the Invoice fields."""
    if invoice.form_data:
        return invoice.form_data

    sub = derivation.subtotal(invoice.items)
    rate = derivation.parse_amount(invoice.gst_rate)
    tax = derivation.tax(sub, rate)
    totals = derivation.InvoiceTotals(
        subtotal=sub, gst_rate=rate, tax=tax, total=derivation.total(sub, tax)
    )
    return {
        "invoiceType": "proforma" if invoice.status is InvoiceStatus.PENDING else "paid",
        "invoiceDate": invoice.date,
        "clientDetails": {
            "name": invoice.client,
            "email": invoice.client_email,
            "phone": "",
            "address": "",
            "gst": "",
        },
        "companyDetails": {"name": "", "email": "", "phone": "", "address": "", "gst": ""},
        "invoiceItems": [
            {"description": i.description, "amount": derivation.strip_formatting(i.amount)}
            for i in invoice.items
        ],
        "paymentDetails": {
            "paymentReceived": invoice.status is InvoiceStatus.PAID,
            "paymentDate": invoice.payment_date or "",
            "paymentMethod": invoice.payment_method or "bank",
        },
        "totals": totals.as_form_data(),
        "paymentTracking": {
            "totalAmount": derivation.strip_formatting(invoice.amount),
            "paidAmount": derivation.strip_formatting(invoice.paid_amount),
            "balanceAmount": derivation.strip_formatting(invoice.balance_amount),
            "notes": invoice.notes,
        },
    }


class InvoiceRepository:
    """Reads invoices from the store and saves them through ``save_invoice_items_form_data``."""

    def __init__(self, gateway: GatewayClient, config: InvoiceConfig | None = None):
        self.gateway = gateway
        self.config = config or InvoiceConfig()
        self._owner_phone: str | None = None

    async def fetch_all(self) -> list[Invoice]:
        rows = await self.gateway.select(
            self.config.invoice_table,
            order=[("invoice_date", False), ("created_at", False)],
        )
        return [map_row(row) for row in rows]

    async def get(self, invoice_id: str) -> Invoice | None:
        row = await self.gateway.select_one(
            self.config.invoice_table, filters={"invoice_uuid": invoice_id}
        )
        return map_row(row) if row else None

    async def create(self, invoice: Invoice, form_data: dict[str, Any]) -> Invoice:
        """Save a new invoice and return the durable copy."""
        return await self._save(invoice, form_data, invoice_id=None)

    async def update(self, invoice: Invoice, form_data: dict[str, Any] | None = None) -> Invoice:
        """Save changes to an existing invoice and return the durable copy."""
        if not invoice.id:
            raise ValueError("Invoice ID is required for update")

        if form_data is None:
            if invoice.form_data:
                form_data = invoice.form_data
            else:
                existing = await self.gateway.select_one(
                    self.config.invoice_table, filters={"invoice_uuid": invoice.id}
                )
                stored = (existing or {}).get("invoice_form_data")
                form_data = stored or reconstruct_form_data(invoice)

        tracking = dict(form_data.get("paymentTracking") or {})
        tracking.update(
            totalAmount=derivation.strip_formatting(invoice.amount) or tracking.get("totalAmount", "0"),
            paidAmount=derivation.strip_formatting(invoice.paid_amount) or tracking.get("paidAmount", "0"),
            balanceAmount=derivation.strip_formatting(invoice.balance_amount)
            or tracking.get("balanceAmount", "0"),
            notes=invoice.notes or tracking.get("notes", ""),
        )
        form_data = {**form_data, "paymentTracking": tracking}
        return await self._save(invoice, form_data, invoice_id=invoice.id)

    async def owner_phone(self) -> str:
        """Phone number identifying the studio owner; cached after first lookup."""
        if self._owner_phone:
            return self._owner_phone
        row = await self.gateway.select_one(
            self.config.owner_table, filters={}, columns="photography_owner_phno"
        )
        phone = (row or {}).get("photography_owner_phno")
        if not phone:
            raise NotFoundError(
                "Photography owner information not found. Please contact support."
            )
        self._owner_phone = phone
        return phone

    async def _save(
        self, invoice: Invoice, form_data: dict[str, Any], invoice_id: str | None
    ) -> Invoice:
        client_phone = "".join(
            ((form_data.get("clientDetails") or {}).get("phone") or "").split()
        )
        if not client_phone:
            raise FormValidationError(
                {"client_phone": "Client phone number is required to save the invoice."}
            )
        owner_phone = await self.owner_phone()

        data = await self.gateway.rpc(
            "save_invoice_items_form_data",
            {
                "p_photography_owner_phno": owner_phone,
                "p_client_phno": client_phone,
                "p_invoice_form_data": form_data,
                "p_project_estimate_uuid": invoice.estimate_id,
                "p_cost_items_uuid": None,
                "p_invoice_uuid": invoice_id,
            },
        )
        envelope = unwrap_envelope(data, "save_invoice_items_form_data")
        saved_id = envelope.get("invoice_uuid") or invoice_id
        logger.info("invoice_saved: invoice_uuid=%s new=%s", saved_id, invoice_id is None)

        saved = await self.get(saved_id)
        if saved is None:
            raise NotFoundError(f"Invoice {saved_id} not found after save")
        return saved
