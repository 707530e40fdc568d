"""Recording payments against an invoice."""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Awaitable, Callable

from studiodesk import derivation
from studiodesk.gateway.errors import GatewayError, unwrap_envelope
from studiodesk.invoices.api import InvoiceRepository, status_to_durable
from studiodesk.models import Invoice, InvoiceStatus, Payment
from studiodesk.notifications import Notifier, describe_failure, error, success

logger = logging.getLogger(__name__)

TransactionRecorder = Callable[[Invoice, Payment], Awaitable[None]]


def validate_payment_amount(value: str, max_allowed: Decimal) -> str | None:
    """Inline error for a typed payment amount, or ``None`` when acceptable."""
    if not derivation.is_valid_amount(value) or not derivation.strip_formatting(value):
        return "Please enter a valid amount"
    amount = derivation.parse_amount(value)
    if amount <= 0:
        return "Amount must be greater than zero"
    if amount > max_allowed:
        return f"Amount cannot exceed the remaining balance ({max_allowed:.2f})"
    return None


async def record_payment(
    repository: InvoiceRepository,
    invoice: Invoice,
    notifier: Notifier,
    *,
    amount: str,
    payment_date: str | None = None,
    method: str = "upi",
    collected_by: str = "self",
    record_transaction: TransactionRecorder | None = None,
) -> Invoice | None:
    """Append a payment, update tracking and status, and return the refreshed invoice.

    Returns ``None`` (after notifying the user) when validation or the primary
    update fails. A failure of the secondary ``save_payment_data`` call is
    reported but does not undo the recorded payment.
    """
    max_allowed = derivation.parse_amount(invoice.balance_amount)
    problem = validate_payment_amount(amount, max_allowed)
    if problem:
        error(notifier, "Invalid payment", problem)
        return None

    payment = Payment(
        date=payment_date or date.today().isoformat(),
        amount=derivation.parse_amount(amount),
        method=method,
        collected_by=collected_by,
    )
    payments = [*invoice.payments, payment]
    total_paid = sum((p.amount for p in payments), Decimal("0"))
    invoice_total = derivation.parse_amount(invoice.amount)
    new_balance = derivation.balance(invoice_total, total_paid)
    new_status = InvoiceStatus.PAID if new_balance <= 0 else InvoiceStatus.PARTIAL

    gateway = repository.gateway
    table = repository.config.invoice_table
    try:
        row = await gateway.select_one(
            table,
            filters={"invoice_uuid": invoice.id},
            columns="invoice_uuid,invoice_form_data",
        )
        if row is None:
            error(notifier, "Invoice not found", "Please create the invoice first.")
            return None

        current = row.get("invoice_form_data") or {}
        tracking = dict(current.get("paymentTracking") or {})
        tracking.update(
            totalAmount=derivation.strip_formatting(invoice.amount),
            paidAmount=f"{total_paid:.2f}",
            balanceAmount=f"{new_balance:.2f}",
            notes=tracking.get("notes", ""),
        )
        updated_form = {
            **current,
            "paymentTracking": tracking,
            "payments": [p.model_dump(mode="json") for p in payments],
        }
        await gateway.update(
            table,
            {
                "invoice_form_data": updated_form,
                "invoice_status": status_to_durable(new_status),
                "updated_at": datetime.now(timezone.utc).isoformat(),
            },
            filters={"invoice_uuid": invoice.id},
        )
    except GatewayError as exc:
        logger.error("payment_update_failed: invoice=%s error=%s", invoice.id, exc.message)
        error(notifier, "Payment not recorded", describe_failure(exc, "update the invoice"))
        return None

    try:
        data = await gateway.rpc(
            "save_payment_data",
            {
                "p_invoice_uuid": invoice.id,
                "p_payment_form_data": {
                    "paymentDate": payment.date,
                    "paymentAmount": f"{payment.amount:.2f}",
                    "paymentMethod": method,
                    "collectedBy": collected_by,
                },
            },
        )
        unwrap_envelope(data, "save_payment_data")
    except GatewayError as exc:
        logger.error("payment_history_failed: invoice=%s error=%s", invoice.id, exc.message)
        error(notifier, "Payment history not saved", f"Failed to save payment data: {exc.message}")

    if record_transaction is not None:
        await record_transaction(invoice, payment)

    fallback = invoice.model_copy(
        update={
            "paid_amount": f"{total_paid:.2f}",
            "balance_amount": f"{new_balance:.2f}",
            "status": new_status,
            "payments": payments,
        }
    )
    try:
        refreshed = await repository.get(invoice.id)
    except GatewayError as exc:
        logger.warning("payment_refetch_failed: invoice=%s error=%s", invoice.id, exc.message)
        refreshed = None

    success(notifier, "Payment recorded successfully")
    return refreshed or fallback
