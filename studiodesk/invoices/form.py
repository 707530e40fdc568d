"""Invoice form state with derived totals and pre-submission validation."""

from __future__ import annotations

import re
from dataclasses import dataclass, field, fields
from datetime import date
from typing import Any

from pydantic import BaseModel, ValidationError, field_validator

from studiodesk import derivation
from studiodesk.config import InvoiceConfig
from studiodesk.gateway.errors import FormValidationError
from studiodesk.models import Estimate, Invoice, InvoiceStatus, InvoiceType, LineItem

_EMAIL = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class _ItemSchema(BaseModel):
    description: str
    amount: str

    @field_validator("description")
    @classmethod
    def description_required(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Description is required")
        return v

    @field_validator("amount")
    @classmethod
    def amount_numeric(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Amount is required")
        if not derivation.is_valid_amount(v):
            raise ValueError("Amount must be a valid number")
        return v


class _SubmissionSchema(BaseModel):
    client_name: str
    client_email: str = ""
    invoice_date: str
    items: list[_ItemSchema]

    @field_validator("client_name")
    @classmethod
    def client_name_required(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Client name is required")
        return v

    @field_validator("client_email")
    @classmethod
    def email_format(cls, v: str) -> str:
        if v and not _EMAIL.match(v):
            raise ValueError("Invalid email format")
        return v

    @field_validator("invoice_date")
    @classmethod
    def date_required(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Invoice date is required")
        return v

    @field_validator("items")
    @classmethod
    def at_least_one_item(cls, v: list[_ItemSchema]) -> list[_ItemSchema]:
        if not v:
            raise ValueError("At least one item is required")
        return v


def _errors_by_path(exc: ValidationError) -> dict[str, str]:
    errors: dict[str, str] = {}
    for err in exc.errors():
        path = ".".join(str(part) for part in err["loc"])
        original = (err.get("ctx") or {}).get("error")
        errors.setdefault(path, str(original) if original else err["msg"])
    return errors


@dataclass
class ClientDetails:
    client_name: str = ""
    client_email: str = ""
    client_phone: str = ""
    client_address: str = ""
    client_gst: str = ""
    company_name: str = ""
    company_email: str = ""
    company_phone: str = ""
    company_address: str = ""
    company_gst: str = ""
    invoice_date: str = field(default_factory=lambda: date.today().isoformat())
    invoice_type: InvoiceType = InvoiceType.PROFORMA
    payment_received: bool = False
    payment_date: str = ""
    payment_method: str = "bank"


class InvoiceForm:
    """Editable invoice whose total and balance follow its inputs.

    The total is recomputed from items, invoice type and GST rate, but stays
    put once the user overrides it. The balance follows total and paid amount
    and is never negative.
    """

    def __init__(self, config: InvoiceConfig | None = None):
        self.config = config or InvoiceConfig()
        self.client = ClientDetails(payment_method=self.config.default_payment_method)
        self.items: list[LineItem] = [LineItem()]
        self.gst_rate = self.config.default_gst_rate
        self.total = derivation.DerivedField()
        self.paid_amount = "0"
        self.balance_amount = "0"
        self.notes = ""
        self.estimate_id: str | None = None
        self.editing: Invoice | None = None
        self.errors: dict[str, str] = {}
        self._inputs_signature: tuple | None = None

    # Construction

    @classmethod
    def from_estimate(cls, estimate: Estimate, config: InvoiceConfig | None = None) -> InvoiceForm:
        """Prefill from an approved estimate's selected package."""
        form = cls(config)
        form.client.client_name = estimate.client_name
        form.client.client_email = estimate.client_email
        form.client.client_phone = estimate.client_phone
        form.estimate_id = estimate.id

        index = estimate.selected_package_index or 0
        package = estimate.packages[index] if index < len(estimate.packages) else None
        if package is not None:
            name = package.name or f"Option {index + 1}"
            amount = form._format(package.amount)
            form.items = [LineItem(description=f"Photography Package: {name}", amount=amount)]
        elif estimate.items:
            form.items = [
                LineItem(description=i.description, amount=form._format(i.amount))
                for i in estimate.items
            ]
        elif estimate.amount:
            form.items = [
                LineItem(description=estimate.project_name or "Photography services",
                         amount=form._format(estimate.amount))
            ]
        form._recompute_total()
        return form

    @classmethod
    def from_invoice(cls, invoice: Invoice, config: InvoiceConfig | None = None) -> InvoiceForm:
        """Prefill for editing, preferring the stored form data when present."""
        form = cls(config)
        form.editing = invoice
        form.estimate_id = invoice.estimate_id
        data = invoice.form_data or {}

        if data:
            client = data.get("clientDetails") or {}
            company = data.get("companyDetails") or {}
            payment = data.get("paymentDetails") or {}
            tracking = data.get("paymentTracking") or {}
            totals = data.get("totals") or {}
            form.client = ClientDetails(
                client_name=client.get("name", ""),
                client_email=client.get("email", ""),
                client_phone=client.get("phone", ""),
                client_address=client.get("address", ""),
                client_gst=client.get("gst", ""),
                company_name=company.get("name", ""),
                company_email=company.get("email", ""),
                company_phone=company.get("phone", ""),
                company_address=company.get("address", ""),
                company_gst=company.get("gst", ""),
                invoice_date=data.get("invoiceDate") or invoice.date or date.today().isoformat(),
                invoice_type=InvoiceType(data.get("invoiceType") or _type_for(invoice.status)),
                payment_received=bool(payment.get("paymentReceived", False)),
                payment_date=payment.get("paymentDate", ""),
                payment_method=payment.get("paymentMethod") or form.config.default_payment_method,
            )
            items = data.get("invoiceItems") or []
            form.items = [
                LineItem(description=i.get("description", ""), amount=form._format(i.get("amount")))
                for i in items
            ] or [LineItem()]
            form.gst_rate = str(totals.get("gstRate") or data.get("gstRate") or form.config.default_gst_rate)
            total = tracking.get("totalAmount") or totals.get("total") or invoice.amount
            paid = tracking.get("paidAmount") or invoice.paid_amount or "0"
            form.notes = tracking.get("notes") or invoice.notes
        else:
            form.client = ClientDetails(
                client_name=invoice.client,
                client_email=invoice.client_email,
                invoice_date=invoice.date or date.today().isoformat(),
                invoice_type=_type_for(invoice.status),
                payment_received=invoice.status is InvoiceStatus.PAID,
                payment_date=invoice.payment_date or "",
                payment_method=invoice.payment_method or form.config.default_payment_method,
            )
            form.items = [
                LineItem(description=i.description, amount=form._format(i.amount))
                for i in invoice.items
            ] or [LineItem()]
            form.gst_rate = invoice.gst_rate or form.config.default_gst_rate
            total = invoice.amount
            paid = invoice.paid_amount or "0"
            form.notes = invoice.notes

        # Stored values win over recomputation until the inputs change
        form.total.reset(form._format(total), computed=True)
        form.paid_amount = form._format(paid)
        form._inputs_signature = form._signature()
        form._recompute_balance()
        return form

    # Edits

    def set_items(self, items: list[LineItem]) -> None:
        self.items = list(items)
        for key in [k for k in self.errors if k.startswith("items")]:
            del self.errors[key]
        self._recompute_total()

    def set_gst_rate(self, rate: str) -> None:
        self.gst_rate = rate
        self._recompute_total()

    def set_total(self, value: str) -> None:
        """Manual override of the total."""
        self.total.set_manual(value)
        self._recompute_balance()

    def set_paid(self, value: str) -> None:
        self.paid_amount = value
        self._recompute_balance()

    def update_client_detail(self, name: str, value: Any) -> None:
        if name not in {f.name for f in fields(ClientDetails)}:
            raise AttributeError(f"Unknown client detail: {name}")
        if name == "invoice_type":
            value = InvoiceType(value)
        setattr(self.client, name, value)
        self.errors.pop(name, None)
        if name == "invoice_type":
            self._recompute_total()

    # Derivations

    def totals(self) -> derivation.InvoiceTotals:
        return derivation.compute_totals(self.items, self.gst_rate, self.client.invoice_type)

    def calculated_total(self) -> str:
        return self._format(self.totals().total)

    def _signature(self) -> tuple:
        return (
            tuple((i.description, derivation.strip_formatting(i.amount)) for i in self.items),
            self.client.invoice_type,
            self.gst_rate,
        )

    def _recompute_total(self) -> None:
        signature = self._signature()
        if signature == self._inputs_signature:
            return
        self._inputs_signature = signature

        if not any(i.amount.strip() for i in self.items):
            return
        computed = self.calculated_total()
        if derivation.parse_amount(computed) == 0:
            return
        if self.total.offer(computed):
            self._recompute_balance()

    def _recompute_balance(self) -> None:
        if not self.total.value:
            return
        remaining = derivation.balance(
            derivation.parse_amount(self.total.value),
            derivation.parse_amount(self.paid_amount),
        )
        formatted = self._format(remaining)
        if formatted != self.balance_amount:
            self.balance_amount = formatted

    def _format(self, value: Any) -> str:
        if value is None or (isinstance(value, str) and not value.strip()):
            return ""
        if isinstance(value, str) and not derivation.is_valid_amount(value):
            return value
        return derivation.format_currency(derivation.parse_amount(value), self.config.currency_symbol)

    # Validation and submission

    def validate(self) -> dict[str, str]:
        errors: dict[str, str] = {}
        try:
            _SubmissionSchema(
                client_name=self.client.client_name,
                client_email=self.client.client_email,
                invoice_date=self.client.invoice_date,
                items=[i.model_dump() for i in self.items],
            )
        except ValidationError as exc:
            errors.update(_errors_by_path(exc))

        if (
            self.client.invoice_type is InvoiceType.PAID
            and self.client.payment_received
            and not self.client.payment_date
        ):
            errors["payment_date"] = "Payment date is required when payment is received"

        self.errors = errors
        return errors

    def build_submission(self) -> tuple[Invoice, dict[str, Any]]:
        """Return the invoice and the form-data document saved with it.

        Raises:
            FormValidationError: If any field fails validation
        """
        errors = self.validate()
        if errors:
            raise FormValidationError(errors)

        totals = self.totals()
        final_total = self.total.value or self.calculated_total()
        total_value = derivation.parse_amount(final_total)
        paid_value = derivation.parse_amount(self.paid_amount)
        status = derivation.derive_invoice_status(total_value, paid_value)
        balance_text = self._format(derivation.balance(total_value, paid_value))

        form_data = {
            "invoiceType": self.client.invoice_type.value,
            "invoiceDate": self.client.invoice_date,
            "clientDetails": {
                "name": self.client.client_name,
                "email": self.client.client_email,
                "phone": self.client.client_phone,
                "address": self.client.client_address,
                "gst": self.client.client_gst,
            },
            "companyDetails": {
                "name": self.client.company_name,
                "email": self.client.company_email,
                "phone": self.client.company_phone,
                "address": self.client.company_address,
                "gst": self.client.company_gst,
            },
            "invoiceItems": [
                {"description": i.description, "amount": derivation.strip_formatting(i.amount)}
                for i in self.items
            ],
            "paymentDetails": {
                "paymentReceived": self.client.payment_received,
                "paymentDate": self.client.payment_date or "",
                "paymentMethod": self.client.payment_method or self.config.default_payment_method,
            },
            "totals": totals.as_form_data(),
            "paymentTracking": {
                "totalAmount": derivation.strip_formatting(final_total),
                "paidAmount": derivation.strip_formatting(self.paid_amount),
                "balanceAmount": derivation.strip_formatting(balance_text),
                "notes": self.notes or "",
            },
        }

        has_payment = paid_value > 0
        editing = self.editing
        invoice = Invoice(
            id=editing.id if editing else "",
            display_number=editing.display_number if editing else None,
            client=self.client.client_name,
            client_email=self.client.client_email,
            date=self.client.invoice_date,
            amount=self._format(final_total),
            paid_amount=self._format(self.paid_amount) or "0",
            balance_amount=balance_text,
            status=status,
            items=list(self.items),
            estimate_id=self.estimate_id,
            notes=self.notes,
            payment_date=(
                (editing.payment_date if editing and editing.payment_date else self.client.payment_date)
                if has_payment
                else None
            ),
            payment_method=(
                (editing.payment_method if editing and editing.payment_method else self.client.payment_method)
                if has_payment
                else None
            ),
            gst_rate=self.gst_rate if self.client.invoice_type.is_taxed else "0",
            payments=list(editing.payments) if editing else [],
            form_data=form_data,
        )
        return invoice, form_data


def _type_for(status: InvoiceStatus) -> InvoiceType:
    return InvoiceType.PROFORMA if status is InvoiceStatus.PENDING else InvoiceType.PAID


