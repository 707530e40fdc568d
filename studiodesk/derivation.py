"""Invoice and estimate derivation engine.

Pure functions turning line items and a tax rate into subtotal, tax, total and
balance. Amounts arrive as currency-formatted strings; malformed amounts count
as zero here so a half-typed form still previews. The invoice form rejects
them before anything is submitted.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable

from studiodesk.models import InvoiceStatus, InvoiceType, LineItem

CENT = Decimal("0.01")
ZERO = Decimal("0")
DEFAULT_SYMBOL = "₹"

# Currency symbols, thousands separators and whitespace
_FORMATTING = re.compile(r"[₹$€£,\s]")


def parse_amount(value: Any) -> Decimal:
    """Parse a formatted amount (``"₹1,250.50"``) into a Decimal; invalid -> 0."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value if value.is_finite() else ZERO
    if isinstance(value, (int, float)):
        value = str(value)
    cleaned = _FORMATTING.sub("", str(value))
    if not cleaned:
        return ZERO
    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        return ZERO
    return amount if amount.is_finite() else ZERO


def is_valid_amount(value: Any) -> bool:
    """True when ``value`` is empty or parses as a number after unformatting."""
    cleaned = _FORMATTING.sub("", str(value or ""))
    if not cleaned:
        return True
    try:
        return Decimal(cleaned).is_finite()
    except InvalidOperation:
        return False


def strip_formatting(value: Any) -> str:
    return _FORMATTING.sub("", str(value or ""))


def quantize(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def format_currency(value: Decimal | str, symbol: str = DEFAULT_SYMBOL) -> str:
    """Render a fixed two-decimal currency string (``₹177.59``)."""
    if not isinstance(value, Decimal):
        value = parse_amount(value)
    return f"{symbol}{quantize(value):.2f}"


def subtotal(items: Iterable[LineItem | dict]) -> Decimal:
    total = ZERO
    for item in items:
        amount = item.get("amount") if isinstance(item, dict) else item.amount
        total += parse_amount(amount)
    return total


def tax(subtotal_amount: Decimal, rate: str | Decimal) -> Decimal:
    """``subtotal * rate / 100`` rounded to cents; rate is a percentage."""
    return quantize(subtotal_amount * parse_amount(rate) / 100)


def total(subtotal_amount: Decimal, tax_amount: Decimal) -> Decimal:
    return subtotal_amount + tax_amount


def balance(total_amount: Decimal, paid_amount: Decimal) -> Decimal:
    """Outstanding balance, never negative."""
    return max(ZERO, total_amount - paid_amount)


@dataclass(frozen=True, slots=True)
class InvoiceTotals:
    subtotal: Decimal
    gst_rate: Decimal
    tax: Decimal
    total: Decimal

    def as_form_data(self) -> dict[str, str]:
        return {
            "subtotal": f"{quantize(self.subtotal):.2f}",
            "gstRate": _plain(self.gst_rate),
            "gstAmount": f"{quantize(self.tax):.2f}",
            "total": f"{quantize(self.total):.2f}",
        }


def compute_totals(
    items: Iterable[LineItem | dict],
    rate: str | Decimal,
    invoice_type: InvoiceType = InvoiceType.PAID,
) -> InvoiceTotals:
    """Subtotal, tax and total; untaxed invoice types force tax to zero."""
    sub = subtotal(items)
    applied_rate = parse_amount(rate) if invoice_type.is_taxed else ZERO
    tax_amount = tax(sub, applied_rate)
    return InvoiceTotals(
        subtotal=sub,
        gst_rate=applied_rate,
        tax=tax_amount,
        total=total(sub, tax_amount),
    )


def derive_invoice_status(total_amount: Decimal, paid_amount: Decimal) -> InvoiceStatus:
    if paid_amount >= total_amount:
        return InvoiceStatus.PAID
    if paid_amount > 0:
        return InvoiceStatus.PARTIAL
    return InvoiceStatus.PENDING


class DerivedField:
    """Guard for a value that is both user-editable and recomputed.

    Remembers the last value it computed. A recomputation only overwrites the
    visible value when it differs from the previous computation and the user
    has not typed over the computed value in the meantime. Repeated
    recomputation with unchanged inputs is therefore a no-op, which is what
    breaks update cycles between dependent fields.
    """

    def __init__(self, value: str = ""):
        self.value = value
        self.last_computed: str | None = None

    @property
    def overridden(self) -> bool:
        if not self.value.strip():
            return False
        if self.last_computed is None:
            return True
        return parse_amount(self.value) != parse_amount(self.last_computed)

    def set_manual(self, value: str) -> None:
        self.value = value

    def offer(self, computed: str) -> bool:
        """Offer a freshly computed value; returns True when it was applied."""
        if computed == self.last_computed:
            return False
        if self.overridden:
            self.last_computed = computed
            return False
        self.last_computed = computed
        if computed == self.value:
            return False
        self.value = computed
        return True

    def reset(self, value: str = "", *, computed: bool = False) -> None:
        """Replace the value; ``computed`` marks it as derived rather than typed."""
        self.value = value
        self.last_computed = value if computed and value else None


def _plain(value: Decimal) -> str:
    """Percentage as typed (``18`` rather than ``18.00``)."""
    normalized = value.normalize()
    if normalized == normalized.to_integral():
        return str(normalized.quantize(Decimal(1)))
    return str(normalized)
