"""Unit tests for invoice search and sorting."""

from __future__ import annotations

import pytest

from studiodesk.invoices.filters import SearchType, SortOption, filter_invoices, sort_invoices
from studiodesk.models import Invoice, InvoiceStatus


@pytest.fixture
def invoices() -> list[Invoice]:
    return [
        Invoice(id="aaaa1111", display_number="INV-002", client="Asha Sharma", date="2024-03-01",
                amount="₹1,180.00", balance_amount="₹680.00", status=InvoiceStatus.PARTIAL),
        Invoice(id="bbbb2222", display_number="INV-001", client="ravi Mehta", date="2024-01-10",
                amount="₹500.00", balance_amount="0", status=InvoiceStatus.PAID),
        Invoice(id="cccc3333", client="Neha Kapoor", date="2024-02-15",
                amount="₹2,000.00", balance_amount="₹2,000.00", status=InvoiceStatus.PENDING),
    ]


class TestFilter:
    """Test search and status filtering."""

    def test_search_by_client_is_case_insensitive(self, invoices):
        """Test client search ignores case."""
        result = filter_invoices(invoices, "RAVI")

        assert [i.id for i in result] == ["bbbb2222"]

    def test_search_by_invoice_reference(self, invoices):
        """Test searching by invoice reference."""
        assert [i.id for i in filter_invoices(invoices, "inv-00", search_type=SearchType.INVOICE)] == [
            "aaaa1111",
            "bbbb2222",
        ]
        assert [i.id for i in filter_invoices(invoices, "cccc", search_type=SearchType.INVOICE)] == [
            "cccc3333"
        ]

    def test_status_filter(self, invoices):
        """Test filtering by status."""
        assert [i.id for i in filter_invoices(invoices, status="Pending")] == ["cccc3333"]


class TestSort:
    """Test sort options and legacy aliases."""

    def test_amount_desc(self, invoices):
        """Test sorting by amount, largest first."""
        result = sort_invoices(invoices, SortOption.AMOUNT_DESC)

        assert [i.id for i in result] == ["cccc3333", "aaaa1111", "bbbb2222"]

    def test_date_asc(self, invoices):
        """Test sorting by date, oldest first."""
        result = sort_invoices(invoices, "date_asc")

        assert [i.id for i in result] == ["bbbb2222", "cccc3333", "aaaa1111"]

    def test_invoice_number_asc(self, invoices):
        """Test sorting by invoice number."""
        result = sort_invoices(invoices, "invoiceNumber_asc")

        assert [i.reference for i in result] == ["cccc3333", "INV-001", "INV-002"]

    @pytest.mark.parametrize(
        "legacy,modern",
        [
            ("date", "date_desc"),
            ("amount", "amount_desc"),
            ("balanceHighToLow", "balance_desc"),
            ("balanceLowToHigh", "balance_asc"),
        ],
    )
    def test_legacy_aliases(self, invoices, legacy, modern):
        """Test legacy sort names."""
        assert sort_invoices(invoices, legacy) == sort_invoices(invoices, modern)

    def test_unknown_option_keeps_order(self, invoices):
        """Test an unknown sort option keeps the order."""
        assert sort_invoices(invoices, "priority") == invoices
