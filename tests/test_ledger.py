"""Tests for extra-income ledger helpers."""

from datetime import date
from decimal import Decimal

import pytest

from repairdesk.records import LedgerCategory
from repairdesk.reports.ledger import EXTRA_INCOME_LABEL, compute_extra_income, extra_income_entry


def test_compute_extra_income():
    assert compute_extra_income(500000, 200000, 50000) == Decimal("250000")
    assert compute_extra_income("1,000", None, "abc") == Decimal("1000")
    assert compute_extra_income(100, 300, 0) == Decimal("-200")


def test_extra_income_entry_defaults_label():
    entry = extra_income_entry("2025-01-15", 500, 200, 50)
    assert entry.item_date == date(2025, 1, 15)
    assert entry.ledger_category is LedgerCategory.EXTRA_INCOME
    assert entry.amount == Decimal("250")
    assert entry.label == EXTRA_INCOME_LABEL


def test_extra_income_entry_keeps_label():
    assert extra_income_entry(date(2025, 1, 15), 1, 0, 0, label="Tips").label == "Tips"
    assert extra_income_entry(date(2025, 1, 15), 1, 0, 0, label="  ").label == EXTRA_INCOME_LABEL


def test_extra_income_entry_rejects_bad_date():
    with pytest.raises(ValueError, match="Invalid date"):
        extra_income_entry("15/01/2025", 1, 0, 0)
