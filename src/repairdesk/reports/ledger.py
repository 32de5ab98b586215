"""
Helpers for manual ledger entries.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Optional

from ..records import FinanceLedgerEntry, LedgerCategory, num, parse_day

EXTRA_INCOME_LABEL = "추가수익(계산: 매출-인건비-그외)"


def compute_extra_income(revenue: Any, wage: Any, other: Any) -> Decimal:
    """revenue - wage - other, with missing or non-numeric inputs counted as 0."""
    return num(revenue) - num(wage) - num(other)


def extra_income_entry(
    item_date: Any,
    revenue: Any,
    wage: Any,
    other: Any,
    label: Optional[str] = None,
) -> FinanceLedgerEntry:
    """
    An extra_income entry holding revenue - wage - other.

    Raises ValueError if item_date is not a valid YYYY-MM-DD day.
    """
    day: Optional[date] = parse_day(item_date)
    if day is None:
        raise ValueError(f"Invalid date: {item_date}. Use YYYY-MM-DD")

    return FinanceLedgerEntry(
        id=None,
        item_date=day,
        category=LedgerCategory.EXTRA_INCOME,
        amount=compute_extra_income(revenue, wage, other),
        label=(label or "").strip() or EXTRA_INCOME_LABEL,
    )
