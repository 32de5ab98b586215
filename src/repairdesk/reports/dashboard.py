"""
Monthly dashboard figures.

Four headline numbers for the current month: today's schedule count, the
month's revenue, how many payroll rows are still unpaid and the month's
spending (schedule material and extra costs plus ledger expenses). The
month's payroll total is reported next to them.
"""

from dataclasses import dataclass
from datetime import date, tzinfo
from decimal import Decimal
from typing import Any, Dict, Iterable, Optional

from ..records import (
    ZERO,
    DateRange,
    FinanceLedgerEntry,
    LedgerCategory,
    PayrollRecord,
    ScheduleRecord,
    day_key,
    num,
)
from .grouping import filter_schedules
from .payroll import in_pay_month

EXPENSE_CATEGORIES = (LedgerCategory.FIXED_EXPENSE, LedgerCategory.EXTRA_EXPENSE)


@dataclass
class DashboardSummary:
    pay_month: str
    today: date
    today_count: int
    month_revenue: Decimal
    month_spending: Decimal
    unpaid_count: int
    payroll_total: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            'pay_month': self.pay_month,
            'today': day_key(self.today),
            'today_count': self.today_count,
            'month_revenue': self.month_revenue,
            'month_spending': self.month_spending,
            'unpaid_count': self.unpaid_count,
            'payroll_total': self.payroll_total,
        }


def build_dashboard(
    schedules: Iterable[ScheduleRecord],
    ledger: Iterable[FinanceLedgerEntry],
    payrolls: Iterable[PayrollRecord],
    today: date,
    tz: Optional[tzinfo] = None,
) -> DashboardSummary:
    """
    Dashboard figures for the month containing today.

    Unpaid rows are counted for the plain 'YYYY-MM' pay month only; the
    payroll total also includes that month's partial payments.
    """
    month = DateRange.month_of(today)
    pay_month = today.strftime("%Y-%m")
    schedules = list(schedules)

    month_rows = filter_schedules(schedules, month, tz)
    today_count = sum(1 for r in schedules if r.work_date(tz) == today)
    revenue = sum((num(r.revenue) for r in month_rows), ZERO)

    spending = sum((num(r.material_cost) + num(r.extra_cost) for r in month_rows), ZERO)
    spending += sum(
        (num(e.amount) for e in ledger
         if e.ledger_category in EXPENSE_CATEGORIES and month.contains(e.day)),
        ZERO,
    )

    unpaid = 0
    payroll_total = ZERO
    for record in payrolls:
        if record.pay_month == pay_month and not record.paid:
            unpaid += 1
        if in_pay_month(record.pay_month, pay_month):
            payroll_total += num(record.total_pay)

    return DashboardSummary(
        pay_month=pay_month,
        today=today,
        today_count=today_count,
        month_revenue=revenue,
        month_spending=spending,
        unpaid_count=unpaid,
        payroll_total=payroll_total,
    )
