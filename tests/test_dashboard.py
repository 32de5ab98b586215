"""Tests for the monthly dashboard figures."""

from datetime import date
from decimal import Decimal

from conftest import make_entry, make_schedule
from repairdesk.records import PayrollRecord
from repairdesk.reports.dashboard import build_dashboard

TODAY = date(2025, 1, 15)


def payroll(pay_month, amount, paid=False):
    return PayrollRecord(employee_id="e1", employee_name="Kim", pay_month=pay_month,
                         period_start=date(2025, 1, 1), period_end=date(2025, 1, 31),
                         amount=Decimal(amount), paid=paid)


def test_build_dashboard():
    schedules = [
        make_schedule(1, "2025-01-15T09:00:00", 1000, 200, 300, 100),
        make_schedule(2, "2025-01-20T09:00:00", 500),
        make_schedule(3, "2025-02-01T09:00:00", 999, 999),
    ]
    ledger = [
        make_entry("2025-01-02", "fixed_expense", 50),
        make_entry("2025-01-10", "extra_expense", 30),
        make_entry("2025-01-03", "revenue", 70),
        make_entry("2025-02-01", "fixed_expense", 1000),
    ]
    payrolls = [
        payroll("2025-01", "300"),
        payroll("2025-01", "100", paid=True),
        payroll("2025-01-part-01101200", "50", paid=True),
        payroll("2024-12", "999"),
    ]

    summary = build_dashboard(schedules, ledger, payrolls, TODAY)

    assert summary.pay_month == "2025-01"
    assert summary.today_count == 1
    assert summary.month_revenue == Decimal("1500")
    assert summary.month_spending == Decimal("380")
    assert summary.unpaid_count == 1
    assert summary.payroll_total == Decimal("450")
    assert summary.to_dict()['today'] == "2025-01-15"


def test_empty_month():
    summary = build_dashboard([], [], [], TODAY)
    assert summary.today_count == 0
    assert summary.month_revenue == Decimal("0")
    assert summary.month_spending == Decimal("0")
    assert summary.unpaid_count == 0
