"""Tests for payroll row building and sync."""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from conftest import make_schedule
from repairdesk.records import DateRange, PayrollRecord
from repairdesk.reports.payroll import (
    build_payroll_records,
    format_schedule_ids,
    in_pay_month,
    parse_schedule_ids,
    pay_month_for,
    pay_selected_schedules,
    payroll_summary,
    strip_schedule_tag,
    sync_payrolls,
)

JANUARY = DateRange(date(2025, 1, 1), date(2025, 1, 31))


def test_pay_month_for():
    assert pay_month_for(JANUARY) == "2025-01"
    assert pay_month_for(DateRange(date(2025, 1, 15), date(2025, 2, 14))) == "2025-01-15~2025-02-14"
    with pytest.raises(ValueError):
        pay_month_for(DateRange(None, None))


def test_build_payroll_records_sums_wages_per_employee():
    schedules = [
        make_schedule(1, "2025-01-02T09:00:00", daily_wage=150000, employee_id="e1", employee_name="Kim"),
        make_schedule(2, "2025-01-03T09:00:00", daily_wage=150000, employee_id="e1", employee_name="kim"),
        make_schedule(3, "2025-01-03T09:00:00", daily_wage=120000, employee_name="Lee"),
        make_schedule(4, "2025-02-01T09:00:00", daily_wage=999999, employee_id="e1", employee_name="Kim"),
    ]
    records = build_payroll_records(schedules, JANUARY, resolve_id=lambda name: "e2" if name == "Lee" else None)
    by_name = {r.employee_name: r for r in records}

    assert by_name["Kim"].amount == Decimal("300000")
    assert by_name["Kim"].employee_id == "e1"
    assert by_name["Lee"].employee_id == "e2"
    assert by_name["Lee"].amount == Decimal("120000")
    assert all(r.pay_month == "2025-01" for r in records)
    assert all(r.period_start == date(2025, 1, 1) and r.period_end == date(2025, 1, 31) for r in records)


def test_sync_payrolls_replaces_previous_rows(repo):
    repo.save_schedule(make_schedule(1, "2025-01-02T09:00:00", daily_wage=100, employee_id="e1", employee_name="Kim"))
    schedules = [
        make_schedule(2, "2025-01-05T09:00:00", daily_wage=200, employee_name="Kim"),
        make_schedule(3, "2025-01-06T09:00:00", daily_wage=50, employee_name="Choi"),
    ]

    sync_payrolls(repo, schedules, JANUARY)
    sync_payrolls(repo, schedules, JANUARY)

    saved = repo.get_payrolls("2025-01")
    assert len(saved) == 2
    by_name = {r.employee_name: r for r in saved}
    assert by_name["Kim"].employee_id == "e1"
    assert by_name["Kim"].amount == Decimal("200")
    assert by_name["Choi"].employee_id is None
    assert by_name["Choi"].memo == "[sched:3]"


def test_schedule_tags():
    memo = "[선택지급] Kim 2025-01 / 3건\n[sched:3, 1,2]"
    assert parse_schedule_ids(memo) == [3, 1, 2]
    assert parse_schedule_ids(" ") == []
    assert parse_schedule_ids(None) == []
    assert format_schedule_ids([3, 1, 3]) == "[sched:1,3]"
    assert strip_schedule_tag("Advance\n[sched:1]") == "Advance"


def test_in_pay_month():
    assert in_pay_month("2025-01", "2025-01")
    assert in_pay_month("2025-01-part-01201530", "2025-01")
    assert not in_pay_month("2025-02", "2025-01")
    assert not in_pay_month(None, "2025-01")


def test_merged_records_keep_every_schedule_tag():
    schedules = [
        make_schedule(5, "2025-01-02T09:00:00", daily_wage=100, employee_name="Lee"),
        make_schedule(6, "2025-01-03T09:00:00", daily_wage=100, employee_name="Lee Jun"),
    ]
    records = build_payroll_records(schedules, JANUARY, resolve_id=lambda name: "e2")
    assert len(records) == 1
    assert records[0].amount == Decimal("200")
    assert parse_schedule_ids(records[0].memo) == [5, 6]


NOW = datetime(2025, 1, 20, 15, 30, tzinfo=timezone.utc)


@pytest.fixture
def kim_month(repo):
    """Kim's January: three schedules synced into one unpaid row."""
    schedules = [
        make_schedule(1, "2025-01-02T09:00:00", daily_wage=100, employee_id="e1", employee_name="Kim"),
        make_schedule(2, "2025-01-05T09:00:00", daily_wage=200, employee_id="e1", employee_name="Kim"),
        make_schedule(3, "2025-01-09T09:00:00", daily_wage=0, employee_id="e1", employee_name="Kim"),
    ]
    for s in schedules:
        repo.save_schedule(s)
    sync_payrolls(repo, schedules, JANUARY)
    return {s.id: s for s in schedules}


class TestPaySelected:
    def test_partial_payout_deducts_from_unpaid_row(self, repo, kim_month):
        record = pay_selected_schedules(repo, [kim_month[1]], "e1", "Kim", "2025-01",
                                        date(2025, 1, 20), now=NOW)

        assert record.id is not None
        assert record.paid
        assert record.amount == Decimal("100")
        assert record.pay_month == "2025-01-part-01201530"
        assert record.period_start == record.period_end == date(2025, 1, 2)
        assert record.paid_at == datetime(2025, 1, 20, 12, 0)
        assert record.memo.startswith("[선택지급] Kim 2025-01 / 1건")
        assert parse_schedule_ids(record.memo) == [1]

        unpaid = repo.get_payrolls("2025-01")[0]
        assert not unpaid.paid
        assert unpaid.amount == Decimal("200")
        assert parse_schedule_ids(unpaid.memo) == [2, 3]

    def test_paying_everything_removes_unpaid_row(self, repo, kim_month):
        pay_selected_schedules(repo, [kim_month[1], kim_month[2]], "e1", "Kim", "2025-01",
                               date(2025, 1, 20), now=NOW)
        rows = repo.get_payrolls()
        assert [r.paid for r in rows] == [True]
        assert rows[0].amount == Decimal("300")

    def test_already_paid_schedules_are_not_paid_twice(self, repo, kim_month):
        pay_selected_schedules(repo, [kim_month[1]], "e1", "Kim", "2025-01", date(2025, 1, 20), now=NOW)

        with pytest.raises(ValueError, match="already been paid"):
            pay_selected_schedules(repo, [kim_month[1]], "e1", "Kim", "2025-01", date(2025, 1, 21))

        second = pay_selected_schedules(repo, [kim_month[1], kim_month[2]], "e1", "Kim", "2025-01",
                                        date(2025, 1, 21))
        assert second.amount == Decimal("200")
        assert parse_schedule_ids(second.memo) == [2]

    def test_zero_wage_leaves_rows_untouched(self, repo, kim_month):
        before = repo.get_payrolls()
        with pytest.raises(ValueError, match="no wage"):
            pay_selected_schedules(repo, [kim_month[3]], "e1", "Kim", "2025-01", date(2025, 1, 20))
        after = repo.get_payrolls()
        assert [(r.id, r.amount, r.memo) for r in after] == [(r.id, r.amount, r.memo) for r in before]

    def test_needs_employee_and_schedules(self, repo, kim_month):
        with pytest.raises(ValueError, match="employee"):
            pay_selected_schedules(repo, [kim_month[1]], None, " ", "2025-01", date(2025, 1, 20))
        with pytest.raises(ValueError, match="at least one"):
            pay_selected_schedules(repo, [], "e1", "Kim", "2025-01", date(2025, 1, 20))

    def test_resync_skips_paid_schedules(self, repo, kim_month):
        pay_selected_schedules(repo, [kim_month[1]], "e1", "Kim", "2025-01", date(2025, 1, 20), now=NOW)
        sync_payrolls(repo, list(kim_month.values()), JANUARY)

        unpaid = repo.get_payrolls("2025-01")
        assert len(unpaid) == 1
        assert unpaid[0].amount == Decimal("200")
        assert parse_schedule_ids(unpaid[0].memo) == [2, 3]
        assert len(repo.get_payrolls()) == 2


def test_payroll_summary():
    def row(name, amount, paid=False, employee_id=None):
        return PayrollRecord(employee_id=employee_id, employee_name=name, pay_month="2025-01",
                             period_start=date(2025, 1, 1), period_end=date(2025, 1, 31),
                             amount=Decimal(amount), paid=paid)

    totals = payroll_summary([
        row("Lee", "50"),
        row("Kim", "200", employee_id="e1"),
        row("Kim", "100", paid=True, employee_id="e1"),
        row(None, "10"),
    ])
    assert [t.employee_name for t in totals] == ["(unassigned)", "Kim", "Lee"]
    kim = totals[1]
    assert (kim.count, kim.total, kim.paid, kim.unpaid) == (2, Decimal("300"), Decimal("100"), Decimal("200"))
    assert kim.employee_id == "e1"
