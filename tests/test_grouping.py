"""Tests for grouped report tables and metric series."""

from datetime import date
from decimal import Decimal

import pytest

from conftest import make_schedule
from repairdesk.records import DateRange, ScheduleRecord
from repairdesk.reports.grouping import (
    UNASSIGNED,
    compute_metric_series,
    filter_schedules,
    group_rows,
    week_key,
)


@pytest.fixture
def schedules():
    return [
        make_schedule(1, "2025-01-06T09:00:00", 1000, 200, 300, 100, employee_id="e1", employee_name="Kim"),
        make_schedule(2, "2025-01-06T14:00:00", 500, 0, 100, 0, employee_id="e2", employee_name="Lee"),
        make_schedule(3, "2025-01-08T09:00:00", 800, 100, 300, 0, employee_id="e1", employee_name=" kim "),
        make_schedule(4, "2025-02-03T09:00:00", 400, 0, 200, 50, employee_name="Park"),
        make_schedule(5, "2025-02-03T10:00:00", 100, 0, 0, 0),
    ]


@pytest.mark.parametrize("day,expected", [
    (date(2025, 1, 1), "2024-W53"),
    (date(2025, 1, 6), "2025-W02"),
    (date(2025, 1, 12), "2025-W02"),
    (date(2024, 1, 1), "2024-W01"),
    (date(2024, 1, 8), "2024-W02"),
])
def test_week_key(day, expected):
    assert week_key(day) == expected


def test_daily_groups(schedules):
    report = group_rows(schedules, "daily")
    assert [r.key for r in report.rows] == ["2025-01-06", "2025-01-08", "2025-02-03"]

    first = report.rows[0]
    assert first.count == 2
    assert first.revenue == Decimal("1500")
    assert first.net == Decimal("1500") - 200 - 400 + 50

    assert report.total.count == 5
    assert report.total.revenue == Decimal("2800")


def test_weekly_and_monthly_groups(schedules):
    weekly = group_rows(schedules, "weekly")
    assert [r.key for r in weekly.rows] == ["2025-W02", "2025-W06"]
    assert weekly.rows[0].count == 3

    monthly = group_rows(schedules, "monthly")
    assert [r.key for r in monthly.rows] == ["2025-01", "2025-02"]
    assert monthly.rows[1].daily_wage == Decimal("200")


def test_employee_groups_merge_names_case_insensitively(schedules):
    report = group_rows(schedules, "employee")
    labels = [r.label for r in report.rows]
    assert labels == sorted(labels)
    assert UNASSIGNED in labels

    kim = next(r for r in report.rows if r.key == "kim")
    assert kim.count == 2
    assert kim.daily_wage == Decimal("600")
    assert kim.employee_id == "e1"

    park = next(r for r in report.rows if r.key == "park")
    assert park.employee_id is None


def test_employee_group_drops_ambiguous_id():
    rows = [
        make_schedule(1, "2025-01-06T09:00:00", employee_id="e1", employee_name="Kim"),
        make_schedule(2, "2025-01-07T09:00:00", employee_id="e9", employee_name="Kim"),
    ]
    report = group_rows(rows, "employee")
    assert len(report.rows) == 1
    assert report.rows[0].employee_id is None


def test_unknown_mode_is_rejected(schedules):
    with pytest.raises(ValueError, match="Unsupported grouping mode"):
        group_rows(schedules, "yearly")


def test_rows_without_date_are_skipped():
    report = group_rows([ScheduleRecord(id=1, start_ts=None, revenue=Decimal("5"))], "daily")
    assert report.rows == []
    assert report.total.count == 0


def test_filter_schedules(schedules):
    january = DateRange(date(2025, 1, 1), date(2025, 1, 31))
    assert [r.id for r in filter_schedules(schedules, january)] == [1, 2, 3]
    assert filter_schedules(schedules, DateRange(None, None)) == []


def test_metric_series(schedules):
    date_range = DateRange(date(2025, 1, 6), date(2025, 1, 8))

    revenue = compute_metric_series(schedules, date_range, "revenue")
    assert revenue.labels == ["2025-01-06", "2025-01-07", "2025-01-08"]
    assert revenue.values == [Decimal("1500"), Decimal("0"), Decimal("800")]

    net = compute_metric_series(schedules, date_range, "net")
    assert net.values == [Decimal("550") + Decimal("400"), Decimal("0"), Decimal("400")]

    with pytest.raises(ValueError):
        compute_metric_series(schedules, date_range, "material_cost")


def test_metric_series_counts_undefined_net_as_zero():
    rows = [ScheduleRecord(id=1, start_ts="2025-01-01T09:00:00", revenue=Decimal("100"))]
    series = compute_metric_series(rows, DateRange(date(2025, 1, 1), date(2025, 1, 1)), "net")
    assert series.values == [Decimal("0")]


def test_grouped_report_to_dict(schedules):
    data = group_rows(schedules, "monthly").to_dict()
    assert data['total']['label'] == "TOTAL"
    assert data['rows'][0]['net'] == data['rows'][0]['revenue'] - data['rows'][0]['material_cost'] \
        - data['rows'][0]['daily_wage'] + data['rows'][0]['extra_cost'] / 2
