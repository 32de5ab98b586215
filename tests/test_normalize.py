"""Tests for row normalization at the repository boundary."""

from datetime import date
from decimal import Decimal

from repairdesk.database.normalize import (
    employee_option_name,
    finance_item_from_row,
    profile_display_name,
    profile_from_row,
    schedule_from_row,
    to_bool,
)


def test_schedule_from_row_coerces_fields():
    record = schedule_from_row({
        'id': "12",
        'start_ts': "2025-01-01T09:00:00+09:00",
        'revenue': "150,000",
        'material_cost': 20000,
        'daily_wage': None,
        'extra_cost': "NaN",
        'title': "  Bathroom  ",
        'employee_name': "",
        'employee_names': ["Kim", " ", "Lee"],
        'off_day': "false",
    })
    assert record.id == 12
    assert record.start_ts.hour == 9
    assert record.revenue == Decimal("150000")
    assert record.material_cost == Decimal("20000")
    assert record.daily_wage is None
    assert record.extra_cost is None
    assert record.title == "Bathroom"
    assert record.employee_name is None
    assert record.names == ["Kim", "Lee"]
    assert record.off_day is False


def test_schedule_from_row_report_view_columns():
    record = schedule_from_row({'id': 3, 'work_date': "2025-01-04", 'material_cost_visible': "700"})
    assert record.work_date() == date(2025, 1, 4)
    assert record.material_cost == Decimal("700")


def test_schedule_without_id_is_dropped():
    assert schedule_from_row({'start_ts': "2025-01-01T09:00:00"}) is None
    assert schedule_from_row({'id': "abc"}) is None


def test_finance_item_from_row_keeps_invalid_values_for_skipping():
    entry = finance_item_from_row({'id': 1, 'item_date': "bad", 'category': " tips ", 'amount': "x"})
    assert entry.day is None
    assert entry.category == "tips"
    assert entry.ledger_category is None
    assert entry.amount is None


def test_name_preference_orders():
    row = {'display_name': "", 'full_name': "Kim Minsu", 'name': "minsu"}
    assert profile_display_name(row) == "Kim Minsu"
    assert employee_option_name(row) == "minsu"
    assert employee_option_name({'full_name': "Kim Minsu"}) == "Kim Minsu"


def test_profile_from_row():
    profile = profile_from_row({'id': "u1", 'email': " kim@example.com ", 'is_admin': 1, 'is_manager': 0})
    assert profile.email == "kim@example.com"
    assert profile.is_admin is True
    assert profile.is_manager is False


def test_to_bool():
    assert to_bool("true") is True
    assert to_bool(0) is False
    assert to_bool(None) is None
