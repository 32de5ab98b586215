"""Tests for viewer resolution and role-based row filtering."""

from datetime import date

from conftest import make_schedule
from repairdesk.records import DateRange, Profile
from repairdesk.reports import compute_totals
from repairdesk.reports.access import (
    Viewer,
    mask_totals,
    metadata_name,
    resolve_viewer,
    rows_for_viewer,
    safe_metric,
)


def test_resolve_viewer_from_profile(repo):
    repo.save_profile(Profile(id="u1", display_name="Kim", full_name="Kim Minsu", is_manager=True))
    viewer = resolve_viewer(repo, "u1", email="kim@example.com")

    assert viewer.name == "Kim"
    assert viewer.is_manager
    assert not viewer.is_admin
    assert viewer.is_elevated


def test_resolve_viewer_admin_lists(repo):
    assert resolve_viewer(repo, "boss", admin_ids=["boss"]).is_admin
    assert resolve_viewer(repo, "u2", email="Owner@Example.com", admin_emails=["owner@example.com"]).is_admin
    assert not resolve_viewer(repo, "u2", email="someone@example.com", admin_emails=["owner@example.com"]).is_admin


def test_resolve_viewer_profile_admin_flag(repo):
    repo.save_profile(Profile(id="u3", name="Lee", is_admin=True))
    assert resolve_viewer(repo, "u3").is_admin


def test_resolve_viewer_falls_back_to_metadata(repo):
    viewer = resolve_viewer(repo, "ghost", metadata={"full_name": "Park Jisoo", "user_name": "pjs"})
    assert viewer.name == "Park Jisoo"
    assert not viewer.is_elevated


def test_metadata_name_order():
    assert metadata_name({"name": " ", "full_name": "", "user_name": "pjs"}) == "pjs"
    assert metadata_name(None) is None


class TestRowsForViewer:
    rows = [
        make_schedule(1, "2025-01-01T09:00:00", employee_id="u1", employee_name="Kim"),
        make_schedule(2, "2025-01-01T10:00:00", employee_name="KIM "),
        make_schedule(3, "2025-01-01T11:00:00", employee_id="u2", employee_name="Lee"),
    ]

    def test_elevated_sees_everything(self):
        assert len(rows_for_viewer(self.rows, Viewer(user_id="x", is_manager=True))) == 3

    def test_employee_sees_own_rows_by_id_or_name(self):
        visible = rows_for_viewer(self.rows, Viewer(user_id="u1", name="kim"))
        assert [r.id for r in visible] == [1, 2]

    def test_employee_without_identity_sees_nothing(self):
        assert rows_for_viewer(self.rows, Viewer()) == []


def test_safe_metric():
    assert safe_metric("net", Viewer(user_id="u1")) == "revenue"
    assert safe_metric("net", Viewer(user_id="u1", is_manager=True)) == "revenue"
    assert safe_metric("net", Viewer(user_id="a", is_admin=True)) == "net"
    assert safe_metric("daily_wage", Viewer(user_id="u1")) == "daily_wage"


def test_mask_totals_hides_admin_only_figures():
    rows = [make_schedule(1, "2025-01-01T09:00:00", 1000, 200, 300, 100)]
    totals = compute_totals(rows, [], DateRange(date(2025, 1, 1), date(2025, 1, 1)))

    masked = mask_totals(totals, Viewer(user_id="u1", is_manager=True))
    assert masked['material_cost'] is None
    assert masked['grand_total'] is None
    assert masked['revenue'] == 1000

    shown = mask_totals(totals, Viewer(user_id="a", is_admin=True))
    assert shown['grand_total'] == 550
