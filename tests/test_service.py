"""Tests for ReportService over a real SQLite repository."""

from datetime import date
from decimal import Decimal

import pytest

from conftest import make_entry, make_schedule
from repairdesk.config import Settings
from repairdesk.realtime import ChangeEvent, ChangeFeed, ChangeType
from repairdesk.records import CategoryToggleSet, DateRange, LedgerCategory, Material, Profile
from repairdesk.reports.access import Viewer
from repairdesk.reports.ledger import EXTRA_INCOME_LABEL
from repairdesk.reports.materials import entry_for
from repairdesk.reports.payroll import parse_schedule_ids
from repairdesk.service import ReportService

JANUARY_1_2 = DateRange(date(2025, 1, 1), date(2025, 1, 2))


class CountingRepository:
    """Wraps a repository and counts schedule fetches."""

    def __init__(self, inner):
        self.inner = inner
        self.schedule_fetches = 0

    def get_schedules(self, *args, **kwargs):
        self.schedule_fetches += 1
        return self.inner.get_schedules(*args, **kwargs)

    def __getattr__(self, name):
        return getattr(self.inner, name)


@pytest.fixture
def seeded(repo):
    repo.save_schedule(make_schedule(1, "2025-01-01T09:00:00Z", 1000, 200, 300, 100,
                                     employee_id="e1", employee_name="Kim"))
    repo.save_finance_item(make_entry("2025-01-02", "fixed_expense", 50))
    return repo


def test_scenario_through_repository(seeded):
    service = ReportService(seeded)
    series = service.daily_series(JANUARY_1_2)
    totals = service.totals(JANUARY_1_2)

    assert series.labels == ["2025-01-01", "2025-01-02"]
    assert series.values == [Decimal("550"), Decimal("-50")]
    assert totals.grand_total == Decimal("500")


def test_toggles_pass_through(seeded):
    service = ReportService(seeded)
    totals = service.totals(JANUARY_1_2, CategoryToggleSet.from_exclusions(["fixed_expense"]))
    assert totals.grand_total == Decimal("550")


def test_months_are_fetched_once(seeded):
    counting = CountingRepository(seeded)
    service = ReportService(counting)

    service.totals(JANUARY_1_2)
    service.daily_series(JANUARY_1_2)
    assert counting.schedule_fetches == 1

    service.totals(DateRange(date(2025, 1, 20), date(2025, 2, 10)))
    assert counting.schedule_fetches == 2


def test_empty_range_does_not_touch_repository(seeded):
    counting = CountingRepository(seeded)
    service = ReportService(counting)
    assert service.daily_series(DateRange(date(2025, 1, 2), date(2025, 1, 1))).labels == []
    assert counting.schedule_fetches == 0


def test_business_timezone_uses_padded_fetch(repo):
    # 2025-01-31 20:00 UTC is 2025-02-01 05:00 in Seoul
    repo.save_schedule(make_schedule(1, "2025-01-31T20:00:00+00:00", 1000))
    service = ReportService(repo, settings=Settings(timezone="Asia/Seoul"))

    february_1 = DateRange(date(2025, 2, 1), date(2025, 2, 1))
    assert service.daily_series(february_1).values == [Decimal("1000")]
    assert service.totals(DateRange(date(2025, 1, 31), date(2025, 1, 31))).grand_total == 0


def test_change_events_clear_the_cache(seeded):
    feed = ChangeFeed()
    service = ReportService(seeded, feed=feed)
    assert service.totals(JANUARY_1_2).grand_total == Decimal("500")

    seeded.save_schedule(make_schedule(2, "2025-01-02T10:00:00", 100))
    assert service.totals(JANUARY_1_2).grand_total == Decimal("500")

    feed.publish(ChangeEvent(table="schedules", event_type=ChangeType.INSERT, record={"id": 2}))
    assert len(service.cache) == 0
    assert service.totals(JANUARY_1_2).grand_total == Decimal("600")

    service.close()
    assert feed.subscriber_count == 0


def test_unrelated_tables_do_not_clear_the_cache(seeded):
    feed = ChangeFeed()
    service = ReportService(seeded, feed=feed)
    service.totals(JANUARY_1_2)

    feed.publish(ChangeEvent(table="profiles", event_type=ChangeType.UPDATE))
    assert len(service.cache) == 1


def test_groups_and_viewer_filtering(seeded):
    seeded.save_schedule(make_schedule(2, "2025-01-02T10:00:00", 400, employee_id="e2", employee_name="Lee"))
    seeded.save_profile(Profile(id="e2", display_name="Lee"))
    service = ReportService(seeded)

    everyone = service.groups(JANUARY_1_2, "employee")
    assert [r.label for r in everyone.rows] == ["Kim", "Lee"]

    lee_only = service.groups(JANUARY_1_2, "employee", viewer=Viewer(user_id="e2", name="Lee"))
    assert [r.label for r in lee_only.rows] == ["Lee"]

    series = service.metric_series(JANUARY_1_2, "net", viewer=Viewer(user_id="e2", name="Lee"))
    assert series.values == [Decimal("0"), Decimal("400")]


def test_sync_payrolls(seeded):
    service = ReportService(seeded)
    records = service.sync_payrolls(DateRange(date(2025, 1, 1), date(2025, 1, 31)))
    assert len(records) == 1
    assert seeded.get_payrolls("2025-01")[0].amount == Decimal("300")


class TestLedger:
    def test_add_list_delete(self, repo):
        service = ReportService(repo)
        item_id = service.add_ledger_entry(make_entry("2025-01-05", "extra_expense", 9000))

        listed = service.list_ledger(DateRange(date(2025, 1, 1), date(2025, 1, 31)))
        assert [e.id for e in listed] == [item_id]
        assert service.list_ledger(DateRange(date(2025, 1, 6), date(2025, 1, 5))) == []
        assert len(service.list_ledger(category=LedgerCategory.FIXED_EXPENSE)) == 0

        assert service.delete_ledger_entry(item_id)
        assert not service.delete_ledger_entry(item_id)

    def test_unknown_category_is_rejected(self, repo):
        with pytest.raises(ValueError, match="Unknown ledger category"):
            ReportService(repo).add_ledger_entry(make_entry("2025-01-05", "bonus", 1))

    def test_non_finite_amount_is_rejected(self, repo):
        with pytest.raises(ValueError, match="finite"):
            ReportService(repo).add_ledger_entry(make_entry("2025-01-05", "revenue", "Infinity"))
        assert repo.get_finance_items() == []

    def test_extra_income_counts_in_totals(self, repo):
        service = ReportService(repo)
        entry = service.add_extra_income("2025-01-02", 500, 200, 50)
        assert entry.id is not None
        assert entry.label == EXTRA_INCOME_LABEL

        assert service.totals(JANUARY_1_2).extra_income == Decimal("250")


class TestSchedules:
    def test_update_refreshes_cached_rows(self, seeded):
        service = ReportService(seeded)
        assert service.totals(JANUARY_1_2).revenue == Decimal("1000")

        record = service.schedule(1)
        record.revenue = Decimal("2000")
        assert service.update_schedule(record)
        assert service.totals(JANUARY_1_2).revenue == Decimal("2000")

    def test_delete(self, seeded):
        service = ReportService(seeded)
        assert service.totals(JANUARY_1_2).revenue == Decimal("1000")
        assert service.delete_schedule(1)
        assert not service.delete_schedule(1)
        assert service.schedule(1) is None
        assert service.totals(JANUARY_1_2).revenue == Decimal("0")


class TestPayrolls:
    @pytest.fixture
    def service(self, repo):
        repo.save_schedule(make_schedule(1, "2025-01-02T09:00:00", daily_wage=100,
                                         employee_id="e1", employee_name="Kim"))
        repo.save_schedule(make_schedule(2, "2025-01-03T09:00:00", daily_wage=200,
                                         employee_id="e1", employee_name="Kim"))
        service = ReportService(repo)
        service.sync_payrolls(DateRange(date(2025, 1, 1), date(2025, 1, 31)))
        return service

    def test_pay_selected(self, service):
        record = service.pay_selected([2], "e1", "Kim", "2025-01", date(2025, 1, 20))
        assert record.amount == Decimal("200")

        rows = service.payrolls("2025-01")
        assert len(rows) == 2
        unpaid = [r for r in rows if not r.paid][0]
        assert parse_schedule_ids(unpaid.memo) == [1]
        assert service.payrolls("2025-02") == []

    def test_pay_selected_rejects_unknown_schedules_and_months(self, service):
        with pytest.raises(ValueError, match="Unknown schedule"):
            service.pay_selected([1, 42], "e1", "Kim", "2025-01", date(2025, 1, 20))
        with pytest.raises(ValueError, match="YYYY-MM"):
            service.pay_selected([1], "e1", "Kim", "January", date(2025, 1, 20))
        assert len(service.payrolls()) == 1

    def test_mark_paid_and_summary(self, service):
        payroll_id = service.payrolls("2025-01")[0].id
        assert service.mark_payroll_paid(payroll_id, date(2025, 2, 5))
        assert not service.mark_payroll_paid(999, date(2025, 2, 5))

        totals = service.payroll_summary("2025-01")
        assert [(t.employee_name, t.paid, t.unpaid) for t in totals] == [("Kim", Decimal("300"), Decimal("0"))]

        assert service.delete_payroll(payroll_id)
        assert service.payroll_summary() == []


class TestMaterials:
    def test_catalog_entries_and_vendor_totals(self, repo):
        service = ReportService(repo)
        pipe_id = service.add_material(Material(id=None, name="Pipe", vendor="Hanil",
                                                unit_price=Decimal("12000")))
        pipe = service.materials()[0]
        assert pipe.id == pipe_id

        service.add_material_entries([
            entry_for(pipe, "2025-01-10", qty=2),
            entry_for(pipe, "2025-01-11", qty=1, vendor="Daelim"),
            entry_for(pipe, "2025-02-01", qty=5),
        ])

        january = DateRange(date(2025, 1, 1), date(2025, 1, 31))
        assert len(service.material_entries(january)) == 2
        assert len(service.material_entries()) == 3
        assert service.material_entries(DateRange(None, None)) == []

        totals = service.vendor_totals(january)
        assert [(t.label, t.total) for t in totals] == [("Hanil", Decimal("24000")), ("Daelim", Decimal("12000"))]
        assert service.estimate({pipe_id: 3}) == Decimal("36000")

        newest = service.material_entries(limit=1)[0]
        assert service.delete_material_entry(newest.id)
        assert not service.delete_material_entry(newest.id)


def test_dashboard(seeded):
    seeded.save_finance_item(make_entry("2025-01-05", "extra_expense", 25))
    summary = ReportService(seeded).dashboard(date(2025, 1, 1))
    assert summary.today_count == 1
    assert summary.month_revenue == Decimal("1000")
    assert summary.month_spending == Decimal("375")
    assert summary.unpaid_count == 0
