"""
Report service: fetches records through an injected repository and runs the
report functions over them.

    repo = get_repository()
    service = ReportService(repo, settings=SettingsStore().load())
    totals = service.totals(DateRange.parse("2025-01-01", "2025-01-31"))

When given a ChangeFeed, the service drops its cached schedule rows whenever
schedules or finance items change, so the next call fetches fresh data.
"""

import logging
import re
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from dateutil.relativedelta import relativedelta

from .config import Settings
from .database.cache import ScheduleCache, month_key
from .database.repository import RepairDeskRepository
from .realtime import ChangeEvent, ChangeFeed, Subscription
from .records import (
    CategoryToggleSet,
    DateRange,
    FinanceLedgerEntry,
    LedgerCategory,
    Material,
    MaterialEntry,
    PayrollRecord,
    ScheduleRecord,
    to_decimal,
)
from .reports.access import Viewer, rows_for_viewer, safe_metric
from .reports.aggregator import CategoryTotals, DailySeries, compute_daily_series, compute_totals
from .reports.dashboard import DashboardSummary, build_dashboard
from .reports.grouping import GroupedReport, compute_metric_series, filter_schedules, group_rows
from .reports.ledger import extra_income_entry
from .reports.materials import VendorTotal, estimate_cost, vendor_summary
from .reports.payroll import (
    EmployeePayTotal,
    in_pay_month,
    paid_at_for,
    pay_selected_schedules,
    payroll_summary,
    sync_payrolls,
)

logger = logging.getLogger(__name__)

WATCHED_TABLES = ("schedules", "finance_items")
MONTH_PATTERN = re.compile(r"^\d{4}-\d{2}$")


class ReportService:
    """
    Report entry point bound to one repository.

    Schedule rows are fetched a month at a time and cached; ledger entries
    are fetched per call.
    """

    def __init__(
        self,
        repository: RepairDeskRepository,
        settings: Optional[Settings] = None,
        feed: Optional[ChangeFeed] = None,
    ):
        self.repository = repository
        self.settings = settings or Settings()
        self.cache = ScheduleCache()
        self._subscriptions: List[Subscription] = []
        if feed is not None:
            self.watch(feed)

    @property
    def tz(self):
        return self.settings.tz

    # ==================== Fetching ====================

    def _months(self, date_range: DateRange) -> List[date]:
        months = []
        current = date_range.start.replace(day=1)
        while current <= date_range.end:
            months.append(current)
            current += relativedelta(months=1)
        return months

    def schedules_for(self, date_range: DateRange) -> List[ScheduleRecord]:
        """
        Schedules around date_range, loading uncached months first.

        The window is padded by a day on each side so that rows whose
        business-timezone date differs from their stored date are included;
        the report functions do the exact day filtering.
        """
        if date_range.is_empty:
            return []

        for month in self._months(date_range):
            key = month_key(month)
            if self.cache.is_loaded(key):
                continue
            last = month + relativedelta(months=1) - timedelta(days=1)
            rows = self.repository.get_schedules(
                start_date=month - timedelta(days=1),
                end_date=last + timedelta(days=1),
            )
            self.cache.merge(rows)
            self.cache.mark_loaded(key)
            logger.debug(f"Loaded {len(rows)} schedule row(s) for {key}")

        # bounds are business-timezone midnights (UTC when no timezone is set)
        start = datetime.combine(date_range.start - timedelta(days=1), time.min, tzinfo=self.tz)
        end = datetime.combine(date_range.end + timedelta(days=2), time.min, tzinfo=self.tz)
        return self.cache.rows_between(start, end)

    def ledger_for(self, date_range: DateRange) -> List[FinanceLedgerEntry]:
        if date_range.is_empty:
            return []
        return self.repository.get_finance_items(start_date=date_range.start, end_date=date_range.end)

    def fetch(self, date_range: DateRange) -> Tuple[List[ScheduleRecord], List[FinanceLedgerEntry]]:
        return self.schedules_for(date_range), self.ledger_for(date_range)

    # ==================== Reports ====================

    def daily_series(self, date_range: DateRange,
                     toggles: Optional[CategoryToggleSet] = None) -> DailySeries:
        schedules, ledger = self.fetch(date_range)
        return compute_daily_series(schedules, ledger, date_range, toggles, tz=self.tz)

    def totals(self, date_range: DateRange,
               toggles: Optional[CategoryToggleSet] = None) -> CategoryTotals:
        schedules, ledger = self.fetch(date_range)
        return compute_totals(schedules, ledger, date_range, toggles, tz=self.tz)

    def groups(self, date_range: DateRange, mode: str = "daily",
               viewer: Optional[Viewer] = None) -> GroupedReport:
        rows = filter_schedules(self.schedules_for(date_range), date_range, tz=self.tz)
        if viewer is not None:
            rows = rows_for_viewer(rows, viewer)
        return group_rows(rows, mode, tz=self.tz)

    def metric_series(self, date_range: DateRange, metric: str = "revenue",
                      viewer: Optional[Viewer] = None) -> DailySeries:
        rows = self.schedules_for(date_range)
        if viewer is not None:
            rows = rows_for_viewer(rows, viewer)
            metric = safe_metric(metric, viewer)
        return compute_metric_series(rows, date_range, metric, tz=self.tz)

    def sync_payrolls(self, date_range: DateRange) -> List[PayrollRecord]:
        return sync_payrolls(self.repository, self.schedules_for(date_range), date_range, tz=self.tz)

    # ==================== Ledger ====================

    def add_ledger_entry(self, entry: FinanceLedgerEntry) -> int:
        """Store a ledger entry and return its ID."""
        if entry.ledger_category is None:
            raise ValueError(f"Unknown ledger category: {entry.category}. "
                             f"Use one of: {', '.join(c.value for c in LedgerCategory)}")
        if to_decimal(entry.amount) is None:
            raise ValueError(f"Ledger amount must be a finite number, got: {entry.amount}")
        item_id = self.repository.save_finance_item(entry)
        logger.info(f"Added {entry.ledger_category.value} entry #{item_id} on {entry.item_date}")
        return item_id

    def add_extra_income(self, item_date, revenue, wage, other,
                         label: Optional[str] = None) -> FinanceLedgerEntry:
        entry = extra_income_entry(item_date, revenue, wage, other, label=label)
        self.add_ledger_entry(entry)
        return entry

    def list_ledger(self, date_range: Optional[DateRange] = None,
                    category: Optional[LedgerCategory] = None) -> List[FinanceLedgerEntry]:
        if date_range is None:
            return self.repository.get_finance_items(category=category)
        if date_range.is_empty:
            return []
        return self.repository.get_finance_items(
            start_date=date_range.start, end_date=date_range.end, category=category
        )

    def delete_ledger_entry(self, item_id: int) -> bool:
        deleted = self.repository.delete_finance_item(item_id)
        if deleted:
            logger.info(f"Deleted ledger entry #{item_id}")
        else:
            logger.warning(f"Ledger entry #{item_id} not found")
        return deleted

    # ==================== Schedules ====================

    def schedule(self, schedule_id: int) -> Optional[ScheduleRecord]:
        rows = self.repository.get_schedules_by_ids([schedule_id])
        return rows[0] if rows else None

    def update_schedule(self, record: ScheduleRecord) -> bool:
        updated = self.repository.update_schedule(record)
        if updated:
            self.cache.clear()
            logger.info(f"Updated schedule #{record.id}")
        else:
            logger.warning(f"Schedule #{record.id} not found")
        return updated

    def delete_schedule(self, schedule_id: int) -> bool:
        deleted = self.repository.delete_schedule(schedule_id)
        if deleted:
            self.cache.clear()
            logger.info(f"Deleted schedule #{schedule_id}")
        else:
            logger.warning(f"Schedule #{schedule_id} not found")
        return deleted

    # ==================== Payrolls ====================

    def payrolls(self, month: Optional[str] = None) -> List[PayrollRecord]:
        """Payroll rows; with a month, its own row plus its partial payouts."""
        rows = self.repository.get_payrolls()
        if month:
            rows = [r for r in rows if in_pay_month(r.pay_month, month)]
        return rows

    def mark_payroll_paid(self, payroll_id: int, paid_on: Optional[date] = None,
                          memo: Optional[str] = None) -> bool:
        paid_on = paid_on or self.today()
        updated = self.repository.mark_payroll_paid(payroll_id, paid_at_for(paid_on), memo)
        if updated:
            logger.info(f"Marked payroll #{payroll_id} paid on {paid_on}")
        else:
            logger.warning(f"Payroll #{payroll_id} not found")
        return updated

    def delete_payroll(self, payroll_id: int) -> bool:
        deleted = self.repository.delete_payroll(payroll_id)
        if deleted:
            logger.info(f"Deleted payroll #{payroll_id}")
        else:
            logger.warning(f"Payroll #{payroll_id} not found")
        return deleted

    def payroll_summary(self, month: Optional[str] = None) -> List[EmployeePayTotal]:
        return payroll_summary(self.payrolls(month))

    def pay_selected(
        self,
        schedule_ids: List[int],
        employee_id: Optional[str],
        employee_name: Optional[str],
        base_month: str,
        paid_on: Optional[date] = None,
    ) -> PayrollRecord:
        """Pay the given schedules as one partial payout of base_month."""
        if not MONTH_PATTERN.match(base_month or ""):
            raise ValueError(f"Pay month must look like YYYY-MM, got: {base_month}")
        schedules = self.repository.get_schedules_by_ids(schedule_ids)
        missing = sorted(set(schedule_ids) - {s.id for s in schedules})
        if missing:
            raise ValueError(f"Unknown schedule id(s): {', '.join(str(i) for i in missing)}")
        return pay_selected_schedules(
            self.repository,
            schedules,
            employee_id,
            employee_name,
            base_month,
            paid_on or self.today(),
            tz=self.tz,
        )

    # ==================== Materials ====================

    def add_material(self, material: Material) -> str:
        material_id = self.repository.save_material(material)
        logger.info(f"Added material {material.name} ({material_id})")
        return material_id

    def materials(self) -> List[Material]:
        return self.repository.get_materials()

    def add_material_entries(self, entries: List[MaterialEntry]) -> int:
        written = self.repository.save_material_entries(entries)
        logger.info(f"Saved {written} material purchase line(s)")
        return written

    def material_entries(self, date_range: Optional[DateRange] = None,
                         limit: Optional[int] = None) -> List[MaterialEntry]:
        if date_range is None:
            return self.repository.get_material_entries(limit=limit)
        if date_range.is_empty:
            return []
        return self.repository.get_material_entries(date_range.start, date_range.end, limit)

    def delete_material_entry(self, entry_id: int) -> bool:
        deleted = self.repository.delete_material_entry(entry_id)
        if not deleted:
            logger.warning(f"Material entry #{entry_id} not found")
        return deleted

    def vendor_totals(self, date_range: Optional[DateRange] = None) -> List[VendorTotal]:
        return vendor_summary(self.material_entries(date_range))

    def estimate(self, quantities: Dict[str, Any]) -> Decimal:
        """Cost of the given material quantities at catalog prices."""
        return estimate_cost(self.materials(), quantities)

    # ==================== Dashboard ====================

    def today(self) -> date:
        return datetime.now(self.tz).date() if self.tz else date.today()

    def dashboard(self, today: Optional[date] = None) -> DashboardSummary:
        today = today or self.today()
        month = DateRange.month_of(today)
        schedules, ledger = self.fetch(month)
        return build_dashboard(schedules, ledger, self.repository.get_payrolls(), today, tz=self.tz)

    # ==================== Change feed ====================

    def watch(self, feed: ChangeFeed) -> None:
        """Invalidate cached rows on schedule and ledger changes."""
        for table in WATCHED_TABLES:
            self._subscriptions.append(feed.subscribe(table, callback=self._on_change))

    def _on_change(self, event: ChangeEvent) -> None:
        logger.info(f"{event.event_type.value} on {event.table}, refreshing report data")
        self.cache.clear()

    def close(self) -> None:
        """Drop feed subscriptions. The repository stays open; its owner closes it."""
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions.clear()
