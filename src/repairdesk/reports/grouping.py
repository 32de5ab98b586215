"""
Grouped report tables over schedule rows.

Rows can be grouped by day, Monday-start week, month or employee. Each group
carries the count and the four schedule money columns; net uses the same
half-of-extra-cost rule as ScheduleRecord.net.
"""

from dataclasses import dataclass, field
from datetime import date, timedelta, tzinfo
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from ..records import ZERO, DateRange, ScheduleRecord, day_key, num
from .aggregator import DailySeries

MODES = ("daily", "weekly", "monthly", "employee")
METRICS = ("revenue", "daily_wage", "net")

UNASSIGNED = "(unassigned)"
TOTAL_KEY = "TOTAL"


@dataclass
class GroupedRow:
    key: str
    label: str
    count: int = 0
    revenue: Decimal = ZERO
    material_cost: Decimal = ZERO
    daily_wage: Decimal = ZERO
    extra_cost: Decimal = ZERO
    employee_id: Optional[str] = None
    employee_name: Optional[str] = None

    @property
    def net(self) -> Decimal:
        return self.revenue - self.material_cost - self.daily_wage + self.extra_cost / 2

    def add(self, record: ScheduleRecord) -> None:
        self.count += 1
        self.revenue += num(record.revenue)
        self.material_cost += num(record.material_cost)
        self.daily_wage += num(record.daily_wage)
        self.extra_cost += num(record.extra_cost)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'key': self.key,
            'label': self.label,
            'count': self.count,
            'revenue': self.revenue,
            'material_cost': self.material_cost,
            'daily_wage': self.daily_wage,
            'extra_cost': self.extra_cost,
            'net': self.net,
            'employee_id': self.employee_id,
            'employee_name': self.employee_name,
        }


@dataclass
class GroupedReport:
    rows: List[GroupedRow] = field(default_factory=list)
    total: GroupedRow = field(default_factory=lambda: GroupedRow(TOTAL_KEY, TOTAL_KEY))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'rows': [r.to_dict() for r in self.rows],
            'total': self.total.to_dict(),
        }


def week_start(day: date) -> date:
    """Monday on or before day."""
    return day - timedelta(days=day.weekday())


def week_key(day: date) -> str:
    """
    'YYYY-Www' for the Monday-start week containing day.

    Weeks are numbered from the week that contains January 1st of the
    Monday's year, so the first (possibly partial) week is W01.
    """
    monday = week_start(day)
    first_monday = week_start(date(monday.year, 1, 1))
    index = (monday - first_monday).days // 7 + 1
    return f"{monday.year}-W{index:02d}"


def month_key(day: date) -> str:
    return day.strftime("%Y-%m")


def employee_label(record: ScheduleRecord) -> str:
    return (record.employee_name or "").strip() or UNASSIGNED


def filter_schedules(
    schedules: Iterable[ScheduleRecord],
    date_range: DateRange,
    tz: Optional[tzinfo] = None,
) -> List[ScheduleRecord]:
    """Schedules whose work date lies in date_range. Empty range: nothing."""
    return [r for r in schedules if date_range.contains(r.work_date(tz))]


def _total(rows: List[GroupedRow]) -> GroupedRow:
    total = GroupedRow(TOTAL_KEY, TOTAL_KEY)
    for row in rows:
        total.count += row.count
        total.revenue += row.revenue
        total.material_cost += row.material_cost
        total.daily_wage += row.daily_wage
        total.extra_cost += row.extra_cost
    return total


def _group_by_date(
    schedules: Iterable[ScheduleRecord],
    key_of: Callable[[date], str],
    tz: Optional[tzinfo],
) -> GroupedReport:
    groups: Dict[str, GroupedRow] = {}
    for record in schedules:
        day = record.work_date(tz)
        if day is None:
            continue
        key = key_of(day)
        if key not in groups:
            groups[key] = GroupedRow(key, key)
        groups[key].add(record)

    rows = sorted(groups.values(), key=lambda r: r.key)
    return GroupedReport(rows=rows, total=_total(rows))


def group_by_employee(schedules: Iterable[ScheduleRecord]) -> GroupedReport:
    """
    One group per employee name (case-insensitive, trimmed).

    The group keeps an employee_id only when exactly one distinct id was
    seen for that name.
    """
    groups: Dict[str, GroupedRow] = {}
    ids: Dict[str, Set[str]] = {}

    for record in schedules:
        label = employee_label(record)
        key = label.lower()
        if key not in groups:
            groups[key] = GroupedRow(key, label, employee_name=label)
            ids[key] = set()
        groups[key].add(record)

        employee_id = (record.employee_id or "").strip()
        if employee_id:
            ids[key].add(employee_id)

    for key, row in groups.items():
        if len(ids[key]) == 1:
            row.employee_id = next(iter(ids[key]))

    rows = sorted(groups.values(), key=lambda r: r.label)
    return GroupedReport(rows=rows, total=_total(rows))


def group_rows(
    schedules: Iterable[ScheduleRecord],
    mode: str = "daily",
    tz: Optional[tzinfo] = None,
) -> GroupedReport:
    """Group schedule rows for the tabular report."""
    if mode == "daily":
        return _group_by_date(schedules, day_key, tz)
    if mode == "weekly":
        return _group_by_date(schedules, week_key, tz)
    if mode == "monthly":
        return _group_by_date(schedules, month_key, tz)
    if mode == "employee":
        return group_by_employee(schedules)
    raise ValueError(f"Unsupported grouping mode: {mode}. Use one of: {', '.join(MODES)}")


def compute_metric_series(
    schedules: Iterable[ScheduleRecord],
    date_range: DateRange,
    metric: str = "revenue",
    tz: Optional[tzinfo] = None,
) -> DailySeries:
    """
    Per-day chart series of a single schedule metric.

    metric is revenue, daily_wage or net (rows with an undefined net add 0).
    Returns a DailySeries covering every day of date_range.
    """
    if metric not in METRICS:
        raise ValueError(f"Unsupported metric: {metric}. Use one of: {', '.join(METRICS)}")

    sums = {day: ZERO for day in date_range.days()}
    for record in schedules:
        day = record.work_date(tz)
        if day not in sums:
            continue
        if metric == "net":
            sums[day] += record.net if record.net is not None else ZERO
        else:
            sums[day] += num(getattr(record, metric))

    return DailySeries(labels=[day_key(d) for d in sums], values=list(sums.values()))
