"""
Period net-profit aggregation over schedules and ledger entries.

Both entry points share one bucketing pass so that the range total is, by
construction, the sum of the daily values:

    compute_daily_series(...)  -> DailySeries(labels, values)
    compute_totals(...)        -> CategoryTotals

Net for a bucket:

    + revenue + extra_income
    - material_cost - daily_wage - fixed_expense - extra_expense
    + extra_cost / 2

where each term only counts if its toggle is on.
"""

from dataclasses import dataclass, field
from datetime import date, tzinfo
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from ..records import (
    ZERO,
    CategoryToggleSet,
    DateRange,
    FinanceLedgerEntry,
    LedgerCategory,
    ScheduleRecord,
    day_key,
    num,
)


@dataclass
class CategoryBuckets:
    """Running sums for one day (or one whole range)."""
    revenue: Decimal = ZERO
    material_cost: Decimal = ZERO
    daily_wage: Decimal = ZERO
    extra_cost: Decimal = ZERO
    extra_income: Decimal = ZERO
    fixed_expense: Decimal = ZERO
    extra_expense: Decimal = ZERO

    def add_schedule(self, record: ScheduleRecord) -> None:
        self.revenue += num(record.revenue)
        self.material_cost += num(record.material_cost)
        self.daily_wage += num(record.daily_wage)
        self.extra_cost += num(record.extra_cost)

    def add_ledger_entry(self, category: LedgerCategory, amount: Any) -> None:
        # revenue/material_cost/daily_wage ledger lines share the schedule buckets
        bucket = category.value
        setattr(self, bucket, getattr(self, bucket) + num(amount))

    def add(self, other: "CategoryBuckets") -> None:
        for name in self.__dataclass_fields__:
            setattr(self, name, getattr(self, name) + getattr(other, name))

    def net(self, toggles: CategoryToggleSet) -> Decimal:
        total = ZERO
        if toggles.revenue:
            total += self.revenue
        if toggles.extra_income:
            total += self.extra_income
        if toggles.material_cost:
            total -= self.material_cost
        if toggles.daily_wage:
            total -= self.daily_wage
        if toggles.fixed_expense:
            total -= self.fixed_expense
        if toggles.extra_expense:
            total -= self.extra_expense
        if toggles.extra_cost_half:
            total += self.extra_cost / 2
        return total


@dataclass
class DailySeries:
    """Parallel label/value lists, one entry per calendar day."""
    labels: List[str] = field(default_factory=list)
    values: List[Decimal] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.labels)

    def items(self):
        return zip(self.labels, self.values)

    def to_dict(self) -> Dict[str, Any]:
        return {'labels': list(self.labels), 'values': list(self.values)}


@dataclass
class CategoryTotals:
    """Range-wide sum per category plus the toggle-weighted grand total."""
    revenue: Decimal = ZERO
    material_cost: Decimal = ZERO
    daily_wage: Decimal = ZERO
    extra_income: Decimal = ZERO
    fixed_expense: Decimal = ZERO
    extra_expense: Decimal = ZERO
    extra_cost: Decimal = ZERO
    grand_total: Decimal = ZERO
    toggles: CategoryToggleSet = field(default_factory=CategoryToggleSet)

    @property
    def extra_cost_half(self) -> Decimal:
        return self.extra_cost / 2

    def to_dict(self) -> Dict[str, Any]:
        return {
            'revenue': self.revenue,
            'material_cost': self.material_cost,
            'daily_wage': self.daily_wage,
            'extra_income': self.extra_income,
            'fixed_expense': self.fixed_expense,
            'extra_expense': self.extra_expense,
            'extra_cost': self.extra_cost,
            'extra_cost_half': self.extra_cost_half,
            'grand_total': self.grand_total,
            'toggles': self.toggles.to_dict(),
        }


def bucket_by_day(
    schedules: Iterable[ScheduleRecord],
    ledger_entries: Iterable[FinanceLedgerEntry],
    date_range: DateRange,
    tz: Optional[tzinfo] = None,
) -> Dict[date, CategoryBuckets]:
    """
    Sum every in-range record into its day's buckets.

    The result has one key per day of the range, in order. Records with a
    missing/unparseable date, a date outside the range, or (for ledger
    entries) an unknown category are skipped.
    """
    buckets = {day: CategoryBuckets() for day in date_range.days()}
    if not buckets:
        return buckets

    for record in schedules:
        day = record.work_date(tz)
        if day in buckets:
            buckets[day].add_schedule(record)

    for entry in ledger_entries:
        category = entry.ledger_category
        if category is None:
            continue
        day = entry.day
        if day in buckets:
            buckets[day].add_ledger_entry(category, entry.amount)

    return buckets


def compute_daily_series(
    schedules: Iterable[ScheduleRecord],
    ledger_entries: Iterable[FinanceLedgerEntry],
    date_range: DateRange,
    toggles: Optional[CategoryToggleSet] = None,
    tz: Optional[tzinfo] = None,
) -> DailySeries:
    """
    Net value per calendar day of date_range.

    Days without activity yield 0. An empty range yields an empty series;
    there is no fallback to unfiltered data.
    """
    toggles = toggles or CategoryToggleSet()
    series = DailySeries()
    for day, bucket in bucket_by_day(schedules, ledger_entries, date_range, tz).items():
        series.labels.append(day_key(day))
        series.values.append(bucket.net(toggles))
    return series


def compute_totals(
    schedules: Iterable[ScheduleRecord],
    ledger_entries: Iterable[FinanceLedgerEntry],
    date_range: DateRange,
    toggles: Optional[CategoryToggleSet] = None,
    tz: Optional[tzinfo] = None,
) -> CategoryTotals:
    """
    Per-category sums over date_range and the grand total.

    grand_total equals sum(compute_daily_series(...).values) for the same
    inputs.
    """
    toggles = toggles or CategoryToggleSet()
    overall = CategoryBuckets()
    for bucket in bucket_by_day(schedules, ledger_entries, date_range, tz).values():
        overall.add(bucket)

    return CategoryTotals(
        revenue=overall.revenue,
        material_cost=overall.material_cost,
        daily_wage=overall.daily_wage,
        extra_income=overall.extra_income,
        fixed_expense=overall.fixed_expense,
        extra_expense=overall.extra_expense,
        extra_cost=overall.extra_cost,
        grand_total=overall.net(toggles),
        toggles=toggles,
    )
