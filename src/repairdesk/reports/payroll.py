"""
Payroll rows: building them from wages and paying them out.

The wage column of the employee-grouped report becomes one payroll record
per employee and pay month. Names without an employee id are resolved
through the schedules table when that yields exactly one id.

Paying a subset of an employee's schedules writes a separate paid row whose
memo carries a [sched:1,2,3] tag listing the schedule ids it covers. The
tag is how later payouts know which schedules were already paid, and how
the month's unpaid row knows which schedules it still holds.
"""

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timezone, tzinfo
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from ..records import ZERO, DateRange, PayrollRecord, ScheduleRecord, day_key, num
from .grouping import UNASSIGNED, employee_label, filter_schedules, group_by_employee

logger = logging.getLogger(__name__)

IdResolver = Callable[[str], Optional[str]]

SCHEDULE_TAG = re.compile(r"\[sched:([0-9,\s]+)\]")
ANY_SCHEDULE_TAG = re.compile(r"\[sched:[^\]]*\]")
SELECTED_PAYOUT_MARK = "[선택지급]"


def pay_month_for(date_range: DateRange) -> str:
    """'YYYY-MM' when the range lies in one month, else 'YYYY-MM-DD~YYYY-MM-DD'."""
    if date_range.is_empty:
        raise ValueError("A valid date range is required to build payroll records")
    if date_range.is_single_month():
        return date_range.start.strftime("%Y-%m")
    return f"{day_key(date_range.start)}~{day_key(date_range.end)}"


def build_payroll_records(
    schedules: Iterable[ScheduleRecord],
    date_range: DateRange,
    resolve_id: Optional[IdResolver] = None,
    tz: Optional[tzinfo] = None,
) -> List[PayrollRecord]:
    """
    One payroll record per employee for the wages inside date_range.

    Each record's memo tags the schedule ids its wages came from.

    Records sharing an id (or, without an id, a lower-cased name) for the
    same pay month are merged by summing their amounts.
    """
    pay_month = pay_month_for(date_range)
    rows = filter_schedules(schedules, date_range, tz)
    grouped = group_by_employee(rows)

    schedule_ids: Dict[str, List[int]] = {}
    for record in rows:
        schedule_ids.setdefault(employee_label(record).lower(), []).append(record.id)

    merged: Dict[str, PayrollRecord] = {}
    for row in grouped.rows:
        employee_id = row.employee_id
        if not employee_id and resolve_id is not None and row.label != UNASSIGNED:
            employee_id = resolve_id(row.label)

        name = (row.employee_name or row.label or "").strip() or None
        record = PayrollRecord(
            employee_id=employee_id,
            employee_name=name,
            pay_month=pay_month,
            period_start=date_range.start,
            period_end=date_range.end,
            amount=row.daily_wage,
            memo=format_schedule_ids(schedule_ids.get(row.key, [])),
        )

        existing = merged.get(record.dedup_key)
        if existing is None:
            merged[record.dedup_key] = record
        else:
            existing.amount += record.amount
            existing.memo = format_schedule_ids(parse_schedule_ids(existing.memo) + parse_schedule_ids(record.memo))

    return list(merged.values())


def sync_payrolls(
    repository,
    schedules: Iterable[ScheduleRecord],
    date_range: DateRange,
    tz: Optional[tzinfo] = None,
) -> List[PayrollRecord]:
    """
    Write the period's payroll rows, replacing earlier rows for the same
    employee and pay month.

    Schedules already covered by a paid row of the pay month are left out,
    so their wages are not owed twice.
    """
    pay_month = pay_month_for(date_range)
    paid_ids: Set[int] = set()
    for record in repository.get_payrolls():
        if record.paid and in_pay_month(record.pay_month, pay_month):
            paid_ids.update(parse_schedule_ids(record.memo))
    if paid_ids:
        logger.info(f"Skipping {len(paid_ids)} schedule(s) already paid for {pay_month}")
        schedules = [s for s in schedules if s.id not in paid_ids]

    def resolve(name: str) -> Optional[str]:
        ids = repository.get_employee_ids_by_name(name)
        return ids[0] if len(ids) == 1 else None

    records = build_payroll_records(schedules, date_range, resolve_id=resolve, tz=tz)
    written = repository.replace_payrolls(records)

    unresolved = sorted({r.employee_name for r in records if not r.employee_id and r.employee_name})
    if unresolved:
        logger.warning(f"Payroll rows saved by name only: {', '.join(unresolved)}")
    logger.info(f"Synced {written} payroll row(s) for {records[0].pay_month if records else date_range}")
    return records


# ==================== Schedule tags ====================

def parse_schedule_ids(memo: Optional[str]) -> List[int]:
    """Schedule ids listed in a memo's [sched:...] tag, in tag order."""
    if not memo:
        return []
    match = SCHEDULE_TAG.search(memo)
    if not match:
        return []
    return [int(part) for part in (p.strip() for p in match.group(1).split(",")) if part.isdigit()]


def format_schedule_ids(ids: Iterable[int]) -> str:
    return f"[sched:{','.join(str(i) for i in sorted(set(ids)))}]"


def strip_schedule_tag(memo: Optional[str]) -> str:
    return ANY_SCHEDULE_TAG.sub("", memo or "", count=1).strip()


def in_pay_month(pay_month: Optional[str], base_month: str) -> bool:
    """True for the month's own row and its '-part-' rows."""
    if not pay_month:
        return False
    return pay_month == base_month or base_month.lower() in pay_month.lower()


def is_same_employee(record: PayrollRecord, employee_id: Optional[str],
                     employee_name: Optional[str]) -> bool:
    if employee_id:
        return record.employee_id == employee_id
    return (record.employee_name or "").strip().lower() == (employee_name or "").strip().lower()


def paid_at_for(day: date) -> datetime:
    """Payment timestamp recorded for a payout day (midday, so no timezone shifts the day)."""
    return datetime.combine(day, time(12))


def already_paid_ids(
    payrolls: Iterable[PayrollRecord],
    employee_id: Optional[str],
    employee_name: Optional[str],
    base_month: str,
) -> Set[int]:
    """Schedule ids tagged on the employee's paid rows for base_month."""
    ids: Set[int] = set()
    for record in payrolls:
        if (record.paid and in_pay_month(record.pay_month, base_month)
                and is_same_employee(record, employee_id, employee_name)):
            ids.update(parse_schedule_ids(record.memo))
    return ids


# ==================== Payouts ====================

def pay_selected_schedules(
    repository,
    schedules: Iterable[ScheduleRecord],
    employee_id: Optional[str],
    employee_name: Optional[str],
    base_month: str,
    paid_on: date,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> PayrollRecord:
    """
    Pay out the wages of the given schedules as a new paid payroll row.

    Steps:
    1. Drop schedules already tagged on the employee's paid rows for
       base_month (no double payment)
    2. If the employee has an unpaid row for the month, take the paid
       schedules' wages off it; it is deleted when nothing remains
    3. Insert a paid row with pay_month '<base_month>-part-<MMDDHHmm>'

    Raises:
        ValueError: every schedule is already paid, or the payout is not
                    a positive amount
    """
    if not employee_id and not (employee_name or "").strip():
        raise ValueError("An employee id or name is required to pay schedules")

    selected = {r.id: r for r in schedules}
    if not selected:
        raise ValueError("Select at least one schedule to pay")

    month_rows = [r for r in repository.get_payrolls()
                  if in_pay_month(r.pay_month, base_month)
                  and is_same_employee(r, employee_id, employee_name)]

    paid_ids = already_paid_ids(month_rows, employee_id, employee_name, base_month)
    pay_ids = sorted(i for i in selected if i not in paid_ids)
    if not pay_ids:
        raise ValueError("All selected schedules have already been paid")

    wage_by_id = {i: num(selected[i].daily_wage) for i in pay_ids}
    amount = sum(wage_by_id.values(), ZERO)
    if amount <= 0:
        raise ValueError("The selected schedules have no wage to pay")

    unpaid = next((r for r in month_rows if not r.paid), None)
    if unpaid is not None:
        _deduct_from_unpaid(repository, unpaid, wage_by_id)

    days = sorted(d for d in (selected[i].work_date(tz) for i in pay_ids) if d is not None)
    stamp = (now or datetime.now(timezone.utc)).strftime("%m%d%H%M")
    record = PayrollRecord(
        employee_id=employee_id,
        employee_name=employee_name,
        pay_month=f"{base_month}-part-{stamp}",
        period_start=days[0] if days else paid_on,
        period_end=days[-1] if days else paid_on,
        amount=amount,
        paid=True,
        paid_at=paid_at_for(paid_on),
        memo=(f"{SELECTED_PAYOUT_MARK} {employee_name or ''} {base_month} / {len(pay_ids)}건\n"
              f"{format_schedule_ids(pay_ids)}"),
    )
    repository.save_payroll(record)
    logger.info(f"Paid {len(pay_ids)} schedule(s) for {employee_name or employee_id}: {amount}")
    return record


def _deduct_from_unpaid(repository, unpaid: PayrollRecord, wage_by_id: Dict[int, Decimal]) -> None:
    held = parse_schedule_ids(unpaid.memo)
    deducted = [i for i in wage_by_id if i in held]
    remaining = [i for i in held if i not in deducted]
    new_total = max(ZERO, num(unpaid.total_pay) - sum((wage_by_id[i] for i in deducted), ZERO))

    if not remaining or new_total <= 0:
        repository.delete_payroll(unpaid.id)
        logger.info(f"Removed unpaid payroll #{unpaid.id}: nothing left to pay")
        return

    base_memo = strip_schedule_tag(unpaid.memo)
    unpaid.amount = new_total
    unpaid.memo = f"{base_memo}\n{format_schedule_ids(remaining)}" if base_memo else format_schedule_ids(remaining)
    repository.update_payroll(unpaid)


# ==================== Summary ====================

@dataclass
class EmployeePayTotal:
    employee_id: Optional[str]
    employee_name: str
    count: int = 0
    total: Decimal = ZERO
    paid: Decimal = ZERO
    unpaid: Decimal = ZERO

    def to_dict(self) -> Dict[str, Any]:
        return {
            'employee_id': self.employee_id,
            'employee_name': self.employee_name,
            'count': self.count,
            'total': self.total,
            'paid': self.paid,
            'unpaid': self.unpaid,
        }


def payroll_summary(payrolls: Iterable[PayrollRecord]) -> List[EmployeePayTotal]:
    """Paid and unpaid totals per employee name, sorted by name."""
    by_name: Dict[str, EmployeePayTotal] = {}
    for record in payrolls:
        name = (record.employee_name or "").strip() or UNASSIGNED
        row = by_name.setdefault(name, EmployeePayTotal(employee_id=record.employee_id, employee_name=name))
        pay = num(record.total_pay)
        row.count += 1
        row.total += pay
        if record.paid:
            row.paid += pay
        else:
            row.unpaid += pay
    return [by_name[name] for name in sorted(by_name)]
