"""
Row normalization at the repository boundary.

Rows arrive as dicts (sqlite3.Row, RealDictCursor rows, JSON payloads from
the change feed) whose shape depends on which table or view produced them.
Everything is mapped here onto the typed records in repairdesk.records so
that no caller has to guess which optional column is present.

Preference orders:
- profile display name: display_name > full_name > name
- employee picker name: name > full_name
- report rows: work_date is accepted as a stand-in for start_ts and
  material_cost_visible for material_cost
"""

import logging
from typing import Any, List, Mapping, Optional

from ..records import (
    FinanceLedgerEntry,
    Material,
    MaterialEntry,
    Profile,
    ScheduleRecord,
    parse_day,
    parse_timestamp,
    to_bool,
    to_decimal,
)

logger = logging.getLogger(__name__)


def _get(row: Mapping[str, Any], key: str) -> Any:
    """row[key], or None when the column is absent (works for sqlite3.Row too)."""
    try:
        return row[key]
    except (KeyError, IndexError):
        return None


def first_text(*values: Any) -> Optional[str]:
    """First value that is a non-blank string, stripped."""
    for value in values:
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def clean_text(value: Any) -> Optional[str]:
    return first_text(value)


def to_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def to_name_list(value: Any) -> Optional[List[str]]:
    """Trimmed non-empty names from a list; None when there are none."""
    if not isinstance(value, (list, tuple)):
        return None
    names = [v.strip() for v in value if isinstance(v, str) and v.strip()]
    return names or None


def profile_display_name(row: Mapping[str, Any]) -> Optional[str]:
    return first_text(_get(row, 'display_name'), _get(row, 'full_name'), _get(row, 'name'))


def employee_option_name(row: Mapping[str, Any]) -> Optional[str]:
    return first_text(_get(row, 'name'), _get(row, 'full_name'))


def schedule_from_row(row: Mapping[str, Any]) -> Optional[ScheduleRecord]:
    """
    Build a ScheduleRecord from a schedules/reports row.

    Returns None when the row has no usable integer id.
    """
    record_id = to_int(_get(row, 'id'))
    if record_id is None:
        logger.debug(f"Skipping schedule row without id: {dict(row)}")
        return None

    start = parse_timestamp(_get(row, 'start_ts'))
    if start is None:
        start = parse_timestamp(parse_day(_get(row, 'work_date')))

    material = _get(row, 'material_cost')
    if material is None:
        material = _get(row, 'material_cost_visible')

    return ScheduleRecord(
        id=record_id,
        start_ts=start,
        end_ts=parse_timestamp(_get(row, 'end_ts')),
        revenue=to_decimal(_get(row, 'revenue')),
        material_cost=to_decimal(material),
        daily_wage=to_decimal(_get(row, 'daily_wage')),
        extra_cost=to_decimal(_get(row, 'extra_cost')),
        title=clean_text(_get(row, 'title')),
        employee_id=clean_text(_get(row, 'employee_id')),
        employee_name=clean_text(_get(row, 'employee_name')),
        employee_names=to_name_list(_get(row, 'employee_names')),
        off_day=to_bool(_get(row, 'off_day')),
        customer_name=clean_text(_get(row, 'customer_name')),
        customer_phone=clean_text(_get(row, 'customer_phone')),
        site_address=clean_text(_get(row, 'site_address')),
        status=clean_text(_get(row, 'status')),
    )


def finance_item_from_row(row: Mapping[str, Any]) -> FinanceLedgerEntry:
    """
    Build a FinanceLedgerEntry from a finance_items row.

    Dates and categories are kept even when invalid (as None / raw string)
    so the report layer can skip them.
    """
    category = _get(row, 'category')
    return FinanceLedgerEntry(
        id=to_int(_get(row, 'id')),
        item_date=parse_day(_get(row, 'item_date')),
        category=category.strip() if isinstance(category, str) else category,
        amount=to_decimal(_get(row, 'amount')),
        label=clean_text(_get(row, 'label')),
        employee_id=clean_text(_get(row, 'employee_id')),
        employee_name=clean_text(_get(row, 'employee_name')),
        created_at=parse_timestamp(_get(row, 'created_at')),
    )


def profile_from_row(row: Mapping[str, Any]) -> Profile:
    return Profile(
        id=str(_get(row, 'id')),
        email=clean_text(_get(row, 'email')),
        display_name=clean_text(_get(row, 'display_name')),
        full_name=clean_text(_get(row, 'full_name')),
        name=clean_text(_get(row, 'name')),
        phone=clean_text(_get(row, 'phone')),
        is_admin=bool(to_bool(_get(row, 'is_admin'))),
        is_manager=bool(to_bool(_get(row, 'is_manager'))),
    )


def material_from_row(row: Mapping[str, Any]) -> Material:
    """Catalog rows name the material in name, or in item on older rows."""
    return Material(
        id=str(_get(row, 'id')),
        name=first_text(_get(row, 'name'), _get(row, 'item')) or "",
        vendor=clean_text(_get(row, 'vendor')),
        unit_price=to_decimal(_get(row, 'unit_price')),
        created_at=parse_timestamp(_get(row, 'created_at')),
    )


def material_entry_from_row(row: Mapping[str, Any]) -> MaterialEntry:
    material_id = _get(row, 'material_id')
    return MaterialEntry(
        id=to_int(_get(row, 'id')),
        material_id=str(material_id) if material_id is not None else None,
        entry_date=parse_day(_get(row, 'entry_date')),
        qty=to_decimal(_get(row, 'qty')),
        unit_price=to_decimal(_get(row, 'unit_price')),
        vendor=clean_text(_get(row, 'vendor')),
        total=to_decimal(_get(row, 'total')),
        created_at=parse_timestamp(_get(row, 'created_at')),
    )
