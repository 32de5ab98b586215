"""Shared fixtures."""

from datetime import date
from decimal import Decimal

import pytest

from repairdesk.database import SQLiteRepository
from repairdesk.records import FinanceLedgerEntry, ScheduleRecord


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Keep the developer's DB_* / REPAIRDESK_* settings out of the tests."""
    for name in ("DB_TYPE", "DB_PATH", "DB_HOST", "DB_PORT", "DB_NAME", "DB_USER", "DB_PASSWORD",
                 "REPAIRDESK_TIMEZONE", "REPAIRDESK_ADMIN_IDS", "REPAIRDESK_ADMIN_EMAILS"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("REPAIRDESK_SETTINGS_PATH", str(tmp_path / "missing.yaml"))


@pytest.fixture
def repo():
    repository = SQLiteRepository(":memory:")
    yield repository
    repository.close()


def make_schedule(record_id, start_ts, revenue=0, material_cost=0, daily_wage=0, extra_cost=0, **kwargs):
    return ScheduleRecord(
        id=record_id,
        start_ts=start_ts,
        revenue=Decimal(str(revenue)),
        material_cost=Decimal(str(material_cost)),
        daily_wage=Decimal(str(daily_wage)),
        extra_cost=Decimal(str(extra_cost)),
        **kwargs,
    )


def make_entry(item_date, category, amount, entry_id=None, **kwargs):
    return FinanceLedgerEntry(
        id=entry_id,
        item_date=item_date,
        category=category,
        amount=Decimal(str(amount)),
        **kwargs,
    )


JAN_1 = date(2025, 1, 1)
JAN_2 = date(2025, 1, 2)
