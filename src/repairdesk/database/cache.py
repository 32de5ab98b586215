"""
Month-keyed schedule cache.

Keeps fetched schedule rows by ID so that switching back and forth between
months does not refetch them. The cache belongs to whoever creates it
(usually a ReportService); there is no module-level instance.
"""

import logging
import threading
from dataclasses import fields
from datetime import date, datetime, timezone
from typing import Dict, Iterable, List, Set

from ..records import ScheduleRecord, parse_timestamp

logger = logging.getLogger(__name__)


def month_key(day: date) -> str:
    """'YYYY-MM' key of a day."""
    return f"{day.year:04d}-{day.month:02d}"


def comparable(ts: datetime) -> datetime:
    """
    Naive UTC form of a timestamp.

    Aware values are converted to UTC; naive values are taken to be UTC
    already. Every comparison in the cache goes through this.
    """
    if ts.tzinfo is None:
        return ts
    return ts.astimezone(timezone.utc).replace(tzinfo=None)


def _merge(existing: ScheduleRecord, update: ScheduleRecord) -> ScheduleRecord:
    """Fields set on update win; fields it leaves as None keep the cached value."""
    merged = {}
    for f in fields(ScheduleRecord):
        value = getattr(update, f.name)
        merged[f.name] = value if value is not None else getattr(existing, f.name)
    return ScheduleRecord(**merged)


class ScheduleCache:
    """
    Schedule rows by ID plus the set of months already loaded.

    Safe to share between the listener thread and report callers.
    """

    def __init__(self):
        self._by_id: Dict[int, ScheduleRecord] = {}
        self._loaded: Set[str] = set()
        self._lock = threading.Lock()

    def merge(self, records: Iterable[ScheduleRecord]) -> None:
        """Add or update rows; rows without an integer ID are ignored."""
        with self._lock:
            for record in records:
                if record is None or not isinstance(record.id, int):
                    continue
                existing = self._by_id.get(record.id)
                self._by_id[record.id] = _merge(existing, record) if existing else record

    def discard(self, record_id: int) -> None:
        with self._lock:
            self._by_id.pop(record_id, None)

    def mark_loaded(self, key: str) -> None:
        with self._lock:
            self._loaded.add(key)

    def is_loaded(self, key: str) -> bool:
        with self._lock:
            return key in self._loaded

    def rows_between(self, start: datetime, end: datetime) -> List[ScheduleRecord]:
        """
        Rows whose start_ts is in [start, end), ordered by start_ts.

        Bounds and timestamps may be naive or aware; see comparable().
        """
        lower, upper = comparable(start), comparable(end)
        matched = []
        with self._lock:
            rows = list(self._by_id.values())
        for record in rows:
            ts = parse_timestamp(record.start_ts)
            if ts is None:
                continue
            ts = comparable(ts)
            if lower <= ts < upper:
                matched.append((ts, record.id, record))
        matched.sort(key=lambda item: (item[0], item[1]))
        return [record for _, _, record in matched]

    def all_rows(self) -> List[ScheduleRecord]:
        with self._lock:
            return list(self._by_id.values())

    def clear(self) -> None:
        with self._lock:
            self._by_id.clear()
            self._loaded.clear()
        logger.debug("Schedule cache cleared")

    def __len__(self) -> int:
        with self._lock:
            return len(self._by_id)
