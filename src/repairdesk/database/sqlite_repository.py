"""
SQLite implementation of the RepairDeskRepository.

This module provides a local SQLite database for schedules, ledger entries,
profiles, payrolls and materials. The database file is stored in the data/
directory by default. Money is stored as TEXT and read back as Decimal.
"""

import json
import logging
import sqlite3
import uuid
from datetime import date, datetime, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Any, List, Optional

from ..records import (
    FinanceLedgerEntry,
    LedgerCategory,
    Material,
    MaterialEntry,
    PayrollRecord,
    Profile,
    ScheduleRecord,
    parse_day,
    parse_timestamp,
    to_decimal,
)
from .normalize import (
    finance_item_from_row,
    material_entry_from_row,
    material_from_row,
    profile_from_row,
    schedule_from_row,
)
from .repository import RepairDeskRepository

logger = logging.getLogger(__name__)


def _money(value: Any) -> Optional[str]:
    value = to_decimal(value)
    return str(value) if value is not None else None


def _timestamp(value: Any) -> Optional[str]:
    ts = parse_timestamp(value)
    return ts.isoformat() if ts else None


def _day(value: Any) -> Optional[str]:
    day = parse_day(value)
    return day.isoformat() if day else None


class SQLiteRepository(RepairDeskRepository):
    """
    SQLite implementation of RepairDeskRepository.

    Stores everything in a local SQLite database file.
    Duplicate schedule IDs are rejected by the primary key.
    """

    def __init__(self, db_path: str = "data/repairdesk.db"):
        """
        Initialize the SQLite repository.

        Args:
            db_path: Path to the SQLite database file (":memory:" for a
                     throwaway in-memory database)
        """
        self.db_path = db_path
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn: Optional[sqlite3.Connection] = None
        self.initialize()

    @property
    def conn(self) -> sqlite3.Connection:
        """Get or create database connection."""
        if self._conn is None:
            self._conn = sqlite3.connect(str(self.db_path))
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def initialize(self) -> None:
        """Create database tables if they don't exist."""
        cursor = self.conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS schedules (
                id INTEGER PRIMARY KEY,
                title TEXT,
                start_ts TEXT,
                end_ts TEXT,
                employee_id TEXT,
                employee_name TEXT,
                employee_names TEXT,
                off_day INTEGER,
                customer_name TEXT,
                customer_phone TEXT,
                site_address TEXT,
                status TEXT,
                revenue TEXT,
                material_cost TEXT,
                daily_wage TEXT,
                extra_cost TEXT
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS finance_items (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                item_date TEXT NOT NULL,
                category TEXT NOT NULL,
                label TEXT,
                amount TEXT NOT NULL,
                employee_id TEXT,
                employee_name TEXT,
                created_at TEXT NOT NULL
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS profiles (
                id TEXT PRIMARY KEY,
                email TEXT,
                display_name TEXT,
                full_name TEXT,
                name TEXT,
                phone TEXT,
                is_admin INTEGER NOT NULL DEFAULT 0,
                is_manager INTEGER NOT NULL DEFAULT 0
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS payrolls (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                employee_id TEXT,
                employee_name TEXT,
                pay_month TEXT NOT NULL,
                period_start TEXT,
                period_end TEXT,
                amount TEXT NOT NULL,
                total_pay TEXT NOT NULL,
                paid INTEGER NOT NULL DEFAULT 0,
                paid_at TEXT,
                memo TEXT,
                created_at TEXT NOT NULL
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS materials (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                vendor TEXT,
                unit_price TEXT,
                created_at TEXT NOT NULL
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS material_entries (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                material_id TEXT NOT NULL,
                entry_date TEXT NOT NULL,
                vendor TEXT,
                unit_price TEXT NOT NULL,
                qty TEXT NOT NULL,
                total TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
        """)

        # Create indexes for common queries
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_schedules_start_ts
            ON schedules(start_ts)
        """)
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_finance_items_date
            ON finance_items(item_date)
        """)
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_payrolls_month
            ON payrolls(pay_month, employee_id)
        """)
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_material_entries_date
            ON material_entries(entry_date)
        """)

        self.conn.commit()

    # ==================== Schedules ====================

    def save_schedule(self, record: ScheduleRecord) -> bool:
        """Save a schedule row. Returns False if the ID already exists."""
        cursor = self.conn.cursor()
        try:
            cursor.execute("""
                INSERT INTO schedules
                (id, title, start_ts, end_ts, employee_id, employee_name,
                 employee_names, off_day, customer_name, customer_phone,
                 site_address, status, revenue, material_cost, daily_wage,
                 extra_cost)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, self._schedule_values(record))
            self.conn.commit()
            return True
        except sqlite3.IntegrityError:
            logger.debug(f"Schedule {record.id} already exists, skipped")
            return False

    def get_schedules(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        employee_id: Optional[str] = None,
    ) -> List[ScheduleRecord]:
        """Query schedules with optional filters."""
        query = "SELECT * FROM schedules WHERE 1=1"
        params = []

        if start_date:
            query += " AND start_ts >= ?"
            params.append(start_date.isoformat())

        if end_date:
            query += " AND start_ts < ?"
            params.append((end_date + timedelta(days=1)).isoformat())

        if employee_id:
            query += " AND employee_id = ?"
            params.append(employee_id)

        query += " ORDER BY start_ts, id"

        cursor = self.conn.cursor()
        cursor.execute(query, params)
        return self._rows_to_schedules(cursor.fetchall())

    def get_schedules_by_ids(self, ids: List[int]) -> List[ScheduleRecord]:
        if not ids:
            return []
        placeholders = ", ".join("?" for _ in ids)
        cursor = self.conn.cursor()
        cursor.execute(f"SELECT * FROM schedules WHERE id IN ({placeholders}) ORDER BY start_ts, id", list(ids))
        return self._rows_to_schedules(cursor.fetchall())

    def update_schedule(self, record: ScheduleRecord) -> bool:
        """Overwrite a schedule row by ID."""
        cursor = self.conn.cursor()
        cursor.execute("""
            UPDATE schedules
            SET title = ?, start_ts = ?, end_ts = ?, employee_id = ?, employee_name = ?,
                employee_names = ?, off_day = ?, customer_name = ?, customer_phone = ?,
                site_address = ?, status = ?, revenue = ?, material_cost = ?,
                daily_wage = ?, extra_cost = ?
            WHERE id = ?
        """, self._schedule_values(record)[1:] + (record.id,))
        self.conn.commit()
        return cursor.rowcount > 0

    def delete_schedule(self, schedule_id: int) -> bool:
        cursor = self.conn.cursor()
        cursor.execute("DELETE FROM schedules WHERE id = ?", (schedule_id,))
        self.conn.commit()
        return cursor.rowcount > 0

    def get_employee_ids_by_name(self, name: str) -> List[str]:
        """Distinct employee IDs for a (case-insensitive) employee name."""
        trimmed = (name or "").strip()
        if not trimmed:
            return []
        cursor = self.conn.cursor()
        cursor.execute("""
            SELECT DISTINCT TRIM(employee_id) FROM schedules
            WHERE LOWER(TRIM(employee_name)) = LOWER(?)
              AND employee_id IS NOT NULL AND TRIM(employee_id) != ''
            ORDER BY 1
        """, (trimmed,))
        return [row[0] for row in cursor.fetchall()]

    # ==================== Finance ledger ====================

    def save_finance_item(self, entry: FinanceLedgerEntry) -> Optional[int]:
        """Insert a ledger entry and return its ID."""
        category = self._require_category(entry)
        cursor = self.conn.cursor()
        cursor.execute("""
            INSERT INTO finance_items
            (item_date, category, label, amount, employee_id, employee_name, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (
            _day(entry.item_date),
            category.value,
            entry.label,
            _money(entry.amount),
            entry.employee_id,
            entry.employee_name,
            (entry.created_at or datetime.now()).isoformat(),
        ))
        self.conn.commit()
        entry.id = cursor.lastrowid
        return entry.id

    def update_finance_item(self, entry: FinanceLedgerEntry) -> bool:
        """Update a ledger entry by ID."""
        category = self._require_category(entry)
        cursor = self.conn.cursor()
        cursor.execute("""
            UPDATE finance_items
            SET item_date = ?, category = ?, label = ?, amount = ?,
                employee_id = ?, employee_name = ?
            WHERE id = ?
        """, (
            _day(entry.item_date),
            category.value,
            entry.label,
            _money(entry.amount),
            entry.employee_id,
            entry.employee_name,
            entry.id,
        ))
        self.conn.commit()
        return cursor.rowcount > 0

    def delete_finance_item(self, item_id: int) -> bool:
        """Delete a ledger entry by ID."""
        cursor = self.conn.cursor()
        cursor.execute("DELETE FROM finance_items WHERE id = ?", (item_id,))
        self.conn.commit()
        return cursor.rowcount > 0

    def get_finance_items(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        category: Optional[LedgerCategory] = None,
    ) -> List[FinanceLedgerEntry]:
        """Query ledger entries with optional filters."""
        query = "SELECT * FROM finance_items WHERE 1=1"
        params = []

        if start_date:
            query += " AND item_date >= ?"
            params.append(start_date.isoformat())

        if end_date:
            query += " AND item_date <= ?"
            params.append(end_date.isoformat())

        if category:
            query += " AND category = ?"
            params.append(category.value)

        query += " ORDER BY item_date, id"

        cursor = self.conn.cursor()
        cursor.execute(query, params)
        return [finance_item_from_row(row) for row in cursor.fetchall()]

    # ==================== Profiles ====================

    def save_profile(self, profile: Profile) -> bool:
        """Insert or replace a profile."""
        cursor = self.conn.cursor()
        cursor.execute("""
            INSERT OR REPLACE INTO profiles
            (id, email, display_name, full_name, name, phone, is_admin, is_manager)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            profile.id,
            profile.email,
            profile.display_name,
            profile.full_name,
            profile.name,
            profile.phone,
            int(profile.is_admin),
            int(profile.is_manager),
        ))
        self.conn.commit()
        return cursor.rowcount > 0

    def get_profile(self, user_id: str) -> Optional[Profile]:
        """Get a profile by user ID."""
        cursor = self.conn.cursor()
        cursor.execute("SELECT * FROM profiles WHERE id = ?", (user_id,))
        row = cursor.fetchone()

        if row is None:
            return None

        return profile_from_row(row)

    def get_profiles(self) -> List[Profile]:
        cursor = self.conn.cursor()
        cursor.execute("SELECT * FROM profiles ORDER BY id")
        return [profile_from_row(row) for row in cursor.fetchall()]

    # ==================== Payrolls ====================

    def replace_payrolls(self, records: List[PayrollRecord]) -> int:
        """Delete matching payroll rows then insert the new ones, in one transaction."""
        cursor = self.conn.cursor()
        try:
            for record in records:
                if record.employee_id:
                    cursor.execute(
                        "DELETE FROM payrolls WHERE pay_month = ? AND employee_id = ?",
                        (record.pay_month, record.employee_id)
                    )
                elif record.employee_name:
                    cursor.execute("""
                        DELETE FROM payrolls
                        WHERE pay_month = ? AND employee_id IS NULL
                          AND LOWER(employee_name) = LOWER(?)
                    """, (record.pay_month, record.employee_name))
                else:
                    cursor.execute("""
                        DELETE FROM payrolls
                        WHERE pay_month = ? AND employee_id IS NULL AND employee_name IS NULL
                    """, (record.pay_month,))

            for record in records:
                self._insert_payroll(cursor, record)

            self.conn.commit()
        except sqlite3.Error:
            self.conn.rollback()
            raise

        return len(records)

    def get_payrolls(self, pay_month: Optional[str] = None) -> List[PayrollRecord]:
        query = "SELECT * FROM payrolls"
        params = []
        if pay_month:
            query += " WHERE pay_month = ?"
            params.append(pay_month)
        query += " ORDER BY pay_month, employee_name, id"

        cursor = self.conn.cursor()
        cursor.execute(query, params)
        return [self._row_to_payroll(row) for row in cursor.fetchall()]

    def save_payroll(self, record: PayrollRecord) -> int:
        """Insert one payroll row and return its ID."""
        cursor = self.conn.cursor()
        self._insert_payroll(cursor, record)
        self.conn.commit()
        return record.id

    def update_payroll(self, record: PayrollRecord) -> bool:
        cursor = self.conn.cursor()
        cursor.execute("""
            UPDATE payrolls
            SET amount = ?, total_pay = ?, paid = ?, paid_at = ?, memo = ?
            WHERE id = ?
        """, (
            _money(record.amount) or "0",
            _money(record.total_pay) or "0",
            int(record.paid),
            record.paid_at.isoformat() if record.paid_at else None,
            record.memo,
            record.id,
        ))
        self.conn.commit()
        return cursor.rowcount > 0

    def mark_payroll_paid(self, payroll_id: int, paid_at: datetime, memo: Optional[str] = None) -> bool:
        """Mark a payroll row as paid; memo=None keeps the current memo."""
        cursor = self.conn.cursor()
        cursor.execute("""
            UPDATE payrolls
            SET paid = 1, paid_at = ?, memo = COALESCE(?, memo)
            WHERE id = ?
        """, (paid_at.isoformat(), memo, payroll_id))
        self.conn.commit()
        return cursor.rowcount > 0

    def delete_payroll(self, payroll_id: int) -> bool:
        cursor = self.conn.cursor()
        cursor.execute("DELETE FROM payrolls WHERE id = ?", (payroll_id,))
        self.conn.commit()
        return cursor.rowcount > 0

    # ==================== Materials ====================

    def save_material(self, material: Material) -> str:
        """Insert a catalog material. A UUID is generated when it has no ID."""
        if not (material.name or "").strip():
            raise ValueError("Material needs a name")
        material.id = material.id or str(uuid.uuid4())
        material.created_at = material.created_at or datetime.now()
        cursor = self.conn.cursor()
        cursor.execute("""
            INSERT INTO materials (id, name, vendor, unit_price, created_at)
            VALUES (?, ?, ?, ?, ?)
        """, (
            material.id,
            material.name.strip(),
            (material.vendor or "").strip() or None,
            _money(material.unit_price),
            material.created_at.isoformat(),
        ))
        self.conn.commit()
        return material.id

    def get_materials(self) -> List[Material]:
        cursor = self.conn.cursor()
        cursor.execute("SELECT * FROM materials ORDER BY name, id")
        return [material_from_row(row) for row in cursor.fetchall()]

    def save_material_entries(self, entries: List[MaterialEntry]) -> int:
        """Insert purchase lines in one transaction."""
        for entry in entries:
            entry.validate()

        cursor = self.conn.cursor()
        try:
            for entry in entries:
                entry.total = entry.line_total
                entry.created_at = entry.created_at or datetime.now()
                cursor.execute("""
                    INSERT INTO material_entries
                    (material_id, entry_date, vendor, unit_price, qty, total, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                """, (
                    str(entry.material_id),
                    _day(entry.entry_date),
                    (entry.vendor or "").strip(),
                    _money(entry.unit_price),
                    _money(entry.qty),
                    _money(entry.total),
                    entry.created_at.isoformat(),
                ))
                entry.id = cursor.lastrowid
            self.conn.commit()
        except sqlite3.Error:
            self.conn.rollback()
            raise
        return len(entries)

    def get_material_entries(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        limit: Optional[int] = None,
    ) -> List[MaterialEntry]:
        query = "SELECT * FROM material_entries WHERE 1=1"
        params: List[Any] = []

        if start_date:
            query += " AND entry_date >= ?"
            params.append(start_date.isoformat())

        if end_date:
            query += " AND entry_date <= ?"
            params.append(end_date.isoformat())

        query += " ORDER BY entry_date DESC, id DESC"
        if limit:
            query += " LIMIT ?"
            params.append(limit)

        cursor = self.conn.cursor()
        cursor.execute(query, params)
        return [material_entry_from_row(row) for row in cursor.fetchall()]

    def delete_material_entry(self, entry_id: int) -> bool:
        cursor = self.conn.cursor()
        cursor.execute("DELETE FROM material_entries WHERE id = ?", (entry_id,))
        self.conn.commit()
        return cursor.rowcount > 0

    def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    # ==================== Row conversion ====================

    def _rows_to_schedules(self, rows: List[sqlite3.Row]) -> List[ScheduleRecord]:
        records = []
        for row in rows:
            data = dict(row)
            if data.get('employee_names'):
                data['employee_names'] = json.loads(data['employee_names'])
            record = schedule_from_row(data)
            if record is not None:
                records.append(record)
        return records

    @staticmethod
    def _insert_payroll(cursor: sqlite3.Cursor, record: PayrollRecord) -> None:
        cursor.execute("""
            INSERT INTO payrolls
            (employee_id, employee_name, pay_month, period_start, period_end,
             amount, total_pay, paid, paid_at, memo, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            record.employee_id,
            record.employee_name,
            record.pay_month,
            _day(record.period_start),
            _day(record.period_end),
            _money(record.amount) or "0",
            _money(record.total_pay) or "0",
            int(record.paid),
            record.paid_at.isoformat() if record.paid_at else None,
            record.memo,
            record.created_at.isoformat(),
        ))
        record.id = cursor.lastrowid

    @staticmethod
    def _schedule_values(record: ScheduleRecord) -> tuple:
        """Column values in INSERT order, starting with the ID."""
        return (
            record.id,
            record.title,
            _timestamp(record.start_ts),
            _timestamp(record.end_ts),
            record.employee_id,
            record.employee_name,
            json.dumps(record.employee_names, ensure_ascii=False) if record.employee_names else None,
            int(record.off_day) if record.off_day is not None else None,
            record.customer_name,
            record.customer_phone,
            record.site_address,
            record.status,
            _money(record.revenue),
            _money(record.material_cost),
            _money(record.daily_wage),
            _money(record.extra_cost),
        )

    def _row_to_payroll(self, row: sqlite3.Row) -> PayrollRecord:
        """Convert a database row to a PayrollRecord."""
        return PayrollRecord(
            id=row['id'],
            employee_id=row['employee_id'],
            employee_name=row['employee_name'],
            pay_month=row['pay_month'],
            period_start=parse_day(row['period_start']),
            period_end=parse_day(row['period_end']),
            amount=Decimal(row['amount']),
            paid=bool(row['paid']),
            paid_at=datetime.fromisoformat(row['paid_at']) if row['paid_at'] else None,
            memo=row['memo'],
            created_at=datetime.fromisoformat(row['created_at']),
        )

    @staticmethod
    def _require_category(entry: FinanceLedgerEntry) -> LedgerCategory:
        category = entry.ledger_category
        if category is None:
            raise ValueError(f"Unknown ledger category: {entry.category}")
        if entry.day is None:
            raise ValueError(f"Ledger entry needs a YYYY-MM-DD item_date, got: {entry.item_date}")
        if to_decimal(entry.amount) is None:
            raise ValueError(f"Ledger entry needs a finite amount, got: {entry.amount}")
        return category
