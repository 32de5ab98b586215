"""
PostgreSQL implementation of the RepairDeskRepository.

This is the hosted backend: schedules, finance_items, profiles, payrolls
and the material tables live in a shared PostgreSQL database that the web front end and this
package both read. Row-level security on that database is an external
contract; the connecting role decides what comes back.
"""

import logging
import os
import uuid
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import List, Optional

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

try:
    import psycopg2
    from psycopg2 import sql
    from psycopg2.extras import RealDictCursor
    PSYCOPG2_AVAILABLE = True
except ImportError:
    PSYCOPG2_AVAILABLE = False

logger = logging.getLogger(__name__)

# Trigger function behind the change feed: every row change on the watched
# tables is sent as JSON through NOTIFY.
NOTIFY_FUNCTION_SQL = """
    CREATE OR REPLACE FUNCTION repairdesk_notify_change() RETURNS trigger AS $$
    BEGIN
        PERFORM pg_notify(
            TG_ARGV[0],
            json_build_object(
                'table', TG_TABLE_NAME,
                'type', TG_OP,
                'record', CASE WHEN TG_OP = 'DELETE' THEN NULL ELSE row_to_json(NEW) END,
                'old_record', CASE WHEN TG_OP = 'INSERT' THEN NULL ELSE row_to_json(OLD) END
            )::text
        );
        RETURN NULL;
    END;
    $$ LANGUAGE plpgsql
"""

WATCHED_TABLES = ("schedules", "finance_items", "profiles", "payrolls", "material_entries")


class PostgresRepository(RepairDeskRepository):
    """
    PostgreSQL implementation of RepairDeskRepository.

    Stores records in a PostgreSQL database shared with the web front end
    and the change-feed listener.
    """

    def __init__(
        self,
        host: str = None,
        port: int = None,
        database: str = None,
        user: str = None,
        password: str = None,
    ):
        """
        Initialize the PostgreSQL repository.

        Args:
            host: PostgreSQL host (default: DB_HOST env var or localhost)
            port: PostgreSQL port (default: DB_PORT env var or 5432)
            database: Database name (default: DB_NAME env var or repairdesk)
            user: Database user (default: DB_USER env var)
            password: Database password (default: DB_PASSWORD env var)
        """
        if not PSYCOPG2_AVAILABLE:
            raise ImportError("psycopg2 is required for PostgreSQL support. Install with: pip install psycopg2-binary")

        self.host = host or os.environ.get('DB_HOST', 'localhost')
        self.port = port or int(os.environ.get('DB_PORT', '5432'))
        self.database = database or os.environ.get('DB_NAME', 'repairdesk')
        self.user = user or os.environ.get('DB_USER')
        self.password = password or os.environ.get('DB_PASSWORD')

        if not self.user or not self.password:
            raise ValueError("Database user and password are required. Set DB_USER and DB_PASSWORD environment variables.")

        self._conn = None
        self.initialize()

    def connect(self):
        """Open a new connection with this repository's settings."""
        return psycopg2.connect(
            host=self.host,
            port=self.port,
            database=self.database,
            user=self.user,
            password=self.password,
        )

    @property
    def conn(self):
        """Get or create database connection."""
        if self._conn is None or self._conn.closed:
            logger.info(f"Connecting to PostgreSQL at {self.host}:{self.port}/{self.database}")
            self._conn = self.connect()
        return self._conn

    def initialize(self) -> None:
        """Create database tables if they don't exist."""
        cursor = self.conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS schedules (
                id BIGINT PRIMARY KEY,
                title TEXT,
                start_ts TIMESTAMPTZ,
                end_ts TIMESTAMPTZ,
                employee_id TEXT,
                employee_name TEXT,
                employee_names TEXT[],
                off_day BOOLEAN,
                customer_name TEXT,
                customer_phone TEXT,
                site_address TEXT,
                status TEXT,
                revenue DECIMAL(15, 2),
                material_cost DECIMAL(15, 2),
                daily_wage DECIMAL(15, 2),
                extra_cost DECIMAL(15, 2)
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS finance_items (
                id BIGSERIAL PRIMARY KEY,
                item_date DATE NOT NULL,
                category TEXT NOT NULL,
                label TEXT,
                amount DECIMAL(15, 2) NOT NULL,
                employee_id TEXT,
                employee_name TEXT,
                created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
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
                is_admin BOOLEAN NOT NULL DEFAULT FALSE,
                is_manager BOOLEAN NOT NULL DEFAULT FALSE
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS payrolls (
                id BIGSERIAL PRIMARY KEY,
                employee_id TEXT,
                employee_name TEXT,
                pay_month TEXT NOT NULL,
                period_start DATE,
                period_end DATE,
                amount DECIMAL(15, 2) NOT NULL,
                total_pay DECIMAL(15, 2) NOT NULL,
                paid BOOLEAN NOT NULL DEFAULT FALSE,
                paid_at TIMESTAMP,
                memo TEXT,
                created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
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
            CREATE TABLE IF NOT EXISTS materials (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                vendor TEXT,
                unit_price DECIMAL(15, 2),
                created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
            )
        """)
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS material_entries (
                id BIGSERIAL PRIMARY KEY,
                material_id TEXT NOT NULL,
                entry_date DATE NOT NULL,
                vendor TEXT,
                unit_price DECIMAL(15, 2) NOT NULL,
                qty DECIMAL(15, 3) NOT NULL,
                total DECIMAL(15, 2) NOT NULL,
                created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
            )
        """)
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_material_entries_date
            ON material_entries(entry_date)
        """)

        self.conn.commit()

    def install_change_triggers(self, channel: str = "repairdesk_changes") -> None:
        """Install NOTIFY triggers so row changes reach PostgresNotifyListener."""
        cursor = self.conn.cursor()
        try:
            cursor.execute(NOTIFY_FUNCTION_SQL)
            for table in WATCHED_TABLES:
                trigger = sql.Identifier(f"{table}_notify")
                cursor.execute(sql.SQL("DROP TRIGGER IF EXISTS {} ON {}").format(
                    trigger, sql.Identifier(table)))
                cursor.execute(sql.SQL(
                    "CREATE TRIGGER {} AFTER INSERT OR UPDATE OR DELETE ON {} "
                    "FOR EACH ROW EXECUTE FUNCTION repairdesk_notify_change({})"
                ).format(trigger, sql.Identifier(table), sql.Literal(channel)))
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        logger.info(f"Change triggers installed on {', '.join(WATCHED_TABLES)} (channel: {channel})")

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
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                ON CONFLICT (id) DO NOTHING
            """, self._schedule_values(record))
            self.conn.commit()

            # rowcount = 0 means the insert was skipped as a duplicate
            if cursor.rowcount > 0:
                return True
            logger.debug(f"Schedule {record.id} already exists, skipped")
            return False

        except Exception:
            self.conn.rollback()
            raise

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
            query += " AND start_ts >= %s"
            params.append(start_date)

        if end_date:
            query += " AND start_ts < %s"
            params.append(end_date + timedelta(days=1))

        if employee_id:
            query += " AND employee_id = %s"
            params.append(employee_id)

        query += " ORDER BY start_ts, id"

        cursor = self.conn.cursor(cursor_factory=RealDictCursor)
        cursor.execute(query, params)

        records = []
        for row in cursor.fetchall():
            record = schedule_from_row(row)
            if record is not None:
                records.append(record)
        return records

    def get_schedules_by_ids(self, ids: List[int]) -> List[ScheduleRecord]:
        if not ids:
            return []
        cursor = self.conn.cursor(cursor_factory=RealDictCursor)
        cursor.execute("SELECT * FROM schedules WHERE id = ANY(%s) ORDER BY start_ts, id", (list(ids),))
        return [r for r in (schedule_from_row(row) for row in cursor.fetchall()) if r is not None]

    def update_schedule(self, record: ScheduleRecord) -> bool:
        """Overwrite a schedule row by ID."""
        cursor = self.conn.cursor()
        try:
            cursor.execute("""
                UPDATE schedules
                SET title = %s, start_ts = %s, end_ts = %s, employee_id = %s, employee_name = %s,
                    employee_names = %s, off_day = %s, customer_name = %s, customer_phone = %s,
                    site_address = %s, status = %s, revenue = %s, material_cost = %s,
                    daily_wage = %s, extra_cost = %s
                WHERE id = %s
            """, self._schedule_values(record)[1:] + (record.id,))
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        return cursor.rowcount > 0

    def delete_schedule(self, schedule_id: int) -> bool:
        cursor = self.conn.cursor()
        try:
            cursor.execute("DELETE FROM schedules WHERE id = %s", (schedule_id,))
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        return cursor.rowcount > 0

    def get_employee_ids_by_name(self, name: str) -> List[str]:
        """Distinct employee IDs for a (case-insensitive) employee name."""
        trimmed = (name or "").strip()
        if not trimmed:
            return []
        cursor = self.conn.cursor()
        cursor.execute("""
            SELECT DISTINCT TRIM(employee_id) FROM schedules
            WHERE employee_name ILIKE %s
              AND employee_id IS NOT NULL AND TRIM(employee_id) <> ''
            ORDER BY 1
        """, (trimmed,))
        return [row[0] for row in cursor.fetchall()]

    # ==================== Finance ledger ====================

    def save_finance_item(self, entry: FinanceLedgerEntry) -> Optional[int]:
        """Insert a ledger entry and return its ID."""
        category = self._require_category(entry)
        cursor = self.conn.cursor()
        try:
            cursor.execute("""
                INSERT INTO finance_items
                (item_date, category, label, amount, employee_id, employee_name, created_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s)
                RETURNING id
            """, (
                entry.day,
                category.value,
                entry.label,
                to_decimal(entry.amount),
                entry.employee_id,
                entry.employee_name,
                entry.created_at or datetime.now(),
            ))
            entry.id = cursor.fetchone()[0]
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        return entry.id

    def update_finance_item(self, entry: FinanceLedgerEntry) -> bool:
        """Update a ledger entry by ID."""
        category = self._require_category(entry)
        cursor = self.conn.cursor()
        try:
            cursor.execute("""
                UPDATE finance_items
                SET item_date = %s, category = %s, label = %s, amount = %s,
                    employee_id = %s, employee_name = %s
                WHERE id = %s
            """, (
                entry.day,
                category.value,
                entry.label,
                to_decimal(entry.amount),
                entry.employee_id,
                entry.employee_name,
                entry.id,
            ))
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        return cursor.rowcount > 0

    def delete_finance_item(self, item_id: int) -> bool:
        """Delete a ledger entry by ID."""
        cursor = self.conn.cursor()
        try:
            cursor.execute("DELETE FROM finance_items WHERE id = %s", (item_id,))
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
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
            query += " AND item_date >= %s"
            params.append(start_date)

        if end_date:
            query += " AND item_date <= %s"
            params.append(end_date)

        if category:
            query += " AND category = %s"
            params.append(category.value)

        query += " ORDER BY item_date, id"

        cursor = self.conn.cursor(cursor_factory=RealDictCursor)
        cursor.execute(query, params)
        return [finance_item_from_row(row) for row in cursor.fetchall()]

    # ==================== Profiles ====================

    def save_profile(self, profile: Profile) -> bool:
        """Insert or update a profile."""
        cursor = self.conn.cursor()
        cursor.execute("""
            INSERT INTO profiles
            (id, email, display_name, full_name, name, phone, is_admin, is_manager)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (id) DO UPDATE SET
                email = EXCLUDED.email,
                display_name = EXCLUDED.display_name,
                full_name = EXCLUDED.full_name,
                name = EXCLUDED.name,
                phone = EXCLUDED.phone,
                is_admin = EXCLUDED.is_admin,
                is_manager = EXCLUDED.is_manager
        """, (
            profile.id,
            profile.email,
            profile.display_name,
            profile.full_name,
            profile.name,
            profile.phone,
            profile.is_admin,
            profile.is_manager,
        ))
        self.conn.commit()
        return cursor.rowcount > 0

    def get_profile(self, user_id: str) -> Optional[Profile]:
        """Get a profile by user ID."""
        cursor = self.conn.cursor(cursor_factory=RealDictCursor)
        cursor.execute("SELECT * FROM profiles WHERE id = %s", (user_id,))
        row = cursor.fetchone()

        if row is None:
            return None

        return profile_from_row(row)

    def get_profiles(self) -> List[Profile]:
        cursor = self.conn.cursor(cursor_factory=RealDictCursor)
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
                        "DELETE FROM payrolls WHERE pay_month = %s AND employee_id = %s",
                        (record.pay_month, record.employee_id)
                    )
                elif record.employee_name:
                    cursor.execute("""
                        DELETE FROM payrolls
                        WHERE pay_month = %s AND employee_id IS NULL
                          AND employee_name ILIKE %s
                    """, (record.pay_month, record.employee_name))
                else:
                    cursor.execute("""
                        DELETE FROM payrolls
                        WHERE pay_month = %s AND employee_id IS NULL AND employee_name IS NULL
                    """, (record.pay_month,))

            for record in records:
                self._insert_payroll(cursor, record)

            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise

        return len(records)

    def get_payrolls(self, pay_month: Optional[str] = None) -> List[PayrollRecord]:
        query = "SELECT * FROM payrolls"
        params = []
        if pay_month:
            query += " WHERE pay_month = %s"
            params.append(pay_month)
        query += " ORDER BY pay_month, employee_name, id"

        cursor = self.conn.cursor(cursor_factory=RealDictCursor)
        cursor.execute(query, params)
        return [self._row_to_payroll(row) for row in cursor.fetchall()]

    def save_payroll(self, record: PayrollRecord) -> int:
        """Insert one payroll row and return its ID."""
        cursor = self.conn.cursor()
        try:
            self._insert_payroll(cursor, record)
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        return record.id

    def update_payroll(self, record: PayrollRecord) -> bool:
        cursor = self.conn.cursor()
        try:
            cursor.execute("""
                UPDATE payrolls
                SET amount = %s, total_pay = %s, paid = %s, paid_at = %s, memo = %s
                WHERE id = %s
            """, (record.amount, record.total_pay, record.paid, record.paid_at, record.memo, record.id))
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        return cursor.rowcount > 0

    def mark_payroll_paid(self, payroll_id: int, paid_at: datetime, memo: Optional[str] = None) -> bool:
        """Mark a payroll row as paid; memo=None keeps the current memo."""
        cursor = self.conn.cursor()
        try:
            cursor.execute("""
                UPDATE payrolls
                SET paid = TRUE, paid_at = %s, memo = COALESCE(%s, memo)
                WHERE id = %s
            """, (paid_at, memo, payroll_id))
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        return cursor.rowcount > 0

    def delete_payroll(self, payroll_id: int) -> bool:
        cursor = self.conn.cursor()
        try:
            cursor.execute("DELETE FROM payrolls WHERE id = %s", (payroll_id,))
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        return cursor.rowcount > 0

    # ==================== Materials ====================

    def save_material(self, material: Material) -> str:
        """Insert a catalog material. A UUID is generated when it has no ID."""
        if not (material.name or "").strip():
            raise ValueError("Material needs a name")
        material.id = material.id or str(uuid.uuid4())
        cursor = self.conn.cursor()
        try:
            cursor.execute("""
                INSERT INTO materials (id, name, vendor, unit_price, created_at)
                VALUES (%s, %s, %s, %s, %s)
            """, (
                material.id,
                material.name.strip(),
                (material.vendor or "").strip() or None,
                to_decimal(material.unit_price),
                material.created_at or datetime.now(),
            ))
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        return material.id

    def get_materials(self) -> List[Material]:
        cursor = self.conn.cursor(cursor_factory=RealDictCursor)
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
                cursor.execute("""
                    INSERT INTO material_entries
                    (material_id, entry_date, vendor, unit_price, qty, total, created_at)
                    VALUES (%s, %s, %s, %s, %s, %s, %s)
                    RETURNING id
                """, (
                    str(entry.material_id),
                    entry.day,
                    (entry.vendor or "").strip(),
                    to_decimal(entry.unit_price),
                    to_decimal(entry.qty),
                    entry.total,
                    entry.created_at or datetime.now(),
                ))
                entry.id = cursor.fetchone()[0]
            self.conn.commit()
        except Exception:
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
        params = []

        if start_date:
            query += " AND entry_date >= %s"
            params.append(start_date)

        if end_date:
            query += " AND entry_date <= %s"
            params.append(end_date)

        query += " ORDER BY entry_date DESC, id DESC"
        if limit:
            query += " LIMIT %s"
            params.append(limit)

        cursor = self.conn.cursor(cursor_factory=RealDictCursor)
        cursor.execute(query, params)
        return [material_entry_from_row(row) for row in cursor.fetchall()]

    def delete_material_entry(self, entry_id: int) -> bool:
        cursor = self.conn.cursor()
        try:
            cursor.execute("DELETE FROM material_entries WHERE id = %s", (entry_id,))
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        return cursor.rowcount > 0

    def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    @staticmethod
    def _schedule_values(record: ScheduleRecord) -> tuple:
        """Column values in INSERT order, starting with the ID."""
        return (
            record.id,
            record.title,
            parse_timestamp(record.start_ts),
            parse_timestamp(record.end_ts),
            record.employee_id,
            record.employee_name,
            record.employee_names,
            record.off_day,
            record.customer_name,
            record.customer_phone,
            record.site_address,
            record.status,
            to_decimal(record.revenue),
            to_decimal(record.material_cost),
            to_decimal(record.daily_wage),
            to_decimal(record.extra_cost),
        )

    @staticmethod
    def _insert_payroll(cursor, record: PayrollRecord) -> None:
        cursor.execute("""
            INSERT INTO payrolls
            (employee_id, employee_name, pay_month, period_start, period_end,
             amount, total_pay, paid, paid_at, memo, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING id
        """, (
            record.employee_id,
            record.employee_name,
            record.pay_month,
            record.period_start,
            record.period_end,
            record.amount,
            record.total_pay,
            record.paid,
            record.paid_at,
            record.memo,
            record.created_at,
        ))
        record.id = cursor.fetchone()[0]

    def _row_to_payroll(self, row: dict) -> PayrollRecord:
        """Convert a database row to a PayrollRecord."""
        return PayrollRecord(
            id=row['id'],
            employee_id=row['employee_id'],
            employee_name=row['employee_name'],
            pay_month=row['pay_month'],
            period_start=parse_day(row['period_start']),
            period_end=parse_day(row['period_end']),
            amount=Decimal(str(row['amount'])),
            paid=bool(row['paid']),
            paid_at=row['paid_at'],
            memo=row['memo'],
            created_at=row['created_at'],
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
