"""
Abstract repository interface for schedule, ledger, profile, payroll and
material storage.

This module defines the contract that all database implementations must follow,
enabling easy swapping between SQLite, PostgreSQL, or other backends.

The repository is the only place that talks to the database. Report code is
handed already-fetched records; anything needing data takes a repository
argument rather than reaching for a module-level client.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import List, Optional

from ..records import (
    FinanceLedgerEntry,
    LedgerCategory,
    Material,
    MaterialEntry,
    PayrollRecord,
    Profile,
    ScheduleRecord,
)


class RepairDeskRepository(ABC):
    """
    Abstract interface for repairdesk storage.

    All database implementations must implement these methods.
    Rows come back normalized into the record types of repairdesk.records.
    """

    @abstractmethod
    def initialize(self) -> None:
        """
        Initialize the database schema.
        Creates tables if they don't exist.
        """
        pass

    # ==================== Schedules ====================

    @abstractmethod
    def save_schedule(self, record: ScheduleRecord) -> bool:
        """
        Save a schedule row.

        Args:
            record: The schedule to save

        Returns:
            True if saved, False if a row with the same ID already exists
        """
        pass

    @abstractmethod
    def get_schedules(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        employee_id: Optional[str] = None,
    ) -> List[ScheduleRecord]:
        """
        Query schedules with optional filters.

        Args:
            start_date: Schedules starting on or after this day
            end_date: Schedules starting on or before this day (inclusive)
            employee_id: Only schedules assigned to this employee

        Returns:
            Schedules ordered by start_ts ascending
        """
        pass

    @abstractmethod
    def get_schedules_by_ids(self, ids: List[int]) -> List[ScheduleRecord]:
        """Schedules with the given IDs, ordered by start_ts. Unknown IDs are skipped."""
        pass

    @abstractmethod
    def update_schedule(self, record: ScheduleRecord) -> bool:
        """
        Overwrite a schedule row by ID.

        Returns:
            True if updated, False if not found
        """
        pass

    @abstractmethod
    def delete_schedule(self, schedule_id: int) -> bool:
        """
        Delete a schedule by ID.

        Returns:
            True if deleted, False if not found
        """
        pass

    @abstractmethod
    def get_employee_ids_by_name(self, name: str) -> List[str]:
        """
        Distinct employee IDs used on schedules with this employee name
        (case-insensitive).
        """
        pass

    # ==================== Finance ledger ====================

    @abstractmethod
    def save_finance_item(self, entry: FinanceLedgerEntry) -> Optional[int]:
        """
        Insert a ledger entry.

        Returns:
            The new row ID
        """
        pass

    @abstractmethod
    def update_finance_item(self, entry: FinanceLedgerEntry) -> bool:
        """
        Update a ledger entry by ID.

        Returns:
            True if updated, False if not found
        """
        pass

    @abstractmethod
    def delete_finance_item(self, item_id: int) -> bool:
        """
        Delete a ledger entry by ID.

        Returns:
            True if deleted, False if not found
        """
        pass

    @abstractmethod
    def get_finance_items(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        category: Optional[LedgerCategory] = None,
    ) -> List[FinanceLedgerEntry]:
        """
        Query ledger entries with optional filters.

        Returns:
            Entries ordered by item_date ascending, then ID
        """
        pass

    # ==================== Profiles ====================

    @abstractmethod
    def save_profile(self, profile: Profile) -> bool:
        """Insert or replace a profile. Returns True on success."""
        pass

    @abstractmethod
    def get_profile(self, user_id: str) -> Optional[Profile]:
        """Get a profile by user ID."""
        pass

    @abstractmethod
    def get_profiles(self) -> List[Profile]:
        """All profiles."""
        pass

    # ==================== Payrolls ====================

    @abstractmethod
    def replace_payrolls(self, records: List[PayrollRecord]) -> int:
        """
        Replace payroll rows for each record's employee and pay month.

        Existing rows with the same pay_month and employee ID (or, for rows
        without an ID, the same employee name, case-insensitive) are deleted
        before the new rows are inserted.

        Returns:
            Number of rows inserted
        """
        pass

    @abstractmethod
    def get_payrolls(self, pay_month: Optional[str] = None) -> List[PayrollRecord]:
        """Payroll rows, optionally for one pay month."""
        pass

    @abstractmethod
    def save_payroll(self, record: PayrollRecord) -> int:
        """Insert one payroll row and return its ID (also set on record.id)."""
        pass

    @abstractmethod
    def update_payroll(self, record: PayrollRecord) -> bool:
        """Update amount, memo and paid state of a payroll row by ID."""
        pass

    @abstractmethod
    def mark_payroll_paid(self, payroll_id: int, paid_at: datetime, memo: Optional[str] = None) -> bool:
        """
        Mark a payroll row as paid.

        Args:
            payroll_id: Row to update
            paid_at: Payment time
            memo: New memo; None keeps the current one

        Returns:
            True if updated, False if not found
        """
        pass

    @abstractmethod
    def delete_payroll(self, payroll_id: int) -> bool:
        """Delete a payroll row. Returns False if not found."""
        pass

    # ==================== Materials ====================

    @abstractmethod
    def save_material(self, material: Material) -> str:
        """Insert a catalog material and return its ID (generated when missing)."""
        pass

    @abstractmethod
    def get_materials(self) -> List[Material]:
        """Catalog materials ordered by name."""
        pass

    @abstractmethod
    def save_material_entries(self, entries: List[MaterialEntry]) -> int:
        """
        Insert purchase lines in one transaction.

        Every entry is validated first; nothing is written if one is
        invalid. The stored total is unit_price * qty when the entry has
        none, and each new ID is set on its entry.

        Returns:
            Number of rows inserted
        """
        pass

    @abstractmethod
    def get_material_entries(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        limit: Optional[int] = None,
    ) -> List[MaterialEntry]:
        """Purchase lines, newest first (entry_date, then ID, descending)."""
        pass

    @abstractmethod
    def delete_material_entry(self, entry_id: int) -> bool:
        """Delete a purchase line. Returns False if not found."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close the database connection."""
        pass
