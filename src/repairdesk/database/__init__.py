"""
Database module providing abstracted storage for schedules, ledger entries,
profiles and payrolls.

This module provides:
- RepairDeskRepository: Abstract interface for storage
- SQLiteRepository: SQLite implementation (default)
- PostgresRepository: PostgreSQL implementation (the shared hosted database)
- ScheduleCache: Month-keyed cache of fetched schedule rows

The repository pattern allows swapping database backends (SQLite, PostgreSQL, etc.)
without changing the rest of the application. Callers receive a repository
and pass it on; nothing in the package opens a connection on import.

Usage:
    from repairdesk.database import get_repository

    # SQLite (default)
    repo = get_repository()

    # PostgreSQL
    repo = get_repository(db_type="postgres")

    schedules = repo.get_schedules(start_date=date(2025, 1, 1), end_date=date(2025, 1, 31))
"""

import os

from .cache import ScheduleCache
from .repository import RepairDeskRepository
from .sqlite_repository import SQLiteRepository

# PostgresRepository raises ImportError on construction when psycopg2 is missing
from .postgres_repository import PSYCOPG2_AVAILABLE, PostgresRepository


def get_repository(db_type: str = None, **kwargs) -> RepairDeskRepository:
    """
    Get a new repository instance.

    Args:
        db_type: Type of database ("sqlite" or "postgres")
                 Default: Uses DB_TYPE env var, or "sqlite" if not set
        **kwargs: Database-specific configuration
            SQLite:
                - db_path: Path to SQLite database file (default: "data/repairdesk.db")
            PostgreSQL:
                - host: Database host (default: DB_HOST env var)
                - port: Database port (default: DB_PORT env var or 5432)
                - database: Database name (default: DB_NAME env var or "repairdesk")
                - user: Database user (default: DB_USER env var)
                - password: Database password (default: DB_PASSWORD env var)

    Returns:
        RepairDeskRepository instance
    """
    # Default to environment variable or sqlite
    if db_type is None:
        db_type = os.environ.get('DB_TYPE', 'sqlite')

    if db_type == "sqlite":
        db_path = kwargs.get('db_path') or os.environ.get('DB_PATH', 'data/repairdesk.db')
        return SQLiteRepository(db_path)
    elif db_type == "postgres":
        if not PSYCOPG2_AVAILABLE:
            raise ImportError("psycopg2 is required for PostgreSQL support. Install with: pip install psycopg2-binary")
        return PostgresRepository(
            host=kwargs.get('host'),
            port=kwargs.get('port'),
            database=kwargs.get('database'),
            user=kwargs.get('user'),
            password=kwargs.get('password'),
        )
    else:
        raise ValueError(f"Unsupported database type: {db_type}. Use 'sqlite' or 'postgres'.")


__all__ = [
    'RepairDeskRepository',
    'SQLiteRepository',
    'PostgresRepository',
    'ScheduleCache',
    'get_repository',
    'PSYCOPG2_AVAILABLE',
]
