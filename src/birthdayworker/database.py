"""SQLite database initialization and schema management."""

import logging
import sqlite3
import time
from pathlib import Path
from typing import Optional


logger = logging.getLogger(__name__)


class DatabaseError(Exception):
    """Base exception for database errors."""


class DatabaseConnectionError(DatabaseError):
    """Raised when database connection fails."""


class DatabaseIntegrityError(DatabaseError):
    """Raised when data integrity check fails."""


def open_connection(
    db_path: str | Path,
    max_retries: int = 3,
    timeout: float = 30.0,
    retry_delay: float = 1.0,
) -> sqlite3.Connection:
    """Open a SQLite connection, retrying while the file is locked.

    Args:
        db_path: Path to the database file.
        max_retries: Maximum number of connection attempts.
        timeout: SQLite busy timeout in seconds.
        retry_delay: Pause between attempts in seconds.

    Returns:
        Open database connection.

    Raises:
        DatabaseConnectionError: If connection fails after max retries.
    """
    last_error: Optional[Exception] = None
    for attempt in range(1, max_retries + 1):
        try:
            conn = sqlite3.connect(db_path, timeout=timeout)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")
            return conn
        except sqlite3.OperationalError as e:
            last_error = e
            logger.warning(
                f"Database connection attempt {attempt}/{max_retries} failed: {e}"
            )
            if attempt < max_retries:
                time.sleep(retry_delay)

    raise DatabaseConnectionError(
        f"Failed to connect to database after {max_retries} attempts: {last_error}"
    )


def create_tables(conn: sqlite3.Connection, verify_only: bool = False) -> None:
    """Create all required database tables if they don't exist.

    Args:
        conn: Database connection.
        verify_only: If True, only verify tables exist without creating.

    Raises:
        DatabaseIntegrityError: If verifying and a table is missing.
    """
    cursor = conn.cursor()

    tables = [
        (
            "members",
            """
            CREATE TABLE IF NOT EXISTS members (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                contact TEXT UNIQUE NOT NULL,
                anniversary TEXT NOT NULL,
                timezone TEXT NOT NULL DEFAULT 'UTC',
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """,
        ),
    ]

    for table_name, create_sql in tables:
        if verify_only:
            cursor.execute(
                "SELECT name FROM sqlite_master WHERE type='table' AND name=?",
                (table_name,),
            )
            if cursor.fetchone() is None:
                raise DatabaseIntegrityError(f"Table {table_name} is missing")
        else:
            cursor.execute(create_sql)

    # anniversary is stored as YYYY-MM-DD; the index covers its MM-DD part
    indexes = [
        (
            "idx_members_month_day",
            "CREATE INDEX IF NOT EXISTS idx_members_month_day "
            "ON members(substr(anniversary, 6, 5))",
        ),
    ]

    for index_name, create_sql in indexes:
        if verify_only:
            cursor.execute(
                "SELECT name FROM sqlite_master WHERE type='index' AND name=?",
                (index_name,),
            )
            if cursor.fetchone() is None:
                logger.warning(f"Index {index_name} is missing, creating...")
        cursor.execute(create_sql)

    conn.commit()


def check_database_integrity(conn: sqlite3.Connection) -> bool:
    """Run database integrity checks.

    Args:
        conn: Database connection.

    Returns:
        True if database integrity is valid.
    """
    try:
        cursor = conn.cursor()

        cursor.execute("PRAGMA integrity_check")
        result = cursor.fetchone()
        if result and result[0] != "ok":
            logger.error(f"Database integrity check failed: {result[0]}")
            return False

        cursor.execute(
            "SELECT COUNT(*) FROM members WHERE anniversary NOT GLOB "
            "'[0-9][0-9][0-9][0-9]-[0-9][0-9]-[0-9][0-9]'"
        )
        malformed = cursor.fetchone()[0]
        if malformed > 0:
            logger.error(f"{malformed} member(s) have a malformed anniversary")
            return False

        return True
    except sqlite3.Error as e:
        logger.error(f"Database integrity check error: {e}", exc_info=True)
        return False
