"""SQLite-backed member storage and population lookup."""

import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import replace
from datetime import date, datetime
from pathlib import Path
from typing import Generator, Iterable, Optional

from birthdayworker.database import create_tables, open_connection
from birthdayworker.errors import (
    BirthdayWorkerError,
    DuplicateKeyError,
    NotFoundError,
)
from birthdayworker.matcher import CandidateWindow
from birthdayworker.models import Member
from birthdayworker.timezones import validate_timezone


logger = logging.getLogger(__name__)


class DatabaseConnectionManager:
    """Manages SQLite database connections with context manager support."""

    def __init__(
        self,
        db_path: str | Path = "birthdays.db",
        max_retries: int = 3,
        timeout: float = 30.0,
    ) -> None:
        """Initialize the connection manager.

        Args:
            db_path: Path to the SQLite database file.
            max_retries: Connection attempts before giving up.
            timeout: SQLite busy timeout in seconds.
        """
        self.db_path = Path(db_path)
        self.max_retries = max_retries
        self.timeout = timeout
        self._connection: Optional[sqlite3.Connection] = None

    def connect(self) -> sqlite3.Connection:
        """Establish a database connection.

        Returns:
            Active database connection.
        """
        if self._connection is None:
            self._connection = open_connection(
                self.db_path, max_retries=self.max_retries, timeout=self.timeout
            )
        return self._connection

    def close(self) -> None:
        """Close the database connection."""
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    def initialize(self) -> None:
        """Initialize the database schema."""
        conn = self.connect()
        create_tables(conn)

    @contextmanager
    def transaction(self) -> Generator[sqlite3.Connection, None, None]:
        """Context manager for database transactions with automatic commit/rollback.

        Yields:
            Active database connection within a transaction.

        Raises:
            Exception: Re-raises any exception after rollback.
        """
        conn = self.connect()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    def get_connection(self) -> sqlite3.Connection:
        """Get the current connection, creating one if needed."""
        return self.connect()


class MemberRepository:
    """Repository for Member CRUD operations and birthday candidate lookup."""

    def __init__(self, db_manager: DatabaseConnectionManager) -> None:
        """Initialize the repository.

        Args:
            db_manager: Database connection manager.
        """
        self.db = db_manager

    def create(self, member: Member) -> Member:
        """Create a new member in the database.

        Args:
            member: Member to create.

        Returns:
            Member with assigned ID.

        Raises:
            InvalidTimezoneError: If the member's timezone is invalid.
            DuplicateKeyError: If the contact address is already registered.
        """
        validate_timezone(member.timezone)
        try:
            with self.db.transaction() as conn:
                cursor = conn.execute(
                    """
                    INSERT INTO members (name, contact, anniversary, timezone)
                    VALUES (?, ?, ?, ?)
                    """,
                    (
                        member.name,
                        member.contact,
                        member.anniversary.isoformat(),
                        member.timezone,
                    ),
                )
                member_id = cursor.lastrowid
        except sqlite3.IntegrityError as e:
            raise DuplicateKeyError(
                f"Contact {member.contact} already exists"
            ) from e
        return replace(member, id=member_id)

    def get_by_id(self, member_id: int) -> Optional[Member]:
        """Retrieve a member by ID.

        Args:
            member_id: Database ID of the member.

        Returns:
            Member if found, None otherwise.
        """
        conn = self.db.get_connection()
        cursor = conn.execute("SELECT * FROM members WHERE id = ?", (member_id,))
        row = cursor.fetchone()
        return self._row_to_member(row) if row else None

    def update(self, member: Member) -> Member:
        """Update an existing member.

        Args:
            member: Member with updated fields.

        Returns:
            The updated member as stored.

        Raises:
            ValueError: If member has no ID.
            NotFoundError: If no member has that ID.
            InvalidTimezoneError: If the member's timezone is invalid.
            DuplicateKeyError: If the contact address is taken by another member.
        """
        if member.id is None:
            raise ValueError("Cannot update member without ID")
        validate_timezone(member.timezone)
        try:
            with self.db.transaction() as conn:
                cursor = conn.execute(
                    """
                    UPDATE members
                    SET name = ?, contact = ?, anniversary = ?, timezone = ?,
                        updated_at = CURRENT_TIMESTAMP
                    WHERE id = ?
                    """,
                    (
                        member.name,
                        member.contact,
                        member.anniversary.isoformat(),
                        member.timezone,
                        member.id,
                    ),
                )
                if cursor.rowcount == 0:
                    raise NotFoundError(f"Member with ID {member.id} not found")
        except sqlite3.IntegrityError as e:
            raise DuplicateKeyError(
                f"Contact {member.contact} already exists"
            ) from e
        return self.get_by_id(member.id) or member

    def delete(self, member_id: int) -> None:
        """Delete a member by ID.

        Raises:
            NotFoundError: If no member has that ID.
        """
        with self.db.transaction() as conn:
            cursor = conn.execute("DELETE FROM members WHERE id = ?", (member_id,))
            if cursor.rowcount == 0:
                raise NotFoundError(f"Member with ID {member_id} not found")

    def list_all(self, limit: int = 100, offset: int = 0) -> list[Member]:
        """Retrieve members, newest first.

        Args:
            limit: Maximum number of members to return.
            offset: Number of members to skip.

        Returns:
            List of members.
        """
        conn = self.db.get_connection()
        cursor = conn.execute(
            "SELECT * FROM members ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?",
            (limit, offset),
        )
        return self._rows_to_members(cursor.fetchall())

    def count(self) -> int:
        conn = self.db.get_connection()
        return conn.execute("SELECT COUNT(*) FROM members").fetchone()[0]

    def fetch_candidates(self, window: CandidateWindow) -> list[Member]:
        """Return every member whose anniversary month/day is in ``window``.

        Args:
            window: Candidate window for the current cycle.

        Returns:
            Members whose birthday could be today somewhere.
        """
        keys = window.as_keys()
        placeholders = ", ".join("?" for _ in keys)
        conn = self.db.get_connection()
        cursor = conn.execute(
            f"SELECT * FROM members WHERE substr(anniversary, 6, 5) IN ({placeholders})",
            keys,
        )
        return self._rows_to_members(cursor.fetchall())

    def _rows_to_members(self, rows: Iterable[sqlite3.Row]) -> list[Member]:
        members = []
        for row in rows:
            try:
                members.append(self._row_to_member(row))
            except (ValueError, BirthdayWorkerError) as e:
                logger.warning(f"Skipping unreadable member row {row['id']}: {e}")
        return members

    def _row_to_member(self, row: sqlite3.Row) -> Member:
        """Convert a database row to a Member object.

        Raises:
            ValueError: If the stored anniversary is not an ISO date.
            ValidationError: If the stored fields are invalid.
        """
        return Member(
            id=row["id"],
            name=row["name"],
            contact=row["contact"],
            anniversary=date.fromisoformat(row["anniversary"]),
            timezone=row["timezone"],
            created_at=self._parse_datetime(row["created_at"]),
            updated_at=self._parse_datetime(row["updated_at"]),
        )

    def _parse_datetime(self, value: Optional[str]) -> Optional[datetime]:
        """Parse a datetime string from the database.

        Args:
            value: Datetime string or None.

        Returns:
            datetime object or None.
        """
        if value is None:
            return None
        try:
            return datetime.fromisoformat(value.replace(" ", "T"))
        except (ValueError, AttributeError):
            return None
