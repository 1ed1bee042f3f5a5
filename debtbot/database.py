"""Database utilities for DebtBot."""
from __future__ import annotations

import asyncio
import logging
import os
import sqlite3
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import AsyncIterator, List, Optional

from .errors import RecordNotFoundError, StoreError

LOGGER = logging.getLogger(__name__)

# Largest value an SQLite INTEGER column can hold.
MAX_SQLITE_INTEGER = 2**63 - 1

_RECORD_COLUMNS = (
    "id, user_id, full_name, group_name, subject, task_description, "
    "is_completed, created_at, due_at"
)


@dataclass(slots=True)
class DebtRecord:
    """Represents a debt task stored in the database."""

    id: int
    user_id: int
    full_name: str
    group_name: str
    subject: str
    task_description: str
    is_completed: bool
    created_at: datetime
    due_at: datetime


@dataclass(slots=True)
class Admin:
    """Represents a user allowed to manage every record."""

    id: int
    user_id: int
    created_at: datetime


def _format_timestamp(value: datetime) -> str:
    return value.replace(microsecond=0).isoformat(sep=" ")


def _row_to_record(row: sqlite3.Row) -> DebtRecord:
    return DebtRecord(
        id=row["id"],
        user_id=row["user_id"],
        full_name=row["full_name"],
        group_name=row["group_name"],
        subject=row["subject"],
        task_description=row["task_description"],
        is_completed=bool(row["is_completed"]),
        created_at=datetime.fromisoformat(row["created_at"]),
        due_at=datetime.fromisoformat(row["due_at"]),
    )


def _row_to_admin(row: sqlite3.Row) -> Admin:
    return Admin(
        id=row["id"],
        user_id=row["user_id"],
        created_at=datetime.fromisoformat(row["created_at"]),
    )


class Database:
    """Async wrapper around SQLite for debt records and the admin roster.

    Every public method opens its own connection while holding an
    :class:`asyncio.Lock` and runs the blocking sqlite3 calls in a worker
    thread. ``sqlite3.Error`` never escapes: it is re-raised as
    :class:`~debtbot.errors.StoreError`.
    """

    def __init__(self, db_path: str | os.PathLike[str] = "debts.db") -> None:
        self.db_path = Path(db_path)
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Initialize the database schema."""

        async with self._connection() as conn:
            await asyncio.to_thread(
                conn.executescript,
                """
                CREATE TABLE IF NOT EXISTS debt_records (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    full_name TEXT NOT NULL,
                    group_name TEXT NOT NULL,
                    subject TEXT NOT NULL,
                    task_description TEXT NOT NULL,
                    is_completed INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    due_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS admins (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL UNIQUE,
                    created_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_debt_records_user_due
                    ON debt_records(user_id, due_at);
                CREATE INDEX IF NOT EXISTS idx_debt_records_due
                    ON debt_records(due_at);
                """,
            )
            await asyncio.to_thread(conn.commit)
        LOGGER.info("Database initialized at %s", self.db_path)

    def _configure_connection(self, conn: sqlite3.Connection) -> None:
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        conn.execute("PRAGMA busy_timeout = 5000;")

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[sqlite3.Connection]:
        async with self._lock:
            try:
                conn = await asyncio.to_thread(self._connect)
            except sqlite3.Error as exc:
                raise StoreError(f"Could not open database {self.db_path}") from exc
            try:
                yield conn
            except sqlite3.Error as exc:
                raise StoreError(str(exc)) from exc
            finally:
                # Closing without a commit rolls back a half-applied statement.
                await asyncio.to_thread(conn.close)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        self._configure_connection(conn)
        return conn

    # ---- Debt records ----

    async def add_record(
        self,
        user_id: int,
        full_name: str,
        group_name: str,
        subject: str,
        task_description: str,
        due_at: datetime,
        created_at: Optional[datetime] = None,
    ) -> DebtRecord:
        created = created_at or datetime.now()
        async with self._connection() as conn:
            cursor = await asyncio.to_thread(
                conn.execute,
                """
                INSERT INTO debt_records (
                    user_id, full_name, group_name, subject, task_description,
                    is_completed, created_at, due_at
                ) VALUES (?, ?, ?, ?, ?, 0, ?, ?)
                """,
                (
                    user_id,
                    full_name,
                    group_name,
                    subject,
                    task_description,
                    _format_timestamp(created),
                    _format_timestamp(due_at),
                ),
            )
            await asyncio.to_thread(conn.commit)
            record_id = cursor.lastrowid
        LOGGER.info("Added debt record %s for user %s", record_id, user_id)
        record = await self.get_record(record_id)
        if record is None:
            raise StoreError(f"Debt record {record_id} vanished after insert")
        return record

    async def get_record(self, record_id: int) -> Optional[DebtRecord]:
        async with self._connection() as conn:
            cursor = await asyncio.to_thread(
                conn.execute,
                f"SELECT {_RECORD_COLUMNS} FROM debt_records WHERE id = ?",
                (record_id,),
            )
            row = await asyncio.to_thread(cursor.fetchone)
        if not row:
            return None
        return _row_to_record(row)

    async def toggle_record(self, record_id: int) -> DebtRecord:
        """Flip the completion flag of ``record_id`` and return the new state."""

        async with self._connection() as conn:
            cursor = await asyncio.to_thread(
                conn.execute,
                "UPDATE debt_records SET is_completed = 1 - is_completed WHERE id = ?",
                (record_id,),
            )
            if cursor.rowcount == 0:
                raise RecordNotFoundError(record_id)
            await asyncio.to_thread(conn.commit)
            select = await asyncio.to_thread(
                conn.execute,
                f"SELECT {_RECORD_COLUMNS} FROM debt_records WHERE id = ?",
                (record_id,),
            )
            row = await asyncio.to_thread(select.fetchone)
        record = _row_to_record(row)
        LOGGER.info(
            "Debt record %s marked %s",
            record_id,
            "completed" if record.is_completed else "pending",
        )
        return record

    async def delete_record(self, record_id: int) -> bool:
        async with self._connection() as conn:
            cursor = await asyncio.to_thread(
                conn.execute,
                "DELETE FROM debt_records WHERE id = ?",
                (record_id,),
            )
            await asyncio.to_thread(conn.commit)
        deleted = cursor.rowcount > 0
        if deleted:
            LOGGER.info("Deleted debt record %s", record_id)
        return deleted

    async def list_records(self, user_id: Optional[int] = None) -> List[DebtRecord]:
        """Return records ordered by due date, optionally for a single owner."""

        query = f"SELECT {_RECORD_COLUMNS} FROM debt_records"
        params: tuple[object, ...] = ()
        if user_id is not None:
            query += " WHERE user_id = ?"
            params = (user_id,)
        query += " ORDER BY due_at ASC, id ASC"
        async with self._connection() as conn:
            cursor = await asyncio.to_thread(conn.execute, query, params)
            rows = await asyncio.to_thread(cursor.fetchall)
        return [_row_to_record(row) for row in rows]

    # ---- Admins ----

    async def is_admin(self, user_id: int) -> bool:
        async with self._connection() as conn:
            cursor = await asyncio.to_thread(
                conn.execute,
                "SELECT 1 FROM admins WHERE user_id = ?",
                (user_id,),
            )
            row = await asyncio.to_thread(cursor.fetchone)
        return row is not None

    async def add_admin(self, user_id: int) -> bool:
        """Insert ``user_id`` into the roster.

        Returns ``False`` when the user is already an admin; the UNIQUE
        constraint decides, so concurrent calls cannot create duplicates.
        """

        async with self._connection() as conn:
            cursor = await asyncio.to_thread(
                conn.execute,
                "INSERT OR IGNORE INTO admins (user_id, created_at) VALUES (?, ?)",
                (user_id, _format_timestamp(datetime.now())),
            )
            await asyncio.to_thread(conn.commit)
        added = cursor.rowcount > 0
        if added:
            LOGGER.info("Added admin %s", user_id)
        return added

    async def remove_admin(self, user_id: int) -> bool:
        async with self._connection() as conn:
            cursor = await asyncio.to_thread(
                conn.execute,
                "DELETE FROM admins WHERE user_id = ?",
                (user_id,),
            )
            await asyncio.to_thread(conn.commit)
        removed = cursor.rowcount > 0
        if removed:
            LOGGER.info("Removed admin %s", user_id)
        return removed

    async def list_admins(self) -> List[Admin]:
        async with self._connection() as conn:
            cursor = await asyncio.to_thread(
                conn.execute,
                "SELECT id, user_id, created_at FROM admins ORDER BY id ASC",
            )
            rows = await asyncio.to_thread(cursor.fetchall)
        return [_row_to_admin(row) for row in rows]

    async def ensure_seed_admin(self, user_id: int) -> bool:
        """Insert ``user_id`` as admin only if the roster is empty."""

        async with self._connection() as conn:
            cursor = await asyncio.to_thread(
                conn.execute,
                """
                INSERT INTO admins (user_id, created_at)
                SELECT ?, ?
                WHERE NOT EXISTS (SELECT 1 FROM admins)
                """,
                (user_id, _format_timestamp(datetime.now())),
            )
            await asyncio.to_thread(conn.commit)
        seeded = cursor.rowcount > 0
        if seeded:
            LOGGER.info("Admin roster was empty; seeded admin %s", user_id)
        return seeded
