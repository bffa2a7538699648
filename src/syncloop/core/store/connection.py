"""
Database connection and transaction management for the metadata store.

Every transaction gets its own SQLite connection, so a transaction can be
rolled back and a fresh one opened without disturbing other work. The
connection module follows SQLite best practices:
- WAL mode so readers never block the writer
- Foreign key enforcement
- Row factory for dict-like access
- A busy timeout instead of failing immediately on a locked database

Usage:
    from syncloop.core.store.connection import Transaction, connect, init_db

    init_db(db_path)
    with Transaction(connect(db_path)) as tx:
        tx.execute("UPDATE sync SET status = ? WHERE id = ?", (status, id))
        tx.commit()  # rolled back on exit if not committed
"""

from __future__ import annotations

import sqlite3
from pathlib import Path
from types import TracebackType
from typing import Any

from syncloop.core.store.schema import create_schema, needs_migration

BUSY_TIMEOUT_SECS = 30.0


class StoreError(Exception):
    """Base exception for metadata store operations."""

    pass


class TransactionError(StoreError):
    """Raised when a database operation or transaction boundary fails."""

    pass


class EntryNotFoundError(StoreError):
    """Raised when a requested record does not exist."""

    def __init__(self, kind: str, key: str):
        super().__init__(f"{kind} {key} not found")
        self.kind = kind
        self.key = key


def dict_factory(cursor: sqlite3.Cursor, row: tuple[Any, ...]) -> dict[str, Any]:
    """
    Row factory that returns rows as dictionaries.

    Enables dict-like access to query results: row["column_name"]
    instead of positional access: row[0].
    """
    fields = [column[0] for column in cursor.description]
    return dict(zip(fields, row))


def configure_connection(conn: sqlite3.Connection) -> None:
    """
    Configure a SQLite connection with the store's settings.

    Settings applied:
    - WAL mode: Better concurrency for reads/writes
    - Foreign keys: Enforce referential integrity
    - dict_factory: Enable dict-like row access
    """
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.row_factory = dict_factory


def connect(db_path: Path | str) -> sqlite3.Connection:
    """
    Open a configured connection.

    Raises:
        TransactionError: If the database cannot be opened
    """
    try:
        conn = sqlite3.connect(str(db_path), timeout=BUSY_TIMEOUT_SECS)
        configure_connection(conn)
    except sqlite3.Error as e:
        raise TransactionError(f"cannot open database {db_path}: {e}") from e
    return conn


def init_db(db_path: Path | str) -> None:
    """
    Initialize the metadata database.

    Creates the database file and parent directory if they don't exist and
    applies the schema.

    Raises:
        TransactionError: If the schema cannot be created
    """
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = connect(db_path)
    try:
        if needs_migration(conn):
            create_schema(conn)
    except sqlite3.Error as e:
        raise TransactionError(f"cannot initialize database {db_path}: {e}") from e
    finally:
        conn.close()


class Transaction:
    """
    One unit of work against the metadata store.

    A transaction is rolled back unless explicitly committed. Rolling back a
    completed transaction is a no-op, so callers can unconditionally roll back
    on exit; committing a completed transaction is an error.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        self._done = False

    @property
    def active(self) -> bool:
        """True until the transaction is committed or rolled back."""
        return not self._done

    def execute(self, sql: str, params: tuple[Any, ...] | dict[str, Any] = ()) -> sqlite3.Cursor:
        """
        Execute a statement inside this transaction.

        Raises:
            TransactionError: If the transaction is complete or the statement fails
        """
        if self._done:
            raise TransactionError("transaction already completed")
        try:
            return self._conn.execute(sql, params)
        except sqlite3.Error as e:
            raise TransactionError(str(e)) from e

    def commit(self) -> None:
        """
        Commit and release the connection.

        Raises:
            TransactionError: If already completed or the commit fails
        """
        if self._done:
            raise TransactionError("transaction already completed")
        try:
            self._conn.commit()
        except sqlite3.Error as e:
            self.rollback()
            raise TransactionError(f"commit failed: {e}") from e
        self._close()

    def rollback(self) -> None:
        """Discard all changes and release the connection; no-op once completed."""
        if self._done:
            return
        try:
            self._conn.rollback()
        finally:
            self._close()

    def _close(self) -> None:
        self._done = True
        self._conn.close()

    def __enter__(self) -> Transaction:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.rollback()
