"""
Metadata store for sync entries and applications.

All reads and writes go through a caller-supplied Transaction so that the
sync orchestrator controls what is committed and what is rolled back.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from syncloop.core.apps.models import AppEntry, AppPathDomain
from syncloop.core.config.models import SyncLoopConfig
from syncloop.core.store.connection import (
    EntryNotFoundError,
    Transaction,
    TransactionError,
    connect,
    init_db,
)
from syncloop.core.store.models import SyncEntry, SyncJobStatus, SyncMetadata

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class MetadataStore:
    """
    SQLite backed store for sync entries and applications.

    Example:
        >>> store = MetadataStore(Path("/tmp/syncloop.db"))
        >>> with store.transaction() as tx:
        ...     entries = store.get_sync_entries(tx)
    """

    def __init__(self, db_path: Path) -> None:
        """
        Open the store, creating the database and schema if needed.

        Raises:
            TransactionError: If the database cannot be initialized
        """
        self.db_path = db_path
        init_db(db_path)

    @classmethod
    def from_config(cls, config: SyncLoopConfig) -> MetadataStore:
        return cls(config.metadata.get_db_path())

    def begin_transaction(self) -> Transaction:
        """
        Start a new transaction on its own connection.

        Raises:
            TransactionError: If the database cannot be opened
        """
        return Transaction(connect(self.db_path))

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        """Context manager yielding a transaction that is rolled back unless committed."""
        with self.begin_transaction() as tx:
            yield tx

    # ------------------------------------------------------------------
    # Sync entries
    # ------------------------------------------------------------------

    def create_sync(self, tx: Transaction, entry: SyncEntry) -> None:
        """Insert a new sync entry."""
        if entry.create_time is None:
            entry.create_time = datetime.now(timezone.utc)
        tx.execute(
            """
            INSERT INTO sync (id, path, is_scheduled, user_id, metadata, status, create_time)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                entry.id,
                entry.path,
                int(entry.is_scheduled),
                entry.user_id,
                entry.metadata.model_dump_json(),
                entry.status.model_dump_json(),
                entry.create_time.isoformat(),
            ),
        )

    def get_sync_entry(self, tx: Transaction, sync_id: str) -> SyncEntry:
        """
        Load one sync entry.

        Raises:
            EntryNotFoundError: If no entry has this id
        """
        row = tx.execute("SELECT * FROM sync WHERE id = ?", (sync_id,)).fetchone()
        if row is None:
            raise EntryNotFoundError("sync entry", sync_id)
        return self._sync_from_row(row)

    def get_sync_entries(self, tx: Transaction) -> list[SyncEntry]:
        """Load all sync entries, ordered by id (creation order)."""
        rows = tx.execute("SELECT * FROM sync ORDER BY id").fetchall()
        return [self._sync_from_row(row) for row in rows]

    def update_sync_status(self, tx: Transaction, sync_id: str, status: SyncJobStatus) -> None:
        """
        Replace the status of a sync entry.

        Updating an entry that no longer exists is not an error; it happens
        when the run that created the entry was rolled back.
        """
        cursor = tx.execute(
            "UPDATE sync SET status = ? WHERE id = ?",
            (status.model_dump_json(), sync_id),
        )
        if cursor.rowcount == 0:
            logger.debug("Sync entry %s not present, status not stored", sync_id)

    def delete_sync(self, tx: Transaction, sync_id: str) -> None:
        """
        Delete a sync entry.

        Raises:
            EntryNotFoundError: If no entry has this id
        """
        cursor = tx.execute("DELETE FROM sync WHERE id = ?", (sync_id,))
        if cursor.rowcount == 0:
            raise EntryNotFoundError("sync entry", sync_id)

    def _sync_from_row(self, row: dict[str, Any]) -> SyncEntry:
        try:
            return SyncEntry(
                id=row["id"],
                path=row["path"],
                is_scheduled=bool(row["is_scheduled"]),
                user_id=row["user_id"],
                metadata=SyncMetadata.model_validate_json(row["metadata"]),
                status=SyncJobStatus.model_validate_json(row["status"]),
                create_time=datetime.fromisoformat(row["create_time"]),
            )
        except ValueError as e:
            raise TransactionError(f"corrupt sync entry {row['id']}: {e}") from e

    # ------------------------------------------------------------------
    # Applications
    # ------------------------------------------------------------------

    def create_app(self, tx: Transaction, app: AppEntry) -> None:
        """Insert an application record."""
        tx.execute(
            """
            INSERT INTO apps (id, path, domain, source_url, is_dev, user_id,
                              git_branch, git_auth_name, create_time)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                app.id,
                app.path,
                app.domain,
                app.source_url,
                int(app.is_dev),
                app.user_id,
                app.git_branch,
                app.git_auth_name,
                _now(),
            ),
        )

    def get_app(self, tx: Transaction, path_domain: AppPathDomain) -> AppEntry:
        """
        Load an application by path and domain.

        Raises:
            EntryNotFoundError: If the application does not exist
        """
        row = tx.execute(
            "SELECT * FROM apps WHERE path = ? AND domain = ?",
            (path_domain.path, path_domain.domain),
        ).fetchone()
        if row is None:
            raise EntryNotFoundError("app", str(path_domain))
        return AppEntry(
            id=row["id"],
            path=row["path"],
            domain=row["domain"],
            source_url=row["source_url"],
            is_dev=bool(row["is_dev"]),
            user_id=row["user_id"],
            git_branch=row["git_branch"],
            git_auth_name=row["git_auth_name"],
        )

    def delete_app(self, tx: Transaction, path_domain: AppPathDomain) -> None:
        """
        Delete an application record.

        Raises:
            EntryNotFoundError: If the application does not exist
        """
        cursor = tx.execute(
            "DELETE FROM apps WHERE path = ? AND domain = ?",
            (path_domain.path, path_domain.domain),
        )
        if cursor.rowcount == 0:
            raise EntryNotFoundError("app", str(path_domain))
