"""
SQLite schema for the syncloop metadata store.

Tables:
- sync: one row per sync entry; metadata and status are JSON documents
- apps: deployed applications, keyed by (path, domain)
- schema_info: version tracking
"""

import sqlite3

SCHEMA_VERSION = 1

SCHEMA_DDL = """
CREATE TABLE IF NOT EXISTS schema_info (
    version INTEGER PRIMARY KEY,
    applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS sync (
    id TEXT PRIMARY KEY,
    path TEXT NOT NULL,
    is_scheduled INTEGER NOT NULL,
    user_id TEXT NOT NULL DEFAULT '',
    metadata TEXT NOT NULL,
    status TEXT NOT NULL,
    create_time TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS apps (
    id TEXT PRIMARY KEY,
    path TEXT NOT NULL,
    domain TEXT NOT NULL DEFAULT '',
    source_url TEXT NOT NULL DEFAULT '',
    is_dev INTEGER NOT NULL DEFAULT 0,
    user_id TEXT NOT NULL DEFAULT '',
    git_branch TEXT NOT NULL DEFAULT '',
    git_auth_name TEXT NOT NULL DEFAULT '',
    create_time TEXT NOT NULL,
    UNIQUE (path, domain)
);
"""


def get_schema_version(conn: sqlite3.Connection) -> int:
    """Return the applied schema version, 0 for a fresh database."""
    try:
        row = conn.execute("SELECT MAX(version) AS version FROM schema_info").fetchone()
    except sqlite3.OperationalError:
        return 0
    if row is None:
        return 0
    version = row["version"] if isinstance(row, dict) else row[0]
    return version or 0


def needs_migration(conn: sqlite3.Connection) -> bool:
    """Check whether the schema must be created or upgraded."""
    return get_schema_version(conn) < SCHEMA_VERSION


def create_schema(conn: sqlite3.Connection) -> None:
    """Create all tables and record the schema version."""
    conn.executescript(SCHEMA_DDL)
    conn.execute("INSERT OR IGNORE INTO schema_info (version) VALUES (?)", (SCHEMA_VERSION,))
    conn.commit()
