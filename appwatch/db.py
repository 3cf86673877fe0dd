"""Database initialisation for appwatch.

Creates (or migrates) the SQLite database holding discovered apps, their
scan history and persisted settings.

Usage::

    from appwatch.db import connect, init_db
    conn = connect(settings.db_path)
    init_db(conn)              # idempotent
"""

from __future__ import annotations

import sqlite3
from pathlib import Path


def connect(path: str | Path) -> sqlite3.Connection:
    """Open a SQLite connection (WAL mode, FK enabled, ``Row`` factory).

    The parent directory is created when missing.  ``":memory:"`` is
    accepted for throwaway databases.
    """
    if str(path) != ":memory:":
        Path(path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


def init_db(conn: sqlite3.Connection) -> None:
    """Create all tables (idempotent — safe to run multiple times)."""
    _create_schema(conn)
    conn.commit()


_SCHEMA_SQL = """
-- ───────── Apps ─────────

CREATE TABLE IF NOT EXISTS apps (
    id                    INTEGER PRIMARY KEY AUTOINCREMENT,
    url                   TEXT NOT NULL UNIQUE,
    port                  INTEGER,
    name                  TEXT,
    category              TEXT,
    status                TEXT NOT NULL DEFAULT 'unknown'
                          CHECK (status IN ('unknown', 'online', 'offline')),
    screenshot            BLOB,
    thumbnail             BLOB,
    screenshot_updated_at TIMESTAMP,
    discovered_at         TIMESTAMP NOT NULL,
    last_checked_at       TIMESTAMP,
    notes                 TEXT
);
CREATE INDEX IF NOT EXISTS idx_apps_status        ON apps(status);
CREATE INDEX IF NOT EXISTS idx_apps_discovered_at ON apps(discovered_at);

-- ───────── Scan history ─────────

CREATE TABLE IF NOT EXISTS scan_history (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    app_id           INTEGER NOT NULL,
    status           TEXT NOT NULL,
    response_time_ms INTEGER,
    checked_at       TIMESTAMP NOT NULL,
    FOREIGN KEY (app_id) REFERENCES apps(id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_scan_history_app ON scan_history(app_id, id);

-- ───────── Settings ─────────

CREATE TABLE IF NOT EXISTS settings (
    key        TEXT PRIMARY KEY,
    value      TEXT NOT NULL,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
"""


def _create_schema(conn: sqlite3.Connection) -> None:
    """Execute all CREATE TABLE / INDEX statements in one transaction."""
    conn.executescript(_SCHEMA_SQL)
