"""App store — persists discovered apps and their scan history to SQLite."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator

logger = logging.getLogger(__name__)

UNKNOWN = "unknown"
ONLINE = "online"
OFFLINE = "offline"
STATUSES: tuple[str, ...] = (UNKNOWN, ONLINE, OFFLINE)

HISTORY_LIMIT = 50


class PersistenceFailure(RuntimeError):
    """A write to the store failed and was rolled back."""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class AppStore:
    """CRUD wrapper around the ``apps`` / ``scan_history`` tables.

    Every public write runs as one transaction: either all of its
    statements land or none do.  Reads return plain dicts (one per row),
    or ``None`` when the id/url is not registered.

    Args:
        conn: An open :class:`sqlite3.Connection` (WAL mode recommended).
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    # ------------------------------------------------------------------ #
    # Writes                                                               #
    # ------------------------------------------------------------------ #

    def add_app(
        self,
        url: str,
        port: int | None,
        name: str | None = None,
        category: str | None = None,
    ) -> dict[str, Any]:
        """Register *url*, or backfill an existing row.

        Uniqueness key: ``url``.  When the app already exists only a
        currently-empty ``name`` / ``category`` is filled in; populated
        fields and ``discovered_at`` are never touched.

        Returns:
            The stored app row.
        """
        with self._transaction("add_app"):
            existing = self._conn.execute(
                "SELECT id, name, category FROM apps WHERE url = ?", (url,)
            ).fetchone()
            if existing is None:
                self._conn.execute(
                    """
                    INSERT INTO apps (url, port, name, category, status, discovered_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (url, port, name or None, category or None, UNKNOWN, _now()),
                )
                logger.info("Registered app %s (%s)", url, name or "unnamed")
            else:
                if name and not existing["name"]:
                    self._conn.execute(
                        "UPDATE apps SET name = ? WHERE id = ?", (name, existing["id"])
                    )
                if category and not existing["category"]:
                    self._conn.execute(
                        "UPDATE apps SET category = ? WHERE id = ?",
                        (category, existing["id"]),
                    )
        app = self.get_app_by_url(url)
        if app is None:
            raise PersistenceFailure(f"add_app: {url} not found after write")
        return app

    def record_scan(self, url: str, status: str, response_time_ms: int | None) -> bool:
        """Append a history entry and update the app's current status.

        Both changes are applied in a single transaction, and history older
        than the newest :data:`HISTORY_LIMIT` entries is pruned in the same
        step.  An ``unknown`` result never moves an already-classified app
        back to ``unknown``; it is still kept in the history.

        Returns:
            ``False`` when *url* is not registered (nothing is written).
        """
        if status not in STATUSES:
            raise ValueError(f"Invalid status {status!r}; expected one of {STATUSES}")

        checked_at = _now()
        with self._transaction("record_scan"):
            row = self._conn.execute(
                "SELECT id, status FROM apps WHERE url = ?", (url,)
            ).fetchone()
            if row is None:
                logger.debug("record_scan: %s is not registered", url)
                return False

            app_id = row["id"]
            new_status = status
            if status == UNKNOWN and row["status"] != UNKNOWN:
                new_status = row["status"]

            self._conn.execute(
                """
                UPDATE apps
                   SET status = ?,
                       last_checked_at = CASE
                           WHEN last_checked_at IS NULL OR last_checked_at < ? THEN ?
                           ELSE last_checked_at
                       END
                 WHERE id = ?
                """,
                (new_status, checked_at, checked_at, app_id),
            )
            self._conn.execute(
                """
                INSERT INTO scan_history (app_id, status, response_time_ms, checked_at)
                VALUES (?, ?, ?, ?)
                """,
                (app_id, status, response_time_ms, checked_at),
            )
            self._conn.execute(
                """
                DELETE FROM scan_history
                 WHERE app_id = ?
                   AND id NOT IN (
                       SELECT id FROM scan_history
                        WHERE app_id = ?
                        ORDER BY id DESC
                        LIMIT ?
                   )
                """,
                (app_id, app_id, HISTORY_LIMIT),
            )
        return True

    def update_screenshot(
        self,
        app_id: int,
        image: bytes,
        thumbnail: bytes | None = None,
    ) -> None:
        """Store captured image bytes for *app_id*."""
        with self._transaction("update_screenshot"):
            self._conn.execute(
                """
                UPDATE apps
                   SET screenshot = ?, thumbnail = ?, screenshot_updated_at = ?
                 WHERE id = ?
                """,
                (image, thumbnail, _now(), app_id),
            )

    def update_app(
        self,
        app_id: int,
        name: str | None = None,
        notes: str | None = None,
    ) -> dict[str, Any] | None:
        """Apply a manual edit of ``name`` and/or ``notes``.

        Unlike :meth:`add_app` this overwrites, since it reflects an
        explicit user request.  Returns the updated row or ``None``.
        """
        if self.get_app(app_id) is None:
            return None
        with self._transaction("update_app"):
            if name is not None:
                self._conn.execute("UPDATE apps SET name = ? WHERE id = ?", (name, app_id))
            if notes is not None:
                self._conn.execute("UPDATE apps SET notes = ? WHERE id = ?", (notes, app_id))
        return self.get_app(app_id)

    def remove_app(self, app_id: int) -> bool:
        """Delete *app_id* and all of its history.

        Returns:
            ``True`` if a row was deleted.
        """
        with self._transaction("remove_app"):
            self._conn.execute("DELETE FROM scan_history WHERE app_id = ?", (app_id,))
            cur = self._conn.execute("DELETE FROM apps WHERE id = ?", (app_id,))
        removed = cur.rowcount > 0
        if removed:
            logger.info("Removed app id=%d", app_id)
        return removed

    # ------------------------------------------------------------------ #
    # Reads                                                                #
    # ------------------------------------------------------------------ #

    def get_app(self, app_id: int) -> dict[str, Any] | None:
        row = self._conn.execute("SELECT * FROM apps WHERE id = ?", (app_id,)).fetchone()
        return dict(row) if row else None

    def get_app_by_url(self, url: str) -> dict[str, Any] | None:
        row = self._conn.execute("SELECT * FROM apps WHERE url = ?", (url,)).fetchone()
        return dict(row) if row else None

    def get_all_apps(self) -> list[dict[str, Any]]:
        """Return every app, most recently discovered first."""
        cur = self._conn.execute("SELECT * FROM apps ORDER BY discovered_at DESC, id DESC")
        return [dict(row) for row in cur.fetchall()]

    def get_online_apps(self) -> list[dict[str, Any]]:
        cur = self._conn.execute(
            "SELECT * FROM apps WHERE status = ? ORDER BY last_checked_at DESC, id DESC",
            (ONLINE,),
        )
        return [dict(row) for row in cur.fetchall()]

    def get_screenshot(self, app_id: int) -> bytes | None:
        row = self._conn.execute(
            "SELECT screenshot FROM apps WHERE id = ?", (app_id,)
        ).fetchone()
        return row["screenshot"] if row else None

    def get_scan_history(self, app_id: int) -> list[dict[str, Any]]:
        """Return up to :data:`HISTORY_LIMIT` entries for *app_id*, newest first."""
        cur = self._conn.execute(
            """
            SELECT id, app_id, status, response_time_ms, checked_at
              FROM scan_history
             WHERE app_id = ?
             ORDER BY id DESC
             LIMIT ?
            """,
            (app_id, HISTORY_LIMIT),
        )
        return [dict(row) for row in cur.fetchall()]

    def get_stats(self) -> dict[str, int]:
        """Return ``{total, online, offline, unknown}`` app counts."""
        stats = {"total": 0, ONLINE: 0, OFFLINE: 0, UNKNOWN: 0}
        cur = self._conn.execute("SELECT status, COUNT(*) AS n FROM apps GROUP BY status")
        for row in cur.fetchall():
            stats[row["status"]] = row["n"]
            stats["total"] += row["n"]
        return stats

    # ------------------------------------------------------------------ #
    # Helpers                                                              #
    # ------------------------------------------------------------------ #

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[None]:
        try:
            yield
            self._conn.commit()
        except sqlite3.Error as exc:
            self._conn.rollback()
            logger.error("%s failed: %s", operation, exc)
            raise PersistenceFailure(f"{operation} failed: {exc}") from exc
