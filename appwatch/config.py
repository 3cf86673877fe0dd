"""Runtime configuration for appwatch.

Settings are read once from environment variables and passed explicitly to
every component that needs them.  Values that users change at runtime (the
probe target host) are persisted through :class:`ConfigStore` instead of
being written back into the process environment.
"""

from __future__ import annotations

import logging
import os
import sqlite3
from dataclasses import dataclass, field, replace
from pathlib import Path

logger = logging.getLogger(__name__)

# Ports that commonly speak something other than HTTP.  A transport error
# against one of these is too ambiguous to call the service offline.
DEFAULT_NON_HTTP_PORTS: frozenset[int] = frozenset({
    21,     # FTP
    22,     # SSH
    23,     # Telnet
    25,     # SMTP
    110,    # POP3
    143,    # IMAP
    465,    # SMTPS
    587,    # SMTP submission
    993,    # IMAPS
    995,    # POP3S
    1433,   # SQL Server
    1521,   # Oracle
    1883,   # MQTT
    3306,   # MySQL
    5432,   # PostgreSQL
    5433,   # PostgreSQL (alt)
    5672,   # AMQP
    6379,   # Redis
    8883,   # MQTT over TLS
    9042,   # Cassandra
    9092,   # Kafka
    11211,  # Memcached
    27017,  # MongoDB
})

TARGET_HOST_KEY = "target_host"


def _parse_ports(raw: str) -> frozenset[int]:
    ports: set[int] = set()
    for chunk in raw.split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        try:
            ports.add(int(chunk))
        except ValueError:
            logger.warning("Ignoring invalid port in NON_HTTP_PORTS: %r", chunk)
    return frozenset(ports)


@dataclass(frozen=True)
class Settings:
    """Immutable configuration snapshot."""

    data_dir: Path = Path("./data")
    host: str = "0.0.0.0"
    port: int = 3000
    target_host: str = "127.0.0.1"
    port_range_start: int = 1024
    port_range_end: int = 10000
    concurrency: int = 100
    timeout_ms: int = 2000
    scan_interval: float = 300.0
    pipeline_pause: float = 0.2
    non_http_ports: frozenset[int] = field(default_factory=lambda: DEFAULT_NON_HTTP_PORTS)
    ollama_url: str = "http://localhost:11434"
    ollama_model: str = "llama3.2"
    identify_timeout: float = 30.0
    initial_scan: bool = True

    @property
    def db_path(self) -> Path:
        return self.data_dir / "apps.db"

    @classmethod
    def from_env(cls) -> Settings:
        """Build settings from ``APPWATCH_*`` and related environment variables."""
        env = os.environ
        non_http = env.get("NON_HTTP_PORTS")
        return cls(
            data_dir=Path(env.get("APPWATCH_DATA_DIR", "./data")),
            host=env.get("APPWATCH_HOST", "0.0.0.0"),
            port=int(env.get("APPWATCH_PORT", "3000")),
            target_host=env.get("TARGET_HOST", "127.0.0.1"),
            port_range_start=int(env.get("PORT_RANGE_START", "1024")),
            port_range_end=int(env.get("PORT_RANGE_END", "10000")),
            concurrency=int(env.get("SCAN_CONCURRENCY", "100")),
            timeout_ms=int(env.get("SCAN_TIMEOUT_MS", "2000")),
            scan_interval=float(env.get("SCAN_INTERVAL", "300")),
            non_http_ports=_parse_ports(non_http) if non_http is not None else DEFAULT_NON_HTTP_PORTS,
            ollama_url=env.get("OLLAMA_URL", "http://localhost:11434"),
            ollama_model=env.get("OLLAMA_MODEL", "llama3.2"),
            identify_timeout=float(env.get("IDENTIFY_TIMEOUT", "30")),
            initial_scan=env.get("INITIAL_SCAN", "1").lower() not in ("0", "false", "no"),
        )

    def with_target_host(self, target_host: str) -> Settings:
        """Return a copy of these settings probing *target_host*."""
        return replace(self, target_host=target_host)


class ConfigStore:
    """Key/value persistence for runtime overrides (``settings`` table).

    Args:
        conn: An open :class:`sqlite3.Connection` with the appwatch schema.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def get(self, key: str) -> str | None:
        row = self._conn.execute(
            "SELECT value FROM settings WHERE key = ?", (key,)
        ).fetchone()
        return row["value"] if row else None

    def set(self, key: str, value: str) -> None:
        self._conn.execute(
            """
            INSERT INTO settings (key, value, updated_at)
            VALUES (?, ?, CURRENT_TIMESTAMP)
            ON CONFLICT(key) DO UPDATE SET
                value      = excluded.value,
                updated_at = CURRENT_TIMESTAMP
            """,
            (key, value),
        )
        self._conn.commit()

    def delete(self, key: str) -> None:
        self._conn.execute("DELETE FROM settings WHERE key = ?", (key,))
        self._conn.commit()

    def apply(self, settings: Settings) -> Settings:
        """Overlay persisted overrides on top of *settings*."""
        target_host = self.get(TARGET_HOST_KEY)
        if target_host:
            return settings.with_target_host(target_host)
        return settings
