"""Result store — SQLite-backed service registry and append-only probe log.

Tables:
  services       — registry, unique on ``name``
  health_checks  — one row per probe, never updated or deleted by the monitor
  recent_health_status (view) — latest health_checks row per service_name

Every operation opens its own connection (WAL mode), so concurrent readers
and the single scheduler writer never share a handle. A bounded semaphore
caps the number of connections open at once.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from healthmon.errors import StoreError
from healthmon.health.probe import HealthCheckResult
from healthmon.registry import Service

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).parent.parent.parent / "data"
DB_PATH = DATA_DIR / "health.db"

_SCHEMA = """
    CREATE TABLE IF NOT EXISTS services (
        id                INTEGER PRIMARY KEY AUTOINCREMENT,
        name              TEXT NOT NULL UNIQUE,
        url               TEXT NOT NULL,
        expected_response TEXT NOT NULL,
        is_active         INTEGER NOT NULL DEFAULT 1,
        check_interval    INTEGER NOT NULL DEFAULT 300,
        timeout           INTEGER NOT NULL DEFAULT 10000,
        created_at        TEXT NOT NULL,
        updated_at        TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS health_checks (
        id            INTEGER PRIMARY KEY AUTOINCREMENT,
        service_name  TEXT NOT NULL,
        service_url   TEXT NOT NULL,
        status        TEXT NOT NULL CHECK (status IN ('ok', 'error', 'timeout')),
        response_time INTEGER,
        response_body TEXT,
        error_message TEXT,
        created_at    TEXT NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_checks_service_time
        ON health_checks (service_name, created_at);

    CREATE INDEX IF NOT EXISTS idx_checks_time
        ON health_checks (created_at);

    CREATE VIEW IF NOT EXISTS recent_health_status AS
        SELECT
            hc.service_name,
            hc.service_url,
            hc.status        AS current_status,
            hc.response_time,
            hc.created_at    AS last_check,
            hc.response_body,
            hc.error_message
        FROM health_checks hc
        WHERE hc.id = (
            SELECT latest.id FROM health_checks latest
            WHERE latest.service_name = hc.service_name
            ORDER BY latest.created_at DESC, latest.id DESC
            LIMIT 1
        );
"""


def to_db_time(dt: datetime) -> str:
    """UTC text timestamp, lexically sortable: ``YYYY-MM-DD HH:MM:SS.fff``."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).replace(tzinfo=None).isoformat(
        sep=" ", timespec="milliseconds",
    )


class LogFilter(str, Enum):
    """Filter combinations accepted by the probe-log queries."""

    ALL = "all"
    BY_SERVICE = "by_service"

    @classmethod
    def for_service(cls, service: str | None) -> "LogFilter":
        return cls.BY_SERVICE if service else cls.ALL


_HISTORY_SQL = {
    LogFilter.ALL: (
        "SELECT * FROM health_checks "
        "WHERE created_at >= ? "
        "ORDER BY created_at DESC, id DESC LIMIT ?"
    ),
    LogFilter.BY_SERVICE: (
        "SELECT * FROM health_checks "
        "WHERE created_at >= ? AND service_name = ? "
        "ORDER BY created_at DESC, id DESC LIMIT ?"
    ),
}

_ERROR_LOG_SQL = {
    LogFilter.ALL: (
        "SELECT * FROM health_checks "
        "WHERE status != 'ok' AND created_at >= ? "
        "ORDER BY created_at DESC, id DESC LIMIT ?"
    ),
    LogFilter.BY_SERVICE: (
        "SELECT * FROM health_checks "
        "WHERE status != 'ok' AND created_at >= ? AND service_name = ? "
        "ORDER BY created_at DESC, id DESC LIMIT ?"
    ),
}


class ResultStore:
    """SQLite storage for the service registry and the probe log."""

    def __init__(self, db_path: Path | str | None = None, max_connections: int = 10) -> None:
        self._db_path = Path(db_path or DB_PATH)
        self._slots = threading.BoundedSemaphore(max_connections)
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreError(f"Cannot create data directory: {e}") from e
        self._init_db()

    @property
    def path(self) -> Path:
        return self._db_path

    @contextmanager
    def _conn(self) -> Iterator[sqlite3.Connection]:
        with self._slots:
            try:
                conn = sqlite3.connect(str(self._db_path), timeout=30)
            except sqlite3.Error as e:
                raise StoreError(f"Cannot open {self._db_path}: {e}") from e
            try:
                conn.row_factory = sqlite3.Row
                conn.execute("PRAGMA journal_mode=WAL")
                with conn:
                    yield conn
            except sqlite3.Error as e:
                raise StoreError(str(e)) from e
            finally:
                conn.close()

    def _init_db(self) -> None:
        with self._conn() as conn:
            conn.executescript(_SCHEMA)

    def verify(self) -> None:
        """Round-trip a trivial query; raises StoreError when unreachable."""
        with self._conn() as conn:
            conn.execute("SELECT 1").fetchone()

    # ── Registry ──────────────────────────────────────────────────────────

    def count_all(self) -> int:
        with self._conn() as conn:
            return conn.execute("SELECT COUNT(*) FROM services").fetchone()[0]

    def list_active_services(self) -> list[Service]:
        """Active services ordered by name."""
        with self._conn() as conn:
            rows = conn.execute(
                "SELECT * FROM services WHERE is_active = 1 ORDER BY name",
            ).fetchall()
        return [Service.from_row(dict(r)) for r in rows]

    def list_services(self) -> list[Service]:
        with self._conn() as conn:
            rows = conn.execute("SELECT * FROM services ORDER BY name").fetchall()
        return [Service.from_row(dict(r)) for r in rows]

    def count_active(self) -> int:
        with self._conn() as conn:
            return conn.execute(
                "SELECT COUNT(*) FROM services WHERE is_active = 1",
            ).fetchone()[0]

    def seed_defaults(self, services: Iterable[Service]) -> int:
        """Insert services keyed on name; existing rows are left untouched.

        Returns the number of rows actually inserted.
        """
        now = to_db_time(datetime.now(timezone.utc))
        inserted = 0
        with self._conn() as conn:
            for s in services:
                cur = conn.execute(
                    "INSERT INTO services "
                    "(name, url, expected_response, is_active, check_interval, timeout, "
                    " created_at, updated_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?) "
                    "ON CONFLICT(name) DO NOTHING",
                    (s.name, s.url, s.expected_response, int(s.is_active),
                     s.check_interval, s.timeout, now, now),
                )
                inserted += cur.rowcount
        if inserted:
            logger.info("Seeded %d services into registry", inserted)
        return inserted

    def add_service(self, service: Service) -> None:
        """Administrative insert. Raises StoreError if the name is taken."""
        now = to_db_time(datetime.now(timezone.utc))
        with self._conn() as conn:
            try:
                conn.execute(
                    "INSERT INTO services "
                    "(name, url, expected_response, is_active, check_interval, timeout, "
                    " created_at, updated_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                    (service.name, service.url, service.expected_response,
                     int(service.is_active), service.check_interval, service.timeout,
                     now, now),
                )
            except sqlite3.IntegrityError as e:
                raise StoreError(f"Service already exists: {service.name}") from e
        logger.info("Added service '%s' to registry", service.name)

    def set_active(self, name: str, active: bool) -> bool:
        """Toggle a service in or out of the probing set. False if unknown."""
        with self._conn() as conn:
            cur = conn.execute(
                "UPDATE services SET is_active = ?, updated_at = ? WHERE name = ?",
                (int(active), to_db_time(datetime.now(timezone.utc)), name),
            )
        return cur.rowcount > 0

    # ── Probe log ─────────────────────────────────────────────────────────

    def insert_result(self, result: HealthCheckResult) -> None:
        with self._conn() as conn:
            conn.execute(
                "INSERT INTO health_checks "
                "(service_name, service_url, status, response_time, response_body, "
                " error_message, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    result.service_name, result.service_url, result.status.value,
                    result.response_time, result.response_body, result.error_message,
                    to_db_time(result.created_at),
                ),
            )

    def recent_status(self) -> list[dict[str, Any]]:
        """Latest result per active service; never-checked services have nulls."""
        with self._conn() as conn:
            rows = conn.execute(
                "SELECT "
                "  s.name AS service_name, s.url AS service_url, "
                "  rhs.current_status, rhs.response_time, rhs.last_check, "
                "  rhs.response_body, rhs.error_message "
                "FROM services s "
                "LEFT JOIN recent_health_status rhs ON rhs.service_name = s.name "
                "WHERE s.is_active = 1 "
                "ORDER BY s.name",
            ).fetchall()
        return [dict(r) for r in rows]

    def history(
        self, since: datetime, limit: int = 100, service: str | None = None,
    ) -> list[dict[str, Any]]:
        """Raw probe log since *since*, newest first."""
        return self._log_query(_HISTORY_SQL, since, limit, service)

    def error_log(
        self, since: datetime, limit: int = 100, service: str | None = None,
    ) -> list[dict[str, Any]]:
        """Non-ok probe records since *since*, newest first."""
        return self._log_query(_ERROR_LOG_SQL, since, limit, service)

    def _log_query(
        self,
        variants: dict[LogFilter, str],
        since: datetime,
        limit: int,
        service: str | None,
    ) -> list[dict[str, Any]]:
        log_filter = LogFilter.for_service(service)
        if log_filter is LogFilter.BY_SERVICE:
            params: tuple[Any, ...] = (to_db_time(since), service, limit)
        else:
            params = (to_db_time(since), limit)
        with self._conn() as conn:
            rows = conn.execute(variants[log_filter], params).fetchall()
        return [dict(r) for r in rows]

    # ── Aggregate reads ───────────────────────────────────────────────────

    def window_counts(self, since: datetime, until: datetime | None = None) -> dict[str, Any]:
        """Totals over ``[since, until)`` (open-ended when *until* is None)."""
        sql = (
            "SELECT "
            "  COUNT(*) AS total_checks, "
            "  COUNT(CASE WHEN status = 'ok' THEN 1 END) AS successful_checks, "
            "  COUNT(CASE WHEN status != 'ok' THEN 1 END) AS failed_checks, "
            "  COUNT(CASE WHEN status = 'timeout' THEN 1 END) AS timeout_checks, "
            "  COUNT(CASE WHEN status = 'error' THEN 1 END) AS error_checks, "
            "  AVG(response_time) AS avg_response_time "
            "FROM health_checks WHERE created_at >= ?"
        )
        params: list[Any] = [to_db_time(since)]
        if until is not None:
            sql += " AND created_at < ?"
            params.append(to_db_time(until))
        with self._conn() as conn:
            row = conn.execute(sql, params).fetchone()
        return dict(row)

    def uptime_rows(self, since: datetime) -> list[dict[str, Any]]:
        """Per-service totals since *since*; services without checks are absent."""
        with self._conn() as conn:
            rows = conn.execute(
                "SELECT "
                "  service_name, "
                "  COUNT(*) AS total_checks, "
                "  COUNT(CASE WHEN status = 'ok' THEN 1 END) AS successful_checks, "
                "  AVG(response_time) AS avg_response_time, "
                "  MIN(created_at) AS first_check, "
                "  MAX(created_at) AS last_check "
                "FROM health_checks WHERE created_at >= ? "
                "GROUP BY service_name ORDER BY service_name",
                (to_db_time(since),),
            ).fetchall()
        return [dict(r) for r in rows]

    def error_counts_by_service(self, since: datetime) -> list[dict[str, Any]]:
        with self._conn() as conn:
            rows = conn.execute(
                "SELECT service_name, COUNT(*) AS error_count "
                "FROM health_checks WHERE status != 'ok' AND created_at >= ? "
                "GROUP BY service_name ORDER BY error_count DESC, service_name",
                (to_db_time(since),),
            ).fetchall()
        return [dict(r) for r in rows]

    def status_counts(
        self, since: datetime, until: datetime | None = None, errors_only: bool = False,
    ) -> list[dict[str, Any]]:
        """Record count per status over ``[since, until)``, most frequent first."""
        sql = "SELECT status, COUNT(*) AS count FROM health_checks WHERE created_at >= ?"
        params: list[Any] = [to_db_time(since)]
        if until is not None:
            sql += " AND created_at < ?"
            params.append(to_db_time(until))
        if errors_only:
            sql += " AND status != 'ok'"
        sql += " GROUP BY status ORDER BY count DESC, status"
        with self._conn() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [dict(r) for r in rows]

    def hourly_volume(self, since: datetime, limit: int) -> list[dict[str, Any]]:
        """Check volume grouped by clock hour, newest hour first."""
        with self._conn() as conn:
            rows = conn.execute(
                "SELECT "
                "  strftime('%Y-%m-%d %H:00:00', created_at) AS hour, "
                "  COUNT(*) AS total_checks, "
                "  AVG(response_time) AS avg_response_time, "
                "  COUNT(CASE WHEN status = 'ok' THEN 1 END) AS successful_checks, "
                "  COUNT(CASE WHEN status != 'ok' THEN 1 END) AS failed_checks "
                "FROM health_checks WHERE created_at >= ? "
                "GROUP BY hour ORDER BY hour DESC LIMIT ?",
                (to_db_time(since), limit),
            ).fetchall()
        return [dict(r) for r in rows]

    # ── Maintenance ───────────────────────────────────────────────────────

    def cleanup_old(self, days: int = 30) -> int:
        """Remove probe records older than N days."""
        cutoff = datetime.now(timezone.utc) - timedelta(days=days)
        with self._conn() as conn:
            cur = conn.execute(
                "DELETE FROM health_checks WHERE created_at < ?", (to_db_time(cutoff),),
            )
        logger.info("Pruned %d health check records older than %d days", cur.rowcount, days)
        return cur.rowcount
