"""Aggregation engine — uptime, error and performance views over the probe log.

Pure read/derive: nothing here is cached or persisted. Every figure is
computed from whatever history the store holds at query time.

Two different "no data" conventions are intentional:
  - per-service uptime omits services with no checks in the window;
  - system health reports 100% uptime when the window holds no checks.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import date, datetime, time, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from healthmon.health.metrics import CheckVolume, MetricsSource, SimulatedMetrics
from healthmon.health.probe import ProbeStatus
from healthmon.health.store import ResultStore

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_HOURS = 24
CRITICAL_BELOW = 95.0
WARNING_BELOW = 99.0

STATUS_CODES: dict[str, tuple[str, str]] = {
    ProbeStatus.OK.value: ("200", "Success"),
    ProbeStatus.ERROR.value: ("500", "Internal Server Error"),
    ProbeStatus.TIMEOUT.value: ("408", "Request Timeout"),
}
UNKNOWN_STATUS_CODE = ("500", "Unknown Error")
DEFAULT_ERROR_CODE = ("500", "Internal Server Error")


def round2(value: float) -> float:
    """Round half-up to two decimals."""
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def percentage(part: int, whole: int) -> float:
    return round2(part * 100 / whole) if whole else 0.0


def error_code_for(status: str) -> tuple[str, str]:
    """Code/description for a non-ok status: timeouts are 408, all else 500."""
    if status == ProbeStatus.TIMEOUT.value:
        return STATUS_CODES[ProbeStatus.TIMEOUT.value]
    return DEFAULT_ERROR_CODE


def health_band(uptime: float) -> str:
    if uptime < CRITICAL_BELOW:
        return "critical"
    if uptime < WARNING_BELOW:
        return "warning"
    return "healthy"


@dataclass
class ServiceUptime:
    """Windowed uptime figures for one service."""

    service_name: str
    total_checks: int
    successful_checks: int
    uptime_percentage: float
    avg_response_time: float | None
    first_check: str | None
    last_check: str | None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class AggregationEngine:
    """Derives health views from the result store."""

    def __init__(
        self,
        store: ResultStore,
        metrics: MetricsSource | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.metrics = metrics or SimulatedMetrics()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def now(self) -> datetime:
        return self._clock()

    def _since(self, hours: int) -> datetime:
        return self.now() - timedelta(hours=hours)

    # ── Status & uptime ───────────────────────────────────────────────────

    def recent_status(self) -> list[dict[str, Any]]:
        return self.store.recent_status()

    def uptime(self, hours: int = DEFAULT_WINDOW_HOURS) -> list[ServiceUptime]:
        """Per-service uptime over the trailing window, services ordered by name."""
        result = []
        for row in self.store.uptime_rows(self._since(hours)):
            total = row["total_checks"]
            avg = row["avg_response_time"]
            result.append(ServiceUptime(
                service_name=row["service_name"],
                total_checks=total,
                successful_checks=row["successful_checks"],
                uptime_percentage=percentage(row["successful_checks"], total),
                avg_response_time=round2(avg) if avg is not None else None,
                first_check=row["first_check"],
                last_check=row["last_check"],
            ))
        return result

    def system_health(self) -> dict[str, Any]:
        """Global uptime over the last 24h, banded into healthy/warning/critical."""
        counts = self.store.window_counts(self._since(DEFAULT_WINDOW_HOURS))
        total = counts["total_checks"]
        uptime = percentage(counts["successful_checks"], total) if total else 100.0

        healthy = sum(
            1 for s in self.store.recent_status()
            if s["current_status"] == ProbeStatus.OK.value
        )
        return {
            "status": health_band(uptime),
            "uptime": uptime,
            "total_services": self.store.count_active(),
            "healthy_services": healthy,
            "last_check": self.now().isoformat(),
        }

    def heartbeat(self, hours: int = DEFAULT_WINDOW_HOURS) -> list[dict[str, Any]]:
        """One entry per trailing hour, oldest first.

        Bucket *i* covers ``[now - (i+1)h, now - ih)`` and is labelled by its
        end time. An empty bucket counts as up.
        """
        now = self.now()
        buckets = []
        for i in range(hours - 1, -1, -1):
            end = now - timedelta(hours=i)
            start = end - timedelta(hours=1)
            counts = self.store.window_counts(start, end)
            total = counts["total_checks"]
            ok = counts["successful_checks"]
            buckets.append({
                "hour": end.strftime("%H:%M"),
                "status": 1 if total == 0 or ok / total > 0.5 else 0,
                "requests": total,
            })
        return buckets

    def microservices(self) -> list[dict[str, Any]]:
        """Recent status joined with 24h uptime for every active service."""
        uptime_by_name = {
            u.service_name: u.uptime_percentage for u in self.uptime(DEFAULT_WINDOW_HOURS)
        }
        return [
            {
                "name": row["service_name"],
                "status": row["current_status"] or "unknown",
                "uptime": uptime_by_name.get(row["service_name"], 0),
                "last_check": row["last_check"],
                "response_time": row["response_time"],
                "url": row["service_url"],
            }
            for row in self.store.recent_status()
        ]

    # ── Raw log views ─────────────────────────────────────────────────────

    def history(
        self, service: str | None = None, limit: int = 100, hours: int = DEFAULT_WINDOW_HOURS,
    ) -> list[dict[str, Any]]:
        return self.store.history(self._since(hours), limit=limit, service=service)

    def events(self, limit: int = 50) -> list[dict[str, Any]]:
        """Online/offline narrative, one event per probe in the last 24h."""
        events = []
        for row in self.store.history(self._since(DEFAULT_WINDOW_HOURS), limit=limit):
            up = row["status"] == ProbeStatus.OK.value
            events.append({
                "timestamp": row["created_at"],
                "event": f"{row['service_name']}: {'Service Online' if up else 'Service Offline'}",
                "status": "up" if up else "down",
                "duration": None,
                "service": row["service_name"],
            })
        return events

    def error_details(self, limit: int = 100, service: str | None = None) -> list[dict[str, Any]]:
        """Failed probes in the last 24h, newest first."""
        return [
            {
                "timestamp": row["created_at"],
                "service": row["service_name"],
                "error_code": error_code_for(row["status"])[0],
                "error_message": row["error_message"] or "Unknown error",
                "request_url": row["service_url"],
                "response_time": row["response_time"],
            }
            for row in self.store.error_log(
                self._since(DEFAULT_WINDOW_HOURS), limit=limit, service=service,
            )
        ]

    # ── Errors ────────────────────────────────────────────────────────────

    def error_summary(self, hours: int = DEFAULT_WINDOW_HOURS) -> dict[str, Any]:
        now = self.now()
        since = now - timedelta(hours=hours)
        counts = self.store.window_counts(since)
        total = counts["total_checks"]
        errors = counts["failed_checks"]

        previous = self.store.window_counts(now - timedelta(hours=hours * 2), since)
        previous_errors = previous["failed_checks"]
        if errors < previous_errors:
            trend = "decreasing"
        elif errors > previous_errors:
            trend = "increasing"
        else:
            trend = "stable"

        by_status = self.store.status_counts(since, errors_only=True)
        code, description = error_code_for(by_status[0]["status"]) if by_status else DEFAULT_ERROR_CODE

        return {
            "total_errors": errors,
            "error_rate": percentage(errors, total),
            "timeout_errors": counts["timeout_checks"],
            "connection_errors": counts["error_checks"],
            "most_common_error": f"{code} {description}",
            "error_trend": trend,
            "errors_by_service": [
                {
                    "service_name": row["service_name"],
                    "error_count": row["error_count"],
                    "error_rate": percentage(row["error_count"], total),
                }
                for row in self.store.error_counts_by_service(since)
            ],
        }

    # ── Calendar-day views ────────────────────────────────────────────────

    def today(self) -> date:
        return self.now().astimezone(timezone.utc).date()

    @staticmethod
    def _day_bounds(day: date) -> tuple[datetime, datetime]:
        start = datetime.combine(day, time.min, tzinfo=timezone.utc)
        return start, start + timedelta(days=1)

    def status_distribution(self, day: date | None = None) -> list[dict[str, Any]]:
        """Per-status share of one UTC calendar day, most frequent first."""
        start, end = self._day_bounds(day or self.today())
        rows = self.store.status_counts(start, end)
        day_total = sum(r["count"] for r in rows)
        result = []
        for row in rows:
            code, description = STATUS_CODES.get(row["status"], UNKNOWN_STATUS_CODE)
            result.append({
                "code": code,
                "description": description,
                "count": row["count"],
                "percentage": percentage(row["count"], day_total),
            })
        return result

    def request_stats(self, day: date | None = None) -> dict[str, Any]:
        """Volume, errors and latency for a day, compared with the day before."""
        day = day or self.today()
        counts = self.store.window_counts(*self._day_bounds(day))
        before = self.store.window_counts(*self._day_bounds(day - timedelta(days=1)))

        total = counts["total_checks"]
        avg = counts["avg_response_time"] or 0
        prev_total = before["total_checks"]
        prev_avg = before["avg_response_time"] or 0

        return {
            "requests_today": total,
            "errors_today": counts["failed_checks"],
            "error_rate": percentage(counts["failed_checks"], total),
            "avg_response_time": round(avg),
            "response_time_change": round(avg - prev_avg) if prev_avg > 0 else 0,
            "requests_change": round((total - prev_total) / prev_total * 100) if prev_total else 0,
        }

    # ── Performance (simulated by default) ────────────────────────────────

    def performance(self) -> dict[str, Any]:
        """Load snapshot from the last hour of probe volume."""
        counts = self.store.window_counts(self._since(1))
        return self.metrics.snapshot(CheckVolume.from_row(counts))

    def performance_trends(self, hours: int = DEFAULT_WINDOW_HOURS) -> list[dict[str, Any]]:
        """One sample per clock hour that saw checks, newest first."""
        return [
            {"timestamp": row["hour"], **self.metrics.trend_point(CheckVolume.from_row(row))}
            for row in self.store.hourly_volume(self._since(hours), limit=hours)
        ]

    def live(self) -> dict[str, Any]:
        """Recent per-service status with the health band and a load snapshot."""
        perf = self.performance()
        memory = perf["memory_usage"]
        return {
            "timestamp": self.now().isoformat(),
            "system_status": self.system_health()["status"],
            "services": [
                {
                    "name": row["service_name"],
                    "status": row["current_status"] or "unknown",
                    "response_time": row["response_time"],
                    "last_check": row["last_check"],
                }
                for row in self.store.recent_status()
            ],
            "performance": {
                "cpu": perf["cpu_usage"],
                "memory": memory["percentage"] if isinstance(memory, dict) else memory,
                "connections": perf["active_connections"],
            },
        }
