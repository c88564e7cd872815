"""Load indicators for the performance endpoints.

The monitor has no real view of the target services' hosts, so the default
source is SIMULATED: every figure is derived deterministically from probe
volume and failure counts. These are approximations, not measured telemetry.
Any object implementing :class:`MetricsSource` can be handed to the
aggregation engine instead.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol


@dataclass
class CheckVolume:
    """Probe counts over some window, the only input a metrics source gets."""

    total_checks: int = 0
    successful_checks: int = 0
    failed_checks: int = 0

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "CheckVolume":
        return cls(
            total_checks=row.get("total_checks") or 0,
            successful_checks=row.get("successful_checks") or 0,
            failed_checks=row.get("failed_checks") or 0,
        )


class MetricsSource(Protocol):
    def snapshot(self, volume: CheckVolume) -> dict[str, Any]:
        """Current load figures; keys: cpu_usage, memory_usage,
        active_connections, queue_depth, database_connections, cache_hit_rate."""
        ...

    def trend_point(self, volume: CheckVolume) -> dict[str, Any]:
        """One hourly trend sample; keys: cpu_usage, memory_usage,
        active_connections, queue_depth, cache_hit_rate."""
        ...


def _clamp(value: float, low: float, high: float) -> float:
    return min(high, max(low, value))


class SimulatedMetrics:
    """Deterministic stand-in figures computed from check volume."""

    memory_total_gb = 8

    def snapshot(self, volume: CheckVolume) -> dict[str, Any]:
        total = volume.total_checks
        load = _clamp(total / 100 * 10 + 30, 20, 100) if total else 30
        return {
            "cpu_usage": round(load),
            "memory_usage": {
                "used": f"{round(total / 100 * 2 + 2)}GB",
                "total": f"{self.memory_total_gb}GB",
                "percentage": round(load),
            },
            "active_connections": max(100, total * 2),
            "queue_depth": max(0, volume.failed_checks * 3),
            "database_connections": round(_clamp(total / 10, 10, 50)),
            "cache_hit_rate": self._cache_hit_rate(volume),
        }

    def trend_point(self, volume: CheckVolume) -> dict[str, Any]:
        total = volume.total_checks
        load = _clamp(total / 10 + 30, 20, 100) if total else 30
        return {
            "cpu_usage": round(load),
            "memory_usage": round(load),
            "active_connections": max(100, total * 2),
            "queue_depth": max(0, volume.failed_checks * 3),
            "cache_hit_rate": self._cache_hit_rate(volume),
        }

    @staticmethod
    def _cache_hit_rate(volume: CheckVolume) -> int:
        if not volume.successful_checks:
            return 90
        return round(_clamp(volume.successful_checks / volume.total_checks * 100, 80, 100))
