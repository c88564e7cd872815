"""API routes for system-wide views derived from the probe log.

Endpoints (all GET, under /api/system):
  heartbeat?hours=                 — hourly up/down buckets, oldest first
  health                           — global 24h uptime and health band
  microservices                    — latest status joined with 24h uptime
  microservices/uptime?hours=      — per-service uptime
  events?limit=                    — online/offline narrative, newest first
  requests/stats?date=             — daily volume vs the day before
  requests/status-codes?date=      — status distribution for a day
  performance                      — simulated load snapshot
  performance/trends?hours=        — simulated hourly load samples
  errors/summary?hours=            — error totals, rate, trend
  errors/details?limit=&service=   — failed probes, newest first
  live                             — status + load snapshot
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any

from fastapi import APIRouter, Query, Request

from healthmon.api.envelope import failure_message, ok
from healthmon.health.aggregation import AggregationEngine

logger = logging.getLogger(__name__)

system_router = APIRouter(prefix="/system", tags=["system"])


def _engine(request: Request) -> AggregationEngine:
    return request.app.state.engine


# ── System health overview ───────────────────────────────────────────────────


@system_router.get("/heartbeat")
def system_heartbeat(request: Request, hours: int = Query(24, ge=1, le=720)) -> dict[str, Any]:
    with failure_message("Failed to retrieve system heartbeat data"):
        data = _engine(request).heartbeat(hours)
    return ok(data, f"System heartbeat data for last {hours} hours")


@system_router.get("/health")
def system_health(request: Request) -> dict[str, Any]:
    with failure_message("Failed to retrieve system health"):
        data = _engine(request).system_health()
    return ok(data, "System health status retrieved successfully")


# ── Microservices ────────────────────────────────────────────────────────────


@system_router.get("/microservices")
def microservices_status(request: Request) -> dict[str, Any]:
    with failure_message("Failed to retrieve microservices status"):
        data = _engine(request).microservices()
    return ok(data, "Microservices status retrieved successfully")


@system_router.get("/microservices/uptime")
def microservices_uptime(request: Request, hours: int = Query(24, ge=1, le=8760)) -> dict[str, Any]:
    with failure_message("Failed to retrieve microservices uptime"):
        data = [u.to_dict() for u in _engine(request).uptime(hours)]
    return ok(data, f"Microservices uptime statistics for last {hours} hours")


# ── Events & request logs ────────────────────────────────────────────────────


@system_router.get("/events")
def system_events(request: Request, limit: int = Query(50, ge=1, le=1000)) -> dict[str, Any]:
    with failure_message("Failed to retrieve system events"):
        data = _engine(request).events(limit)
    return ok(data, "System events retrieved successfully")


@system_router.get("/requests/stats")
def request_stats(
    request: Request, day: date | None = Query(None, alias="date"),
) -> dict[str, Any]:
    engine = _engine(request)
    day = day or engine.today()
    with failure_message("Failed to retrieve request statistics"):
        data = engine.request_stats(day)
    return ok(data, f"Request statistics for {day.isoformat()}")


@system_router.get("/requests/status-codes")
def status_codes(
    request: Request, day: date | None = Query(None, alias="date"),
) -> dict[str, Any]:
    engine = _engine(request)
    day = day or engine.today()
    with failure_message("Failed to retrieve status code distribution"):
        data = engine.status_distribution(day)
    return ok(data, f"HTTP status code distribution for {day.isoformat()}")


# ── Performance ──────────────────────────────────────────────────────────────


@system_router.get("/performance")
def performance(request: Request) -> dict[str, Any]:
    with failure_message("Failed to retrieve performance metrics"):
        data = _engine(request).performance()
    return ok(data, "Performance metrics retrieved successfully")


@system_router.get("/performance/trends")
def performance_trends(request: Request, hours: int = Query(24, ge=1, le=8760)) -> dict[str, Any]:
    with failure_message("Failed to retrieve performance trends"):
        data = _engine(request).performance_trends(hours)
    return ok(data, f"Performance trends for last {hours} hours")


# ── Errors ───────────────────────────────────────────────────────────────────


@system_router.get("/errors/summary")
def error_summary(request: Request, hours: int = Query(24, ge=1, le=8760)) -> dict[str, Any]:
    with failure_message("Failed to retrieve error summary"):
        data = _engine(request).error_summary(hours)
    return ok(data, f"Error summary for last {hours} hours")


@system_router.get("/errors/details")
def error_details(
    request: Request,
    limit: int = Query(100, ge=1, le=1000),
    service: str | None = None,
) -> dict[str, Any]:
    with failure_message("Failed to retrieve error details"):
        data = _engine(request).error_details(limit=limit, service=service)
    return ok(data, "Error details retrieved successfully")


# ── Live ─────────────────────────────────────────────────────────────────────


@system_router.get("/live")
def live_status(request: Request) -> dict[str, Any]:
    with failure_message("Failed to retrieve live system status"):
        data = _engine(request).live()
    return ok(data, "Live system status retrieved successfully")
