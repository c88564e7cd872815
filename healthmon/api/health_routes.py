"""API routes for probe status and monitor control.

Endpoints:
  GET  /api/health/status      — latest result per active service
  GET  /api/health/uptime      — per-service uptime over ?hours= (default 24)
  GET  /api/health/monitoring  — whether the scheduler is running
  GET  /api/health/history     — raw probe log, ?service= &limit= &hours=
  POST /api/health/start       — start the scheduler (runs a cycle first)
  POST /api/health/stop        — stop the scheduler
  POST /api/health/check       — manual check; returns the latest status
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Query, Request

from healthmon.api.envelope import failure_message, ok
from healthmon.health.aggregation import AggregationEngine
from healthmon.health.scheduler import HealthScheduler

logger = logging.getLogger(__name__)

health_router = APIRouter(prefix="/health", tags=["health"])


def _engine(request: Request) -> AggregationEngine:
    return request.app.state.engine


def _scheduler(request: Request) -> HealthScheduler:
    return request.app.state.scheduler


# ── Status ───────────────────────────────────────────────────────────────────


@health_router.get("/status")
def get_status(request: Request) -> dict[str, Any]:
    with failure_message("Failed to retrieve health status"):
        data = _engine(request).recent_status()
    return ok(data, "Health status retrieved successfully")


@health_router.get("/uptime")
def get_uptime(request: Request, hours: int = Query(24, ge=1, le=8760)) -> dict[str, Any]:
    with failure_message("Failed to retrieve uptime statistics"):
        data = [u.to_dict() for u in _engine(request).uptime(hours)]
    return ok(data, f"Uptime statistics for last {hours} hours")


@health_router.get("/history")
def get_history(
    request: Request,
    service: str | None = None,
    limit: int = Query(100, ge=1, le=10_000),
    hours: int = Query(24, ge=1, le=8760),
) -> dict[str, Any]:
    with failure_message("Failed to retrieve health check history"):
        data = _engine(request).history(service=service, limit=limit, hours=hours)
    return ok(data, "Health check history retrieved successfully")


# ── Monitor control ──────────────────────────────────────────────────────────


@health_router.get("/monitoring")
def get_monitoring(request: Request) -> dict[str, Any]:
    status = _scheduler(request).status()
    state = "running" if status["isMonitoring"] else "stopped"
    return ok(status, f"Health monitoring is {state}")


@health_router.post("/start")
async def start_monitoring(request: Request) -> dict[str, Any]:
    with failure_message("Failed to start health monitoring"):
        await _scheduler(request).start()
    return ok(message="Health monitoring started successfully")


@health_router.post("/stop")
async def stop_monitoring(request: Request) -> dict[str, Any]:
    await _scheduler(request).stop()
    return ok(message="Health monitoring stopped successfully")


@health_router.post("/check")
def trigger_check(request: Request) -> dict[str, Any]:
    """Manual check. Reports the latest stored status; probing stays on the timer."""
    with failure_message("Failed to trigger health check"):
        data = _engine(request).recent_status()
    return ok(data, "Manual health check completed")
