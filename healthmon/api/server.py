"""FastAPI server for the health monitor."""

from __future__ import annotations

import functools
import logging
import time
from collections.abc import AsyncIterator, Callable, Iterable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from healthmon import __version__
from healthmon.api.envelope import (
    QueryFailed,
    http_error_handler,
    query_failed_handler,
    unhandled_error_handler,
    validation_error_handler,
)
from healthmon.api.health_routes import health_router
from healthmon.api.system_routes import system_router
from healthmon.config import settings
from healthmon.errors import BootstrapError, StoreError
from healthmon.health.aggregation import AggregationEngine
from healthmon.health.probe import HealthCheckResult, run_probe
from healthmon.health.scheduler import HealthScheduler
from healthmon.health.store import ResultStore
from healthmon.registry import Service, load_seed_services

logger = logging.getLogger(__name__)

SERVICE_NAME = "muda-pay-health-monitor"


@dataclass
class AppOptions:
    """Overrides for the resources the lifespan builds (tests, embedding)."""

    store: ResultStore | None = None
    prober: Callable[[Service], HealthCheckResult] | None = None
    seed_services: Iterable[Service] | None = None
    interval: float | None = None
    autostart: bool | None = None


# ── Request logging ──────────────────────────────────────────────────────────


class RequestLogMiddleware(BaseHTTPMiddleware):
    """Log every inbound request with its client and user agent."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        logger.info(
            "%s %s (ip=%s, ua=%s)",
            request.method,
            request.url.path,
            request.client.host if request.client else "-",
            request.headers.get("User-Agent", "-"),
        )
        return await call_next(request)


# ── Lifespan ─────────────────────────────────────────────────────────────────


def _open_store(opts: AppOptions) -> ResultStore:
    try:
        store = opts.store or ResultStore(settings.db_path, settings.db_max_connections)
        store.verify()
    except StoreError as e:
        logger.error("Database connection failed. Exiting...")
        raise BootstrapError(f"Store unreachable: {e}") from e
    return store


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Verify the store, build scheduler + engine, optionally start monitoring."""
    opts: AppOptions = app.state.options
    store = _open_store(opts)

    prober = opts.prober or functools.partial(
        run_probe,
        user_agent=settings.probe_user_agent,
        body_limit=settings.probe_body_limit,
    )
    seed = opts.seed_services
    if seed is None:
        seed = load_seed_services(settings.services_file)

    try:
        scheduler = HealthScheduler(
            store,
            prober=prober,
            interval=opts.interval or settings.check_interval_seconds,
            max_workers=settings.probe_workers,
            seed_services=seed,
        )
    except StoreError as e:
        raise BootstrapError(f"Failed to initialize service registry: {e}") from e

    app.state.store = store
    app.state.scheduler = scheduler
    app.state.engine = AggregationEngine(store)

    autostart = settings.autostart_monitoring if opts.autostart is None else opts.autostart
    if autostart:
        await scheduler.start()

    logger.info("Health monitor API ready (store=%s)", store.path)

    yield

    # Shutdown
    await scheduler.close()


# ── App factory ──────────────────────────────────────────────────────────────


def create_app(
    store: ResultStore | None = None,
    prober: Callable[[Service], HealthCheckResult] | None = None,
    seed_services: Iterable[Service] | None = None,
    interval: float | None = None,
    autostart: bool | None = None,
) -> FastAPI:
    app = FastAPI(
        title="MUDA Pay Health Monitor",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.options = AppOptions(
        store=store,
        prober=prober,
        seed_services=seed_services,
        interval=interval,
        autostart=autostart,
    )
    started = time.monotonic()

    app.add_middleware(RequestLogMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    app.add_exception_handler(QueryFailed, query_failed_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(health_router, prefix="/api")
    app.include_router(system_router, prefix="/api")

    @app.get("/health")
    async def liveness() -> dict[str, Any]:
        """Liveness of the monitor process itself."""
        return {
            "status": "ok",
            "service": SERVICE_NAME,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime": round(time.monotonic() - started, 3),
        }

    return app


app = create_app()
