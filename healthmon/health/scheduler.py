"""Health check scheduler — one global timer driving full check cycles.

States: Stopped (initial) and Running. ``start()`` runs one cycle right
away, then arms a repeating timer; ``stop()`` disarms it. Transitions are
serialized by an asyncio lock, and cycles never overlap.

Within a cycle every active service is probed in a thread pool, so probes
run concurrently, while results are persisted in registry order. A probe
crash or a failed insert drops that one record and the cycle carries on.

Stopping while a cycle is in flight does not abort it: the cycle is shielded
from the timer's cancellation and finishes in the background, so outstanding
probes still get their results written.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any

from healthmon.errors import StoreError
from healthmon.health.probe import HealthCheckResult, run_probe
from healthmon.health.store import ResultStore
from healthmon.registry import DEFAULT_SERVICES, Service

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 300  # seconds


class HealthScheduler:
    """Owns the polling timer and the check cycle for every active service."""

    def __init__(
        self,
        store: ResultStore,
        prober: Callable[[Service], HealthCheckResult] | None = None,
        interval: float = DEFAULT_INTERVAL,
        max_workers: int = 4,
        seed_services: Iterable[Service] | None = None,
    ) -> None:
        self.store = store
        self.prober = prober or run_probe
        self.interval = interval
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="probe")
        self._state_lock = asyncio.Lock()
        self._cycle_lock = asyncio.Lock()
        self._timer: asyncio.Task[None] | None = None
        self._inflight: asyncio.Task[list[HealthCheckResult]] | None = None
        self._running = False
        self.last_cycle_at: str | None = None

        self._bootstrap_registry(seed_services)

    def _bootstrap_registry(self, seed_services: Iterable[Service] | None) -> None:
        """Seed an empty registry. The insert is keyed on name, so it is safe to repeat."""
        if self.store.count_all() == 0:
            services = list(seed_services) if seed_services is not None else list(DEFAULT_SERVICES)
            self.store.seed_defaults(services)
            logger.info("Default services initialized (%d)", len(services))

    # ── State machine ─────────────────────────────────────────────────────

    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Run one cycle now, then arm the repeating timer. No-op when running."""
        async with self._state_lock:
            if self._running:
                logger.warning("Health monitoring is already running")
                return

            await self.run_cycle()

            self._running = True
            self._timer = asyncio.create_task(self._timer_loop(), name="health-timer")
            logger.info("Health monitoring started - checking every %ss", self.interval)

    async def stop(self) -> None:
        """Disarm the timer. An in-flight cycle is left to finish."""
        async with self._state_lock:
            self._running = False
            if self._timer is not None:
                self._timer.cancel()
                try:
                    await self._timer
                except asyncio.CancelledError:
                    pass
                self._timer = None
                logger.info("Health monitoring stopped")

    async def close(self) -> None:
        """Stop, wait for any in-flight cycle, release the probe pool."""
        await self.stop()
        if self._inflight is not None and not self._inflight.done():
            try:
                await self._inflight
            except Exception:
                logger.exception("In-flight check cycle failed during shutdown")
        self._executor.shutdown(wait=False)

    def status(self) -> dict[str, Any]:
        return {
            "isMonitoring": self._running,
            "interval_seconds": self.interval,
            "last_cycle_at": self.last_cycle_at,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    # ── Cycles ────────────────────────────────────────────────────────────

    async def _timer_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.interval)
            if not self._running:
                break
            self._inflight = asyncio.ensure_future(self.run_cycle())
            try:
                await asyncio.shield(self._inflight)
            except asyncio.CancelledError:
                logger.info("Timer cancelled mid-cycle; the cycle will finish in the background")
                raise
            except Exception:
                logger.exception("Check cycle failed")

    async def run_cycle(self) -> list[HealthCheckResult]:
        """Probe every active service once and persist the results.

        Returns the results that were stored.
        """
        async with self._cycle_lock:
            loop = asyncio.get_running_loop()
            try:
                services = await loop.run_in_executor(None, self.store.list_active_services)
            except StoreError:
                logger.exception("Error performing health checks: cannot list services")
                return []

            futures = [loop.run_in_executor(self._executor, self.prober, s) for s in services]

            stored: list[HealthCheckResult] = []
            for service, future in zip(services, futures):
                try:
                    result = await future
                except Exception:
                    logger.exception("Probe crashed for %s", service.name)
                    continue
                try:
                    await loop.run_in_executor(None, self.store.insert_result, result)
                except StoreError:
                    logger.exception("Failed to store health check result for %s", service.name)
                    continue
                stored.append(result)

            self.last_cycle_at = datetime.now(timezone.utc).isoformat()
            logger.info("Check cycle complete: %d/%d results stored", len(stored), len(services))
            return stored
