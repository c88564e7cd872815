"""Shared test fixtures."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from healthmon.health.probe import HealthCheckResult, ProbeStatus
from healthmon.health.store import ResultStore
from healthmon.registry import Service

NOW = datetime(2026, 3, 10, 12, 0, 0, tzinfo=timezone.utc)


def make_service(name: str, **kwargs) -> Service:
    return Service(
        name=name,
        url=kwargs.pop("url", f"http://{name}.test/health"),
        expected_response=kwargs.pop("expected_response", f'{{"status":"ok","service":"{name}"}}'),
        **kwargs,
    )


def make_result(
    service: str,
    status: ProbeStatus = ProbeStatus.OK,
    at: datetime = NOW,
    response_time: int | None = 100,
    error_message: str | None = None,
) -> HealthCheckResult:
    if error_message is None and status is ProbeStatus.TIMEOUT:
        error_message = "Request timeout"
    return HealthCheckResult(
        service_name=service,
        service_url=f"http://{service}.test/health",
        status=status,
        response_time=response_time,
        error_message=error_message,
        created_at=at,
    )


def ago(**kwargs) -> datetime:
    """A timestamp relative to the frozen NOW."""
    return NOW - timedelta(**kwargs)


@pytest.fixture
def store(tmp_path: Path) -> ResultStore:
    """ResultStore backed by a temp SQLite file."""
    return ResultStore(db_path=tmp_path / "test_health.db")


@pytest.fixture
def seeded_store(store: ResultStore) -> ResultStore:
    """Store with services alpha and beta registered."""
    store.seed_defaults([make_service("alpha"), make_service("beta")])
    return store
