"""Tests for the FastAPI routes."""

from __future__ import annotations

import threading

import pytest
from fastapi.testclient import TestClient

from healthmon.api.server import create_app
from healthmon.errors import BootstrapError, StoreError
from healthmon.health.probe import HealthCheckResult, ProbeStatus
from healthmon.health.store import ResultStore
from healthmon.registry import Service

from tests.conftest import make_service

SERVICES = [make_service("alpha"), make_service("beta")]


class CountingProber:
    """alpha answers ok, beta times out."""

    def __init__(self) -> None:
        self.calls = 0
        self._lock = threading.Lock()

    def __call__(self, service: Service) -> HealthCheckResult:
        with self._lock:
            self.calls += 1
        if service.name == "beta":
            return HealthCheckResult(
                service_name=service.name, service_url=service.url,
                status=ProbeStatus.TIMEOUT, response_time=10_000,
                error_message="Request timeout",
            )
        return HealthCheckResult(
            service_name=service.name, service_url=service.url,
            status=ProbeStatus.OK, response_time=42,
            response_body=service.expected_response,
        )


class BrokenReadStore(ResultStore):
    def recent_status(self):
        raise StoreError("disk I/O error at /var/secret/health.db")

    def window_counts(self, since, until=None):
        raise StoreError("disk I/O error at /var/secret/health.db")


class UnreachableStore(ResultStore):
    def verify(self) -> None:
        raise StoreError("unable to open database file")


@pytest.fixture
def prober() -> CountingProber:
    return CountingProber()


@pytest.fixture
def client(store: ResultStore, prober: CountingProber):
    app = create_app(
        store=store, prober=prober, seed_services=SERVICES, interval=3600, autostart=False,
    )
    with TestClient(app) as c:
        yield c


@pytest.fixture
def checked_client(client: TestClient) -> TestClient:
    """Client after one start/stop, so each service has one record."""
    assert client.post("/api/health/start").status_code == 200
    assert client.post("/api/health/stop").status_code == 200
    return client


# ── Health routes ────────────────────────────────────────────────────────────


class TestHealthRoutes:
    def test_status_before_any_check(self, client: TestClient) -> None:
        resp = client.get("/api/health/status")
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["message"] == "Health status retrieved successfully"
        assert [s["service_name"] for s in body["data"]] == ["alpha", "beta"]
        assert all(s["current_status"] is None for s in body["data"])

    def test_start_runs_a_cycle(self, client: TestClient, prober: CountingProber) -> None:
        resp = client.post("/api/health/start")
        assert resp.json() == {"success": True, "message": "Health monitoring started successfully"}
        assert prober.calls == 2

        monitoring = client.get("/api/health/monitoring").json()
        assert monitoring["data"]["isMonitoring"] is True
        assert monitoring["message"] == "Health monitoring is running"

        statuses = {s["service_name"]: s["current_status"]
                    for s in client.get("/api/health/status").json()["data"]}
        assert statuses == {"alpha": "ok", "beta": "timeout"}

    def test_start_twice_is_noop(self, client: TestClient, prober: CountingProber) -> None:
        client.post("/api/health/start")
        resp = client.post("/api/health/start")
        assert resp.status_code == 200
        assert prober.calls == 2

    def test_stop(self, checked_client: TestClient) -> None:
        monitoring = checked_client.get("/api/health/monitoring").json()
        assert monitoring["data"]["isMonitoring"] is False
        assert monitoring["message"] == "Health monitoring is stopped"
        assert checked_client.post("/api/health/stop").status_code == 200

    def test_uptime(self, checked_client: TestClient) -> None:
        body = checked_client.get("/api/health/uptime?hours=24").json()
        assert body["message"] == "Uptime statistics for last 24 hours"
        rows = {r["service_name"]: r for r in body["data"]}
        assert rows["alpha"]["uptime_percentage"] == 100.0
        assert rows["beta"]["uptime_percentage"] == 0.0
        assert rows["alpha"]["avg_response_time"] == 42.0

    def test_history_filter(self, checked_client: TestClient) -> None:
        body = checked_client.get("/api/health/history", params={"service": "beta"}).json()
        assert [r["service_name"] for r in body["data"]] == ["beta"]
        assert body["data"][0]["error_message"] == "Request timeout"
        assert len(checked_client.get("/api/health/history").json()["data"]) == 2

    def test_manual_check_returns_status(self, checked_client: TestClient, prober) -> None:
        body = checked_client.post("/api/health/check").json()
        assert body["message"] == "Manual health check completed"
        assert len(body["data"]) == 2
        assert prober.calls == 2

    def test_autostart(self, store: ResultStore, prober: CountingProber) -> None:
        app = create_app(store=store, prober=prober, seed_services=SERVICES,
                         interval=3600, autostart=True)
        with TestClient(app) as c:
            assert c.get("/api/health/monitoring").json()["data"]["isMonitoring"] is True
        assert prober.calls == 2


# ── System routes ────────────────────────────────────────────────────────────


class TestSystemRoutes:
    def test_health(self, checked_client: TestClient) -> None:
        data = checked_client.get("/api/system/health").json()["data"]
        assert data["uptime"] == 50.0
        assert data["status"] == "critical"
        assert data["total_services"] == 2
        assert data["healthy_services"] == 1

    def test_heartbeat(self, checked_client: TestClient) -> None:
        body = checked_client.get("/api/system/heartbeat?hours=6").json()
        assert body["message"] == "System heartbeat data for last 6 hours"
        assert len(body["data"]) == 6
        assert body["data"][-1]["requests"] == 2

    def test_microservices(self, checked_client: TestClient) -> None:
        data = checked_client.get("/api/system/microservices").json()["data"]
        assert [(m["name"], m["status"], m["uptime"]) for m in data] == [
            ("alpha", "ok", 100.0), ("beta", "timeout", 0.0),
        ]
        uptime = checked_client.get("/api/system/microservices/uptime").json()["data"]
        assert len(uptime) == 2

    def test_events(self, checked_client: TestClient) -> None:
        data = checked_client.get("/api/system/events?limit=1").json()["data"]
        assert len(data) == 1

    def test_errors(self, checked_client: TestClient) -> None:
        summary = checked_client.get("/api/system/errors/summary").json()["data"]
        assert summary["total_errors"] == 1
        assert summary["error_rate"] == 50.0
        assert summary["most_common_error"] == "408 Request Timeout"

        details = checked_client.get("/api/system/errors/details").json()["data"]
        assert [(d["service"], d["error_code"]) for d in details] == [("beta", "408")]
        assert details[0]["request_url"] == "http://beta.test/health"

    def test_request_stats_today(self, checked_client: TestClient) -> None:
        data = checked_client.get("/api/system/requests/stats").json()["data"]
        assert data["requests_today"] == 2
        assert data["errors_today"] == 1

    def test_status_codes_for_date(self, checked_client: TestClient) -> None:
        body = checked_client.get("/api/system/requests/status-codes?date=2020-01-01").json()
        assert body["data"] == []
        assert body["message"] == "HTTP status code distribution for 2020-01-01"

    def test_performance(self, checked_client: TestClient) -> None:
        perf = checked_client.get("/api/system/performance").json()["data"]
        assert perf["queue_depth"] == 3
        trends = checked_client.get("/api/system/performance/trends?hours=2").json()["data"]
        assert len(trends) == 1

    def test_live(self, checked_client: TestClient) -> None:
        data = checked_client.get("/api/system/live").json()["data"]
        assert data["system_status"] == "critical"
        assert [s["status"] for s in data["services"]] == ["ok", "timeout"]
        assert set(data["performance"]) == {"cpu", "memory", "connections"}


# ── Errors & liveness ────────────────────────────────────────────────────────


class TestErrors:
    @pytest.mark.parametrize("path", [
        "/api/health/uptime?hours=0",
        "/api/health/history?limit=abc",
        "/api/system/heartbeat?hours=-1",
        "/api/system/requests/stats?date=yesterday",
    ])
    def test_invalid_params(self, client: TestClient, path: str) -> None:
        resp = client.get(path)
        assert resp.status_code == 400
        assert resp.json() == {"success": False, "error": "Invalid request parameters"}

    def test_unknown_route(self, client: TestClient) -> None:
        resp = client.get("/api/nope")
        assert resp.status_code == 404
        assert resp.json() == {"success": False, "error": "Route not found"}

    def test_store_failure_hides_details(self, tmp_path, prober) -> None:
        store = BrokenReadStore(tmp_path / "broken.db")
        app = create_app(store=store, prober=prober, seed_services=SERVICES, autostart=False)
        with TestClient(app) as c:
            resp = c.get("/api/health/status")
            assert resp.status_code == 500
            assert resp.json() == {"success": False, "error": "Failed to retrieve health status"}
            assert "secret" not in resp.text

            resp = c.get("/api/system/health")
            assert resp.status_code == 500
            assert resp.json()["error"] == "Failed to retrieve system health"

    def test_unreachable_store_is_fatal(self, tmp_path, prober) -> None:
        app = create_app(store=UnreachableStore(tmp_path / "x.db"), prober=prober,
                         seed_services=SERVICES, autostart=False)
        with pytest.raises(BootstrapError):
            with TestClient(app):
                pass


class TestLiveness:
    def test_health(self, client: TestClient) -> None:
        body = client.get("/health").json()
        assert body["status"] == "ok"
        assert body["service"] == "muda-pay-health-monitor"
        assert body["uptime"] >= 0

    def test_cors(self, client: TestClient) -> None:
        resp = client.get("/health", headers={"Origin": "http://dashboard.test"})
        assert resp.headers["access-control-allow-origin"] == "*"
