"""Tests for the probe executor."""

from __future__ import annotations

import httpx
import pytest

from healthmon.health.probe import (
    HealthCheckResult,
    ProbeStatus,
    run_probe,
    serialize_body,
)

from tests.conftest import make_service

EXPECTED = '{"status":"ok","service":"gateway"}'


@pytest.fixture
def service():
    return make_service("gateway", expected_response=EXPECTED, timeout=2000)


def transport_returning(status_code: int, content: bytes | str) -> httpx.MockTransport:
    if isinstance(content, str):
        content = content.encode()
    return httpx.MockTransport(lambda request: httpx.Response(status_code, content=content))


def transport_raising(exc_type: type[Exception], message: str) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        raise exc_type(message, request=request)
    return httpx.MockTransport(handler)


# ── Classification ───────────────────────────────────────────────────────────


class TestClassification:
    def test_exact_body_is_ok(self, service) -> None:
        result = run_probe(service, transport=transport_returning(200, EXPECTED))
        assert result.status == ProbeStatus.OK
        assert result.error_message is None
        assert result.response_body == EXPECTED
        assert result.response_time >= 0

    def test_body_is_compared_after_json_normalisation(self, service) -> None:
        spaced = '{"status": "ok", "service": "gateway"}'
        result = run_probe(service, transport=transport_returning(200, spaced))
        assert result.status == ProbeStatus.OK

    def test_key_order_matters(self, service) -> None:
        reordered = '{"service":"gateway","status":"ok"}'
        result = run_probe(service, transport=transport_returning(200, reordered))
        assert result.status == ProbeStatus.ERROR

    def test_body_mismatch_is_error(self, service) -> None:
        body = '{"status":"degraded","service":"gateway"}'
        result = run_probe(service, transport=transport_returning(200, body))
        assert result.status == ProbeStatus.ERROR
        assert result.error_message == f"Unexpected response: {body}"

    def test_non_200_is_error_even_with_matching_body(self, service) -> None:
        result = run_probe(service, transport=transport_returning(503, EXPECTED))
        assert result.status == ProbeStatus.ERROR
        assert result.error_message == f"Unexpected response: {EXPECTED}"

    def test_plain_text_body(self) -> None:
        svc = make_service("text", expected_response="pong")
        result = run_probe(svc, transport=transport_returning(200, "pong"))
        assert result.status == ProbeStatus.OK

    @pytest.mark.parametrize("exc_type", [httpx.ReadTimeout, httpx.ConnectTimeout, httpx.PoolTimeout])
    def test_timeout(self, service, exc_type) -> None:
        result = run_probe(service, transport=transport_raising(exc_type, "timed out"))
        assert result.status == ProbeStatus.TIMEOUT
        assert result.error_message == "Request timeout"
        assert result.response_body is None

    def test_connection_refused_is_error_with_description(self, service) -> None:
        result = run_probe(service, transport=transport_raising(httpx.ConnectError, "Connection refused"))
        assert result.status == ProbeStatus.ERROR
        assert result.error_message == "Connection refused"

    def test_unexpected_exception_never_escapes(self, service) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise RuntimeError("boom")

        result = run_probe(service, transport=httpx.MockTransport(handler))
        assert result.status == ProbeStatus.ERROR
        assert result.error_message == "boom"


# ── Request shape & result fields ────────────────────────────────────────────


class TestProbeRequest:
    def test_sends_user_agent_and_get(self, service) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, content=EXPECTED.encode())

        run_probe(service, user_agent="Probe/9.9", transport=httpx.MockTransport(handler))
        assert len(seen) == 1
        assert seen[0].method == "GET"
        assert seen[0].headers["User-Agent"] == "Probe/9.9"
        assert str(seen[0].url) == service.url

    def test_result_identifies_service(self, service) -> None:
        result = run_probe(service, transport=transport_returning(200, EXPECTED))
        assert isinstance(result, HealthCheckResult)
        assert result.service_name == "gateway"
        assert result.service_url == service.url
        assert result.created_at.tzinfo is not None

    def test_body_truncated_to_limit(self, service) -> None:
        long_body = "x" * 5000
        result = run_probe(service, body_limit=100, transport=transport_returning(200, long_body))
        assert result.status == ProbeStatus.ERROR
        assert len(result.response_body) == 100

    def test_mismatch_message_keeps_full_body(self, service) -> None:
        long_body = "z" * 5000
        result = run_probe(service, transport=transport_returning(200, long_body))
        assert len(result.response_body) == 2000
        assert result.error_message == "Unexpected response: " + long_body

    def test_long_expected_body_still_matches(self) -> None:
        payload = '{"data":"' + "y" * 3000 + '"}'
        svc = make_service("big", expected_response=payload)
        result = run_probe(svc, body_limit=50, transport=transport_returning(200, payload))
        assert result.status == ProbeStatus.OK
        assert len(result.response_body) == 50


class TestSerializeBody:
    def test_json_is_compacted(self) -> None:
        resp = httpx.Response(200, content=b'{ "a" : 1,  "b": [1, 2] }')
        assert serialize_body(resp) == '{"a":1,"b":[1,2]}'

    def test_non_ascii_kept(self) -> None:
        resp = httpx.Response(200, content='{"name":"café"}'.encode())
        assert serialize_body(resp) == '{"name":"café"}'

    def test_invalid_json_returns_text(self) -> None:
        resp = httpx.Response(200, content=b"<html>down</html>")
        assert serialize_body(resp) == "<html>down</html>"

    def test_empty_body(self) -> None:
        assert serialize_body(httpx.Response(204)) == ""
