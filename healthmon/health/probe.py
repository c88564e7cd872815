"""Probe executor — one outbound GET per service, classified into a result.

A probe never raises: network failures, timeouts and unexpected payloads are
all folded into the returned HealthCheckResult.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

import httpx

from healthmon.registry import Service

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "MUDA-Pay-Health-Monitor/1.0"
DEFAULT_BODY_LIMIT = 2000
TIMEOUT_MESSAGE = "Request timeout"


# ── Models ───────────────────────────────────────────────────────────────────


class ProbeStatus(str, Enum):
    OK = "ok"
    ERROR = "error"
    TIMEOUT = "timeout"


@dataclass
class HealthCheckResult:
    """Outcome of a single probe, as persisted in the health_checks log."""

    service_name: str
    service_url: str
    status: ProbeStatus
    response_time: int | None = None  # ms
    response_body: str | None = None
    error_message: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "service_name": self.service_name,
            "service_url": self.service_url,
            "status": self.status.value,
            "response_time": self.response_time,
            "response_body": self.response_body,
            "error_message": self.error_message,
            "created_at": self.created_at.isoformat(),
        }


# ── Probe ────────────────────────────────────────────────────────────────────


def serialize_body(response: httpx.Response) -> str:
    """Compact JSON when the body parses as JSON, raw text otherwise."""
    try:
        data = response.json()
    except ValueError:
        return response.text
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False)


def run_probe(
    service: Service,
    user_agent: str = DEFAULT_USER_AGENT,
    body_limit: int = DEFAULT_BODY_LIMIT,
    transport: httpx.BaseTransport | None = None,
) -> HealthCheckResult:
    """GET ``service.url`` and classify the outcome as ok / error / timeout."""
    t0 = time.perf_counter()
    try:
        with httpx.Client(
            timeout=service.timeout / 1000,
            headers={"User-Agent": user_agent},
            transport=transport,
        ) as client:
            resp = client.get(service.url)
        elapsed = _elapsed_ms(t0)
        full_body = serialize_body(resp)
        body = full_body[:body_limit]

        if resp.status_code == 200 and full_body == service.expected_response:
            logger.info("%s: healthy (%dms)", service.name, elapsed)
            return _result(service, ProbeStatus.OK, elapsed, body=body)

        logger.warning(
            "%s: unexpected response, HTTP %d (%dms)", service.name, resp.status_code, elapsed,
        )
        return _result(
            service, ProbeStatus.ERROR, elapsed,
            body=body, message=f"Unexpected response: {full_body}",
        )
    except httpx.TimeoutException:
        elapsed = _elapsed_ms(t0)
        logger.error("%s: timeout (%dms)", service.name, elapsed)
        return _result(service, ProbeStatus.TIMEOUT, elapsed, message=TIMEOUT_MESSAGE)
    except Exception as e:
        elapsed = _elapsed_ms(t0)
        message = str(e) or type(e).__name__
        logger.error("%s: error - %s (%dms)", service.name, message, elapsed)
        return _result(service, ProbeStatus.ERROR, elapsed, message=message)


def _elapsed_ms(t0: float) -> int:
    return int((time.perf_counter() - t0) * 1000)


def _result(
    service: Service,
    status: ProbeStatus,
    elapsed: int,
    body: str | None = None,
    message: str | None = None,
) -> HealthCheckResult:
    return HealthCheckResult(
        service_name=service.name,
        service_url=service.url,
        status=status,
        response_time=elapsed,
        response_body=body,
        error_message=message,
    )
