"""Service registry models and the bootstrap seed set.

The registry itself lives in the ``services`` table of the result store.
This module only describes what a service is and which services a fresh
store is seeded with: the built-in defaults, or the entries of a
``services.yaml`` file when one is present.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 10_000
DEFAULT_CHECK_INTERVAL = 300  # seconds; informational, cadence is global


# ── Data model ───────────────────────────────────────────────────────────────


@dataclass
class Service:
    """A registered service eligible for probing."""

    name: str
    url: str
    expected_response: str
    is_active: bool = True
    timeout: int = DEFAULT_TIMEOUT_MS  # ms
    check_interval: int = DEFAULT_CHECK_INTERVAL

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Service":
        return cls(
            name=row["name"],
            url=row["url"],
            expected_response=row["expected_response"],
            is_active=bool(row.get("is_active", 1)),
            timeout=row.get("timeout") or DEFAULT_TIMEOUT_MS,
            check_interval=row.get("check_interval") or DEFAULT_CHECK_INTERVAL,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "url": self.url,
            "expected_response": self.expected_response,
            "is_active": self.is_active,
            "timeout": self.timeout,
            "check_interval": self.check_interval,
        }


DEFAULT_SERVICES: tuple[Service, ...] = (
    Service(
        name="gateway",
        url="https://api.muda.tech/health",
        expected_response='{"status":"ok","service":"gateway"}',
    ),
    Service(
        name="liquidity-rail",
        url="https://api.muda.tech/v1/rail/health",
        expected_response='{"status":"ok","service":"liquidity-rail-admin"}',
    ),
    Service(
        name="client-admin",
        url="https://api.muda.tech/web/health",
        expected_response='{"status":"ok","service":"client-admin"}',
    ),
    Service(
        name="wallet",
        url="https://api.muda.tech/v1/health",
        expected_response='{"status":"ok","service":"wallet"}',
    ),
)


# ── Seed loading ─────────────────────────────────────────────────────────────


def load_seed_services(path: Path | str | None = None) -> list[Service]:
    """Return the services a fresh registry should be seeded with.

    Reads ``services:`` entries from *path* when the file exists; malformed
    entries are skipped. Falls back to :data:`DEFAULT_SERVICES` when the file
    is missing, unreadable, or yields no valid entry.
    """
    if path is None or not Path(path).exists():
        return list(DEFAULT_SERVICES)

    path = Path(path)
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except Exception as e:
        logger.error("Failed to parse %s: %s", path, e)
        return list(DEFAULT_SERVICES)

    services = []
    for entry in raw.get("services", []) or []:
        try:
            services.append(_parse_service(entry))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Skipping malformed service entry: %s", e)

    if not services:
        logger.warning("No services found in %s; using built-in defaults", path)
        return list(DEFAULT_SERVICES)

    logger.info("Loaded %d seed services from %s", len(services), path)
    return services


def _parse_service(raw: dict[str, Any]) -> Service:
    name = str(raw["name"]).strip()
    if not name:
        raise ValueError("Service 'name' is required")
    return Service(
        name=name,
        url=str(raw["url"]),
        expected_response=str(raw["expected_response"]),
        is_active=bool(raw.get("is_active", True)),
        timeout=int(raw.get("timeout", DEFAULT_TIMEOUT_MS)),
        check_interval=int(raw.get("check_interval", DEFAULT_CHECK_INTERVAL)),
    )
