"""Uniform response envelope: ``{success, data?, message?, error?}``.

Route handlers wrap store access in :func:`failure_message`; a StoreError
raised inside becomes a :class:`QueryFailed` carrying a fixed, caller-safe
message, which the app's exception handler turns into a 500 envelope.
Driver details only ever reach the log.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from healthmon.errors import StoreError

logger = logging.getLogger(__name__)


class ApiResponse(BaseModel):
    success: bool
    data: Any = None
    message: str | None = None
    error: str | None = None


class QueryFailed(Exception):
    """A store failure behind an endpoint, with the message shown to callers."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


def ok(data: Any = None, message: str | None = None) -> dict[str, Any]:
    return ApiResponse(success=True, data=data, message=message).model_dump(exclude_none=True)


def fail(error: str, status_code: int = 500) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ApiResponse(success=False, error=error).model_dump(exclude_none=True),
    )


@contextmanager
def failure_message(message: str) -> Iterator[None]:
    """Translate a StoreError raised in the block into QueryFailed(message)."""
    try:
        yield
    except StoreError as e:
        raise QueryFailed(message) from e


# ── Exception handlers ───────────────────────────────────────────────────────


async def query_failed_handler(request: Request, exc: QueryFailed) -> JSONResponse:
    logger.error(
        "%s %s failed: %s", request.method, request.url.path, exc.message,
        exc_info=exc.__cause__ or exc,
    )
    return fail(exc.message)


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 404:
        return fail("Route not found", 404)
    return fail(str(exc.detail), exc.status_code)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.warning("Invalid request %s %s: %s", request.method, request.url.path, exc.errors())
    return fail("Invalid request parameters", 400)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return fail("Internal server error")
