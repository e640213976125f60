"""
Civitas — Request Context Middleware
=====================================
Per-request logging context and access log.

For every HTTP request the middleware:
- Accepts the caller's ``X-Correlation-ID`` when it is a sane token, or
  assigns a fresh UUID v4, and echoes it on the response.
- Binds ``correlation_id`` and the forwarded ``account_id`` into the
  structlog context so every log line of the request carries them.
- Emits one ``http.request.completed`` line with status and duration.
"""

from __future__ import annotations

import re
import time
import uuid
from contextvars import ContextVar

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from civitas.core.config import get_settings
from civitas.core.logging import get_logger

logger = get_logger(__name__)

correlation_id_ctx: ContextVar[str | None] = ContextVar(
    "correlation_id", default=None
)

_CORRELATION_ID_PATTERN = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")


def resolve_correlation_id(incoming: str | None) -> str:
    """Keep a well-formed incoming ID, otherwise mint a UUID v4."""
    if incoming and _CORRELATION_ID_PATTERN.match(incoming):
        return incoming
    return str(uuid.uuid4())


def _account_id(request: Request) -> int | None:
    raw = request.headers.get("X-Account-ID")
    return int(raw) if raw and raw.isdigit() else None


class CorrelationMiddleware(BaseHTTPMiddleware):
    """Correlation ID propagation plus one access log line per request."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        header_name = get_settings().correlation_id_header
        cid = resolve_correlation_id(request.headers.get(header_name))

        token = correlation_id_ctx.set(cid)
        started = time.perf_counter()
        try:
            with structlog.contextvars.bound_contextvars(
                correlation_id=cid, account_id=_account_id(request)
            ):
                try:
                    response = await call_next(request)
                except Exception as exc:
                    logger.error(
                        "http.request.failed",
                        method=request.method,
                        path=request.url.path,
                        duration_ms=_elapsed_ms(started),
                        error=str(exc),
                    )
                    raise
                logger.info(
                    "http.request.completed",
                    method=request.method,
                    path=request.url.path,
                    status_code=response.status_code,
                    duration_ms=_elapsed_ms(started),
                )
            response.headers[header_name] = cid
            return response
        finally:
            correlation_id_ctx.reset(token)


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)
