"""Request-id propagation and per-request timing logs."""

from __future__ import annotations

import re
import time
from uuid import uuid4

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from reconcile_engine.observability.logger import get_logger

logger = get_logger("middleware")

_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


def resolve_request_id(request: Request) -> str:
    """Reuse a well-formed caller-supplied X-Request-ID, otherwise mint one."""
    supplied = request.headers.get("X-Request-ID", "")
    return supplied if _REQUEST_ID_RE.match(supplied) else uuid4().hex


class RequestTimingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = resolve_request_id(request)
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id, method=request.method, path=request.url.path
        )

        began = time.monotonic()
        try:
            response = await call_next(request)
        except Exception as e:
            elapsed = round((time.monotonic() - began) * 1000, 2)
            logger.error("request_failed", error=str(e), duration_ms=elapsed)
            raise

        elapsed = round((time.monotonic() - began) * 1000, 2)
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Duration-MS"] = str(elapsed)
        logger.info("request_completed", status=response.status_code, duration_ms=elapsed)
        return response
