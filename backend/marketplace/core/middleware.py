"""Middlewares HTTP del marketplace."""

from __future__ import annotations

import time
from uuid import uuid4

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from marketplace.core.logging import get_logger

logger = get_logger("marketplace.request")


def _client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Registra inicio, fin y duración de cada request con un id correlativo."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("x-request-id") or uuid4().hex
        start = time.perf_counter()
        base = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "client_ip": _client_ip(request),
        }
        logger.info("request.started", extra=base)

        try:
            response = await call_next(request)
        except Exception:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            logger.exception("request.failed", extra={**base, "duration_ms": duration_ms})
            raise

        duration_ms = round((time.perf_counter() - start) * 1000, 2)
        response.headers["x-request-id"] = request_id
        logger.info(
            "request.completed",
            extra={**base, "status_code": response.status_code, "duration_ms": duration_ms},
        )
        return response
