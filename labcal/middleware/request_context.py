"""
Request Context Middleware.

Binds into the structlog context for every log line of a request:
- request_id (from X-Request-ID, generated when absent, echoed back)
- method and path
- session_id, for /calibration/sessions/{id}/… requests

Also reports the handling time in X-Response-Time.
"""

import re
import time
import uuid

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = structlog.get_logger(__name__)

_SESSION_PATH = re.compile(r"/calibration/sessions/(?P<session_id>[^/]+)")


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Adds request_id, session_id and timing to every request."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        context = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
        }
        match = _SESSION_PATH.search(request.url.path)
        if match:
            context["session_id"] = match.group("session_id")

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(**context)

        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = round((time.perf_counter() - start) * 1000, 2)

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{elapsed_ms}ms"

        logger.info("request_completed", status=response.status_code, elapsed_ms=elapsed_ms)
        return response
