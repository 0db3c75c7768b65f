"""
Global Error Handler Middleware.

Catches exceptions that escaped the CalibrationError handlers and returns
a generic JSON 500. Never leaks stack traces or internal details to
clients; every error gets an error_id for correlation with server logs.
"""

import traceback
import uuid

import structlog
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from labcal.config import settings

logger = structlog.get_logger(__name__)


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """
    Catches anything the routes and request context let through.

    Returns:
    {
      "error": {"code": "INTERNAL_ERROR", "message": "..."},
      "error_id": "uuid for log correlation"
    }
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        try:
            return await call_next(request)

        except Exception as exc:
            error_id = str(uuid.uuid4())

            logger.error(
                "unhandled_exception",
                error_id=error_id,
                path=request.url.path,
                method=request.method,
                error=str(exc),
                traceback=traceback.format_exc(),
            )

            body: dict = {
                "error": {
                    "code": "INTERNAL_ERROR",
                    "message": "An internal error occurred. Please try again later.",
                },
                "error_id": error_id,
                "request_id": getattr(request.state, "request_id", None),
            }

            # Type name only, never the traceback.
            if settings.debug:
                body["debug_hint"] = type(exc).__name__

            return JSONResponse(status_code=500, content=body)
