"""
LabCal Exceptions Module.

Centralized exception definitions with:
- Typed errors for every rejected input or transition
- HTTP status code mapping
- Error codes for client handling
- Structured error responses
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

import structlog
from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

logger = structlog.get_logger(__name__)


# ============================================================================
# ERROR CODES
# ============================================================================


class ErrorCode(str, Enum):
    """Error codes surfaced to callers."""

    INTERNAL_ERROR = "INTERNAL_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"

    # Session workflow
    INVALID_INPUT = "INVALID_INPUT"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    EQUIPMENT_BUSY = "EQUIPMENT_BUSY"
    SESSION_CLOSED = "SESSION_CLOSED"
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"

    # Advisory service (recovered internally)
    ADVISORY_TIMEOUT = "ADVISORY_TIMEOUT"
    ADVISORY_SERVICE_ERROR = "ADVISORY_SERVICE_ERROR"


# ============================================================================
# ERROR RESPONSE MODEL
# ============================================================================


class ErrorDetail(BaseModel):
    """Detailed error information."""

    code: str
    message: str
    field: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: ErrorDetail
    request_id: Optional[str] = None
    timestamp: Optional[str] = None


# ============================================================================
# BASE EXCEPTION
# ============================================================================


class CalibrationError(Exception):
    """Base exception for the calibration core."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
        field: Optional[str] = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        self.field = field
        super().__init__(message)

    def to_response(self, request_id: Optional[str] = None) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            error=ErrorDetail(
                code=self.code.value,
                message=self.message,
                field=self.field,
                details=self.details,
            ),
            request_id=request_id,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.message}"


# ============================================================================
# SPECIFIC EXCEPTIONS
# ============================================================================


class ConfigurationError(CalibrationError):
    """Acceptance criteria or settings are unusable."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            code=ErrorCode.CONFIGURATION_ERROR,
            status_code=500,
            details=details,
        )


class InvalidInput(CalibrationError):
    """
    Malformed or structurally insufficient measurement data.

    The session state is unchanged; the caller may resubmit corrected data.
    `set_name` names the measurement set (linearity, repeatability, ...)
    and `field` the offending field within it.
    """

    def __init__(
        self,
        message: str,
        set_name: Optional[str] = None,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        merged = dict(details or {})
        if set_name:
            merged.setdefault("set", set_name)
        super().__init__(
            message=message,
            code=ErrorCode.INVALID_INPUT,
            status_code=422,
            field=field,
            details=merged,
        )
        self.set_name = set_name


class MeasurementError(InvalidInput):
    """A NaN, an infinity or an overflow showed up in a measurement or a derived value."""


class InvalidTransition(CalibrationError):
    """Operation attempted against the wrong session state."""

    def __init__(self, operation: str, state: str, expected: str):
        super().__init__(
            message=f"Cannot {operation} while session is {state} (requires {expected})",
            code=ErrorCode.INVALID_TRANSITION,
            status_code=409,
            details={"operation": operation, "state": state, "expected": expected},
        )
        self.operation = operation
        self.state = state


class EquipmentBusy(CalibrationError):
    """Another non-terminal session already holds the equipment."""

    def __init__(self, equipment_id: str, session_id: str):
        super().__init__(
            message=f"Equipment {equipment_id} already has an active calibration session",
            code=ErrorCode.EQUIPMENT_BUSY,
            status_code=409,
            details={"equipment_id": equipment_id, "session_id": session_id},
        )
        self.equipment_id = equipment_id
        self.session_id = session_id


class SessionClosed(CalibrationError):
    """Operation attempted on a COMPLETED or ABORTED session."""

    def __init__(self, session_id: str, state: str, operation: str = ""):
        super().__init__(
            message=f"Session {session_id} is {state}; no further changes accepted",
            code=ErrorCode.SESSION_CLOSED,
            status_code=409,
            details={"session_id": session_id, "state": state, "operation": operation},
        )
        self.session_id = session_id
        self.state = state


class SessionNotFound(CalibrationError):
    """No registered session with this id."""

    def __init__(self, session_id: str):
        super().__init__(
            message=f"Calibration session not found: {session_id}",
            code=ErrorCode.SESSION_NOT_FOUND,
            status_code=404,
            details={"session_id": session_id},
        )
        self.session_id = session_id


class AdvisoryTimeout(CalibrationError):
    """The advisory service did not answer within the configured timeout."""

    def __init__(self, timeout_seconds: float):
        super().__init__(
            message=f"Advisory service did not respond within {timeout_seconds}s",
            code=ErrorCode.ADVISORY_TIMEOUT,
            status_code=504,
            details={"timeout_seconds": timeout_seconds},
        )
        self.timeout_seconds = timeout_seconds


class AdvisoryServiceError(CalibrationError):
    """The advisory service failed or returned an unusable response."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            code=ErrorCode.ADVISORY_SERVICE_ERROR,
            status_code=502,
            details=details,
        )


# ============================================================================
# EXCEPTION HANDLERS
# ============================================================================


async def calibration_exception_handler(
    request: Request,
    exc: CalibrationError,
) -> JSONResponse:
    """Handle CalibrationError exceptions."""
    request_id = getattr(request.state, "request_id", None)

    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "calibration_error",
        error_code=exc.code.value,
        message=exc.message,
        status_code=exc.status_code,
        request_id=request_id,
        details=exc.details,
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_response(request_id).model_dump(),
    )


async def request_validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Report malformed request bodies as INVALID_INPUT."""
    errors = exc.errors()
    loc: tuple = tuple(errors[0].get("loc", ())) if errors else ()
    # ("body", "linearity", "weights", 0) → set "linearity", field "weights"
    path = [str(p) for p in loc if p != "body" and not isinstance(p, int)]
    set_name = path[0] if len(path) > 1 else None
    field = path[-1] if path else None

    error = InvalidInput(
        message=errors[0].get("msg", "Invalid request") if errors else "Invalid request",
        set_name=set_name,
        field=field,
        details={
            "errors": [
                {"loc": [str(p) for p in e.get("loc", ())], "msg": e.get("msg", ""), "type": e.get("type", "")}
                for e in errors
            ]
        },
    )
    return await calibration_exception_handler(request, error)


def register_exception_handlers(app):
    """Register exception handlers with FastAPI app."""
    app.add_exception_handler(CalibrationError, calibration_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
