"""
FastAPI dependencies for the calibration routes.
"""

from fastapi import Depends, Request

from labcal.sessions.registry import SessionRegistry
from labcal.sessions.session import CalibrationSession


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.registry


def get_session(
    session_id: str,
    registry: SessionRegistry = Depends(get_registry),
) -> CalibrationSession:
    """Resolve the path's session_id; 404 via SessionNotFound."""
    return registry.get(session_id)


__all__ = ["get_registry", "get_session"]
