"""Calibration session lifecycle."""

from labcal.sessions.registry import SessionRegistry
from labcal.sessions.schemas import (
    ReadinessChecklist,
    ReferenceStandard,
    SessionSnapshot,
    SessionState,
)
from labcal.sessions.session import CalibrationSession

__all__ = [
    "CalibrationSession",
    "ReadinessChecklist",
    "ReferenceStandard",
    "SessionRegistry",
    "SessionSnapshot",
    "SessionState",
]
