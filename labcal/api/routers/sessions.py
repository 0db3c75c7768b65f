"""
Calibration Session API Endpoints.

POST   /api/v1/calibration/sessions                    — open a session
GET    /api/v1/calibration/sessions/{id}               — session snapshot
POST   /api/v1/calibration/sessions/{id}/readiness     — pre-calibration checklist
POST   /api/v1/calibration/sessions/{id}/environmental — record room conditions
POST   /api/v1/calibration/sessions/{id}/measurements  — record measurement sets
POST   /api/v1/calibration/sessions/{id}/validation    — score + advisory → result
POST   /api/v1/calibration/sessions/{id}/abort         — abort the session
DELETE /api/v1/calibration/sessions/{id}               — close a finished session

All bodies are camelCase JSON. Domain errors are rendered by the
CalibrationError handler (422 / 404 / 409).
"""

from typing import Optional

from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from labcal.api.deps import get_registry, get_session
from labcal.criteria.schemas import EquipmentClass
from labcal.scoring.schemas import ComplianceResult
from labcal.sessions.registry import SessionRegistry
from labcal.sessions.schemas import (
    ReadinessChecklist,
    ReferenceStandard,
    SessionSnapshot,
    SessionState,
)
from labcal.sessions.session import CalibrationSession
from labcal.validation.schemas import (
    AccuracyInput,
    EnvironmentalConditions,
    LinearityInput,
    RepeatabilityInput,
)

router = APIRouter(prefix="/calibration/sessions", tags=["calibration"])


# ── Schemas ───────────────────────────────────────────────────────────


class _Camel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OpenSessionRequest(_Camel):
    equipment_id: str = Field(min_length=1, max_length=128)
    equipment_class: EquipmentClass


class OpenSessionResponse(_Camel):
    session_id: str
    state: SessionState
    criteria_version: str


class ReadinessRequest(_Camel):
    checklist: Optional[ReadinessChecklist] = None
    standards: list[ReferenceStandard] = Field(default_factory=list)


class MeasurementsRequest(_Camel):
    linearity: LinearityInput
    repeatability: RepeatabilityInput
    accuracy: AccuracyInput


class AbortRequest(_Camel):
    reason: str = ""


class StateResponse(_Camel):
    session_id: str
    state: SessionState


class CloseResponse(_Camel):
    session_id: str
    closed: bool


# ── Endpoints ─────────────────────────────────────────────────────────


@router.post("", response_model=OpenSessionResponse, status_code=201)
async def open_session(
    body: OpenSessionRequest,
    registry: SessionRegistry = Depends(get_registry),
):
    """Open a calibration session; 409 EQUIPMENT_BUSY if one is already active."""
    session = registry.open(body.equipment_id, body.equipment_class)
    return OpenSessionResponse(
        session_id=session.session_id,
        state=session.state,
        criteria_version=session.criteria.version,
    )


@router.get("/{session_id}", response_model=SessionSnapshot)
async def get_session_snapshot(session: CalibrationSession = Depends(get_session)):
    return session.snapshot()


@router.post("/{session_id}/readiness", response_model=StateResponse)
async def confirm_readiness(
    body: Optional[ReadinessRequest] = Body(default=None),
    session: CalibrationSession = Depends(get_session),
):
    body = body or ReadinessRequest()
    state = session.confirm_readiness(body.checklist, body.standards)
    return StateResponse(session_id=session.session_id, state=state)


@router.post("/{session_id}/environmental", response_model=StateResponse)
async def record_environmental(
    body: EnvironmentalConditions,
    session: CalibrationSession = Depends(get_session),
):
    state = session.record_environmental(body)
    return StateResponse(session_id=session.session_id, state=state)


@router.post("/{session_id}/measurements", response_model=StateResponse)
async def record_measurements(
    body: MeasurementsRequest,
    session: CalibrationSession = Depends(get_session),
):
    """Record all three sets; 422 INVALID_INPUT names the failing set and field."""
    state = session.record_measurements(body.linearity, body.repeatability, body.accuracy)
    return StateResponse(session_id=session.session_id, state=state)


@router.post("/{session_id}/validation", response_model=ComplianceResult)
async def run_validation(session: CalibrationSession = Depends(get_session)):
    """Idempotent: a COMPLETED session returns its stored result."""
    return await session.run_validation()


@router.post("/{session_id}/abort", response_model=StateResponse)
async def abort_session(
    body: Optional[AbortRequest] = Body(default=None),
    session: CalibrationSession = Depends(get_session),
):
    state = session.abort(body.reason if body else "")
    return StateResponse(session_id=session.session_id, state=state)


@router.delete("/{session_id}", response_model=CloseResponse)
async def close_session(
    session_id: str,
    registry: SessionRegistry = Depends(get_registry),
):
    """Close a COMPLETED or ABORTED session. Closing twice is a no-op."""
    closed = registry.close(session_id)
    return CloseResponse(session_id=session_id, closed=closed)
