"""
Session Registry — at most one active calibration per equipment.

Thread-safe. A session counts as active until it reaches a terminal
state. A terminal session stays readable until it is closed, a new
session is opened for the same equipment, or its retention period runs
out; expired terminal sessions are purged whenever a session is opened.
"""

import threading
from datetime import datetime, timedelta
from typing import Callable, Optional

import structlog

from labcal.advisory.adapter import AIValidationAdapter
from labcal.criteria.schemas import EquipmentClass
from labcal.criteria.table import CriteriaSource
from labcal.errors import EquipmentBusy, InvalidTransition, SessionNotFound
from labcal.scoring.scorer import ComplianceScorer
from labcal.sessions.session import CalibrationSession, utcnow
from labcal.validation.validator import MeasurementValidator

logger = structlog.get_logger(__name__)

DEFAULT_RETENTION = timedelta(hours=1)


class SessionRegistry:
    """Creates, tracks and closes calibration sessions."""

    def __init__(
        self,
        criteria_source: CriteriaSource,
        adapter: AIValidationAdapter,
        validator: Optional[MeasurementValidator] = None,
        scorer: Optional[ComplianceScorer] = None,
        clock: Callable[[], datetime] = utcnow,
        retention: timedelta = DEFAULT_RETENTION,
    ):
        self.criteria_source = criteria_source
        self.adapter = adapter
        self._validator = validator or MeasurementValidator()
        self._scorer = scorer or ComplianceScorer()
        self._clock = clock
        self.retention = retention

        self._lock = threading.Lock()
        self._sessions: dict[str, CalibrationSession] = {}
        self._by_equipment: dict[str, str] = {}

    def open(self, equipment_id: str, equipment_class: EquipmentClass) -> CalibrationSession:
        """
        Open a session in PRECHECK with a snapshot of the class criteria.

        Raises:
            EquipmentBusy: a non-terminal session already exists for the equipment
        """
        criteria = self.criteria_source.get(equipment_class)

        with self._lock:
            self._purge_expired_locked()
            existing_id = self._by_equipment.get(equipment_id)
            if existing_id is not None:
                existing = self._sessions.get(existing_id)
                if existing is not None and not existing.is_terminal:
                    logger.warning(
                        "equipment_busy",
                        equipment_id=equipment_id,
                        session_id=existing_id,
                    )
                    raise EquipmentBusy(equipment_id, existing_id)
                # Finished but never closed.
                self._remove_locked(existing_id)

            session = CalibrationSession(
                equipment_id=equipment_id,
                equipment_class=equipment_class,
                criteria=criteria,
                adapter=self.adapter,
                validator=self._validator,
                scorer=self._scorer,
                clock=self._clock,
            )
            self._sessions[session.session_id] = session
            self._by_equipment[equipment_id] = session.session_id

        logger.info(
            "session_opened",
            session_id=session.session_id,
            equipment_id=equipment_id,
            equipment_class=equipment_class.value,
            criteria_version=criteria.version,
        )
        return session

    def get(self, session_id: str) -> CalibrationSession:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    def active_session_for(self, equipment_id: str) -> Optional[CalibrationSession]:
        """The non-terminal session holding the equipment, if any."""
        with self._lock:
            session_id = self._by_equipment.get(equipment_id)
            session = self._sessions.get(session_id) if session_id else None
        if session is None or session.is_terminal:
            return None
        return session

    def close(self, session_id: str) -> bool:
        """
        Remove a terminal session. Returns False if it was already removed.

        Raises:
            InvalidTransition: the session is still in progress
        """
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return False
            if not session.is_terminal:
                raise InvalidTransition("close", session.state.value, "COMPLETED or ABORTED")
            self._remove_locked(session_id)

        logger.info("session_closed", session_id=session_id, state=session.state.value)
        return True

    def cancel(self, session_id: str, reason: str = "") -> CalibrationSession:
        """Abort and close in one step."""
        session = self.get(session_id)
        session.abort(reason)
        self.close(session_id)
        return session

    def purge_expired(self) -> int:
        """Drop terminal sessions closed longer ago than the retention period."""
        with self._lock:
            return self._purge_expired_locked()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def _purge_expired_locked(self) -> int:
        cutoff = self._clock() - self.retention
        expired = [
            session_id
            for session_id, session in self._sessions.items()
            if session.is_terminal and session.closed_at is not None and session.closed_at <= cutoff
        ]
        for session_id in expired:
            self._remove_locked(session_id)
        if expired:
            logger.info("sessions_purged", count=len(expired))
        return len(expired)

    def _remove_locked(self, session_id: str) -> None:
        session = self._sessions.pop(session_id, None)
        if session is not None and self._by_equipment.get(session.equipment_id) == session_id:
            del self._by_equipment[session.equipment_id]
