"""
Calibration Session — one equipment, one calibration, one result.

Transitions:
  confirm_readiness    PRECHECK      → ENVIRONMENTAL
  record_environmental ENVIRONMENTAL → MEASURING
  record_measurements  MEASURING     → VALIDATING
  run_validation       VALIDATING    → COMPLETED
  abort                any non-terminal → ABORTED

COMPLETED and ABORTED are terminal: every further mutation raises
SessionClosed. Rejected input never changes state.

Concurrency: state changes are serialized by a per-session lock and
validation runs at most once, even when callers on different threads each
run their own event loop. `abort` may be called from any thread while
`run_validation` awaits the advisory; the pending advisory is cancelled and
the session ends ABORTED, never COMPLETED.
"""

import asyncio
import concurrent.futures
import threading
import uuid
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

import structlog

from labcal.advisory.adapter import AIValidationAdapter
from labcal.advisory.schemas import (
    AccuracySnapshot,
    AdvisoryRequest,
    LinearitySnapshot,
    MeasurementSnapshot,
    RepeatabilitySnapshot,
)
from labcal.criteria.schemas import AcceptanceCriteria, EquipmentClass
from labcal.errors import InvalidInput, InvalidTransition, SessionClosed
from labcal.scoring.schemas import ComplianceResult
from labcal.scoring.scorer import ComplianceScorer, ScoreCard
from labcal.sessions.schemas import (
    ReadinessChecklist,
    ReferenceStandard,
    SessionSnapshot,
    SessionState,
)
from labcal.validation.schemas import (
    AccuracyInput,
    AccuracyResult,
    EnvironmentalConditions,
    EnvironmentalResult,
    LinearityInput,
    LinearityResult,
    RepeatabilityInput,
    RepeatabilityResult,
)
from labcal.validation.validator import MeasurementValidator

logger = structlog.get_logger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CalibrationSession:
    """State machine for a single calibration of a single piece of equipment."""

    def __init__(
        self,
        equipment_id: str,
        equipment_class: EquipmentClass,
        criteria: AcceptanceCriteria,
        adapter: AIValidationAdapter,
        validator: Optional[MeasurementValidator] = None,
        scorer: Optional[ComplianceScorer] = None,
        session_id: Optional[str] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_id = session_id or f"cal_{uuid.uuid4().hex[:16]}"
        self.equipment_id = equipment_id
        self.equipment_class = equipment_class
        self.criteria = criteria
        self._adapter = adapter
        self._validator = validator or MeasurementValidator()
        self._scorer = scorer or ComplianceScorer()
        self._clock = clock

        self._state = SessionState.PRECHECK
        self.opened_at = clock()
        self.closed_at: Optional[datetime] = None
        self.abort_reason: Optional[str] = None

        self.checklist: Optional[ReadinessChecklist] = None
        self.standards: tuple[ReferenceStandard, ...] = ()
        self.environmental: Optional[EnvironmentalConditions] = None
        self.environmental_result: Optional[EnvironmentalResult] = None
        self.linearity: Optional[LinearityInput] = None
        self.linearity_result: Optional[LinearityResult] = None
        self.repeatability: Optional[RepeatabilityInput] = None
        self.repeatability_result: Optional[RepeatabilityResult] = None
        self.accuracy: Optional[AccuracyInput] = None
        self.accuracy_result: Optional[AccuracyResult] = None
        self._result: Optional[ComplianceResult] = None

        self._lock = threading.RLock()
        self._validation: Optional[concurrent.futures.Future] = None
        self._advisory_task: Optional[asyncio.Task] = None
        self._advisory_loop: Optional[asyncio.AbstractEventLoop] = None

    # ── Read access ───────────────────────────────────────────────────

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_terminal(self) -> bool:
        return self._state.is_terminal

    @property
    def result(self) -> Optional[ComplianceResult]:
        return self._result

    def snapshot(self) -> SessionSnapshot:
        with self._lock:
            return SessionSnapshot(
                session_id=self.session_id,
                equipment_id=self.equipment_id,
                equipment_class=self.equipment_class,
                state=self._state,
                criteria=self.criteria,
                standards=self.standards,
                environmental=self.environmental,
                measurements=self._measurement_snapshot(),
                result=self._result,
                abort_reason=self.abort_reason,
                opened_at=self.opened_at,
                closed_at=self.closed_at,
            )

    # ── Transitions ───────────────────────────────────────────────────

    def confirm_readiness(
        self,
        checklist: Optional[ReadinessChecklist] = None,
        standards: Iterable[ReferenceStandard] = (),
    ) -> SessionState:
        """
        Confirm the pre-calibration checklist and the reference standards.

        Raises:
            InvalidInput: an unconfirmed checklist item, or a standard whose
                certificate expired before the session was opened
        """
        checklist = checklist or ReadinessChecklist()
        standards = tuple(standards)

        with self._lock:
            self._require_state("confirm_readiness", SessionState.PRECHECK)

            missing = checklist.unconfirmed()
            if missing:
                raise InvalidInput(
                    f"Pre-calibration checklist incomplete: {', '.join(missing)}",
                    set_name="readiness",
                    field=missing[0],
                    details={"unconfirmed": missing},
                )

            session_date = self.opened_at.date()
            for standard in standards:
                if standard.certificate_expiry < session_date:
                    raise InvalidInput(
                        f"Reference standard {standard.identifier} certificate "
                        f"{standard.certificate_number} expired on "
                        f"{standard.certificate_expiry.isoformat()}",
                        set_name="readiness",
                        field="standards",
                        details={"identifier": standard.identifier},
                    )

            self.checklist = checklist
            self.standards = standards
            return self._transition(SessionState.ENVIRONMENTAL)

    def record_environmental(self, conditions: EnvironmentalConditions) -> SessionState:
        """
        Record room conditions. Out-of-criteria values are accepted and
        scored later; physically impossible values raise InvalidInput.
        """
        with self._lock:
            self._require_state("record_environmental", SessionState.ENVIRONMENTAL)
            self._validator.check_environmental_plausibility(conditions)
            result = self._validator.validate_environmental(conditions, self.criteria)

            self.environmental = conditions
            self.environmental_result = result
            return self._transition(SessionState.MEASURING)

    def record_measurements(
        self,
        linearity: LinearityInput,
        repeatability: RepeatabilityInput,
        accuracy: AccuracyInput,
    ) -> SessionState:
        """
        Record all three measurement sets at once.

        Either every set is accepted or none is; InvalidInput names the
        first set that failed.
        """
        with self._lock:
            self._require_state("record_measurements", SessionState.MEASURING)

            linearity_result = self._validator.validate_linearity(
                linearity.weights, linearity.readings, self.criteria
            )
            repeatability_result = self._validator.validate_repeatability(
                repeatability.samples, self.criteria
            )
            accuracy_result = self._validator.validate_accuracy(
                accuracy.reference, accuracy.measured, self.criteria
            )

            self.linearity, self.linearity_result = linearity, linearity_result
            self.repeatability, self.repeatability_result = repeatability, repeatability_result
            self.accuracy, self.accuracy_result = accuracy, accuracy_result
            return self._transition(SessionState.VALIDATING)

    async def run_validation(self) -> ComplianceResult:
        """
        Score the session and consult the advisory service.

        Idempotent: once COMPLETED the stored result is returned unchanged.
        Concurrent callers, on any thread or event loop, wait for the first
        one and share its result.

        Raises:
            SessionClosed: the session was aborted before or during validation
            InvalidTransition: measurements have not been recorded yet
        """
        while True:
            with self._lock:
                if self._state == SessionState.COMPLETED:
                    return self._result
                pending = self._validation
                if pending is None:
                    self._require_state("run_validation", SessionState.VALIDATING)
                    task = self._start_advisory()
                    pending = self._validation = concurrent.futures.Future()
                    break

            try:
                # shield: a cancelled waiter must not cancel the shared outcome.
                return await asyncio.shield(asyncio.wrap_future(pending))
            except asyncio.CancelledError:
                if pending.cancelled():
                    # The owning call was cancelled before finishing; retry.
                    continue
                raise

        try:
            result = await task
        except asyncio.CancelledError:
            with self._lock:
                self._clear_advisory()
                if self._state != SessionState.ABORTED:
                    self._validation = None
                    pending.cancel()
                    raise
                error = SessionClosed(self.session_id, self._state.value, "run_validation")
            pending.set_exception(error)
            raise error from None
        except Exception as e:
            with self._lock:
                self._clear_advisory()
                self._validation = None
            pending.set_exception(e)
            raise

        with self._lock:
            self._clear_advisory()
            # abort() may have landed after the advisory returned.
            if self._state != SessionState.VALIDATING:
                error = SessionClosed(self.session_id, self._state.value, "run_validation")
                pending.set_exception(error)
                raise error
            self._result = result
            self.closed_at = self._clock()
            self._transition(SessionState.COMPLETED)
        pending.set_result(result)

        logger.info(
            "session_validated",
            session_id=self.session_id,
            equipment_id=self.equipment_id,
            verdict=result.verdict.value,
            score=result.score,
            source=result.source.value,
            degraded=result.degraded,
        )
        return result

    def abort(self, reason: str = "") -> SessionState:
        """Abort from any non-terminal state, cancelling a pending advisory call."""
        with self._lock:
            if self._state.is_terminal:
                raise SessionClosed(self.session_id, self._state.value, "abort")

            self.abort_reason = reason or None
            self.closed_at = self._clock()
            state = self._transition(SessionState.ABORTED)

            task, loop = self._advisory_task, self._advisory_loop
            if task is not None and loop is not None and not task.done():
                loop.call_soon_threadsafe(task.cancel)
                logger.info("advisory_cancelled", session_id=self.session_id)

        return state

    # ── Internals ─────────────────────────────────────────────────────

    def _require_state(self, operation: str, expected: SessionState) -> None:
        if self._state.is_terminal:
            raise SessionClosed(self.session_id, self._state.value, operation)
        if self._state != expected:
            raise InvalidTransition(operation, self._state.value, expected.value)

    def _start_advisory(self) -> asyncio.Task:
        """Score, then schedule the advisory call on the running loop. Caller holds the lock."""
        scorecard = self._scorer.score(
            self.linearity_result,
            self.repeatability_result,
            self.accuracy_result,
            self.environmental_result,
            self.criteria,
        )
        request = self._advisory_request(scorecard)
        task = asyncio.ensure_future(
            self._adapter.finalize(request, scorecard, self.criteria.version)
        )
        self._advisory_task = task
        self._advisory_loop = asyncio.get_running_loop()
        return task

    def _clear_advisory(self) -> None:
        self._advisory_task = None
        self._advisory_loop = None

    def _transition(self, new_state: SessionState) -> SessionState:
        old_state = self._state
        self._state = new_state
        logger.info(
            "session_transition",
            session_id=self.session_id,
            equipment_id=self.equipment_id,
            from_state=old_state.value,
            to_state=new_state.value,
        )
        return new_state

    def _measurement_snapshot(self) -> Optional[MeasurementSnapshot]:
        if self.linearity_result is None:
            return None
        return MeasurementSnapshot(
            linearity=LinearitySnapshot(
                weights=self.linearity.weights,
                readings=self.linearity.readings,
                deviations=self.linearity_result.deviations,
                r_squared=self.linearity_result.r_squared,
            ),
            repeatability=RepeatabilitySnapshot(
                samples=self.repeatability.samples,
                std_dev=self.repeatability_result.std_dev,
            ),
            accuracy=AccuracySnapshot(
                reference=self.accuracy.reference,
                measured=self.accuracy.measured,
                deviation=self.accuracy_result.deviation,
            ),
        )

    def _advisory_request(self, scorecard: ScoreCard) -> AdvisoryRequest:
        return AdvisoryRequest(
            equipment_class=self.equipment_class,
            measurements=self._measurement_snapshot(),
            environmental=self.environmental,
            deterministic_score=scorecard.score,
        )

    def __repr__(self) -> str:
        return (
            f"CalibrationSession(id={self.session_id!r}, "
            f"equipment={self.equipment_id!r}, state={self._state.value})"
        )
