"""
AI Validation Adapter — deterministic score + optional advisory opinion.

Pipeline:
1. Send the advisory request, bounded by the configured timeout
2. On timeout / error / open circuit → deterministic result, degraded=True
3. Otherwise normalize the advisory verdict, score and confidence
4. Apply the leniency cap: the advisory verdict may be at most one level
   more lenient than the deterministic verdict (FAIL → CONDITIONAL is
   allowed, FAIL → PASS is not). A stricter advisory verdict is accepted.
5. Package the ComplianceResult (source=AI_ASSISTED, with the clamped
   advisory confidence even when the cap rejected its verdict)

The adapter never raises for advisory problems; validation always
produces a result.
"""

import asyncio
import math
from typing import Optional

import structlog

from labcal.advisory.client import AdvisoryClient
from labcal.advisory.resilience import CircuitBreaker, CircuitOpenError
from labcal.advisory.schemas import AdvisoryRequest, AdvisoryResponse
from labcal.errors import AdvisoryServiceError, AdvisoryTimeout
from labcal.scoring.schemas import ComplianceResult, ResultSource, Verdict
from labcal.scoring.scorer import (
    CONDITIONAL_MIN_SCORE,
    PASS_SCORE,
    ScoreCard,
    verdict_for_score,
)

logger = structlog.get_logger(__name__)

MAX_LENIENCY_UPGRADE: int = 1

# Score band per verdict, inclusive.
_VERDICT_BANDS: dict[Verdict, tuple[int, int]] = {
    Verdict.PASS: (PASS_SCORE, PASS_SCORE),
    Verdict.CONDITIONAL: (CONDITIONAL_MIN_SCORE, PASS_SCORE - 1),
    Verdict.FAIL: (0, CONDITIONAL_MIN_SCORE - 1),
}


def clamp_confidence(value: float) -> float:
    if not math.isfinite(value):
        return 0.0
    return min(1.0, max(0.0, value))


class AIValidationAdapter:
    """
    Boundary to the external advisory service.

    `client=None` means advisory is disabled: results are deterministic
    and not marked degraded.
    """

    def __init__(
        self,
        client: Optional[AdvisoryClient],
        timeout_seconds: float = 3.0,
        breaker: Optional[CircuitBreaker] = None,
    ):
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be greater than 0")
        self.client = client
        self.timeout_seconds = timeout_seconds
        self.breaker = breaker

    @property
    def enabled(self) -> bool:
        return self.client is not None

    async def request_advisory(self, request: AdvisoryRequest) -> AdvisoryResponse:
        """
        One bounded advisory call.

        Raises:
            AdvisoryTimeout, AdvisoryServiceError, CircuitOpenError
        """
        if self.client is None:
            raise AdvisoryServiceError("Advisory service is disabled")
        if self.breaker is not None:
            return await self.breaker.call(self._timed_request, request)
        return await self._timed_request(request)

    async def _timed_request(self, request: AdvisoryRequest) -> AdvisoryResponse:
        try:
            return await asyncio.wait_for(
                self.client.request_advisory(request),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise AdvisoryTimeout(self.timeout_seconds) from e

    async def finalize(
        self,
        request: AdvisoryRequest,
        scorecard: ScoreCard,
        criteria_version: str = "",
    ) -> ComplianceResult:
        """Produce the session's ComplianceResult. Never raises for advisory failures."""
        if self.client is None:
            return scorecard.to_result(criteria_version)

        try:
            response = await self.request_advisory(request)
        except CircuitOpenError:
            logger.warning("advisory_skipped_circuit_open")
            return scorecard.to_result(criteria_version, degraded=True)
        except AdvisoryTimeout:
            logger.warning("advisory_timeout_fallback", timeout_seconds=self.timeout_seconds)
            return scorecard.to_result(criteria_version, degraded=True)
        except AdvisoryServiceError as e:
            logger.warning("advisory_error_fallback", error=e.message)
            return scorecard.to_result(criteria_version, degraded=True)
        except Exception as e:
            logger.error("advisory_unexpected_error_fallback", error=str(e), error_type=type(e).__name__)
            return scorecard.to_result(criteria_version, degraded=True)

        return self.merge(scorecard, response, criteria_version)

    # ── Merge ─────────────────────────────────────────────────────────

    def merge(
        self,
        scorecard: ScoreCard,
        response: AdvisoryResponse,
        criteria_version: str = "",
    ) -> ComplianceResult:
        """Combine the deterministic scorecard with a received advisory."""
        advisory_verdict, advisory_score = self._normalize(response)
        confidence = clamp_confidence(response.confidence)
        narrative = response.narrative.strip()

        recommendations = list(scorecard.recommendations)
        verdict = scorecard.verdict
        score = scorecard.score
        conflict = False

        if advisory_verdict is not None:
            upgrade = advisory_verdict.leniency - scorecard.verdict.leniency
            if upgrade > MAX_LENIENCY_UPGRADE:
                conflict = True
                logger.warning(
                    "advisory_leniency_conflict",
                    deterministic_verdict=scorecard.verdict.value,
                    deterministic_score=scorecard.score,
                    advisory_verdict=advisory_verdict.value,
                    advisory_score=advisory_score,
                    exceeded_checks=list(scorecard.exceeded_checks),
                )
            else:
                verdict = advisory_verdict
                score = (
                    advisory_score
                    if advisory_score is not None
                    else self._fit_to_band(scorecard.score, advisory_verdict)
                )

        if narrative:
            if conflict:
                recommendations.append(f"Advisory note (verdict not applied): {narrative}")
            else:
                recommendations.append(f"Advisory: {narrative}")

        logger.info(
            "advisory_merged",
            verdict=verdict.value,
            score=score,
            confidence=confidence,
            conflict=conflict,
        )

        return ComplianceResult(
            verdict=verdict,
            score=score,
            deviations=scorecard.deviations,
            recommendations=tuple(recommendations),
            corrective_actions=scorecard.corrective_actions,
            summary=scorecard.summary,
            source=ResultSource.AI_ASSISTED,
            confidence=confidence,
            degraded=False,
            advisory_conflict=conflict,
            criteria_version=criteria_version,
        )

    @staticmethod
    def _normalize(response: AdvisoryResponse) -> tuple[Optional[Verdict], Optional[int]]:
        """
        Structurally valid (verdict, score) from an advisory response.

        Unknown verdicts, out-of-range or fractional scores, and a verdict
        that contradicts its own score are all discarded.
        """
        verdict: Optional[Verdict] = None
        score: Optional[int] = None

        if response.verdict is not None:
            try:
                verdict = Verdict(response.verdict.strip().upper())
            except ValueError:
                logger.warning("advisory_verdict_unrecognized", verdict=response.verdict)

        if response.score is not None:
            raw = response.score
            if math.isfinite(raw) and raw == int(raw) and 0 <= raw <= 100:
                score = int(raw)
            else:
                logger.warning("advisory_score_invalid", score=raw)

        if verdict is None and score is not None:
            verdict = verdict_for_score(score)
        elif verdict is not None and score is not None and verdict_for_score(score) != verdict:
            logger.warning(
                "advisory_inconsistent",
                verdict=verdict.value,
                score=score,
            )
            return None, None

        return verdict, score

    @staticmethod
    def _fit_to_band(score: int, verdict: Verdict) -> int:
        """Nearest score inside the verdict's band."""
        low, high = _VERDICT_BANDS[verdict]
        return min(high, max(low, score))
