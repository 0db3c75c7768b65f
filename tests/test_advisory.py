"""
Advisory Tests.

Covers:
- AIValidationAdapter: timeout fallback, leniency cap, confidence clamp
- BiomniAdvisoryClient: request shape and error mapping (httpx.MockTransport)
- CircuitBreaker: open / half-open / close cycle
"""

import asyncio
import json
import math

import httpx
import pytest
from hypothesis import given, settings as hyp_settings
from hypothesis import strategies as st

from labcal.advisory.adapter import AIValidationAdapter, clamp_confidence
from labcal.advisory.client import ADVISORY_PATH, BiomniAdvisoryClient
from labcal.advisory.resilience import CircuitBreaker, CircuitOpenError, CircuitState
from labcal.advisory.schemas import (
    AccuracySnapshot,
    AdvisoryRequest,
    AdvisoryResponse,
    LinearitySnapshot,
    MeasurementSnapshot,
    RepeatabilitySnapshot,
)
from labcal.criteria.schemas import EquipmentClass
from labcal.errors import AdvisoryServiceError, AdvisoryTimeout
from labcal.scoring.schemas import ResultSource, Verdict
from labcal.scoring.scorer import ScoreCard
from labcal.validation.schemas import EnvironmentalConditions

from conftest import ScriptedAdvisoryClient


def _request(score: int = 90) -> AdvisoryRequest:
    return AdvisoryRequest(
        equipment_class=EquipmentClass.ANALYTICAL_BALANCE,
        measurements=MeasurementSnapshot(
            linearity=LinearitySnapshot(
                weights=(0.0, 10.0), readings=(0.001, 10.002), deviations=(0.001, 0.002), r_squared=1.0
            ),
            repeatability=RepeatabilitySnapshot(samples=(10.0, 10.001), std_dev=0.0005),
            accuracy=AccuracySnapshot(reference=10.0, measured=10.002, deviation=0.002),
        ),
        environmental=EnvironmentalConditions(temperature=22.5, humidity=45.0),
        deterministic_score=score,
    )


def _scorecard(verdict: Verdict, score: int, exceeded: tuple[str, ...] = ()) -> ScoreCard:
    return ScoreCard(
        verdict=verdict,
        score=score,
        deviations=(),
        recommendations=("base recommendation",),
        corrective_actions=(),
        summary="summary",
        exceeded_checks=exceeded,
    )


FAIL_TWO_CHECKS = _scorecard(Verdict.FAIL, 35, ("linearity", "accuracy"))
CONDITIONAL = _scorecard(Verdict.CONDITIONAL, 90, ("environmental",))


# ============================================================================
# ADAPTER
# ============================================================================


class TestAdapterFallback:
    @pytest.mark.asyncio
    async def test_disabled_is_deterministic_not_degraded(self):
        adapter = AIValidationAdapter(None)
        result = await adapter.finalize(_request(), CONDITIONAL, "2024.1")
        assert result.source == ResultSource.DETERMINISTIC
        assert result.degraded is False
        assert result.criteria_version == "2024.1"

    @pytest.mark.asyncio
    async def test_timeout_falls_back_within_bound(self):
        client = ScriptedAdvisoryClient(delay=5.0)
        adapter = AIValidationAdapter(client, timeout_seconds=0.05)

        loop = asyncio.get_running_loop()
        started = loop.time()
        result = await adapter.finalize(_request(), CONDITIONAL)
        elapsed = loop.time() - started

        assert result.source == ResultSource.DETERMINISTIC
        assert result.degraded is True
        assert result.verdict == Verdict.CONDITIONAL
        assert result.score == 90
        assert elapsed < 1.0
        assert client.cancelled is True

    @pytest.mark.asyncio
    async def test_request_advisory_raises_timeout(self):
        adapter = AIValidationAdapter(ScriptedAdvisoryClient(delay=5.0), timeout_seconds=0.05)
        with pytest.raises(AdvisoryTimeout):
            await adapter.request_advisory(_request())

    @pytest.mark.asyncio
    async def test_service_error_falls_back(self):
        client = ScriptedAdvisoryClient(error=AdvisoryServiceError("boom"))
        result = await AIValidationAdapter(client).finalize(_request(), CONDITIONAL)
        assert result.degraded is True
        assert result.source == ResultSource.DETERMINISTIC

    @pytest.mark.asyncio
    async def test_unexpected_error_falls_back(self):
        client = ScriptedAdvisoryClient(error=RuntimeError("bug in client"))
        result = await AIValidationAdapter(client).finalize(_request(), CONDITIONAL)
        assert result.degraded is True

    @pytest.mark.asyncio
    async def test_open_circuit_falls_back_without_calling(self):
        client = ScriptedAdvisoryClient()
        breaker = CircuitBreaker("test", failure_threshold=1)
        breaker._on_failure()
        assert breaker.state == CircuitState.OPEN

        result = await AIValidationAdapter(client, breaker=breaker).finalize(_request(), CONDITIONAL)
        assert result.degraded is True
        assert client.requests == []

    def test_non_positive_timeout_rejected(self):
        with pytest.raises(ValueError):
            AIValidationAdapter(None, timeout_seconds=0)


class TestLeniencyCap:
    def setup_method(self):
        self.adapter = AIValidationAdapter(ScriptedAdvisoryClient())

    def test_fail_to_pass_rejected(self):
        response = AdvisoryResponse(verdict="PASS", score=100, confidence=0.95, narrative="Looks fine.")
        result = self.adapter.merge(FAIL_TWO_CHECKS, response)

        assert result.verdict == Verdict.FAIL
        assert result.score == 35
        assert result.advisory_conflict is True
        assert result.confidence == 0.95
        assert result.source == ResultSource.AI_ASSISTED
        assert "Advisory note (verdict not applied): Looks fine." in result.recommendations

    def test_fail_to_pass_by_score_alone_rejected(self):
        response = AdvisoryResponse(score=100, confidence=0.9)
        result = self.adapter.merge(FAIL_TWO_CHECKS, response)
        assert result.verdict == Verdict.FAIL
        assert result.advisory_conflict is True

    def test_rejected_upgrade_keeps_clamped_confidence(self):
        response = AdvisoryResponse(verdict="PASS", confidence=4.0)
        result = self.adapter.merge(FAIL_TWO_CHECKS, response)
        assert result.advisory_conflict is True
        assert result.source == ResultSource.AI_ASSISTED
        assert result.confidence == 1.0

        response = AdvisoryResponse(verdict="PASS", confidence=0.3)
        assert self.adapter.merge(FAIL_TWO_CHECKS, response).confidence == 0.3

    def test_fail_to_conditional_accepted(self):
        response = AdvisoryResponse(verdict="CONDITIONAL", score=72, confidence=0.7, narrative="Borderline.")
        result = self.adapter.merge(FAIL_TWO_CHECKS, response)
        assert result.verdict == Verdict.CONDITIONAL
        assert result.score == 72
        assert result.advisory_conflict is False
        assert result.confidence == 0.7
        assert "Advisory: Borderline." in result.recommendations

    def test_verdict_without_score_fits_band(self):
        response = AdvisoryResponse(verdict="conditional", confidence=0.6)
        result = self.adapter.merge(FAIL_TWO_CHECKS, response)
        assert result.verdict == Verdict.CONDITIONAL
        assert result.score == 70

    def test_stricter_verdict_accepted(self):
        response = AdvisoryResponse(verdict="FAIL", score=50, confidence=0.8)
        result = self.adapter.merge(CONDITIONAL, response)
        assert result.verdict == Verdict.FAIL
        assert result.score == 50

    def test_inconsistent_verdict_and_score_ignored(self):
        response = AdvisoryResponse(verdict="PASS", score=40, confidence=0.8, narrative="n")
        result = self.adapter.merge(CONDITIONAL, response)
        assert result.verdict == Verdict.CONDITIONAL
        assert result.score == 90
        assert result.advisory_conflict is False

    def test_unknown_verdict_keeps_deterministic(self):
        response = AdvisoryResponse(verdict="MAYBE", confidence=0.5, narrative="unsure")
        result = self.adapter.merge(CONDITIONAL, response)
        assert result.verdict == Verdict.CONDITIONAL
        assert result.score == 90
        assert result.source == ResultSource.AI_ASSISTED
        assert result.recommendations[-1] == "Advisory: unsure"

    def test_deterministic_recommendations_kept_first(self):
        response = AdvisoryResponse(confidence=0.5, narrative="extra")
        result = self.adapter.merge(CONDITIONAL, response)
        assert result.recommendations[0] == "base recommendation"

    @given(
        det=st.sampled_from([Verdict.FAIL, Verdict.CONDITIONAL, Verdict.PASS]),
        adv=st.sampled_from(["FAIL", "CONDITIONAL", "PASS"]),
    )
    @hyp_settings(max_examples=50)
    def test_never_more_than_one_level_more_lenient(self, det, adv):
        score = {Verdict.FAIL: 35, Verdict.CONDITIONAL: 90, Verdict.PASS: 100}[det]
        result = self.adapter.merge(_scorecard(det, score), AdvisoryResponse(verdict=adv, confidence=0.9))
        assert result.verdict.leniency - det.leniency <= 1


class TestConfidenceClamp:
    @pytest.mark.parametrize(
        "raw,expected",
        [(-0.5, 0.0), (0.0, 0.0), (0.42, 0.42), (1.0, 1.0), (7.0, 1.0), (math.nan, 0.0), (math.inf, 0.0)],
    )
    def test_clamp(self, raw, expected):
        assert clamp_confidence(raw) == expected

    def test_merge_clamps(self):
        adapter = AIValidationAdapter(ScriptedAdvisoryClient())
        result = adapter.merge(CONDITIONAL, AdvisoryResponse(confidence=3.5))
        assert result.confidence == 1.0


# ============================================================================
# HTTP CLIENT
# ============================================================================


class TestBiomniAdvisoryClient:
    @pytest.mark.asyncio
    async def test_posts_camel_case_request(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["api_key"] = request.headers.get("X-API-Key")
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200, json={"verdict": "CONDITIONAL", "score": 88, "confidence": 0.8, "narrative": "ok"}
            )

        client = BiomniAdvisoryClient(
            "https://biomni.test", api_key="secret", transport=httpx.MockTransport(handler)
        )
        response = await client.request_advisory(_request())

        assert seen["path"] == ADVISORY_PATH
        assert seen["api_key"] == "secret"
        assert seen["body"]["equipmentClass"] == "ANALYTICAL_BALANCE"
        assert seen["body"]["deterministicScore"] == 90
        assert seen["body"]["measurements"]["linearity"]["rSquared"] == 1.0
        assert response.verdict == "CONDITIONAL"
        assert response.score == 88

    @pytest.mark.asyncio
    async def test_accepts_data_envelope(self):
        transport = httpx.MockTransport(
            lambda r: httpx.Response(200, json={"data": {"confidence": 0.4, "narrative": "wrapped"}})
        )
        client = BiomniAdvisoryClient("https://biomni.test", api_key="k", transport=transport)
        response = await client.request_advisory(_request())
        assert response.narrative == "wrapped"

    @pytest.mark.asyncio
    async def test_http_error_maps_to_service_error(self):
        transport = httpx.MockTransport(lambda r: httpx.Response(503, text="down"))
        client = BiomniAdvisoryClient("https://biomni.test", api_key="k", transport=transport)
        with pytest.raises(AdvisoryServiceError) as exc_info:
            await client.request_advisory(_request())
        assert exc_info.value.details["status"] == 503

    @pytest.mark.asyncio
    async def test_transport_timeout_maps_to_advisory_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        client = BiomniAdvisoryClient(
            "https://biomni.test", api_key="k", timeout=0.5, transport=httpx.MockTransport(handler)
        )
        with pytest.raises(AdvisoryTimeout):
            await client.request_advisory(_request())

    @pytest.mark.asyncio
    async def test_connection_error_maps_to_service_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = BiomniAdvisoryClient("https://biomni.test", api_key="k", transport=httpx.MockTransport(handler))
        with pytest.raises(AdvisoryServiceError):
            await client.request_advisory(_request())

    @pytest.mark.asyncio
    async def test_non_json_body(self):
        transport = httpx.MockTransport(lambda r: httpx.Response(200, text="<html>"))
        client = BiomniAdvisoryClient("https://biomni.test", api_key="k", transport=transport)
        with pytest.raises(AdvisoryServiceError):
            await client.request_advisory(_request())

    @pytest.mark.asyncio
    async def test_missing_confidence_fails_validation(self):
        transport = httpx.MockTransport(lambda r: httpx.Response(200, json={"verdict": "PASS"}))
        client = BiomniAdvisoryClient("https://biomni.test", api_key="k", transport=transport)
        with pytest.raises(AdvisoryServiceError) as exc_info:
            await client.request_advisory(_request())
        assert "validation" in exc_info.value.message


# ============================================================================
# CIRCUIT BREAKER
# ============================================================================


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestCircuitBreaker:
    def setup_method(self):
        self.clock = FakeClock()
        self.breaker = CircuitBreaker(
            "test", failure_threshold=3, window_seconds=60.0, recovery_timeout=30.0, clock=self.clock
        )

    async def _fail(self):
        raise AdvisoryServiceError("down")

    async def _ok(self):
        return "ok"

    @pytest.mark.asyncio
    async def test_opens_after_threshold(self):
        for _ in range(3):
            with pytest.raises(AdvisoryServiceError):
                await self.breaker.call(self._fail)
        assert self.breaker.state == CircuitState.OPEN
        with pytest.raises(CircuitOpenError):
            await self.breaker.call(self._ok)

    @pytest.mark.asyncio
    async def test_old_failures_leave_window(self):
        for _ in range(2):
            with pytest.raises(AdvisoryServiceError):
                await self.breaker.call(self._fail)
        self.clock.now += 61.0
        with pytest.raises(AdvisoryServiceError):
            await self.breaker.call(self._fail)
        assert self.breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_half_open_success_closes(self):
        for _ in range(3):
            with pytest.raises(AdvisoryServiceError):
                await self.breaker.call(self._fail)
        self.clock.now += 30.0
        assert self.breaker.state == CircuitState.HALF_OPEN
        assert await self.breaker.call(self._ok) == "ok"
        assert self.breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_half_open_failure_reopens(self):
        for _ in range(3):
            with pytest.raises(AdvisoryServiceError):
                await self.breaker.call(self._fail)
        self.clock.now += 30.0
        with pytest.raises(AdvisoryServiceError):
            await self.breaker.call(self._fail)
        assert self.breaker.state == CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_reset(self):
        for _ in range(3):
            with pytest.raises(AdvisoryServiceError):
                await self.breaker.call(self._fail)
        self.breaker.reset()
        assert self.breaker.state == CircuitState.CLOSED
