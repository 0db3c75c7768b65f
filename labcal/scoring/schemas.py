"""
Compliance Result Schemas — the immutable outcome of a calibration session.

Every result answers:
1. Did the instrument pass? (verdict)
2. By how much? (score, deviations)
3. What should be done? (recommendations, corrective actions)
4. Who decided? (source, confidence, degraded)
"""

from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Verdict(StrEnum):
    PASS = "PASS"
    CONDITIONAL = "CONDITIONAL"
    FAIL = "FAIL"

    @property
    def leniency(self) -> int:
        """FAIL=0, CONDITIONAL=1, PASS=2."""
        return _LENIENCY[self]


_LENIENCY = {Verdict.FAIL: 0, Verdict.CONDITIONAL: 1, Verdict.PASS: 2}


class ResultSource(StrEnum):
    DETERMINISTIC = "DETERMINISTIC"
    AI_ASSISTED = "AI_ASSISTED"


class _Frozen(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class Deviation(_Frozen):
    """
    One checked metric: observed value against its limit(s).

    `check` names the validator check the metric belongs to. Linearity
    (max deviation, R²) and environmental (temperature, humidity) each
    report two metrics, so a check can own more than one entry.
    """
    check: str
    metric: str
    observed: float
    min_limit: Optional[float] = None
    max_limit: Optional[float] = None
    exceeded: bool


class ComplianceResult(_Frozen):
    """Final, immutable outcome of a calibration session."""
    verdict: Verdict
    score: int = Field(ge=0, le=100)
    deviations: tuple[Deviation, ...]
    recommendations: tuple[str, ...] = ()
    corrective_actions: tuple[str, ...] = ()
    summary: str = ""
    source: ResultSource = ResultSource.DETERMINISTIC
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    degraded: bool = False              # advisory path failed; deterministic fallback
    advisory_conflict: bool = False     # advisory verdict rejected by the leniency cap
    criteria_version: str = ""
