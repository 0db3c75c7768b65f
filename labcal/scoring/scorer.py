"""
Compliance Scorer — validator outputs → score + verdict.

Scoring:
  score = 100 − Σ weight(check) for every check that exceeded its limits

  linearity      35
  repeatability  25
  accuracy       30
  environmental  10

Penalties are all-or-nothing, matching pass/fail calibration tolerances.

Verdict bands:
  100          → PASS
  70 ≤ s < 100 → CONDITIONAL
  s < 70       → FAIL

The scorer is a pure function: no randomness, no clock, no hidden state.
"""

from dataclasses import dataclass

from labcal.criteria.schemas import AcceptanceCriteria
from labcal.scoring.schemas import ComplianceResult, Deviation, ResultSource, Verdict
from labcal.validation.schemas import (
    AccuracyResult,
    EnvironmentalResult,
    LinearityResult,
    RepeatabilityResult,
)

# ── Configuration ─────────────────────────────────────────────────────────

WEIGHT_LINEARITY: int = 35
WEIGHT_REPEATABILITY: int = 25
WEIGHT_ACCURACY: int = 30
WEIGHT_ENVIRONMENTAL: int = 10

PASS_SCORE: int = 100
CONDITIONAL_MIN_SCORE: int = 70

DETERMINISTIC_CONFIDENCE: float = 1.0


def verdict_for_score(score: int) -> Verdict:
    if score >= PASS_SCORE:
        return Verdict.PASS
    if score >= CONDITIONAL_MIN_SCORE:
        return Verdict.CONDITIONAL
    return Verdict.FAIL


@dataclass(frozen=True)
class ScoreCard:
    """Scorer output before any advisory input."""
    verdict: Verdict
    score: int
    deviations: tuple[Deviation, ...]
    recommendations: tuple[str, ...]
    corrective_actions: tuple[str, ...]
    summary: str
    exceeded_checks: tuple[str, ...]

    def to_result(self, criteria_version: str = "", degraded: bool = False) -> ComplianceResult:
        """Deterministic ComplianceResult for this scorecard."""
        return ComplianceResult(
            verdict=self.verdict,
            score=self.score,
            deviations=self.deviations,
            recommendations=self.recommendations,
            corrective_actions=self.corrective_actions,
            summary=self.summary,
            source=ResultSource.DETERMINISTIC,
            confidence=DETERMINISTIC_CONFIDENCE,
            degraded=degraded,
            criteria_version=criteria_version,
        )


class ComplianceScorer:
    """Combines the four validator results into a single compliance score."""

    def score(
        self,
        linearity: LinearityResult,
        repeatability: RepeatabilityResult,
        accuracy: AccuracyResult,
        environmental: EnvironmentalResult,
        criteria: AcceptanceCriteria,
    ) -> ScoreCard:
        checks = (
            ("linearity", linearity.exceeded, WEIGHT_LINEARITY),
            ("repeatability", repeatability.exceeded, WEIGHT_REPEATABILITY),
            ("accuracy", accuracy.exceeded, WEIGHT_ACCURACY),
            ("environmental", environmental.exceeded, WEIGHT_ENVIRONMENTAL),
        )

        score = PASS_SCORE
        exceeded_checks: list[str] = []
        for name, exceeded, weight in checks:
            if exceeded:
                score -= weight
                exceeded_checks.append(name)
        score = max(0, score)
        verdict = verdict_for_score(score)

        deviations = self._deviations(linearity, repeatability, accuracy, environmental, criteria)
        recommendations, corrective_actions = self._advice(
            linearity, repeatability, accuracy, environmental, criteria
        )

        return ScoreCard(
            verdict=verdict,
            score=score,
            deviations=deviations,
            recommendations=recommendations,
            corrective_actions=corrective_actions,
            summary=self._summary(verdict, score, exceeded_checks),
            exceeded_checks=tuple(exceeded_checks),
        )

    # ── Deviations (fixed order) ─────────────────────────────────────

    @staticmethod
    def _deviations(
        linearity: LinearityResult,
        repeatability: RepeatabilityResult,
        accuracy: AccuracyResult,
        environmental: EnvironmentalResult,
        criteria: AcceptanceCriteria,
    ) -> tuple[Deviation, ...]:
        """Always the same six metrics, grouped by check in check order."""
        return (
            Deviation(
                check="linearity",
                metric="linearity.max_deviation",
                observed=linearity.max_abs_deviation,
                max_limit=criteria.max_linearity_deviation,
                exceeded=linearity.max_abs_deviation > criteria.max_linearity_deviation,
            ),
            Deviation(
                check="linearity",
                metric="linearity.r_squared",
                observed=linearity.r_squared,
                min_limit=criteria.min_linearity_r_squared,
                exceeded=linearity.r_squared < criteria.min_linearity_r_squared,
            ),
            Deviation(
                check="repeatability",
                metric="repeatability.std_dev",
                observed=repeatability.std_dev,
                max_limit=criteria.max_repeatability_std_dev,
                exceeded=repeatability.exceeded,
            ),
            Deviation(
                check="accuracy",
                metric="accuracy.deviation",
                observed=abs(accuracy.deviation),
                max_limit=criteria.max_accuracy_deviation,
                exceeded=accuracy.exceeded,
            ),
            Deviation(
                check="environmental",
                metric="environmental.temperature",
                observed=environmental.temperature,
                min_limit=criteria.temperature_range.min,
                max_limit=criteria.temperature_range.max,
                exceeded=not environmental.temperature_in_range,
            ),
            Deviation(
                check="environmental",
                metric="environmental.humidity",
                observed=environmental.humidity,
                min_limit=criteria.humidity_range.min,
                max_limit=criteria.humidity_range.max,
                exceeded=not environmental.humidity_in_range,
            ),
        )

    # ── Recommendations ──────────────────────────────────────────────

    @staticmethod
    def _advice(
        linearity: LinearityResult,
        repeatability: RepeatabilityResult,
        accuracy: AccuracyResult,
        environmental: EnvironmentalResult,
        criteria: AcceptanceCriteria,
    ) -> tuple[tuple[str, ...], tuple[str, ...]]:
        recommendations: list[str] = []
        actions: list[str] = []

        if linearity.exceeded:
            if linearity.max_abs_deviation > criteria.max_linearity_deviation:
                recommendations.append(
                    f"Linearity deviation {linearity.max_abs_deviation:.4g} exceeds "
                    f"the limit of {criteria.max_linearity_deviation:.4g}."
                )
            if linearity.r_squared < criteria.min_linearity_r_squared:
                recommendations.append(
                    f"Linearity fit R² {linearity.r_squared:.6f} is below "
                    f"the minimum of {criteria.min_linearity_r_squared}."
                )
            actions.append("Perform span adjustment and repeat the linearity test across the full range.")

        if repeatability.exceeded:
            recommendations.append(
                f"Repeatability standard deviation {repeatability.std_dev:.4g} exceeds "
                f"the limit of {criteria.max_repeatability_std_dev:.4g}."
            )
            actions.append("Inspect for drafts, static and mechanical wear, then repeat the repeatability series.")

        if accuracy.exceeded:
            recommendations.append(
                f"Accuracy deviation {accuracy.deviation:+.4g} exceeds "
                f"±{criteria.max_accuracy_deviation:.4g}."
            )
            actions.append("Recalibrate against a certified reference standard.")

        if environmental.exceeded:
            if not environmental.temperature_in_range:
                recommendations.append(
                    f"Temperature {environmental.temperature:.1f} °C is outside "
                    f"{criteria.temperature_range.min:g}-{criteria.temperature_range.max:g} °C."
                )
            if not environmental.humidity_in_range:
                recommendations.append(
                    f"Humidity {environmental.humidity:.1f} %RH is outside "
                    f"{criteria.humidity_range.min:g}-{criteria.humidity_range.max:g} %RH."
                )
            actions.append("Stabilize room conditions and repeat the calibration.")

        recommendations.extend(environmental.notes)

        if not actions:
            recommendations.insert(0, "All measurements are within acceptance criteria.")

        return tuple(recommendations), tuple(actions)

    @staticmethod
    def _summary(verdict: Verdict, score: int, exceeded_checks: list[str]) -> str:
        if verdict == Verdict.PASS:
            return "All measurements within acceptable limits. Equipment meets calibration requirements."
        failed = ", ".join(exceeded_checks)
        if verdict == Verdict.CONDITIONAL:
            return f"Conditional compliance (score {score}): {failed} out of tolerance."
        return f"Calibration failed (score {score}): {failed} out of tolerance."
