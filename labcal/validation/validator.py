"""
Measurement Validator — pure numeric checks against acceptance criteria.

Implements:
- Linearity: per-point deviation + least-squares fit R²
- Repeatability: population standard deviation (divide by N)
- Accuracy: signed deviation from a reference value
- Environmental: temperature / humidity range checks

No I/O, no state. All arithmetic is double precision; any NaN or infinity
in the input or in a derived value raises MeasurementError.
"""

import math
from typing import Sequence

from labcal.criteria.schemas import AcceptanceCriteria
from labcal.errors import InvalidInput, MeasurementError
from labcal.validation.schemas import (
    AccuracyResult,
    EnvironmentalConditions,
    EnvironmentalResult,
    LinearityResult,
    RepeatabilityResult,
    VibrationLevel,
)

# ── Physical plausibility (not acceptance limits) ────────────────────────

MIN_PLAUSIBLE_TEMPERATURE_C: float = -40.0
MAX_PLAUSIBLE_TEMPERATURE_C: float = 80.0
MIN_PLAUSIBLE_HUMIDITY: float = 0.0
MAX_PLAUSIBLE_HUMIDITY: float = 100.0
MIN_PLAUSIBLE_PRESSURE_HPA: float = 300.0
MAX_PLAUSIBLE_PRESSURE_HPA: float = 1100.0

MIN_LINEARITY_POINTS: int = 2
MIN_REPEATABILITY_SAMPLES: int = 2


def _require_finite(value: float, set_name: str, field: str) -> None:
    if not math.isfinite(value):
        raise MeasurementError(
            f"{set_name}.{field} is not a finite number ({value})",
            set_name=set_name,
            field=field,
        )


def _require_all_finite(values: Sequence[float], set_name: str, field: str) -> None:
    for i, v in enumerate(values):
        if not math.isfinite(v):
            raise MeasurementError(
                f"{set_name}.{field}[{i}] is not a finite number ({v})",
                set_name=set_name,
                field=field,
                details={"index": i},
            )


class MeasurementValidator:
    """
    Validates captured calibration data against AcceptanceCriteria.

    Every method is a pure function of its arguments: identical inputs
    always produce identical results.
    """

    # ── Structural preconditions ──────────────────────────────────────

    def check_linearity_input(self, weights: Sequence[float], readings: Sequence[float]) -> None:
        """Raise InvalidInput unless weights/readings form a usable linearity set."""
        if len(weights) != len(readings):
            raise InvalidInput(
                f"linearity weights ({len(weights)}) and readings ({len(readings)}) "
                "must have the same length",
                set_name="linearity",
                field="readings",
                details={"weights": len(weights), "readings": len(readings)},
            )
        if len(weights) < MIN_LINEARITY_POINTS:
            raise InvalidInput(
                f"linearity needs at least {MIN_LINEARITY_POINTS} points, got {len(weights)}",
                set_name="linearity",
                field="weights",
            )
        _require_all_finite(weights, "linearity", "weights")
        _require_all_finite(readings, "linearity", "readings")

    def check_repeatability_input(self, samples: Sequence[float]) -> None:
        if len(samples) < MIN_REPEATABILITY_SAMPLES:
            raise InvalidInput(
                f"repeatability needs at least {MIN_REPEATABILITY_SAMPLES} samples, "
                f"got {len(samples)}",
                set_name="repeatability",
                field="samples",
            )
        _require_all_finite(samples, "repeatability", "samples")

    def check_accuracy_input(self, reference: float, measured: float) -> None:
        _require_finite(reference, "accuracy", "reference")
        _require_finite(measured, "accuracy", "measured")

    def check_environmental_plausibility(self, env: EnvironmentalConditions) -> None:
        """
        Reject readings no real bench could produce.

        These are sanity bounds, not acceptance limits: 30 °C is plausible
        (and may fail the criteria), 140 %RH is not.
        """
        _require_finite(env.temperature, "environmental", "temperature")
        _require_finite(env.humidity, "environmental", "humidity")

        if not MIN_PLAUSIBLE_TEMPERATURE_C <= env.temperature <= MAX_PLAUSIBLE_TEMPERATURE_C:
            raise InvalidInput(
                f"temperature {env.temperature} °C is outside the plausible range "
                f"{MIN_PLAUSIBLE_TEMPERATURE_C}-{MAX_PLAUSIBLE_TEMPERATURE_C} °C",
                set_name="environmental",
                field="temperature",
            )
        if not MIN_PLAUSIBLE_HUMIDITY <= env.humidity <= MAX_PLAUSIBLE_HUMIDITY:
            raise InvalidInput(
                f"humidity {env.humidity} %RH must be between 0 and 100",
                set_name="environmental",
                field="humidity",
            )
        if env.pressure is not None:
            _require_finite(env.pressure, "environmental", "pressure")
            if not MIN_PLAUSIBLE_PRESSURE_HPA <= env.pressure <= MAX_PLAUSIBLE_PRESSURE_HPA:
                raise InvalidInput(
                    f"pressure {env.pressure} hPa is outside the plausible range "
                    f"{MIN_PLAUSIBLE_PRESSURE_HPA}-{MAX_PLAUSIBLE_PRESSURE_HPA} hPa",
                    set_name="environmental",
                    field="pressure",
                )

    # ── Checks ────────────────────────────────────────────────────────

    def validate_linearity(
        self,
        weights: Sequence[float],
        readings: Sequence[float],
        criteria: AcceptanceCriteria,
    ) -> LinearityResult:
        """
        Linearity of readings against reference weights.

        Fits readings = slope × weight + intercept by least squares and
        reports R² alongside the per-point deviations.

        Raises:
            InvalidInput: length mismatch, fewer than 2 points, or all
                weights identical (no fit possible)
            MeasurementError: NaN/Inf in the data or in the fit
        """
        self.check_linearity_input(weights, readings)

        n = len(weights)
        deviations = tuple(r - w for w, r in zip(weights, readings))
        max_abs_deviation = max(abs(d) for d in deviations)

        try:
            mean_w = math.fsum(weights) / n
            mean_r = math.fsum(readings) / n
            sxx = math.fsum((w - mean_w) ** 2 for w in weights)
            syy = math.fsum((r - mean_r) ** 2 for r in readings)
            sxy = math.fsum((w - mean_w) * (r - mean_r) for w, r in zip(weights, readings))
        except OverflowError as e:
            raise MeasurementError(
                f"linearity fit overflowed ({e})",
                set_name="linearity",
                field="readings",
            ) from e

        if sxx == 0.0:
            raise InvalidInput(
                "linearity weights must span at least two distinct values",
                set_name="linearity",
                field="weights",
            )
        if syy == 0.0:
            # A flat response has no explained variance: R² is 0/0.
            raise MeasurementError(
                "linearity readings do not vary; R² is undefined",
                set_name="linearity",
                field="readings",
            )

        denominator = sxx * syy
        if denominator == 0.0:
            raise MeasurementError(
                "linearity spread is too small to fit; R² is undefined",
                set_name="linearity",
                field="readings",
            )

        slope = sxy / sxx
        intercept = mean_r - slope * mean_w
        r_squared = (sxy * sxy) / denominator

        for name, value in (
            ("max_abs_deviation", max_abs_deviation),
            ("slope", slope),
            ("intercept", intercept),
            ("r_squared", r_squared),
        ):
            if not math.isfinite(value):
                raise MeasurementError(
                    f"linearity {name} is not finite ({value})",
                    set_name="linearity",
                    field=name,
                )
        r_squared = min(1.0, r_squared)

        exceeded = (
            max_abs_deviation > criteria.max_linearity_deviation
            or r_squared < criteria.min_linearity_r_squared
        )

        return LinearityResult(
            deviations=deviations,
            max_abs_deviation=max_abs_deviation,
            slope=slope,
            intercept=intercept,
            r_squared=r_squared,
            exceeded=exceeded,
        )

    def validate_repeatability(
        self,
        samples: Sequence[float],
        criteria: AcceptanceCriteria,
    ) -> RepeatabilityResult:
        """Population standard deviation of repeated measurements."""
        self.check_repeatability_input(samples)

        n = len(samples)
        try:
            mean = math.fsum(samples) / n
            variance = math.fsum((s - mean) ** 2 for s in samples) / n
        except OverflowError as e:
            raise MeasurementError(
                f"repeatability statistics overflowed ({e})",
                set_name="repeatability",
                field="samples",
            ) from e
        std_dev = math.sqrt(variance)

        if not math.isfinite(std_dev) or not math.isfinite(mean):
            raise MeasurementError(
                f"repeatability statistics are not finite (mean={mean}, std_dev={std_dev})",
                set_name="repeatability",
                field="samples",
            )

        return RepeatabilityResult(
            n=n,
            mean=mean,
            std_dev=std_dev,
            exceeded=std_dev > criteria.max_repeatability_std_dev,
        )

    def validate_accuracy(
        self,
        reference: float,
        measured: float,
        criteria: AcceptanceCriteria,
    ) -> AccuracyResult:
        self.check_accuracy_input(reference, measured)

        deviation = measured - reference
        if not math.isfinite(deviation):
            raise MeasurementError(
                f"accuracy deviation is not finite ({deviation})",
                set_name="accuracy",
                field="measured",
            )

        return AccuracyResult(
            reference=reference,
            measured=measured,
            deviation=deviation,
            exceeded=abs(deviation) > criteria.max_accuracy_deviation,
        )

    def validate_environmental(
        self,
        env: EnvironmentalConditions,
        criteria: AcceptanceCriteria,
    ) -> EnvironmentalResult:
        """
        Temperature and humidity against the criteria ranges (inclusive).

        Pressure and vibration have no tolerance and never fail the check;
        they only produce notes.
        """
        _require_finite(env.temperature, "environmental", "temperature")
        _require_finite(env.humidity, "environmental", "humidity")

        temperature_ok = criteria.temperature_range.contains(env.temperature)
        humidity_ok = criteria.humidity_range.contains(env.humidity)

        notes: list[str] = []
        if env.vibration in (VibrationLevel.MEDIUM, VibrationLevel.HIGH):
            notes.append(
                f"{env.vibration.value.capitalize()} vibration recorded; "
                "confirm the instrument is on a stable, isolated surface."
            )
        if env.pressure is not None:
            notes.append(f"Barometric pressure recorded at {env.pressure:.1f} hPa.")

        return EnvironmentalResult(
            temperature=env.temperature,
            humidity=env.humidity,
            temperature_in_range=temperature_ok,
            humidity_in_range=humidity_ok,
            exceeded=not (temperature_ok and humidity_ok),
            notes=tuple(notes),
        )
