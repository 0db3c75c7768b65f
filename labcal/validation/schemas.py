"""
Measurement Schemas.

Inputs are pydantic models validated at the API boundary; sequences are
stored as tuples so captured data cannot be mutated later. Results are
frozen dataclasses produced by MeasurementValidator.
"""

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class VibrationLevel(StrEnum):
    NONE = "NONE"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class _Frozen(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


# ── Inputs ────────────────────────────────────────────────────────────────


class EnvironmentalConditions(_Frozen):
    """Conditions at the bench while the calibration runs."""
    temperature: float                         # °C
    humidity: float                            # %RH
    pressure: Optional[float] = None           # hPa, informational
    vibration: Optional[VibrationLevel] = None # informational


class LinearityInput(_Frozen):
    weights: tuple[float, ...]
    readings: tuple[float, ...]


class RepeatabilityInput(_Frozen):
    samples: tuple[float, ...]


class AccuracyInput(_Frozen):
    reference: float
    measured: float


# ── Results ───────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class LinearityResult:
    """Linearity across the measurement range."""
    deviations: tuple[float, ...]     # readings[i] - weights[i]
    max_abs_deviation: float
    slope: float
    intercept: float
    r_squared: float
    exceeded: bool


@dataclass(frozen=True)
class RepeatabilityResult:
    """Spread of repeated measurements of one load."""
    n: int
    mean: float
    std_dev: float                    # population (divide by N)
    exceeded: bool


@dataclass(frozen=True)
class AccuracyResult:
    reference: float
    measured: float
    deviation: float                  # measured - reference
    exceeded: bool


@dataclass(frozen=True)
class EnvironmentalResult:
    temperature: float
    humidity: float
    temperature_in_range: bool
    humidity_in_range: bool
    exceeded: bool
    notes: tuple[str, ...] = field(default_factory=tuple)
