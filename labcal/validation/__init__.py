"""
Measurement Validation - pure checks of captured calibration data.

Components:
- schemas.py: measurement inputs and per-check results
- validator.py: MeasurementValidator
"""

from labcal.validation.schemas import (
    AccuracyInput,
    AccuracyResult,
    EnvironmentalConditions,
    EnvironmentalResult,
    LinearityInput,
    LinearityResult,
    RepeatabilityInput,
    RepeatabilityResult,
    VibrationLevel,
)
from labcal.validation.validator import MeasurementValidator

__all__ = [
    "AccuracyInput",
    "AccuracyResult",
    "EnvironmentalConditions",
    "EnvironmentalResult",
    "LinearityInput",
    "LinearityResult",
    "RepeatabilityInput",
    "RepeatabilityResult",
    "VibrationLevel",
    "MeasurementValidator",
]
