"""
Advisory Contract — what the core sends to Biomni and what it accepts back.

Request:  {equipmentClass, measurements, environmental, deterministicScore}
Response: {verdict?, score?, confidence, narrative}

The response model is deliberately loose (plain str / float) so that a
half-valid answer still yields a narrative. The adapter decides which
parts are structurally usable.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from labcal.criteria.schemas import EquipmentClass
from labcal.validation.schemas import EnvironmentalConditions


class _Camel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class LinearitySnapshot(_Camel):
    weights: tuple[float, ...]
    readings: tuple[float, ...]
    deviations: tuple[float, ...]
    r_squared: float


class RepeatabilitySnapshot(_Camel):
    samples: tuple[float, ...]
    std_dev: float


class AccuracySnapshot(_Camel):
    reference: float
    measured: float
    deviation: float


class MeasurementSnapshot(_Camel):
    linearity: LinearitySnapshot
    repeatability: RepeatabilitySnapshot
    accuracy: AccuracySnapshot


class AdvisoryRequest(_Camel):
    """Structured validation request sent to the advisory service."""
    equipment_class: EquipmentClass
    measurements: MeasurementSnapshot
    environmental: EnvironmentalConditions
    deterministic_score: int


class AdvisoryResponse(_Camel):
    """Advisory answer as received; normalized by the adapter."""
    model_config = ConfigDict(extra="ignore")

    verdict: Optional[str] = None
    score: Optional[float] = None
    confidence: float
    narrative: str = Field(default="")
