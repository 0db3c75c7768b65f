"""
Acceptance Criteria Schemas.

Tolerances an instrument must meet, per equipment class. All limits are
expressed in the same unit as the measurements they apply to (mg for
balances, rpm for centrifuges, pH units for pH meters, ...).
"""

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class EquipmentClass(StrEnum):
    ANALYTICAL_BALANCE = "ANALYTICAL_BALANCE"
    CENTRIFUGE = "CENTRIFUGE"
    PH_METER = "PH_METER"
    PIPETTE = "PIPETTE"
    SPECTROPHOTOMETER = "SPECTROPHOTOMETER"
    OTHER = "OTHER"


class Range(BaseModel):
    """Inclusive [min, max] range."""

    model_config = ConfigDict(frozen=True)

    min: float
    max: float

    @model_validator(mode="after")
    def _ordered(self) -> "Range":
        if self.min > self.max:
            raise ValueError(f"range min ({self.min}) is greater than max ({self.max})")
        return self

    def contains(self, value: float) -> bool:
        return self.min <= value <= self.max


class AcceptanceCriteria(BaseModel):
    """Immutable tolerance set for one equipment class."""

    model_config = ConfigDict(frozen=True)

    equipment_class: EquipmentClass
    version: str
    max_linearity_deviation: float = Field(gt=0)
    min_linearity_r_squared: float = Field(gt=0, le=1)
    max_repeatability_std_dev: float = Field(gt=0)
    max_accuracy_deviation: float = Field(gt=0)
    temperature_range: Range          # °C
    humidity_range: Range             # %RH

    @model_validator(mode="after")
    def _humidity_is_relative(self) -> "AcceptanceCriteria":
        if self.humidity_range.min < 0 or self.humidity_range.max > 100:
            raise ValueError("humidity_range must lie within 0-100 %RH")
        return self


class CriteriaTable(BaseModel):
    """Versioned acceptance criteria for every equipment class."""

    model_config = ConfigDict(frozen=True)

    version: str
    criteria: dict[EquipmentClass, AcceptanceCriteria]

    @model_validator(mode="after")
    def _has_fallback(self) -> "CriteriaTable":
        if EquipmentClass.OTHER not in self.criteria:
            raise ValueError("criteria table must define OTHER as a fallback")
        return self

    def get(self, equipment_class: EquipmentClass) -> AcceptanceCriteria:
        """Criteria for a class; classes without an entry use OTHER."""
        return self.criteria.get(equipment_class, self.criteria[EquipmentClass.OTHER])
