"""
Calibration Session Schemas.

State machine:

  PRECHECK → ENVIRONMENTAL → MEASURING → VALIDATING → COMPLETED
      └────────────┴─────────────┴────────────┴──→ ABORTED
"""

from datetime import date, datetime
from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from labcal.advisory.schemas import MeasurementSnapshot
from labcal.criteria.schemas import AcceptanceCriteria, EquipmentClass
from labcal.scoring.schemas import ComplianceResult
from labcal.validation.schemas import EnvironmentalConditions


class SessionState(StrEnum):
    PRECHECK = "PRECHECK"
    ENVIRONMENTAL = "ENVIRONMENTAL"
    MEASURING = "MEASURING"
    VALIDATING = "VALIDATING"
    COMPLETED = "COMPLETED"
    ABORTED = "ABORTED"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.COMPLETED, SessionState.ABORTED)


class _Camel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class ReadinessChecklist(_Camel):
    """Pre-calibration checklist; every item must be confirmed."""
    equipment_clean: bool = True
    standards_available: bool = True
    environment_stable: bool = True
    documentation_available: bool = True

    def unconfirmed(self) -> list[str]:
        return [name for name, ok in self.model_dump().items() if not ok]


class ReferenceStandard(_Camel):
    """Certified reference used during the calibration (weight set, buffer, ...)."""
    identifier: str = Field(min_length=1)
    certificate_number: str = Field(min_length=1)
    certificate_expiry: date


class SessionSnapshot(_Camel):
    """Read-only view of a session at one instant."""
    session_id: str
    equipment_id: str
    equipment_class: EquipmentClass
    state: SessionState
    criteria: AcceptanceCriteria
    standards: tuple[ReferenceStandard, ...] = ()
    environmental: Optional[EnvironmentalConditions] = None
    measurements: Optional[MeasurementSnapshot] = None
    result: Optional[ComplianceResult] = None
    abort_reason: Optional[str] = None
    opened_at: datetime
    closed_at: Optional[datetime] = None
