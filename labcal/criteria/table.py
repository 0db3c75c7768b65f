"""
Acceptance Criteria Source.

The built-in table follows CAP/CLIA-style tolerances for common lab
instruments. Deployments may override it with a JSON file (CRITERIA_FILE)
that has the same shape as CriteriaTable.

Criteria are read once when a session opens. The session keeps its own
copy, so replacing the table never changes an open session.
"""

import json
from pathlib import Path
from typing import Protocol

import structlog
from pydantic import ValidationError

from labcal.criteria.schemas import (
    AcceptanceCriteria,
    CriteriaTable,
    EquipmentClass,
    Range,
)
from labcal.errors import ConfigurationError

logger = structlog.get_logger(__name__)

DEFAULT_CRITERIA_VERSION = "2024.1"


class CriteriaSource(Protocol):
    """Anything that can hand out criteria for an equipment class."""

    def get(self, equipment_class: EquipmentClass) -> AcceptanceCriteria: ...


def _criteria(
    equipment_class: EquipmentClass,
    linearity: float,
    r_squared: float,
    repeatability: float,
    accuracy: float,
    temperature: tuple[float, float],
    humidity: tuple[float, float],
) -> AcceptanceCriteria:
    return AcceptanceCriteria(
        equipment_class=equipment_class,
        version=DEFAULT_CRITERIA_VERSION,
        max_linearity_deviation=linearity,
        min_linearity_r_squared=r_squared,
        max_repeatability_std_dev=repeatability,
        max_accuracy_deviation=accuracy,
        temperature_range=Range(min=temperature[0], max=temperature[1]),
        humidity_range=Range(min=humidity[0], max=humidity[1]),
    )


def default_criteria_table() -> CriteriaTable:
    """Built-in criteria table."""
    return CriteriaTable(
        version=DEFAULT_CRITERIA_VERSION,
        criteria={
            # mg; 20 °C ± 2 °C, 45-75 %RH
            EquipmentClass.ANALYTICAL_BALANCE: _criteria(
                EquipmentClass.ANALYTICAL_BALANCE,
                0.1, 0.9999, 0.1, 0.1, (18.0, 22.0), (45.0, 75.0),
            ),
            # rpm
            EquipmentClass.CENTRIFUGE: _criteria(
                EquipmentClass.CENTRIFUGE,
                50.0, 0.999, 25.0, 50.0, (15.0, 30.0), (20.0, 80.0),
            ),
            # pH units
            EquipmentClass.PH_METER: _criteria(
                EquipmentClass.PH_METER,
                0.05, 0.999, 0.02, 0.05, (20.0, 30.0), (20.0, 80.0),
            ),
            # µL
            EquipmentClass.PIPETTE: _criteria(
                EquipmentClass.PIPETTE,
                0.8, 0.9995, 0.3, 0.8, (15.0, 30.0), (50.0, 75.0),
            ),
            # absorbance units
            EquipmentClass.SPECTROPHOTOMETER: _criteria(
                EquipmentClass.SPECTROPHOTOMETER,
                0.01, 0.999, 0.005, 0.01, (15.0, 35.0), (20.0, 80.0),
            ),
            EquipmentClass.OTHER: _criteria(
                EquipmentClass.OTHER,
                0.5, 0.995, 0.5, 0.5, (15.0, 30.0), (20.0, 80.0),
            ),
        },
    )


def load_criteria_table(path: str | Path) -> CriteriaTable:
    """
    Load a criteria table from JSON.

    Raises:
        ConfigurationError: file missing, not JSON, or fails validation
    """
    path = Path(path)
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise ConfigurationError(
            f"Criteria file not found: {path}", details={"path": str(path)}
        ) from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(
            f"Criteria file is not valid JSON: {path}",
            details={"path": str(path), "error": str(e)},
        ) from e

    if not isinstance(raw, dict):
        raise ConfigurationError(
            f"Criteria file must hold a JSON object: {path}", details={"path": str(path)}
        )

    # Entries may omit version/equipment_class; inherit them from the table.
    version = raw.get("version")
    entries = raw.get("criteria")
    if isinstance(entries, dict):
        for key, entry in entries.items():
            if isinstance(entry, dict):
                entry.setdefault("equipment_class", key)
                entry.setdefault("version", version)

    try:
        table = CriteriaTable.model_validate(raw)
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid criteria table in {path}",
            details={
                "path": str(path),
                "errors": e.errors(include_url=False, include_context=False),
            },
        ) from e

    logger.info(
        "criteria_table_loaded",
        path=str(path),
        version=table.version,
        classes=sorted(c.value for c in table.criteria),
    )
    return table
