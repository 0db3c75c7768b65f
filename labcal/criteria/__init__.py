"""
Acceptance Criteria - versioned tolerances per equipment class.

Components:
- schemas.py: EquipmentClass, AcceptanceCriteria, CriteriaTable
- table.py: built-in table, JSON loader, CriteriaSource protocol
"""

from labcal.criteria.schemas import (
    AcceptanceCriteria,
    CriteriaTable,
    EquipmentClass,
    Range,
)
from labcal.criteria.table import (
    DEFAULT_CRITERIA_VERSION,
    CriteriaSource,
    default_criteria_table,
    load_criteria_table,
)

__all__ = [
    "AcceptanceCriteria",
    "CriteriaTable",
    "EquipmentClass",
    "Range",
    "DEFAULT_CRITERIA_VERSION",
    "CriteriaSource",
    "default_criteria_table",
    "load_criteria_table",
]
