"""
Pytest Configuration and Fixtures.

Provides:
- Deterministic settings (advisory disabled, console logs) before any import
- Criteria fixtures for the built-in table
- Scripted advisory clients (answer, delay, fail)
- Session registry and session factories
- Measurement data for the standard analytical-balance scenario
"""

import asyncio
import os
from typing import Optional

# Set before labcal.config is imported anywhere.
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("ADVISORY_ENABLED", "false")
os.environ.setdefault("LOG_FORMAT", "console")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest

from labcal.advisory.adapter import AIValidationAdapter
from labcal.advisory.schemas import AdvisoryRequest, AdvisoryResponse
from labcal.criteria.schemas import AcceptanceCriteria, CriteriaTable, EquipmentClass
from labcal.criteria.table import default_criteria_table
from labcal.sessions.registry import SessionRegistry
from labcal.sessions.session import CalibrationSession
from labcal.validation.schemas import (
    AccuracyInput,
    EnvironmentalConditions,
    LinearityInput,
    RepeatabilityInput,
)


# ============================================================================
# SCENARIO DATA (analytical balance, mg)
# ============================================================================


BALANCE_WEIGHTS = (0.0, 1.0, 5.0, 10.0, 20.0, 50.0, 100.0)
BALANCE_READINGS = (0.001, 1.002, 5.001, 10.003, 20.002, 50.001, 100.002)
BALANCE_SAMPLES = (
    10.001, 10.002, 10.001, 10.003, 10.002,
    10.001, 10.002, 10.002, 10.001, 10.003,
)


def balance_linearity() -> LinearityInput:
    return LinearityInput(weights=BALANCE_WEIGHTS, readings=BALANCE_READINGS)


def balance_repeatability() -> RepeatabilityInput:
    return RepeatabilityInput(samples=BALANCE_SAMPLES)


def balance_accuracy() -> AccuracyInput:
    return AccuracyInput(reference=10.000, measured=10.002)


def good_environment() -> EnvironmentalConditions:
    return EnvironmentalConditions(temperature=20.0, humidity=50.0)


def warm_environment() -> EnvironmentalConditions:
    """22.5 °C: above the 18-22 °C balance range."""
    return EnvironmentalConditions(temperature=22.5, humidity=45.0)


# ============================================================================
# ADVISORY DOUBLES
# ============================================================================


class ScriptedAdvisoryClient:
    """Advisory client that answers from a script instead of the network."""

    def __init__(
        self,
        response: Optional[AdvisoryResponse] = None,
        delay: float = 0.0,
        error: Optional[Exception] = None,
    ):
        self.response = response or AdvisoryResponse(confidence=0.8, narrative="")
        self.delay = delay
        self.error = error
        self.requests: list[AdvisoryRequest] = []
        self.cancelled = False

    async def request_advisory(self, request: AdvisoryRequest) -> AdvisoryResponse:
        self.requests.append(request)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self.error is not None:
            raise self.error
        return self.response


# ============================================================================
# FIXTURES
# ============================================================================


@pytest.fixture
def criteria_table() -> CriteriaTable:
    return default_criteria_table()


@pytest.fixture
def balance_criteria(criteria_table) -> AcceptanceCriteria:
    return criteria_table.get(EquipmentClass.ANALYTICAL_BALANCE)


@pytest.fixture
def deterministic_adapter() -> AIValidationAdapter:
    """Advisory disabled."""
    return AIValidationAdapter(None)


@pytest.fixture
def registry(criteria_table, deterministic_adapter) -> SessionRegistry:
    return SessionRegistry(criteria_table, deterministic_adapter)


@pytest.fixture
def make_session(balance_criteria):
    """Factory for a standalone balance session with a chosen adapter."""

    def _make(adapter: Optional[AIValidationAdapter] = None) -> CalibrationSession:
        return CalibrationSession(
            equipment_id="BAL-001",
            equipment_class=EquipmentClass.ANALYTICAL_BALANCE,
            criteria=balance_criteria,
            adapter=adapter or AIValidationAdapter(None),
        )

    return _make


def advance_to_validating(
    session: CalibrationSession,
    environment: Optional[EnvironmentalConditions] = None,
) -> CalibrationSession:
    """Drive a session from PRECHECK to VALIDATING with the balance data."""
    session.confirm_readiness()
    session.record_environmental(environment or good_environment())
    session.record_measurements(balance_linearity(), balance_repeatability(), balance_accuracy())
    return session
