"""
Service wiring — builds the shared calibration services from Settings.

One criteria source, one advisory adapter and one session registry per
application. Tests build their own and inject them into create_app().
"""

from datetime import timedelta

import structlog

from labcal.advisory.adapter import AIValidationAdapter
from labcal.advisory.client import BiomniAdvisoryClient
from labcal.advisory.resilience import CircuitBreaker
from labcal.config import Settings
from labcal.criteria.schemas import CriteriaTable
from labcal.criteria.table import default_criteria_table, load_criteria_table
from labcal.sessions.registry import SessionRegistry

logger = structlog.get_logger(__name__)


def build_criteria_source(settings: Settings) -> CriteriaTable:
    """CRITERIA_FILE when configured, the built-in table otherwise."""
    if settings.criteria_file:
        return load_criteria_table(settings.criteria_file)
    table = default_criteria_table()
    logger.info("criteria_table_default", version=table.version)
    return table


def build_advisory_adapter(settings: Settings) -> AIValidationAdapter:
    if not settings.advisory_enabled:
        logger.info("advisory_disabled")
        return AIValidationAdapter(None, timeout_seconds=settings.advisory_timeout_seconds)

    client = BiomniAdvisoryClient(
        base_url=settings.biomni_base_url,
        api_key=settings.biomni_api_key,
        timeout=settings.advisory_timeout_seconds,
    )
    breaker = CircuitBreaker(
        "biomni",
        failure_threshold=settings.advisory_breaker_failure_threshold,
        window_seconds=settings.advisory_breaker_window_seconds,
        recovery_timeout=settings.advisory_breaker_recovery_seconds,
    )
    return AIValidationAdapter(
        client,
        timeout_seconds=settings.advisory_timeout_seconds,
        breaker=breaker,
    )


def build_session_registry(settings: Settings) -> SessionRegistry:
    return SessionRegistry(
        criteria_source=build_criteria_source(settings),
        adapter=build_advisory_adapter(settings),
        retention=timedelta(seconds=settings.session_retention_seconds),
    )
