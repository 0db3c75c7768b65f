"""
AI Advisory - Biomni boundary with deterministic fallback.

Components:
- schemas.py: advisory request/response contract
- client.py: BiomniAdvisoryClient (httpx)
- resilience.py: CircuitBreaker
- adapter.py: AIValidationAdapter (timeout, fallback, leniency cap)
"""

from labcal.advisory.adapter import AIValidationAdapter, clamp_confidence
from labcal.advisory.client import AdvisoryClient, BiomniAdvisoryClient
from labcal.advisory.resilience import CircuitBreaker, CircuitOpenError, CircuitState
from labcal.advisory.schemas import (
    AccuracySnapshot,
    AdvisoryRequest,
    AdvisoryResponse,
    LinearitySnapshot,
    MeasurementSnapshot,
    RepeatabilitySnapshot,
)

__all__ = [
    "AIValidationAdapter",
    "clamp_confidence",
    "AdvisoryClient",
    "BiomniAdvisoryClient",
    "CircuitBreaker",
    "CircuitOpenError",
    "CircuitState",
    "AccuracySnapshot",
    "AdvisoryRequest",
    "AdvisoryResponse",
    "LinearitySnapshot",
    "MeasurementSnapshot",
    "RepeatabilitySnapshot",
]
