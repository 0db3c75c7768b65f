"""
Compliance Scoring - validator results to a 0-100 score and verdict.

Components:
- schemas.py: Verdict, Deviation, ComplianceResult
- scorer.py: ComplianceScorer and the scoring weights
"""

from labcal.scoring.schemas import ComplianceResult, Deviation, ResultSource, Verdict
from labcal.scoring.scorer import (
    CONDITIONAL_MIN_SCORE,
    PASS_SCORE,
    ComplianceScorer,
    ScoreCard,
    verdict_for_score,
)

__all__ = [
    "ComplianceResult",
    "Deviation",
    "ResultSource",
    "Verdict",
    "CONDITIONAL_MIN_SCORE",
    "PASS_SCORE",
    "ComplianceScorer",
    "ScoreCard",
    "verdict_for_score",
]
