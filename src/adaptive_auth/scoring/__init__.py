"""Scoring - deterministic multi-signal risk scoring."""

from adaptive_auth.scoring.config import ScoringConfig, ScoringWeights
from adaptive_auth.scoring.schema import WIRE_NAMES, RiskBreakdown
from adaptive_auth.scoring.scorer import RiskLevel, RiskScorer

__all__ = [
    "RiskBreakdown",
    "RiskLevel",
    "RiskScorer",
    "ScoringConfig",
    "ScoringWeights",
    "WIRE_NAMES",
]
