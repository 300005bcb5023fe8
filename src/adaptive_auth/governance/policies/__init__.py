"""Policies module - score-to-action decisions.

Deterministic threshold evaluation, with optional delegation to an external
policy service.
"""

from adaptive_auth.governance.policies.engine import PolicyDecisionPoint
from adaptive_auth.governance.policies.evaluators import (
    DelegatedEvaluator,
    PolicyEvaluator,
    ThresholdEvaluator,
)
from adaptive_auth.governance.policies.rules import RiskPolicy, load_policy
from adaptive_auth.governance.policies.schemas import (
    DecisionSource,
    EvaluatorDecision,
    EvaluatorResponse,
    PolicyAction,
    PolicyDecision,
)

__all__ = [
    "DecisionSource",
    "DelegatedEvaluator",
    "EvaluatorDecision",
    "EvaluatorResponse",
    "PolicyAction",
    "PolicyDecision",
    "PolicyDecisionPoint",
    "PolicyEvaluator",
    "RiskPolicy",
    "ThresholdEvaluator",
    "load_policy",
]
