"""Risk Evaluation Service - score, decide, audit.

The single inbound entry point for risk evaluation: the scorer produces the
breakdown, the decision point maps it to an action and records the event.
"""

import logging
from typing import Optional, Tuple

from adaptive_auth.common.config import Config, get_config
from adaptive_auth.governance.audit.config import create_audit_logger
from adaptive_auth.governance.audit.logger import AuditLogger
from adaptive_auth.governance.policies.engine import PolicyDecisionPoint
from adaptive_auth.governance.policies.rules import RiskPolicy, load_policy
from adaptive_auth.mfa.repository import create_secret_repository
from adaptive_auth.mfa.service import AdaptiveMFAService
from adaptive_auth.orchestration.decision_context import EvaluationResult
from adaptive_auth.scoring.scorer import RiskScorer
from adaptive_auth.signals.schemas import SignalContext


logger = logging.getLogger(__name__)


class RiskEvaluationService:
    """Evaluates one login or sensitive action."""
    
    def __init__(
        self,
        scorer: Optional[RiskScorer] = None,
        decision_point: Optional[PolicyDecisionPoint] = None,
    ):
        self.decision_point = decision_point or PolicyDecisionPoint()
        self.scorer = scorer or RiskScorer(self.decision_point.policy.scoring)
    
    def evaluate(self, user_id: str, context: SignalContext) -> EvaluationResult:
        """Score a context and decide what to do with it.
        
        Args:
            user_id: Account being evaluated
            context: Signal snapshot for that account
            
        Returns:
            EvaluationResult with score, breakdown, action and reason
        """
        if context.user_id != user_id:
            raise ValueError(f"Context belongs to {context.user_id!r}, not {user_id!r}")
        
        breakdown = self.scorer.score(context)
        decision = self.decision_point.decide(breakdown.score, breakdown, context)
        return EvaluationResult.create(user_id, decision)


def build_services(
    config: Optional[Config] = None,
    policy: Optional[RiskPolicy] = None,
    audit_logger: Optional[AuditLogger] = None,
) -> Tuple[RiskEvaluationService, AdaptiveMFAService]:
    """Wire the evaluation and MFA services from configuration.
    
    Both services share one audit logger so the trail stays in one chain.
    """
    config = config or get_config()
    if policy is None:
        policy_file = config.policy_file
        if policy_file is None and config.default_policy_file.exists():
            policy_file = config.default_policy_file
        policy = load_policy(policy_file)
    audit_logger = audit_logger or create_audit_logger(
        config=config,
        max_retries=policy.audit.max_write_retries,
        backoff_seconds=policy.audit.retry_backoff_seconds,
    )
    
    decision_point = PolicyDecisionPoint.from_config(
        config, policy=policy, audit_logger=audit_logger
    )
    evaluation = RiskEvaluationService(
        scorer=RiskScorer(policy.scoring), decision_point=decision_point
    )
    mfa = AdaptiveMFAService(
        repository=create_secret_repository(config),
        audit_logger=audit_logger,
        policy=policy,
    )
    logger.info(
        "Risk services ready",
        extra={
            "policy_version": policy.version,
            "delegated_evaluator": config.uses_delegated_evaluator,
            "audit_storage": config.audit_storage_type.value,
        }
    )
    return evaluation, mfa
