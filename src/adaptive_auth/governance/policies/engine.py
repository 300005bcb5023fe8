"""Policy Decision Point - turns a risk score into allow, step-up or block.

The configured evaluator decides first. If it is unreachable or answers
with something unusable, the fixed thresholds decide instead, so every
evaluation ends in a decision. Each decision is written to the audit log
before it is returned.
"""

import logging
from typing import Optional, Tuple

from adaptive_auth.common.config import Config
from adaptive_auth.common.exceptions import EvaluatorUnavailable, MalformedEvaluatorResponse
from adaptive_auth.governance.audit.logger import AuditLogger
from adaptive_auth.governance.audit.schemas import RiskEvent
from adaptive_auth.governance.policies.evaluators import (
    DelegatedEvaluator,
    PolicyEvaluator,
    ThresholdEvaluator,
)
from adaptive_auth.governance.policies.rules import RiskPolicy
from adaptive_auth.governance.policies.schemas import (
    DecisionSource,
    EvaluatorDecision,
    PolicyAction,
    PolicyDecision,
)
from adaptive_auth.scoring.schema import RiskBreakdown
from adaptive_auth.signals.schemas import SignalContext


logger = logging.getLogger(__name__)


class PolicyDecisionPoint:
    """Maps (score, breakdown, context) to a PolicyDecision."""
    
    def __init__(
        self,
        policy: Optional[RiskPolicy] = None,
        evaluator: Optional[PolicyEvaluator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        """Initialize the decision point.
        
        Args:
            policy: Risk policy (thresholds, messages). Defaults when omitted.
            evaluator: Primary evaluator. None means thresholds only.
            audit_logger: Where decisions are recorded
        """
        self.policy = policy or RiskPolicy()
        self.fallback = ThresholdEvaluator(
            allow_max=self.policy.scoring.low_risk_max,
            mfa_max=self.policy.scoring.medium_risk_max,
        )
        self.evaluator = evaluator if evaluator is not None else self.fallback
        self.audit_logger = audit_logger or AuditLogger()
    
    @classmethod
    def from_config(
        cls,
        config: Config,
        policy: Optional[RiskPolicy] = None,
        audit_logger: Optional[AuditLogger] = None,
    ) -> "PolicyDecisionPoint":
        """Pick the delegated strategy when an evaluator URL is configured."""
        evaluator = None
        if config.uses_delegated_evaluator:
            evaluator = DelegatedEvaluator(
                base_url=config.policy_evaluator_url,
                package=config.policy_evaluator_package,
                timeout=config.policy_evaluator_timeout,
            )
        return cls(policy=policy, evaluator=evaluator, audit_logger=audit_logger)
    
    @property
    def policy_version(self) -> str:
        return self.policy.version
    
    def decide(
        self,
        score: int,
        breakdown: RiskBreakdown,
        context: SignalContext,
    ) -> PolicyDecision:
        """Decide, audit, then return.
        
        Args:
            score: Total risk score (0..100)
            breakdown: Component contributions behind ``score``
            context: Signals the score was computed from
            
        Returns:
            PolicyDecision carrying the audit event id
        """
        signals = context.to_signals()
        payload = {"signals": signals, "score": score, "breakdown": breakdown.as_dict()}
        
        evaluated, source = self._evaluate(payload, context.user_id)
        action = evaluated.action
        reason = self._reason(action, evaluated.risk_score, breakdown)
        
        event = RiskEvent(
            user_id=context.user_id,
            signals=signals,
            score=evaluated.risk_score,
            breakdown=breakdown.as_dict(),
            action=action.value,
            risk_level=evaluated.risk_level,
            reason=reason,
            decision_source=source.value,
            policy_version=self.policy_version,
        )
        self.audit_logger.log_risk_event(event)
        
        logger.info(
            "Risk decision",
            extra={
                "user_id": context.user_id,
                "action": action.value,
                "score": evaluated.risk_score,
                "source": source.value,
                "event_id": event.event_id,
            }
        )
        
        return PolicyDecision(
            action=action,
            reason=reason,
            suggested_action=self.policy.decision.suggested_actions.get(action.value, ""),
            risk_level=evaluated.risk_level,
            score=evaluated.risk_score,
            breakdown=breakdown,
            source=source,
            policy_version=self.policy_version,
            event_id=event.event_id,
        )
    
    def _evaluate(self, payload: dict, user_id: str) -> Tuple[EvaluatorDecision, DecisionSource]:
        if self.evaluator is self.fallback:
            return self.fallback.evaluate(payload), DecisionSource.THRESHOLD
        
        try:
            return self.evaluator.evaluate(payload), DecisionSource.DELEGATED
        except EvaluatorUnavailable as e:
            logger.warning(
                "Policy evaluator unavailable, using thresholds",
                extra={"user_id": user_id, "error_code": e.code, "error": e.message}
            )
        except MalformedEvaluatorResponse as e:
            logger.warning(
                "Malformed policy evaluator response, using thresholds",
                extra={"user_id": user_id, "data_quality": True, "error_code": e.code, "error": e.message}
            )
        except Exception as e:
            logger.error(
                "Policy evaluator failed unexpectedly, using thresholds",
                extra={"user_id": user_id, "evaluator": self.evaluator.name, "error": str(e)},
                exc_info=True,
            )
        return self.fallback.evaluate(payload), DecisionSource.THRESHOLD_FALLBACK
    
    def _reason(self, action: PolicyAction, score: int, breakdown: RiskBreakdown) -> str:
        contributors = breakdown.top_contributors()
        if action == PolicyAction.ALLOW:
            return f"Risk score {score} within allowed range"
        detail = ", ".join(contributors) if contributors else "policy evaluation"
        if action == PolicyAction.MFA_REQUIRED:
            return f"Elevated risk score {score} driven by {detail}"
        return f"High risk score {score} driven by {detail}"
