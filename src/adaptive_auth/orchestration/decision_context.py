"""Decision Context - immutable records passed between login steps.

Frozen dataclasses: an evaluation, a login waiting on step-up, and the final
outcome returned to the caller. Nothing downstream can alter them.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Literal, Optional, Tuple
from uuid import uuid4

from adaptive_auth.governance.policies.schemas import PolicyAction, PolicyDecision
from adaptive_auth.mfa.schemas import FactorType, MFAChallenge, MultiFactorResult
from adaptive_auth.scoring.schema import RiskBreakdown
from adaptive_auth.signals.schemas import LoginAttempt


LoginStatus = Literal[
    "success", "mfa_required", "blocked", "invalid_credentials", "mfa_failed"
]


@dataclass(frozen=True)
class EvaluationResult:
    """What ``RiskEvaluationService.evaluate`` returns.
    
    Carries the full breakdown; callers facing end users must use
    ``public_view`` so blocked attempts learn nothing about their signals.
    """
    evaluation_id: str
    timestamp: datetime
    user_id: str
    score: int
    breakdown: RiskBreakdown
    action: PolicyAction
    reason: str
    risk_level: str
    suggested_action: str
    source: str
    event_id: Optional[str] = None
    
    @classmethod
    def create(cls, user_id: str, decision: PolicyDecision) -> "EvaluationResult":
        """Factory method to create an EvaluationResult from a policy decision."""
        return cls(
            evaluation_id=f"evl_{uuid4().hex[:12]}",
            timestamp=datetime.now(timezone.utc),
            user_id=user_id,
            score=decision.score,
            breakdown=decision.breakdown,
            action=decision.action,
            reason=decision.reason,
            risk_level=decision.risk_level,
            suggested_action=decision.suggested_action,
            source=decision.source.value,
            event_id=decision.event_id,
        )
    
    def public_view(self) -> dict:
        if self.action == PolicyAction.BLOCKED:
            return {"action": self.action.value}
        return {
            "action": self.action.value,
            "risk_level": self.risk_level,
            "suggested_action": self.suggested_action,
        }


@dataclass(frozen=True)
class PendingLogin:
    """A login that passed the password check and awaits step-up."""
    user_id: str
    attempt: LoginAttempt
    evaluation: EvaluationResult
    challenge: MFAChallenge


@dataclass(frozen=True)
class LoginOutcome:
    """Result of one orchestrator call, safe to show to the user."""
    status: LoginStatus
    user_id: str
    message: str
    session_token: Optional[str] = None
    challenge: Optional[MFAChallenge] = None
    required_factors: Tuple[FactorType, ...] = field(default_factory=tuple)
    evaluation: Optional[EvaluationResult] = None
    mfa_result: Optional[MultiFactorResult] = None
    
    @property
    def authenticated(self) -> bool:
        return self.status == "success" and self.session_token is not None
    
    def with_session(self, token: str) -> "LoginOutcome":
        """Return new outcome with a session token attached."""
        return replace(self, session_token=token)
