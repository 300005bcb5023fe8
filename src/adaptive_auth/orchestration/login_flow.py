"""Login Orchestrator - password check, risk evaluation, step-up, session.

A thin composition layer. Each login runs:

1. password check (injected verifier; failures feed the risk context)
2. signal context built from the attempt and the stored baseline
3. risk evaluation (score -> decision -> audit)
4. allow: session issued. blocked: generic denial.
   mfa_required: challenge issued, login parked until ``complete_mfa``.
5. after success, the attempt is folded into the user's baseline
"""

import logging
import secrets
import threading
from typing import Callable, Dict, Iterable, List, Optional

from adaptive_auth.governance.audit.logger import AuditLogger
from adaptive_auth.governance.policies.rules import RiskPolicy
from adaptive_auth.governance.policies.schemas import PolicyAction
from adaptive_auth.mfa.schemas import FactorType, MFAProof, MultiFactorResult
from adaptive_auth.mfa.service import AdaptiveMFAService
from adaptive_auth.orchestration.baselines import (
    FailedAttemptTracker,
    InMemoryBaselineStore,
    update_after_success,
)
from adaptive_auth.orchestration.decision_context import EvaluationResult, LoginOutcome, PendingLogin
from adaptive_auth.orchestration.service import RiskEvaluationService
from adaptive_auth.signals.builder import ContextBuilder
from adaptive_auth.signals.schemas import LoginAttempt


logger = logging.getLogger(__name__)

PasswordVerifier = Callable[[str, str], bool]

MFA_FAILURE_MESSAGES = {
    "locked": "Verification is temporarily locked after repeated failures. Try again later.",
    "expired": "Verification expired. Please sign in again.",
    "already_consumed": "This verification was already used. Please sign in again.",
    "not_found": "A required verification factor is not set up for this account.",
}
DEFAULT_MFA_FAILURE_MESSAGE = "Verification failed. Please try again."


def _new_session_token() -> str:
    return secrets.token_urlsafe(32)


class LoginOrchestrator:
    """Drives one login from credentials to session or denial."""
    
    def __init__(
        self,
        password_verifier: PasswordVerifier,
        evaluation_service: RiskEvaluationService,
        mfa_service: AdaptiveMFAService,
        baselines: Optional[InMemoryBaselineStore] = None,
        failures: Optional[FailedAttemptTracker] = None,
        context_builder: Optional[ContextBuilder] = None,
        policy: Optional[RiskPolicy] = None,
        token_factory: Callable[[], str] = _new_session_token,
    ):
        """Initialize the orchestrator.
        
        Args:
            password_verifier: ``(user_id, password) -> bool``
            evaluation_service: Scores and decides
            mfa_service: Issues and verifies step-up challenges
            baselines: Stored per-user signal history
            failures: Consecutive password failure counter
            context_builder: Builds SignalContext from an attempt
            policy: Messages and step-up factor preferences
            token_factory: Creates session tokens
        """
        self.password_verifier = password_verifier
        self.evaluation_service = evaluation_service
        self.mfa_service = mfa_service
        self.baselines = baselines or InMemoryBaselineStore()
        self.failures = failures or FailedAttemptTracker()
        self.context_builder = context_builder or ContextBuilder()
        self.policy = policy or evaluation_service.decision_point.policy
        self.token_factory = token_factory
        
        self._pending_lock = threading.Lock()
        self._pending: Dict[str, PendingLogin] = {}
    
    @property
    def audit_logger(self) -> AuditLogger:
        return self.evaluation_service.decision_point.audit_logger
    
    def login(self, user_id: str, password: str, attempt: LoginAttempt) -> LoginOutcome:
        """First leg of a login."""
        if attempt.user_id != user_id:
            raise ValueError(f"Attempt belongs to {attempt.user_id!r}, not {user_id!r}")
        
        if not self.password_verifier(user_id, password):
            count = self.failures.record_failure(user_id)
            self.audit_logger.log_login(
                user_id, "invalid_credentials", metadata={"failed_attempts": count}
            )
            return LoginOutcome(
                status="invalid_credentials",
                user_id=user_id,
                message="Invalid credentials",
            )
        
        context = self.context_builder.build(
            user_id, attempt, self.baselines.get(user_id), self.failures.count(user_id)
        )
        evaluation = self.evaluation_service.evaluate(user_id, context)
        
        if evaluation.action == PolicyAction.ALLOW:
            return self._complete(user_id, attempt, evaluation)
        
        if evaluation.action == PolicyAction.BLOCKED:
            self.audit_logger.log_login(
                user_id, "blocked", metadata={"risk_event_id": evaluation.event_id}
            )
            return LoginOutcome(
                status="blocked",
                user_id=user_id,
                message=self.policy.decision.blocked_message,
            )
        
        return self._step_up(user_id, attempt, evaluation)
    
    def complete_mfa(
        self,
        user_id: str,
        challenge_nonce: str,
        proofs: Iterable[MFAProof],
    ) -> LoginOutcome:
        """Second leg: verify the proofs for a parked login."""
        with self._pending_lock:
            pending = self._pending.pop(challenge_nonce, None)
            self._drop_expired_pending()
        
        result = self.mfa_service.verify_factors(user_id, list(proofs), challenge_nonce)
        
        if result.valid and pending is not None and pending.user_id == user_id:
            return self._complete(user_id, pending.attempt, pending.evaluation, mfa_result=result)
        
        failure_reasons = list(result.reasons.values()) or ["challenge_mismatch"]
        message = DEFAULT_MFA_FAILURE_MESSAGE
        for reason in failure_reasons:
            if reason in MFA_FAILURE_MESSAGES:
                message = MFA_FAILURE_MESSAGES[reason]
                break
        
        self.audit_logger.log_login(
            user_id, "mfa_failed", metadata={"reasons": result.reasons}
        )
        return LoginOutcome(
            status="mfa_failed",
            user_id=user_id,
            message=message,
            mfa_result=result,
        )
    
    def _step_up(
        self,
        user_id: str,
        attempt: LoginAttempt,
        evaluation: EvaluationResult,
    ) -> LoginOutcome:
        factors = self._select_factors(user_id)
        if not factors:
            logger.warning("Step-up required but no factors registered", extra={"user_id": user_id})
            self.audit_logger.log_login(
                user_id, "mfa_failed",
                metadata={"reason": "no_factors_registered", "risk_event_id": evaluation.event_id}
            )
            return LoginOutcome(
                status="mfa_failed",
                user_id=user_id,
                message="Additional verification is required but no factors are set up.",
            )
        
        challenge = self.mfa_service.issue_challenge(factors, user_id=user_id)
        with self._pending_lock:
            self._drop_expired_pending()
            self._pending[challenge.nonce] = PendingLogin(
                user_id=user_id, attempt=attempt, evaluation=evaluation, challenge=challenge
            )
        return LoginOutcome(
            status="mfa_required",
            user_id=user_id,
            message=evaluation.suggested_action,
            challenge=challenge,
            required_factors=tuple(factors),
            evaluation=evaluation,
        )
    
    def _drop_expired_pending(self) -> int:
        """Forget parked logins whose challenge has expired. Caller holds _pending_lock."""
        now = self.mfa_service.now()
        expired = [n for n, p in self._pending.items() if p.challenge.is_expired(now)]
        for nonce in expired:
            del self._pending[nonce]
        if expired:
            logger.debug("Dropped expired step-up logins", extra={"count": len(expired)})
        return len(expired)
    
    def pending_count(self) -> int:
        with self._pending_lock:
            return len(self._pending)
    
    def _select_factors(self, user_id: str) -> List[FactorType]:
        """User's active factors in policy preference order."""
        active = self.mfa_service.active_factor_types(user_id)
        known = {f.value for f in FactorType}
        preferred = [FactorType(f) for f in self.policy.mfa.preferred_factors if f in known]
        ranked = sorted(
            active,
            key=lambda f: preferred.index(f) if f in preferred else len(preferred),
        )
        return ranked[:self.policy.mfa.factors_per_challenge]
    
    def _complete(
        self,
        user_id: str,
        attempt: LoginAttempt,
        evaluation: EvaluationResult,
        mfa_result: Optional[MultiFactorResult] = None,
    ) -> LoginOutcome:
        self.failures.reset(user_id)
        self.baselines.put(update_after_success(self.baselines.get(user_id), attempt))
        
        self.audit_logger.log_login(
            user_id, "success",
            metadata={"risk_event_id": evaluation.event_id, "stepped_up": mfa_result is not None}
        )
        logger.info("Login succeeded", extra={"user_id": user_id, "stepped_up": mfa_result is not None})
        
        outcome = LoginOutcome(
            status="success",
            user_id=user_id,
            message="Login successful",
            evaluation=evaluation,
            mfa_result=mfa_result,
        )
        return outcome.with_session(self.token_factory())
