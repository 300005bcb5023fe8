"""Orchestration - risk evaluation service and login composition."""

from adaptive_auth.orchestration.baselines import (
    FailedAttemptTracker,
    InMemoryBaselineStore,
    merge_keystroke_sample,
    update_after_success,
)
from adaptive_auth.orchestration.decision_context import (
    EvaluationResult,
    LoginOutcome,
    PendingLogin,
)
from adaptive_auth.orchestration.login_flow import LoginOrchestrator
from adaptive_auth.orchestration.service import RiskEvaluationService, build_services

__all__ = [
    "EvaluationResult",
    "FailedAttemptTracker",
    "InMemoryBaselineStore",
    "LoginOrchestrator",
    "LoginOutcome",
    "PendingLogin",
    "RiskEvaluationService",
    "build_services",
    "merge_keystroke_sample",
    "update_after_success",
]
