"""Example: impossible-travel login stepped up with a PIN."""

from datetime import datetime, timedelta, timezone

from adaptive_auth.common.logging import get_logger
from adaptive_auth.governance.audit import AuditLogger, InMemoryAuditStore
from adaptive_auth.governance.policies import PolicyDecisionPoint
from adaptive_auth.mfa import AdaptiveMFAService, FactorType, build_proof
from adaptive_auth.orchestration import LoginOrchestrator, RiskEvaluationService
from adaptive_auth.signals import GeoPoint, LoginAttempt

logger = get_logger(__name__)

PASSWORDS = {"user_456": "correct horse battery staple"}


def example_step_up_scenario():
    """
    Example scenario: a login from London two hours after one from New York.
    
    1. Baseline established by a normal login in New York
    2. Second login implies ~2800 km/h travel from an unknown device
    3. Decision point requires step-up
    4. User proves possession of their PIN
    5. Session issued, baseline updated, everything audited
    """
    audit = AuditLogger(store=InMemoryAuditStore())
    evaluation = RiskEvaluationService(decision_point=PolicyDecisionPoint(audit_logger=audit))
    mfa = AdaptiveMFAService(audit_logger=audit)
    orchestrator = LoginOrchestrator(
        password_verifier=lambda user_id, password: PASSWORDS.get(user_id) == password,
        evaluation_service=evaluation,
        mfa_service=mfa,
    )
    
    mfa.register_factor("user_456", FactorType.PIN, "4921")
    
    # 10:00 in Kolkata, inside the default activity window
    first_seen = datetime(2026, 3, 2, 4, 30, tzinfo=timezone.utc)
    orchestrator.login("user_456", PASSWORDS["user_456"], LoginAttempt(
        user_id="user_456", device_id="dev_laptop",
        location=GeoPoint(lat=40.7128, lon=-74.0060), timestamp=first_seen,
    ))
    # A few failed password attempts from the new location
    for _ in range(3):
        orchestrator.login("user_456", "guess", LoginAttempt(user_id="user_456"))
    
    outcome = orchestrator.login("user_456", PASSWORDS["user_456"], LoginAttempt(
        user_id="user_456", device_id="dev_unknown",
        location=GeoPoint(lat=51.5074, lon=-0.1278),
        timestamp=first_seen + timedelta(hours=2),
    ))
    logger.info(f"First leg: {outcome.status} ({outcome.message})")
    
    if outcome.status == "mfa_required":
        challenge = outcome.challenge
        proof = build_proof(
            FactorType.PIN, "4921", mfa.factor_salt("user_456", FactorType.PIN), challenge.nonce
        )
        outcome = orchestrator.complete_mfa("user_456", challenge.nonce, [proof])
        logger.info(f"Second leg: {outcome.status}")
    
    logger.info(f"Audit entries: {len(list(audit.get_entries()))}, chain intact: {audit.verify_integrity()}")
    return outcome


if __name__ == "__main__":
    outcome = example_step_up_scenario()
    print(f"Login outcome: {outcome.status}, session issued: {outcome.authenticated}")
