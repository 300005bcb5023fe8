"""Unit tests for the Adaptive MFA Service.

Covers registration, the verification gates and their failure reasons,
lockout and unlock, replay protection, and multi-factor challenges.
"""

from datetime import timedelta

import pytest

from adaptive_auth.common.exceptions import FactorLocked, FactorNotFound, ProofInvalid
from adaptive_auth.governance.audit import AuditEventType
from adaptive_auth.governance.policies import RiskPolicy
from adaptive_auth.mfa import (
    AdaptiveMFAService,
    FactorType,
    InMemorySecretRepository,
    build_proof,
)
from adaptive_auth.mfa.commitments import generate_nonce


USER = "user_123"
PIN = "4921"
PATTERN = "1-5-9-6-3"


@pytest.fixture
def repository():
    return InMemorySecretRepository()


@pytest.fixture
def mfa(repository, audit_logger, clock):
    service = AdaptiveMFAService(repository=repository, audit_logger=audit_logger, clock=clock)
    service.register_factor(USER, FactorType.PIN, PIN)
    return service


@pytest.fixture
def prove(mfa, clock):
    """Build a proof the way a client would, timestamped by the test clock."""
    def _prove(secret=PIN, factor=FactorType.PIN, nonce=None, timestamp_ms=None, user=USER):
        nonce = nonce or generate_nonce()
        return build_proof(
            factor, secret, mfa.factor_salt(user, factor), nonce,
            client_timestamp_ms=clock.now_ms if timestamp_ms is None else timestamp_ms,
        )
    return _prove


def record(repository, factor=FactorType.PIN):
    return repository.get_active(USER, factor)


class TestRegistration:
    
    def test_register_stores_commitment_only(self, mfa, repository):
        stored = record(repository)
        assert stored.commitment != PIN
        assert len(stored.salt) == 32
        assert stored.failed_attempts == 0
        assert stored.version == 0
    
    def test_list_factors_hides_secrets(self, mfa):
        factors = mfa.list_factors(USER)
        assert [f.factor_type for f in factors] == [FactorType.PIN]
        dumped = factors[0].model_dump()
        assert "commitment" not in dumped
        assert "salt" not in dumped
    
    def test_reregistration_replaces_previous(self, mfa, repository, prove):
        first_id = record(repository).secret_id
        second_id = mfa.register_factor(USER, FactorType.PIN, "7777")
        
        assert second_id != first_id
        assert len(mfa.list_factors(USER)) == 1
        all_records = repository.list_for_user(USER)
        assert sum(1 for r in all_records if r.is_active) == 1
        
        nonce = generate_nonce()
        assert mfa.verify(USER, prove(secret="7777", nonce=nonce), nonce).valid
        nonce = generate_nonce()
        assert mfa.verify(USER, prove(secret=PIN, nonce=nonce), nonce).reason == "proof_invalid"
    
    def test_empty_secret_rejected(self, mfa):
        with pytest.raises(ValueError):
            mfa.register_factor(USER, FactorType.VOICE, "")
    
    def test_unknown_factor_type_rejected(self, mfa):
        with pytest.raises(ValueError):
            mfa.register_factor(USER, "smoke_signal", "x")
    
    def test_registration_audited(self, mfa, audit_logger):
        entries = list(audit_logger.get_entries(event_type=AuditEventType.MFA_REGISTRATION))
        assert len(entries) == 1
        assert entries[0].metadata["factor_type"] == "pin"
        assert "commitment" not in entries[0].metadata
        assert "salt" not in entries[0].metadata
    
    def test_factor_salt_unknown_factor(self, mfa):
        with pytest.raises(FactorNotFound):
            mfa.factor_salt(USER, FactorType.BIOMETRIC)
    
    def test_catalogue(self, mfa):
        names = {entry.type: entry.name for entry in mfa.available_factor_types()}
        assert set(names) == set(FactorType)
        assert names[FactorType.PIN] == "PIN Code"


class TestDeactivation:
    
    def test_deactivated_factor_not_listed(self, mfa, repository):
        secret_id = record(repository).secret_id
        
        assert mfa.deactivate_factor(USER, FactorType.PIN) == secret_id
        assert mfa.list_factors(USER) == []
        assert record(repository) is None
        kept = repository.list_for_user(USER)
        assert [(r.secret_id, r.is_active) for r in kept] == [(secret_id, False)]
    
    def test_verify_after_deactivation_not_found(self, mfa):
        salt = mfa.factor_salt(USER, FactorType.PIN)
        mfa.deactivate_factor(USER, "pin")
        
        nonce = generate_nonce()
        proof = build_proof(FactorType.PIN, PIN, salt, nonce)
        assert mfa.verify(USER, proof, nonce).reason == "not_found"
    
    def test_deactivate_missing_factor(self, mfa):
        with pytest.raises(FactorNotFound):
            mfa.deactivate_factor(USER, FactorType.BIOMETRIC)
        mfa.deactivate_factor(USER, FactorType.PIN)
        with pytest.raises(FactorNotFound):
            mfa.deactivate_factor(USER, FactorType.PIN)
    
    def test_deactivation_audited(self, mfa, audit_logger):
        mfa.deactivate_factor(USER, FactorType.PIN)
        entries = list(audit_logger.get_entries(event_type=AuditEventType.MFA_REGISTRATION))
        assert [e.action for e in entries] == ["registered", "deactivated"]
        assert entries[-1].metadata["factor_type"] == "pin"
    
    def test_register_again_after_deactivation(self, mfa, prove):
        mfa.deactivate_factor(USER, FactorType.PIN)
        mfa.register_factor(USER, FactorType.PIN, "8080")
        
        nonce = generate_nonce()
        assert mfa.verify(USER, prove(secret="8080", nonce=nonce), nonce).valid


class TestChallenges:
    
    def test_issue_challenge(self, mfa, clock, audit_logger):
        challenge = mfa.issue_challenge([FactorType.PIN], user_id=USER)
        
        assert len(challenge.nonce) == 64
        assert challenge.required_factors == frozenset({FactorType.PIN})
        assert challenge.expires_at - challenge.issued_at == timedelta(seconds=300)
        assert challenge.issued_at == clock.now
        assert mfa.challenges.get(challenge.nonce) == challenge
        assert len(list(audit_logger.get_entries(event_type=AuditEventType.MFA_CHALLENGE))) == 1
    
    def test_nonces_unique(self, mfa):
        nonces = {mfa.issue_challenge(["pin"]).nonce for _ in range(20)}
        assert len(nonces) == 20
    
    def test_empty_challenge_rejected(self, mfa):
        with pytest.raises(ValueError):
            mfa.issue_challenge([])
    
    def test_used_challenges_forgotten_after_expiry(self, mfa, prove, clock):
        for _ in range(50):
            challenge = mfa.issue_challenge([FactorType.PIN], user_id=USER)
            assert mfa.verify_factors(USER, [prove(nonce=challenge.nonce)], challenge.nonce).valid
        # one consumed nonce and one nullifier per login
        assert mfa.challenges.tracked() == 100
        
        clock.advance(minutes=8)
        mfa.issue_challenge([FactorType.PIN], user_id=USER)
        assert mfa.challenges.tracked() == 1


class TestVerificationGates:
    
    def test_valid_proof(self, mfa, repository, prove, clock):
        nonce = generate_nonce()
        result = mfa.verify(USER, prove(nonce=nonce), nonce)
        
        assert result.valid
        assert result.reason is None
        assert record(repository).last_used == clock.now
    
    def test_not_found(self, mfa, prove):
        nonce = generate_nonce()
        proof = prove(nonce=nonce)
        assert mfa.verify("user_without_factors", proof, nonce).reason == "not_found"
    
    def test_challenge_mismatch_counts(self, mfa, repository, prove):
        proof = prove(nonce=generate_nonce())
        result = mfa.verify(USER, proof, generate_nonce())
        
        assert result.reason == "challenge_mismatch"
        assert record(repository).failed_attempts == 1
    
    def test_stale_timestamp_expired_not_counted(self, mfa, repository, prove, clock):
        nonce = generate_nonce()
        proof = prove(nonce=nonce, timestamp_ms=clock.now_ms - 121_000)
        
        assert mfa.verify(USER, proof, nonce).reason == "expired"
        assert record(repository).failed_attempts == 0
    
    def test_future_timestamp_expired(self, mfa, prove, clock):
        nonce = generate_nonce()
        proof = prove(nonce=nonce, timestamp_ms=clock.now_ms + 121_000)
        assert mfa.verify(USER, proof, nonce).reason == "expired"
    
    def test_timestamp_within_window(self, mfa, prove, clock):
        nonce = generate_nonce()
        proof = prove(nonce=nonce, timestamp_ms=clock.now_ms - 119_000)
        assert mfa.verify(USER, proof, nonce).valid
    
    def test_wrong_secret_counts(self, mfa, repository, prove):
        nonce = generate_nonce()
        result = mfa.verify(USER, prove(secret="0000", nonce=nonce), nonce)
        
        assert result.reason == "proof_invalid"
        assert record(repository).failed_attempts == 1
    
    def test_malformed_proof_invalid(self, mfa, prove):
        nonce = generate_nonce()
        proof = prove(nonce=nonce).model_copy(update={"proof_value": "not-a-digest"})
        assert mfa.verify(USER, proof, nonce).reason == "proof_invalid"
    
    def test_replay_already_consumed(self, mfa, repository, prove):
        nonce = generate_nonce()
        proof = prove(nonce=nonce)
        
        assert mfa.verify(USER, proof, nonce).valid
        replay = mfa.verify(USER, proof, nonce)
        assert replay.reason == "already_consumed"
        assert record(repository).failed_attempts == 0
    
    def test_success_resets_counter(self, mfa, repository, prove):
        for _ in range(3):
            nonce = generate_nonce()
            mfa.verify(USER, prove(secret="0000", nonce=nonce), nonce)
        assert record(repository).failed_attempts == 3
        
        nonce = generate_nonce()
        assert mfa.verify(USER, prove(nonce=nonce), nonce).valid
        assert record(repository).failed_attempts == 0
    
    def test_verification_audited(self, mfa, prove, audit_logger):
        nonce = generate_nonce()
        mfa.verify(USER, prove(nonce=nonce), nonce)
        mfa.verify(USER, prove(secret="0000", nonce=nonce), nonce)
        
        outcomes = [e.action for e in audit_logger.get_entries(event_type=AuditEventType.MFA_VERIFICATION)]
        assert outcomes == ["verified", "proof_invalid"]
    
    def test_verify_or_raise(self, mfa, prove):
        nonce = generate_nonce()
        with pytest.raises(ProofInvalid) as exc_info:
            mfa.verify_or_raise(USER, prove(secret="0000", nonce=nonce), nonce)
        assert exc_info.value.reason == "proof_invalid"
        assert exc_info.value.code == "MFA_PROOF_INVALID"


class TestLockout:
    
    def fail(self, mfa, prove, times):
        for _ in range(times):
            nonce = generate_nonce()
            mfa.verify(USER, prove(secret="0000", nonce=nonce), nonce)
    
    def test_locks_at_threshold(self, mfa, repository, prove, clock):
        self.fail(mfa, prove, 4)
        assert not record(repository).is_locked(clock.now)
        
        self.fail(mfa, prove, 1)
        stored = record(repository)
        assert stored.failed_attempts == 5
        assert stored.locked_until == clock.now + timedelta(minutes=30)
    
    def test_locked_rejects_correct_proof(self, mfa, prove):
        self.fail(mfa, prove, 5)
        nonce = generate_nonce()
        assert mfa.verify(USER, prove(nonce=nonce), nonce).reason == "locked"
        with pytest.raises(FactorLocked):
            nonce = generate_nonce()
            mfa.verify_or_raise(USER, prove(nonce=nonce), nonce)
    
    def test_no_increment_while_locked(self, mfa, repository, prove):
        self.fail(mfa, prove, 9)
        assert record(repository).failed_attempts == 5
    
    def test_single_lock_event(self, mfa, prove, audit_logger):
        self.fail(mfa, prove, 8)
        locks = list(audit_logger.get_entries(event_type=AuditEventType.FACTOR_LOCKED))
        assert len(locks) == 1
        assert locks[0].metadata["failed_attempts"] == 5
    
    def test_unlocks_after_duration(self, mfa, repository, prove, clock):
        self.fail(mfa, prove, 5)
        clock.advance(minutes=30, seconds=1)
        
        nonce = generate_nonce()
        assert mfa.verify(USER, prove(nonce=nonce), nonce).valid
        stored = record(repository)
        assert stored.failed_attempts == 0
        assert stored.locked_until is None
    
    def test_relocks_on_next_failure_after_expiry(self, mfa, repository, prove, clock):
        self.fail(mfa, prove, 5)
        clock.advance(minutes=31)
        
        self.fail(mfa, prove, 1)
        stored = record(repository)
        assert stored.failed_attempts == 6
        assert stored.is_locked(clock.now)
    
    def test_lockout_is_per_factor(self, mfa, prove):
        mfa.register_factor(USER, FactorType.PATTERN, PATTERN)
        self.fail(mfa, prove, 5)
        
        nonce = generate_nonce()
        result = mfa.verify(USER, prove(secret=PATTERN, factor=FactorType.PATTERN, nonce=nonce), nonce)
        assert result.valid
    
    def test_threshold_from_policy(self, repository, audit_logger, clock):
        policy = RiskPolicy.model_validate({"mfa": {"lockout_threshold": 2, "lockout_duration_minutes": 5}})
        service = AdaptiveMFAService(
            repository=repository, audit_logger=audit_logger, policy=policy, clock=clock
        )
        service.register_factor(USER, FactorType.PIN, PIN)
        salt = service.factor_salt(USER, FactorType.PIN)
        for _ in range(2):
            nonce = generate_nonce()
            service.verify(USER, build_proof("pin", "0000", salt, nonce, clock.now_ms), nonce)
        
        stored = record(repository)
        assert stored.failed_attempts == 2
        assert stored.locked_until == clock.now + timedelta(minutes=5)


class TestVerifyFactors:
    
    def test_all_factors_verified(self, mfa, prove):
        challenge = mfa.issue_challenge([FactorType.PIN], user_id=USER)
        result = mfa.verify_factors(USER, [prove(nonce=challenge.nonce)], challenge.nonce)
        
        assert result.valid
        assert result.verified_factors == [FactorType.PIN]
        assert result.missing_factors == []
    
    def test_missing_factor(self, mfa, prove):
        mfa.register_factor(USER, FactorType.PATTERN, PATTERN)
        challenge = mfa.issue_challenge([FactorType.PIN, FactorType.PATTERN], user_id=USER)
        result = mfa.verify_factors(USER, [prove(nonce=challenge.nonce)], challenge.nonce)
        
        assert not result.valid
        assert result.verified_factors == [FactorType.PIN]
        assert result.missing_factors == [FactorType.PATTERN]
        assert result.reasons == {"pattern": "missing_proof"}
    
    def test_failed_factor_reported(self, mfa, prove):
        mfa.register_factor(USER, FactorType.PATTERN, PATTERN)
        challenge = mfa.issue_challenge(["pin", "pattern"], user_id=USER)
        proofs = [
            prove(nonce=challenge.nonce),
            prove(secret="wrong", factor=FactorType.PATTERN, nonce=challenge.nonce),
        ]
        result = mfa.verify_factors(USER, proofs, challenge.nonce)
        
        assert not result.valid
        assert result.reasons == {"pattern": "proof_invalid"}
    
    def test_extra_required_factors_added(self, mfa, prove):
        challenge = mfa.issue_challenge([FactorType.PIN], user_id=USER)
        result = mfa.verify_factors(
            USER, [prove(nonce=challenge.nonce)], challenge.nonce,
            required_factors=[FactorType.BIOMETRIC],
        )
        assert not result.valid
        assert result.missing_factors == [FactorType.BIOMETRIC]
    
    def test_unknown_challenge(self, mfa, prove):
        nonce = generate_nonce()
        result = mfa.verify_factors(USER, [prove(nonce=nonce)], nonce)
        
        assert not result.valid
        assert result.reasons == {"challenge": "challenge_mismatch"}
    
    def test_expired_challenge(self, mfa, prove, clock):
        challenge = mfa.issue_challenge([FactorType.PIN], user_id=USER)
        clock.advance(seconds=301)
        result = mfa.verify_factors(USER, [prove(nonce=challenge.nonce)], challenge.nonce)
        assert result.reasons == {"challenge": "expired"}
    
    def test_challenge_single_use(self, mfa, prove):
        challenge = mfa.issue_challenge([FactorType.PIN], user_id=USER)
        proof = prove(nonce=challenge.nonce)
        
        assert mfa.verify_factors(USER, [proof], challenge.nonce).valid
        second = mfa.verify_factors(USER, [proof], challenge.nonce)
        assert not second.valid
        assert second.reasons == {"challenge": "already_consumed"}
    
    def test_failed_attempt_still_consumes_challenge(self, mfa, prove):
        challenge = mfa.issue_challenge([FactorType.PIN], user_id=USER)
        mfa.verify_factors(USER, [prove(secret="0000", nonce=challenge.nonce)], challenge.nonce)
        
        retry = mfa.verify_factors(USER, [prove(nonce=challenge.nonce)], challenge.nonce)
        assert retry.reasons == {"challenge": "already_consumed"}
    
    def test_challenge_bound_to_user(self, mfa, prove):
        mfa.register_factor("user_456", FactorType.PIN, "1111")
        challenge = mfa.issue_challenge([FactorType.PIN], user_id=USER)
        proof = prove(secret="1111", nonce=challenge.nonce, user="user_456")
        
        result = mfa.verify_factors("user_456", [proof], challenge.nonce)
        assert result.reasons == {"challenge": "challenge_mismatch"}
