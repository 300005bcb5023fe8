"""Concurrency tests for failure counting and lockout.

Concurrent failed verifications must never lose an increment and must lock
a factor exactly once.
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from adaptive_auth.common.exceptions import ConcurrencyConflict
from adaptive_auth.governance.audit import AuditEventType
from adaptive_auth.mfa import AdaptiveMFAService, FactorType, InMemorySecretRepository, build_proof
from adaptive_auth.mfa.commitments import generate_nonce


USER = "user_123"


class ConflictingRepository(InMemorySecretRepository):
    """Loses the first ``conflicts`` saves to a simulated concurrent writer."""
    
    def __init__(self, conflicts: int):
        super().__init__()
        self.conflicts = conflicts
        self.save_calls = 0
    
    def save(self, record):
        self.save_calls += 1
        if self.conflicts > 0:
            self.conflicts -= 1
            raise ConcurrencyConflict("simulated race", key=record.secret_id)
        return super().save(record)


@pytest.fixture
def mfa(audit_logger, clock):
    service = AdaptiveMFAService(
        repository=InMemorySecretRepository(), audit_logger=audit_logger, clock=clock
    )
    service.register_factor(USER, FactorType.PIN, "4921")
    return service


def wrong_proof(mfa, clock):
    nonce = generate_nonce()
    salt = mfa.factor_salt(USER, FactorType.PIN)
    return build_proof(FactorType.PIN, "0000", salt, nonce, clock.now_ms), nonce


class TestConcurrentFailures:
    
    def test_twenty_concurrent_failures_lock_once(self, mfa, clock, audit_logger):
        attempts = [wrong_proof(mfa, clock) for _ in range(20)]
        barrier = threading.Barrier(len(attempts))
        
        def attempt(args):
            proof, nonce = args
            barrier.wait()
            return mfa.verify(USER, proof, nonce)
        
        with ThreadPoolExecutor(max_workers=len(attempts)) as pool:
            results = list(pool.map(attempt, attempts))
        
        reasons = [r.reason for r in results]
        assert reasons.count("proof_invalid") == 5
        assert reasons.count("locked") == 15
        
        stored = mfa.repository.get_active(USER, FactorType.PIN)
        assert stored.failed_attempts == 5
        assert stored.is_locked(clock.now)
        
        locks = list(audit_logger.get_entries(event_type=AuditEventType.FACTOR_LOCKED))
        assert len(locks) == 1
    
    def test_repository_cas_loses_no_updates(self):
        repository = InMemorySecretRepository()
        service = AdaptiveMFAService(repository=repository)
        service.register_factor(USER, FactorType.PIN, "4921")
        
        def increment(_):
            while True:
                current = repository.get_active(USER, FactorType.PIN)
                try:
                    repository.save(current.model_copy(
                        update={"failed_attempts": current.failed_attempts + 1}
                    ))
                    return
                except ConcurrencyConflict:
                    continue
        
        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(increment, range(40)))
        
        stored = repository.get_active(USER, FactorType.PIN)
        assert stored.failed_attempts == 40
        assert stored.version == 40


class TestCompareAndSwap:
    
    def test_stale_version_rejected(self):
        repository = InMemorySecretRepository()
        service = AdaptiveMFAService(repository=repository)
        service.register_factor(USER, FactorType.PIN, "4921")
        stale = repository.get_active(USER, FactorType.PIN)
        
        repository.save(stale.model_copy(update={"failed_attempts": 1}))
        with pytest.raises(ConcurrencyConflict) as exc_info:
            repository.save(stale.model_copy(update={"failed_attempts": 2}))
        assert exc_info.value.details["expected_version"] == 0
        assert exc_info.value.details["actual_version"] == 1
    
    def test_failure_count_retried_after_conflict(self, audit_logger, clock):
        repository = ConflictingRepository(conflicts=0)
        mfa = AdaptiveMFAService(repository=repository, audit_logger=audit_logger, clock=clock)
        mfa.register_factor(USER, FactorType.PIN, "4921")
        repository.conflicts = 2
        
        proof, nonce = wrong_proof(mfa, clock)
        assert mfa.verify(USER, proof, nonce).reason == "proof_invalid"
        
        assert repository.save_calls == 3
        assert repository.get_active(USER, FactorType.PIN).failed_attempts == 1
    
    def test_exhausted_retries_surface_conflict(self, audit_logger, clock):
        repository = ConflictingRepository(conflicts=0)
        mfa = AdaptiveMFAService(repository=repository, audit_logger=audit_logger, clock=clock)
        mfa.register_factor(USER, FactorType.PIN, "4921")
        repository.conflicts = 100
        
        proof, nonce = wrong_proof(mfa, clock)
        with pytest.raises(ConcurrencyConflict):
            mfa.verify(USER, proof, nonce)
        assert repository.save_calls == 3
