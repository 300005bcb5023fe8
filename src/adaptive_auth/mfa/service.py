"""Adaptive MFA Service - registration, challenges, proof verification, lockout.

Verification runs a fixed sequence of gates and stops at the first failure:

1. active record exists            -> not_found
2. record is not locked            -> locked             (not counted)
3. proof echoes the challenge      -> challenge_mismatch (counted)
4. client timestamp is fresh       -> expired            (not counted)
5. proof matches the commitment    -> proof_invalid      (counted)
6. nullifier not seen before       -> already_consumed   (not counted)

Counted failures increment the record's ``failed_attempts``; reaching the
lockout threshold locks the factor. Only a successful verification resets
the counter.
"""

import logging
import threading
from collections import defaultdict
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Tuple, Union

from adaptive_auth.common.exceptions import (
    ChallengeConsumed,
    ChallengeExpired,
    ChallengeMismatch,
    ConcurrencyConflict,
    FactorLocked,
    FactorNotFound,
    MFAError,
    ProofInvalid,
)
from adaptive_auth.governance.audit.logger import AuditLogger
from adaptive_auth.governance.audit.schemas import AuditEventType
from adaptive_auth.governance.policies.rules import RiskPolicy
from adaptive_auth.mfa import commitments
from adaptive_auth.mfa.challenges import ChallengeStore
from adaptive_auth.mfa.repository import InMemorySecretRepository, SecretRepository
from adaptive_auth.mfa.schemas import (
    FACTOR_CATALOGUE,
    FactorDescription,
    FactorInfo,
    FactorType,
    MFAChallenge,
    MFAProof,
    MFASecretRecord,
    MultiFactorResult,
    VerificationResult,
)


logger = logging.getLogger(__name__)

MFA_ERRORS = {
    cls.reason: cls
    for cls in (
        FactorNotFound, FactorLocked, ChallengeMismatch,
        ChallengeExpired, ProofInvalid, ChallengeConsumed,
    )
}

# Failures that look like guessing rather than timing or replay
COUNTED_FAILURES = frozenset({ChallengeMismatch.reason, ProofInvalid.reason})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class KeyedLock:
    """One mutex per key, dropped once nobody holds or waits on it."""
    
    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[Tuple[str, str], threading.Lock] = {}
        self._waiters: Dict[Tuple[str, str], int] = defaultdict(int)
    
    @contextmanager
    def hold(self, key: Tuple[str, str]) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._waiters[key] += 1
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                self._waiters[key] -= 1
                if self._waiters[key] == 0:
                    del self._waiters[key]
                    del self._locks[key]


class AdaptiveMFAService:
    """Step-up verification for risky logins."""
    
    def __init__(
        self,
        repository: Optional[SecretRepository] = None,
        challenges: Optional[ChallengeStore] = None,
        audit_logger: Optional[AuditLogger] = None,
        policy: Optional[RiskPolicy] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """Initialize the MFA service.
        
        Args:
            repository: Secret persistence (in-memory by default)
            challenges: Outstanding challenges and consumed nullifiers
            audit_logger: Where MFA outcomes are recorded
            policy: Source of TTLs, freshness window and lockout rules
            clock: Returns the current UTC time; injectable for tests
        """
        self.repository = repository or InMemorySecretRepository()
        self.challenges = challenges if challenges is not None else ChallengeStore()
        self.audit_logger = audit_logger or AuditLogger()
        self.rules = (policy or RiskPolicy()).mfa
        self._clock = clock
        self._locks = KeyedLock()
    
    def now(self) -> datetime:
        """Current time as this service sees it."""
        return self._clock()
    
    # Registration
    
    def register_factor(
        self,
        user_id: str,
        factor_type: Union[FactorType, str],
        secret_value: str,
    ) -> str:
        """Store a commitment to a new secret and return its secret_id.
        
        Any active record of the same type is deactivated first, so at most
        one commitment per (user, factor) is active.
        """
        factor_type = FactorType(factor_type)
        if not secret_value:
            raise ValueError("secret_value must not be empty")
        
        with self._locks.hold((user_id, factor_type.value)):
            previous = self.repository.get_active(user_id, factor_type)
            if previous is not None:
                self._update(previous, lambda r: {"is_active": False})
            
            salt = commitments.generate_salt()
            record = self.repository.create(MFASecretRecord(
                user_id=user_id,
                factor_type=factor_type,
                commitment=commitments.commit(secret_value, salt),
                salt=salt,
                created_at=self._clock(),
            ))
        
        logger.info(
            "MFA factor registered",
            extra={"user_id": user_id, "factor_type": factor_type.value, "secret_id": record.secret_id}
        )
        self.audit_logger.log_mfa_event(
            AuditEventType.MFA_REGISTRATION, user_id, "registered",
            metadata={
                "factor_type": factor_type.value,
                "secret_id": record.secret_id,
                "replaced": previous.secret_id if previous else None,
            }
        )
        return record.secret_id
    
    def deactivate_factor(self, user_id: str, factor_type: Union[FactorType, str]) -> str:
        """Soft-remove a user's active factor and return its secret_id.
        
        The record is kept with ``is_active`` cleared; later proofs for this
        factor fail as ``not_found``.
        
        Raises:
            FactorNotFound: If the user has no active factor of this type
        """
        factor_type = FactorType(factor_type)
        
        with self._locks.hold((user_id, factor_type.value)):
            record = self.repository.get_active(user_id, factor_type)
            if record is None:
                raise FactorNotFound(f"No active {factor_type.value} factor")
            self._update(record, lambda r: {"is_active": False})
        
        logger.info(
            "MFA factor deactivated",
            extra={"user_id": user_id, "factor_type": factor_type.value, "secret_id": record.secret_id}
        )
        self.audit_logger.log_mfa_event(
            AuditEventType.MFA_REGISTRATION, user_id, "deactivated",
            metadata={"factor_type": factor_type.value, "secret_id": record.secret_id}
        )
        return record.secret_id
    
    def list_factors(self, user_id: str) -> List[FactorInfo]:
        """Active factors for a user, without commitments or salts."""
        records = [r for r in self.repository.list_for_user(user_id) if r.is_active]
        return [FactorInfo.from_record(r) for r in sorted(records, key=lambda r: r.created_at)]
    
    def active_factor_types(self, user_id: str) -> List[FactorType]:
        return [info.factor_type for info in self.list_factors(user_id)]
    
    def factor_salt(self, user_id: str, factor_type: Union[FactorType, str]) -> str:
        """Public salt the client needs to build a proof.
        
        Raises:
            FactorNotFound: If the user has no active factor of this type
        """
        record = self.repository.get_active(user_id, FactorType(factor_type))
        if record is None:
            raise FactorNotFound(f"No active {FactorType(factor_type).value} factor")
        return record.salt
    
    @staticmethod
    def available_factor_types() -> List[FactorDescription]:
        return list(FACTOR_CATALOGUE)
    
    # Challenges
    
    def issue_challenge(
        self,
        required_factors: Iterable[Union[FactorType, str]],
        user_id: Optional[str] = None,
    ) -> MFAChallenge:
        """Issue a fresh single-use challenge."""
        required = frozenset(FactorType(f) for f in required_factors)
        if not required:
            raise ValueError("A challenge must require at least one factor")
        
        now = self._clock()
        challenge = MFAChallenge(
            nonce=commitments.generate_nonce(),
            required_factors=required,
            issued_at=now,
            expires_at=now + timedelta(seconds=self.rules.challenge_ttl_seconds),
            user_id=user_id,
        )
        self.challenges.purge_expired(now)
        self.challenges.put(challenge)
        
        self.audit_logger.log_mfa_event(
            AuditEventType.MFA_CHALLENGE, user_id, "issued",
            metadata={
                "challenge_id": challenge.challenge_id,
                "required_factors": sorted(f.value for f in required),
                "expires_at": challenge.expires_at.isoformat(),
            }
        )
        return challenge
    
    # Verification
    
    def verify(self, user_id: str, proof: MFAProof, expected_nonce: str) -> VerificationResult:
        """Verify one proof against the challenge nonce the server expects."""
        factor_type = proof.factor_type
        
        with self._locks.hold((user_id, factor_type.value)):
            now = self._clock()
            record = self.repository.get_active(user_id, factor_type)
            reason = self._check_gates(record, proof, expected_nonce, now)
            
            if reason is None:
                retain_until = now + timedelta(
                    seconds=self.rules.challenge_ttl_seconds + self.rules.proof_freshness_seconds
                )
                if not self.challenges.consume_nullifier(proof.nullifier, retain_until):
                    reason = ChallengeConsumed.reason
            
            if reason in COUNTED_FAILURES:
                self._register_failure(user_id, factor_type, now)
            elif reason is None:
                self._update(record, lambda r: {
                    "failed_attempts": 0, "locked_until": None, "last_used": now,
                })
        
        result = VerificationResult(valid=reason is None, factor_type=factor_type, reason=reason)
        
        log = logger.info if result.valid else logger.warning
        log(
            "MFA verification",
            extra={"user_id": user_id, "factor_type": factor_type.value, "outcome": reason or "verified"}
        )
        self.audit_logger.log_mfa_event(
            AuditEventType.MFA_VERIFICATION, user_id, reason or "verified",
            metadata={"factor_type": factor_type.value}
        )
        return result
    
    def verify_or_raise(self, user_id: str, proof: MFAProof, expected_nonce: str) -> None:
        """Like ``verify`` but raises the MFAError matching the failure."""
        result = self.verify(user_id, proof, expected_nonce)
        if not result.valid:
            error_cls = MFA_ERRORS.get(result.reason, MFAError)
            raise error_cls(
                f"{factor_label(result.factor_type)} verification failed: {result.reason}",
                details={"factor_type": result.factor_type.value}
            )
    
    def verify_factors(
        self,
        user_id: str,
        proofs: Iterable[MFAProof],
        challenge_nonce: str,
        required_factors: Optional[Iterable[Union[FactorType, str]]] = None,
    ) -> MultiFactorResult:
        """Verify every factor a challenge requires.
        
        The challenge is consumed by this call whatever the outcome. The
        required set is the union of ``required_factors`` and the factors
        the challenge was issued with. No partial credit.
        """
        required = frozenset(FactorType(f) for f in (required_factors or ()))
        
        try:
            challenge = self.challenges.consume(challenge_nonce, self._clock())
            if challenge.user_id is not None and challenge.user_id != user_id:
                raise ChallengeMismatch("Challenge was issued for another account")
        except MFAError as e:
            self.audit_logger.log_mfa_event(
                AuditEventType.MFA_VERIFICATION, user_id, e.reason,
                metadata={"stage": "challenge"}
            )
            return MultiFactorResult(
                valid=False,
                missing_factors=_ordered(required),
                reasons={"challenge": e.reason},
            )
        
        required = required | challenge.required_factors
        by_type: Dict[FactorType, MFAProof] = {}
        for proof in proofs:
            by_type.setdefault(proof.factor_type, proof)
        
        verified: List[FactorType] = []
        missing: List[FactorType] = []
        reasons: Dict[str, str] = {}
        for factor_type in _ordered(required):
            proof = by_type.get(factor_type)
            if proof is None:
                missing.append(factor_type)
                reasons[factor_type.value] = "missing_proof"
                continue
            result = self.verify(user_id, proof, challenge.nonce)
            if result.valid:
                verified.append(factor_type)
            else:
                missing.append(factor_type)
                reasons[factor_type.value] = result.reason
        
        return MultiFactorResult(
            valid=not missing,
            verified_factors=verified,
            missing_factors=missing,
            reasons=reasons,
        )
    
    # Internals
    
    def _check_gates(
        self,
        record: Optional[MFASecretRecord],
        proof: MFAProof,
        expected_nonce: str,
        now: datetime,
    ) -> Optional[str]:
        if record is None:
            return FactorNotFound.reason
        if record.is_locked(now):
            return FactorLocked.reason
        if proof.challenge_nonce != expected_nonce:
            return ChallengeMismatch.reason
        
        now_ms = int(now.timestamp() * 1000)
        if abs(now_ms - proof.client_timestamp_ms) > self.rules.proof_freshness_seconds * 1000:
            return ChallengeExpired.reason
        
        if not commitments.is_well_formed(proof):
            return ProofInvalid.reason
        if not commitments.proof_matches_commitment(proof, record.commitment):
            return ProofInvalid.reason
        return None
    
    def _register_failure(self, user_id: str, factor_type: FactorType, now: datetime) -> None:
        """Count one failed attempt and lock the factor at the threshold."""
        for attempt in range(1, self.rules.max_cas_retries + 1):
            record = self.repository.get_active(user_id, factor_type)
            if record is None or record.is_locked(now):
                return
            
            failed = record.failed_attempts + 1
            locked_until = None
            if failed >= self.rules.lockout_threshold:
                locked_until = now + timedelta(minutes=self.rules.lockout_duration_minutes)
            
            try:
                self.repository.save(record.model_copy(update={
                    "failed_attempts": failed, "locked_until": locked_until,
                }))
            except ConcurrencyConflict:
                if attempt == self.rules.max_cas_retries:
                    raise
                continue
            
            if locked_until is not None:
                logger.warning(
                    "MFA factor locked",
                    extra={"user_id": user_id, "factor_type": factor_type.value, "failed_attempts": failed}
                )
                self.audit_logger.log_mfa_event(
                    AuditEventType.FACTOR_LOCKED, user_id, "locked",
                    metadata={
                        "factor_type": factor_type.value,
                        "secret_id": record.secret_id,
                        "failed_attempts": failed,
                        "locked_until": locked_until.isoformat(),
                    }
                )
            return
    
    def _update(
        self,
        record: MFASecretRecord,
        changes: Callable[[MFASecretRecord], dict],
    ) -> MFASecretRecord:
        """Apply ``changes`` with compare-and-swap, re-reading on conflict."""
        current = record
        for attempt in range(1, self.rules.max_cas_retries + 1):
            try:
                return self.repository.save(current.model_copy(update=changes(current)))
            except ConcurrencyConflict:
                if attempt == self.rules.max_cas_retries:
                    raise
                fresh = [
                    r for r in self.repository.list_for_user(record.user_id)
                    if r.secret_id == record.secret_id
                ]
                if not fresh:
                    raise
                current = fresh[0]


def factor_label(factor_type: FactorType) -> str:
    for entry in FACTOR_CATALOGUE:
        if entry.type == factor_type:
            return entry.name
    return factor_type.value


def _ordered(factors: Iterable[FactorType]) -> List[FactorType]:
    order = list(FactorType)
    return sorted(factors, key=order.index)
