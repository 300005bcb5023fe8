"""Challenge store - single-use challenges and consumed nullifiers.

All state changes happen under one lock, so two concurrent requests can
never both consume the same challenge or the same nullifier.

Consumed nonces and nullifiers are only remembered while they could still
be presented successfully; ``purge_expired`` forgets them after that.
"""

import threading
from datetime import datetime
from typing import Dict, Optional

from adaptive_auth.common.exceptions import ChallengeConsumed, ChallengeExpired, ChallengeMismatch
from adaptive_auth.mfa.schemas import MFAChallenge


class ChallengeStore:
    """In-process store for outstanding challenges."""
    
    def __init__(self):
        self._lock = threading.Lock()
        self._challenges: Dict[str, MFAChallenge] = {}
        # nonce -> challenge expiry; past it the nonce is rejected as unknown anyway
        self._consumed: Dict[str, datetime] = {}
        # nullifier -> time after which it may be forgotten
        self._nullifiers: Dict[str, datetime] = {}
    
    def put(self, challenge: MFAChallenge) -> None:
        with self._lock:
            self._challenges[challenge.nonce] = challenge
    
    def get(self, nonce: str) -> Optional[MFAChallenge]:
        with self._lock:
            return self._challenges.get(nonce)
    
    def consume(self, nonce: str, now: datetime) -> MFAChallenge:
        """Atomically take a challenge out of circulation.
        
        Raises:
            ChallengeMismatch: Unknown nonce
            ChallengeConsumed: Nonce already used
            ChallengeExpired: TTL elapsed (the challenge is discarded)
        """
        with self._lock:
            if nonce in self._consumed:
                raise ChallengeConsumed("Challenge has already been used")
            challenge = self._challenges.pop(nonce, None)
            if challenge is None:
                raise ChallengeMismatch("Unknown challenge")
            self._consumed[nonce] = challenge.expires_at
            if challenge.is_expired(now):
                raise ChallengeExpired("Challenge has expired")
            return challenge
    
    def consume_nullifier(self, nullifier: str, retain_until: datetime) -> bool:
        """Mark a nullifier as used.
        
        Returns:
            True if this call consumed it, False if it was already used
        """
        with self._lock:
            if nullifier in self._nullifiers:
                return False
            self._nullifiers[nullifier] = retain_until
            return True
    
    def purge_expired(self, now: datetime) -> int:
        """Drop expired challenges, consumed nonces and nullifiers past retention.
        
        Returns:
            Number of entries dropped
        """
        with self._lock:
            expired = [n for n, c in self._challenges.items() if c.is_expired(now)]
            for nonce in expired:
                del self._challenges[nonce]
            used = [n for n, until in self._consumed.items() if until <= now]
            for nonce in used:
                del self._consumed[nonce]
            stale = [n for n, until in self._nullifiers.items() if until <= now]
            for nullifier in stale:
                del self._nullifiers[nullifier]
            return len(expired) + len(used) + len(stale)
    
    def tracked(self) -> int:
        """Outstanding challenges plus remembered nonces and nullifiers."""
        with self._lock:
            return len(self._challenges) + len(self._consumed) + len(self._nullifiers)
    
    def __len__(self) -> int:
        with self._lock:
            return len(self._challenges)
