"""MFA schemas - factor records, challenges, proofs and results."""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, FrozenSet, List, Literal, Optional, Tuple
from uuid import uuid4

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FactorType(str, Enum):
    """Supported step-up factors."""
    PIN = "pin"
    BIOMETRIC = "biometric"
    PATTERN = "pattern"
    VOICE = "voice"
    BEHAVIORAL = "behavioral"


class FactorDescription(BaseModel):
    """Catalogue entry shown to users choosing a factor."""
    type: FactorType
    name: str
    description: str
    security: Literal["low", "medium", "high"]
    setup: Literal["easy", "medium", "complex"]
    
    model_config = {"frozen": True}


FACTOR_CATALOGUE: Tuple[FactorDescription, ...] = (
    FactorDescription(
        type=FactorType.PIN, name="PIN Code",
        description="Numeric PIN (4-8 digits)", security="medium", setup="easy",
    ),
    FactorDescription(
        type=FactorType.BIOMETRIC, name="Biometric",
        description="Fingerprint, face, or iris scan", security="high", setup="medium",
    ),
    FactorDescription(
        type=FactorType.PATTERN, name="Pattern Lock",
        description="Visual pattern on grid", security="medium", setup="easy",
    ),
    FactorDescription(
        type=FactorType.VOICE, name="Voice Recognition",
        description="Voice biometric pattern", security="high", setup="complex",
    ),
    FactorDescription(
        type=FactorType.BEHAVIORAL, name="Behavioral Biometric",
        description="Typing pattern or mouse movement", security="high", setup="complex",
    ),
)


class MFASecretRecord(BaseModel):
    """Commitment to one user's secret for one factor type.
    
    Immutable value; repositories store new versions. ``version`` is the
    optimistic-concurrency token and goes up by one on every save.
    """
    secret_id: str = Field(default_factory=lambda: f"mfa_{uuid4().hex[:12]}")
    user_id: str
    factor_type: FactorType
    commitment: str = Field(..., description="sha256(secret || salt), hex")
    salt: str = Field(..., description="Random salt, hex")
    is_active: bool = True
    failed_attempts: int = Field(default=0, ge=0)
    locked_until: Optional[datetime] = None
    last_used: Optional[datetime] = None
    created_at: datetime = Field(default_factory=_utcnow)
    version: int = Field(default=0, ge=0)
    
    model_config = {"frozen": True}
    
    def is_locked(self, now: datetime) -> bool:
        return self.locked_until is not None and self.locked_until > now


class FactorInfo(BaseModel):
    """Public view of a registered factor (no commitment or salt)."""
    secret_id: str
    factor_type: FactorType
    is_active: bool
    failed_attempts: int
    locked_until: Optional[datetime] = None
    last_used: Optional[datetime] = None
    created_at: datetime
    
    @classmethod
    def from_record(cls, record: MFASecretRecord) -> "FactorInfo":
        return cls(**record.model_dump(exclude={"commitment", "salt", "user_id", "version"}))


class MFAChallenge(BaseModel):
    """Server-held, single-use step-up challenge."""
    challenge_id: str = Field(default_factory=lambda: str(uuid4()))
    nonce: str = Field(..., description="Random nonce the proof must echo, hex")
    required_factors: FrozenSet[FactorType] = Field(default_factory=frozenset)
    issued_at: datetime
    expires_at: datetime
    user_id: Optional[str] = Field(
        default=None,
        description="Account the challenge was issued for, if known"
    )
    
    model_config = {"frozen": True}
    
    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class MFAProof(BaseModel):
    """Client proof of possession for one factor.
    
    ``public_signals`` is ``[factor_type, challenge_nonce, client_timestamp_ms]``.
    """
    factor_type: FactorType
    proof_value: str
    public_signals: Tuple[str, str, int]
    nullifier: str
    
    model_config = {"frozen": True}
    
    @property
    def challenge_nonce(self) -> str:
        return self.public_signals[1]
    
    @property
    def client_timestamp_ms(self) -> int:
        return self.public_signals[2]


class VerificationResult(BaseModel):
    """Outcome of verifying a single proof."""
    valid: bool
    factor_type: FactorType
    reason: Optional[str] = Field(
        default=None,
        description="Failure reason: not_found, locked, challenge_mismatch, "
                    "expired, proof_invalid or already_consumed"
    )


class MultiFactorResult(BaseModel):
    """Outcome of verifying every factor a challenge requires."""
    valid: bool
    verified_factors: List[FactorType] = Field(default_factory=list)
    missing_factors: List[FactorType] = Field(default_factory=list)
    reasons: Dict[str, str] = Field(
        default_factory=dict,
        description="Failure reason per factor type, or per challenge"
    )
