"""MFA module - commitment/challenge/proof step-up verification."""

from adaptive_auth.mfa.challenges import ChallengeStore
from adaptive_auth.mfa.commitments import build_proof
from adaptive_auth.mfa.repository import (
    DynamoDBSecretRepository,
    InMemorySecretRepository,
    SecretRepository,
)
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
from adaptive_auth.mfa.service import AdaptiveMFAService

__all__ = [
    "AdaptiveMFAService",
    "ChallengeStore",
    "DynamoDBSecretRepository",
    "FACTOR_CATALOGUE",
    "FactorDescription",
    "FactorInfo",
    "FactorType",
    "InMemorySecretRepository",
    "MFAChallenge",
    "MFAProof",
    "MFASecretRecord",
    "MultiFactorResult",
    "SecretRepository",
    "VerificationResult",
    "build_proof",
]
