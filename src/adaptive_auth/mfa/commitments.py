"""Commitment, proof and nullifier construction.

This is a proof-of-possession scheme built from salted SHA-256 hashes, not a
zero-knowledge proof system:

- commitment = sha256(secret || salt), stored server-side at registration
- proof_value = sha256(canonical JSON {secretHash, challenge, timestamp})
- nullifier = sha256(secretHash || challenge), unique per (secret, challenge)

The server recomputes the expected proof value and nullifier from the stored
commitment, so a proof only verifies for the challenge it was built against.
"""

import hashlib
import hmac
import json
import re
import secrets
import time
from typing import Optional, Union

from adaptive_auth.common.constants import MFAConstants
from adaptive_auth.mfa.schemas import FactorType, MFAProof


_HEX_DIGEST = re.compile(r"^[0-9a-f]{%d}$" % MFAConstants.HASH_HEX_LENGTH)


def sha256_hex(data: str) -> str:
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def generate_salt() -> str:
    return secrets.token_hex(MFAConstants.SALT_BYTES)


def generate_nonce() -> str:
    return secrets.token_hex(MFAConstants.NONCE_BYTES)


def commit(secret_value: str, salt: str) -> str:
    """Commitment stored at registration; also the client's secret hash."""
    return sha256_hex(secret_value + salt)


def compute_proof_value(secret_hash: str, nonce: str, timestamp_ms: int) -> str:
    payload = json.dumps(
        {"secretHash": secret_hash, "challenge": nonce, "timestamp": timestamp_ms},
        separators=(",", ":"),
    )
    return sha256_hex(payload)


def compute_nullifier(secret_hash: str, nonce: str) -> str:
    return sha256_hex(secret_hash + nonce)


def build_proof(
    factor_type: Union[FactorType, str],
    secret_value: str,
    salt: str,
    nonce: str,
    client_timestamp_ms: Optional[int] = None,
) -> MFAProof:
    """Build the proof a client sends for one factor.
    
    Runs client-side in a real deployment; provided here so callers and
    tests produce proofs of the exact shape the verifier expects.
    
    Args:
        factor_type: Factor being proven
        secret_value: The user's secret (PIN, template hash, ...)
        salt: Public salt returned by ``factor_salt``
        nonce: Challenge nonce
        client_timestamp_ms: Client clock in ms since epoch (default: now)
    """
    factor_type = FactorType(factor_type)
    if client_timestamp_ms is None:
        client_timestamp_ms = int(time.time() * 1000)
    secret_hash = commit(secret_value, salt)
    return MFAProof(
        factor_type=factor_type,
        proof_value=compute_proof_value(secret_hash, nonce, client_timestamp_ms),
        public_signals=(factor_type.value, nonce, client_timestamp_ms),
        nullifier=compute_nullifier(secret_hash, nonce),
    )


def is_hex_digest(value: str) -> bool:
    return bool(_HEX_DIGEST.match(value))


def is_well_formed(proof: MFAProof) -> bool:
    """Structural checks only: digest shapes and factor echo."""
    return (
        is_hex_digest(proof.proof_value)
        and is_hex_digest(proof.nullifier)
        and proof.public_signals[0] == proof.factor_type.value
    )


def proof_matches_commitment(proof: MFAProof, commitment: str) -> bool:
    """Recompute the proof from the stored commitment and compare."""
    expected_value = compute_proof_value(
        commitment, proof.challenge_nonce, proof.client_timestamp_ms
    )
    expected_nullifier = compute_nullifier(commitment, proof.challenge_nonce)
    value_ok = hmac.compare_digest(expected_value, proof.proof_value)
    nullifier_ok = hmac.compare_digest(expected_nullifier, proof.nullifier)
    return value_ok and nullifier_ok
