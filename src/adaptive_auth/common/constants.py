"""Centralized constants for adaptive_auth."""


# ===== AUDIT & LOGGING =====
class AuditConstants:
    QUEUE_SIZE = 10000
    FLUSH_TIMEOUT_SECONDS = 5.0
    QUEUE_GET_TIMEOUT = 1.0
    HASH_ALGORITHM = "sha256"
    MAX_WRITE_RETRIES = 5
    RETRY_BACKOFF_SECONDS = 0.5


# ===== RISK SCORING =====
class ScoringConstants:
    EARTH_RADIUS_KM = 6371.0
    MIN_ELAPSED_HOURS = 1e-4
    DEFAULT_ACTIVITY_START_HOUR = 8
    DEFAULT_ACTIVITY_END_HOUR = 20
    DEFAULT_ACTIVITY_TIMEZONE = "Asia/Kolkata"
    MAX_LOCATION_HISTORY = 50


# ===== MFA =====
class MFAConstants:
    SALT_BYTES = 16
    NONCE_BYTES = 32
    HASH_HEX_LENGTH = 64
    CHALLENGE_TTL_SECONDS = 300
    PROOF_FRESHNESS_SECONDS = 120
    LOCKOUT_THRESHOLD = 5
    LOCKOUT_DURATION_MINUTES = 30
    MAX_CAS_RETRIES = 3


# ===== POLICY EVALUATOR =====
class EvaluatorConstants:
    DEFAULT_PACKAGE = "rba_scoring"
    DEFAULT_TIMEOUT_SECONDS = 2.0
