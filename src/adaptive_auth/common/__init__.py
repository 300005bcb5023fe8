"""Common utilities - logging, config, exceptions."""

from adaptive_auth.common.logging.logger import get_logger
from adaptive_auth.common.config import Config, get_config, reset_config
from adaptive_auth.common.exceptions import (
    AdaptiveAuthError,
    AuditError,
    ChallengeConsumed,
    ChallengeExpired,
    ChallengeMismatch,
    ConcurrencyConflict,
    ConfigurationError,
    EvaluatorUnavailable,
    FactorLocked,
    FactorNotFound,
    MalformedEvaluatorResponse,
    MFAError,
    ProofInvalid,
    SignalMissing,
)

__all__ = [
    # Logging
    "get_logger",
    # Config
    "Config",
    "get_config",
    "reset_config",
    # Exceptions
    "AdaptiveAuthError",
    "AuditError",
    "ChallengeConsumed",
    "ChallengeExpired",
    "ChallengeMismatch",
    "ConcurrencyConflict",
    "ConfigurationError",
    "EvaluatorUnavailable",
    "FactorLocked",
    "FactorNotFound",
    "MalformedEvaluatorResponse",
    "MFAError",
    "ProofInvalid",
    "SignalMissing",
]
