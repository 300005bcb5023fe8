"""Custom exceptions for adaptive_auth.

Provides a hierarchy of exceptions for different error types.
All adaptive_auth exceptions inherit from AdaptiveAuthError.

Scoring and decision errors are recovered locally by the components that
raise them. MFA errors carry a stable ``reason`` string so callers can render
specific guidance (retry, re-register, wait out a lockout).
"""

from typing import Any, Dict, Optional


class AdaptiveAuthError(Exception):
    """Base exception for all adaptive_auth errors.
    
    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """
    
    def __init__(
        self,
        message: str,
        code: str = "RBA_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)
    
    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(AdaptiveAuthError):
    """Raised when configuration or a policy file is invalid."""
    
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="CONFIG_ERROR", details=details)


class SignalMissing(AdaptiveAuthError):
    """A signal needed for a component is absent.
    
    Non-fatal: the scorer treats the component as neutral.
    """
    
    def __init__(self, signal: str, details: Optional[Dict[str, Any]] = None):
        details = details or {}
        details["signal"] = signal
        super().__init__(f"Signal missing: {signal}", code="SIGNAL_MISSING", details=details)


class EvaluatorUnavailable(AdaptiveAuthError):
    """The external policy evaluator could not be reached in time."""
    
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="EVALUATOR_UNAVAILABLE", details=details)


class MalformedEvaluatorResponse(AdaptiveAuthError):
    """The external policy evaluator answered with an unusable payload."""
    
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="EVALUATOR_MALFORMED_RESPONSE", details=details)


class AuditError(AdaptiveAuthError):
    """Raised when audit logging fails."""
    
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="AUDIT_ERROR", details=details)


class ConcurrencyConflict(AdaptiveAuthError):
    """A read-modify-write lost a race on a versioned record.
    
    Retryable. Surface to the end user only when retries are exhausted.
    """
    
    def __init__(
        self,
        message: str,
        key: str,
        details: Optional[Dict[str, Any]] = None
    ):
        details = details or {}
        details["key"] = key
        super().__init__(message, code="CONCURRENCY_CONFLICT", details=details)


class MFAError(AdaptiveAuthError):
    """Base class for user-facing MFA verification failures."""
    
    reason = "mfa_error"
    
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        details = details or {}
        details["reason"] = self.reason
        super().__init__(message, code="MFA_" + self.reason.upper(), details=details)


class FactorNotFound(MFAError):
    reason = "not_found"


class FactorLocked(MFAError):
    reason = "locked"


class ChallengeMismatch(MFAError):
    reason = "challenge_mismatch"


class ChallengeExpired(MFAError):
    reason = "expired"


class ChallengeConsumed(MFAError):
    reason = "already_consumed"


class ProofInvalid(MFAError):
    reason = "proof_invalid"
