"""Risk policy - tunable constants loaded from YAML.

This is the in-memory representation of config/risk_policy.yaml. Every
section has defaults, so an absent or partial file still yields a complete
policy.
"""

import logging
from pathlib import Path
from typing import List, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError

from adaptive_auth.common.constants import AuditConstants, MFAConstants
from adaptive_auth.common.exceptions import ConfigurationError
from adaptive_auth.scoring.config import ScoringConfig


logger = logging.getLogger(__name__)


class RiskPolicy(BaseModel):
    """Parsed risk policy.
    
    Used by the scorer (``scoring``), the decision point (``scoring``
    thresholds, ``decision``) and the MFA service (``mfa``).
    """
    
    class Metadata(BaseModel):
        version: str = "1.0.0"
        last_updated: Optional[str] = None
        description: str = "Reference risk-based authentication policy"
    
    class DecisionRules(BaseModel):
        blocked_message: str = Field(
            default="Access denied for security reasons. Please contact support.",
            description="Generic message shown for blocked logins"
        )
        suggested_actions: dict = Field(
            default_factory=lambda: {
                "allow": "Proceed with login",
                "mfa_required": "Complete additional verification",
                "blocked": "Contact support or try again later",
            }
        )
    
    class MFARules(BaseModel):
        challenge_ttl_seconds: int = Field(default=MFAConstants.CHALLENGE_TTL_SECONDS, gt=0)
        proof_freshness_seconds: int = Field(default=MFAConstants.PROOF_FRESHNESS_SECONDS, gt=0)
        lockout_threshold: int = Field(default=MFAConstants.LOCKOUT_THRESHOLD, ge=1)
        lockout_duration_minutes: int = Field(default=MFAConstants.LOCKOUT_DURATION_MINUTES, ge=1)
        max_cas_retries: int = Field(default=MFAConstants.MAX_CAS_RETRIES, ge=1)
        factors_per_challenge: int = Field(default=1, ge=1)
        preferred_factors: List[str] = Field(
            default_factory=lambda: ["pin", "pattern", "biometric", "voice", "behavioral"]
        )
    
    class AuditRules(BaseModel):
        max_write_retries: int = Field(default=AuditConstants.MAX_WRITE_RETRIES, ge=0)
        retry_backoff_seconds: float = Field(default=AuditConstants.RETRY_BACKOFF_SECONDS, ge=0.0)
    
    metadata: Metadata = Field(default_factory=Metadata)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    decision: DecisionRules = Field(default_factory=DecisionRules)
    mfa: MFARules = Field(default_factory=MFARules)
    audit: AuditRules = Field(default_factory=AuditRules)
    
    @property
    def version(self) -> str:
        return self.metadata.version


def load_policy(policy_file: Optional[Union[str, Path]] = None) -> RiskPolicy:
    """Load and validate a policy file.
    
    Args:
        policy_file: Path to a YAML policy. None returns the built-in defaults.
        
    Returns:
        Validated RiskPolicy
        
    Raises:
        ConfigurationError: If the file is missing, unreadable or invalid
    """
    if policy_file is None:
        return RiskPolicy()
    
    path = Path(policy_file)
    if not path.exists():
        raise ConfigurationError(
            f"Policy file not found: {path}", details={"policy_file": str(path)}
        )
    
    try:
        with open(path, "r") as f:
            raw_config = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Policy file is not valid YAML: {e}", details={"policy_file": str(path)}
        ) from e
    
    try:
        policy = RiskPolicy.model_validate(raw_config)
    except ValidationError as e:
        raise ConfigurationError(
            f"Policy file failed validation: {path}",
            details={"policy_file": str(path), "errors": e.errors(include_url=False)}
        ) from e
    
    logger.info(
        "Loaded risk policy",
        extra={"policy_file": str(path), "policy_version": policy.version}
    )
    return policy
