"""Configuration management - Centralized configuration for adaptive_auth.

Provides environment-aware configuration with sensible defaults.
All configuration is loaded from environment variables with fallbacks.
Policy constants (score caps, thresholds, MFA timings) are not here; they
live in the YAML policy file referenced by ``policy_file``.
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from adaptive_auth.common.constants import EvaluatorConstants


class Environment(str, Enum):
    """Application environment."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class LogLevel(str, Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class AuditStorageType(str, Enum):
    """Audit storage backend types."""
    MEMORY = "memory"
    FILE = "file"


def _get_project_root() -> Path:
    """Get the project root directory."""
    # settings.py -> config -> common -> adaptive_auth -> src -> project_root
    return Path(__file__).resolve().parents[4]


def _optional_env(name: str) -> Optional[str]:
    value = os.getenv(name)
    return value or None


@dataclass
class Config:
    """Central configuration object for adaptive_auth.
    
    All settings can be overridden via environment variables prefixed with RBA_.
    
    Example:
        RBA_ENVIRONMENT=production
        RBA_POLICY_EVALUATOR_URL=http://opa:8181
        RBA_AUDIT_STORAGE_TYPE=file
    """
    
    # Core settings
    environment: Environment = field(
        default_factory=lambda: Environment(
            os.getenv("RBA_ENVIRONMENT", "development")
        )
    )
    log_level: LogLevel = field(
        default_factory=lambda: LogLevel(os.getenv("RBA_LOG_LEVEL", "INFO").upper())
    )
    
    # Paths
    project_root: Path = field(default_factory=_get_project_root)
    
    # Policy settings
    policy_file: Optional[Path] = field(
        default_factory=lambda: (
            Path(os.environ["RBA_POLICY_FILE"]) if os.getenv("RBA_POLICY_FILE") else None
        )
    )
    policy_evaluator_url: Optional[str] = field(
        default_factory=lambda: _optional_env("RBA_POLICY_EVALUATOR_URL")
    )
    policy_evaluator_package: str = field(
        default_factory=lambda: os.getenv(
            "RBA_POLICY_EVALUATOR_PACKAGE", EvaluatorConstants.DEFAULT_PACKAGE
        )
    )
    policy_evaluator_timeout: float = field(
        default_factory=lambda: float(
            os.getenv(
                "RBA_POLICY_EVALUATOR_TIMEOUT",
                str(EvaluatorConstants.DEFAULT_TIMEOUT_SECONDS),
            )
        )
    )
    
    # Audit settings
    audit_storage_type: AuditStorageType = field(
        default_factory=lambda: AuditStorageType(
            os.getenv("RBA_AUDIT_STORAGE_TYPE", "memory")
        )
    )
    audit_log_dir: Path = field(
        default_factory=lambda: Path(
            os.getenv("RBA_AUDIT_LOG_DIR", "./logs/audit")
        )
    )
    
    # MFA secret persistence (DynamoDB table; in-memory when unset)
    mfa_secret_table: Optional[str] = field(
        default_factory=lambda: _optional_env("RBA_MFA_SECRET_TABLE")
    )
    aws_region: str = field(
        default_factory=lambda: os.getenv("AWS_DEFAULT_REGION", "us-east-1")
    )
    
    def __post_init__(self):
        """Validate configuration after initialization."""
        if self.policy_evaluator_timeout <= 0:
            raise ValueError("RBA_POLICY_EVALUATOR_TIMEOUT must be positive")
        
        if self.policy_file is not None and not self.policy_file.is_absolute():
            self.policy_file = self.project_root / self.policy_file
        
        # The fixed-threshold fallback is always available, but running
        # production without the delegated evaluator is usually a mistake.
        if self.environment == Environment.PRODUCTION and not self.policy_evaluator_url:
            import warnings
            warnings.warn(
                "No policy evaluator configured in production; "
                "decisions will use fixed thresholds only",
                RuntimeWarning,
                stacklevel=2
            )
    
    @property
    def default_policy_file(self) -> Path:
        """Reference policy file shipped with the project."""
        return self.project_root / "config" / "risk_policy.yaml"
    
    @property
    def uses_delegated_evaluator(self) -> bool:
        """Whether decisions go to the external evaluator first."""
        return self.policy_evaluator_url is not None
    
    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == Environment.PRODUCTION


# Singleton instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance.
    
    Returns:
        Config: The global configuration singleton.
    """
    global _config
    if _config is None:
        _config = Config()
    return _config


def reset_config() -> None:
    """Reset the global configuration (for testing)."""
    global _config
    _config = None
