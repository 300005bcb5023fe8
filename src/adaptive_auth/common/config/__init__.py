"""Configuration module - environment-driven settings."""

from adaptive_auth.common.config.settings import (
    AuditStorageType,
    Config,
    Environment,
    LogLevel,
    get_config,
    reset_config,
)

__all__ = [
    "AuditStorageType",
    "Config",
    "Environment",
    "LogLevel",
    "get_config",
    "reset_config",
]
