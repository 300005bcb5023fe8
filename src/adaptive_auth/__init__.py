"""Adaptive Auth - risk-based authentication with adaptive step-up MFA."""

__version__ = "0.1.0"
__author__ = "Adaptive Auth Team"

# Core exports
from adaptive_auth.governance.policies.schemas import PolicyAction
from adaptive_auth.scoring.schema import RiskBreakdown
from adaptive_auth.signals.schemas import SignalContext

__all__ = [
    "PolicyAction",
    "RiskBreakdown",
    "SignalContext",
]
