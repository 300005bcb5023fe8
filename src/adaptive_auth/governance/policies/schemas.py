"""Policy decision schemas."""

from enum import Enum
from typing import Annotated, Any, Dict, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from adaptive_auth.scoring.schema import RiskBreakdown


class PolicyAction(str, Enum):
    """Outcome of a risk decision."""
    ALLOW = "allow"
    MFA_REQUIRED = "mfa_required"
    BLOCKED = "blocked"


class DecisionSource(str, Enum):
    """Which evaluator produced a decision."""
    DELEGATED = "delegated"
    THRESHOLD = "threshold"
    THRESHOLD_FALLBACK = "threshold_fallback"


# Action spellings used by Rego policies
ACTION_ALIASES = {
    "deny": PolicyAction.BLOCKED,
    "block": PolicyAction.BLOCKED,
    "require_mfa": PolicyAction.MFA_REQUIRED,
    "mfa": PolicyAction.MFA_REQUIRED,
}

# One breakdown component as reported by a delegated evaluator
FiniteComponent = Annotated[float, Field(ge=0, le=100, allow_inf_nan=False)]


class EvaluatorDecision(BaseModel):
    """What a PolicyEvaluator returns."""
    action: PolicyAction
    risk_score: int = Field(..., ge=0, le=100)
    risk_level: Literal["low", "medium", "high"]
    breakdown: Dict[str, int] = Field(default_factory=dict)
    
    model_config = {"frozen": True}


class EvaluatorResult(BaseModel):
    """The ``result`` document of a delegated evaluator response.
    
    Anything that does not fit this shape is a malformed response.
    """
    risk_score: float = Field(..., ge=0, le=100, allow_inf_nan=False)
    risk_level: Literal["low", "medium", "high"]
    action: PolicyAction
    breakdown: Dict[str, FiniteComponent] = Field(default_factory=dict)
    
    @field_validator("action", mode="before")
    @classmethod
    def normalize_action(cls, v: Any) -> Any:
        if isinstance(v, str):
            return ACTION_ALIASES.get(v.lower(), v.lower())
        return v
    
    @field_validator("risk_level", mode="before")
    @classmethod
    def normalize_level(cls, v: Any) -> Any:
        return v.lower() if isinstance(v, str) else v


class EvaluatorResponse(BaseModel):
    """Full delegated evaluator response body: ``{"result": {...}}``."""
    result: EvaluatorResult


class PolicyDecision(BaseModel):
    """Final decision handed back to the caller after auditing."""
    action: PolicyAction = Field(..., description="allow, mfa_required or blocked")
    reason: str = Field(..., description="Human-readable explanation")
    suggested_action: str = Field(..., description="What the user should do next")
    risk_level: Literal["low", "medium", "high"]
    score: int = Field(..., ge=0, le=100)
    breakdown: RiskBreakdown
    source: DecisionSource
    policy_version: str
    event_id: Optional[str] = Field(
        default=None,
        description="Audit event recording this decision"
    )
    
    model_config = {"frozen": True}
