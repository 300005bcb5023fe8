"""Audit schemas - risk events and the hash-chained log envelope."""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditEventType(str, Enum):
    """Types of audit events."""
    RISK_DECISION = "risk_decision"
    MFA_REGISTRATION = "mfa_registration"
    MFA_CHALLENGE = "mfa_challenge"
    MFA_VERIFICATION = "mfa_verification"
    FACTOR_LOCKED = "factor_locked"
    LOGIN = "login"
    SYSTEM_EVENT = "system_event"


class RiskEvent(BaseModel):
    """One risk evaluation, exactly as it was decided.
    
    Created once per evaluation and never mutated afterwards.
    """
    event_id: str = Field(
        default_factory=lambda: f"rsk_{uuid4().hex[:12]}",
        description="Unique risk event identifier"
    )
    user_id: str = Field(..., description="Account that was evaluated")
    signals: Dict[str, Any] = Field(
        default_factory=dict,
        description="Signal snapshot the score was computed from"
    )
    score: int = Field(..., ge=0, le=100)
    breakdown: Dict[str, int] = Field(
        default_factory=dict,
        description="Component contributions keyed by wire name"
    )
    action: str = Field(..., description="allow, mfa_required or blocked")
    risk_level: Literal["low", "medium", "high"]
    reason: str = ""
    decision_source: str = Field(..., description="Evaluator that produced the action")
    policy_version: str
    timestamp: datetime = Field(default_factory=_utcnow)
    
    model_config = {"frozen": True}


class AuditEntry(BaseModel):
    """A single line of the append-only audit log.
    
    ``previous_hash`` and ``entry_hash`` are filled in by the store when the
    entry is appended.
    """
    entry_id: str = Field(
        default_factory=lambda: f"aud_{uuid4().hex[:12]}",
        description="Unique audit entry identifier"
    )
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="When the entry was created"
    )
    event_type: AuditEventType
    user_id: Optional[str] = None
    action: Optional[str] = Field(
        default=None,
        description="Decision or MFA outcome being recorded"
    )
    policy_version: Optional[str] = None
    risk_event: Optional[RiskEvent] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    
    # Hash chain
    previous_hash: Optional[str] = Field(
        default=None,
        description="Hash of the previous entry"
    )
    entry_hash: Optional[str] = Field(
        default=None,
        description="Hash of this entry with entry_hash set to None"
    )
    
    def to_jsonl(self) -> str:
        """Serialize entry to JSONL format."""
        return json.dumps(self.model_dump(mode="json"), default=str)
    
    @classmethod
    def from_jsonl(cls, line: str) -> "AuditEntry":
        """Deserialize entry from JSONL format."""
        return cls.model_validate(json.loads(line))
