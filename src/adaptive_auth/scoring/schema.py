"""Risk breakdown schema.

Six independently capped components and the derived total.
"""

from typing import Dict, List

from pydantic import BaseModel, Field, computed_field


# Attribute name -> name used in audit records and evaluator payloads
WIRE_NAMES = {
    "failed_attempts": "failedAttempts",
    "gps": "gps",
    "typing": "typing",
    "time_of_day": "timeOfDay",
    "velocity": "velocity",
    "new_device": "newDevice",
}


class RiskBreakdown(BaseModel):
    """Per-component risk contributions for one evaluation."""
    
    failed_attempts: int = Field(default=0, ge=0)
    gps: int = Field(default=0, ge=0)
    typing: int = Field(default=0, ge=0)
    time_of_day: int = Field(default=0, ge=0)
    velocity: int = Field(default=0, ge=0)
    new_device: int = Field(default=0, ge=0)
    
    model_config = {
        "frozen": True,
        "json_schema_extra": {
            "example": {
                "failed_attempts": 0,
                "gps": 15,
                "typing": 5,
                "time_of_day": 0,
                "velocity": 0,
                "new_device": 5,
            }
        },
    }
    
    @computed_field
    @property
    def score(self) -> int:
        """Total risk, 0..100."""
        return min(100, sum(self.components().values()))
    
    def components(self) -> Dict[str, int]:
        return {name: getattr(self, name) for name in WIRE_NAMES}
    
    def as_dict(self) -> Dict[str, int]:
        """Components keyed by wire name."""
        return {WIRE_NAMES[name]: value for name, value in self.components().items()}
    
    def top_contributors(self, limit: int = 2) -> List[str]:
        """Non-zero components, largest first."""
        ranked = sorted(
            ((value, WIRE_NAMES[name]) for name, value in self.components().items() if value > 0),
            key=lambda item: (-item[0], item[1]),
        )
        return [name for _, name in ranked[:limit]]
