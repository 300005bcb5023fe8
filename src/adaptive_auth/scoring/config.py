"""Scoring configuration - component caps and detection constants.

Caps are additive with no cross-terms, so they must sum to at most 100.
"""

from typing import Dict, List, Tuple

from pydantic import BaseModel, Field, model_validator


class ScoringWeights(BaseModel):
    """Maximum contribution of each risk component."""
    failed_attempts: int = Field(default=50, ge=0, description="Cap for failed attempts")
    gps: int = Field(default=15, ge=0, description="Penalty for an unfamiliar location")
    typing: int = Field(default=12, ge=0, description="Cap for keystroke deviation")
    time_of_day: int = Field(default=8, ge=0, description="Penalty outside activity hours")
    velocity: int = Field(default=10, ge=0, description="Penalty for impossible travel")
    new_device: int = Field(default=5, ge=0, description="Penalty for an unknown device")
    
    model_config = {"frozen": True}
    
    @model_validator(mode="after")
    def check_total(self) -> "ScoringWeights":
        total = sum(self.as_dict().values())
        if total > 100:
            raise ValueError(f"Component caps sum to {total}, must be <= 100")
        return self
    
    def as_dict(self) -> Dict[str, int]:
        return self.model_dump()


class ScoringConfig(BaseModel):
    """Everything the RiskScorer needs besides the context itself."""
    weights: ScoringWeights = Field(default_factory=ScoringWeights)
    
    per_failed_attempt_points: int = Field(default=10, ge=0)
    gps_radius_km: float = Field(
        default=50.0, gt=0.0,
        description="Distance from a known location still considered familiar"
    )
    impossible_speed_kmh: float = Field(
        default=1000.0, gt=0.0,
        description="Implied travel speed above which a login is impossible travel"
    )
    typing_min_baseline_samples: int = Field(
        default=3, ge=1,
        description="Baseline observations needed before typing is scored"
    )
    # (z upper bound, fraction of the typing cap); z at or past the last bound gets the full cap
    typing_z_bands: List[Tuple[float, float]] = Field(
        default_factory=lambda: [(1.0, 0.0), (2.0, 0.45), (3.0, 0.8)]
    )
    low_risk_max: int = Field(default=40, ge=0, le=100)
    medium_risk_max: int = Field(default=70, ge=0, le=100)
    
    model_config = {"frozen": True}
    
    @model_validator(mode="after")
    def check_ordering(self) -> "ScoringConfig":
        if self.low_risk_max >= self.medium_risk_max:
            raise ValueError("low_risk_max must be below medium_risk_max")
        bounds = [bound for bound, _ in self.typing_z_bands]
        if bounds != sorted(bounds):
            raise ValueError("typing_z_bands must be ordered by z bound")
        for _, fraction in self.typing_z_bands:
            if not 0.0 <= fraction <= 1.0:
                raise ValueError("typing band fractions must be within [0, 1]")
        return self
