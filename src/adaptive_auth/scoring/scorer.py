"""Risk Scorer - deterministic, explainable login risk.

Every component is computed from the SignalContext alone. The scorer never
reads the clock and never does I/O, so the same context always produces the
same breakdown.
"""

import logging
from typing import Literal, Optional

from adaptive_auth.common.exceptions import SignalMissing
from adaptive_auth.scoring.config import ScoringConfig
from adaptive_auth.scoring.schema import RiskBreakdown
from adaptive_auth.signals.geo import haversine_km, implied_speed_kmh
from adaptive_auth.signals.schemas import SignalContext


logger = logging.getLogger(__name__)

RiskLevel = Literal["low", "medium", "high"]


class RiskScorer:
    """Scores a login attempt across six additive components.
    
    Absent signals are neutral: no location history, no keystroke baseline
    or no previous login location all score 0 for their component. An empty
    known-device set is the exception and always scores the device penalty.
    """
    
    def __init__(self, config: Optional[ScoringConfig] = None):
        self.config = config or ScoringConfig()
        self.weights = self.config.weights
    
    def score(self, context: SignalContext) -> RiskBreakdown:
        """Compute the risk breakdown for a context.
        
        Args:
            context: Immutable signal snapshot
            
        Returns:
            RiskBreakdown whose ``score`` is the capped total
        """
        breakdown = RiskBreakdown(
            failed_attempts=self.score_failed_attempts(context),
            gps=self.score_gps(context),
            typing=self.score_typing(context),
            time_of_day=self.score_time_of_day(context),
            velocity=self.score_velocity(context),
            new_device=self.score_new_device(context),
        )
        logger.debug(
            "Scored login attempt",
            extra={"user_id": context.user_id, "score": breakdown.score, **breakdown.as_dict()}
        )
        return breakdown
    
    def risk_level(self, score: int) -> RiskLevel:
        if score <= self.config.low_risk_max:
            return "low"
        if score <= self.config.medium_risk_max:
            return "medium"
        return "high"
    
    # Components
    
    def score_failed_attempts(self, context: SignalContext) -> int:
        points = context.failed_attempts * self.config.per_failed_attempt_points
        return min(self.weights.failed_attempts, points)
    
    def score_gps(self, context: SignalContext) -> int:
        """Penalty when the current location is far from every known location."""
        try:
            location = context.require("location")
            history = context.require("location_history")
        except SignalMissing as e:
            return self._neutral(e)
        radius = self.config.gps_radius_km
        for fix in history:
            distance = haversine_km(location.lat, location.lon, fix.lat, fix.lon)
            if distance <= radius:
                return 0
        return self.weights.gps
    
    def score_typing(self, context: SignalContext) -> int:
        """Graded penalty for keystroke rhythm far from the user's baseline.
        
        z = |sample mean - baseline mean| / baseline stddev. Deviations under
        the first band bound are a dead zone and score nothing.
        """
        try:
            sample = context.require("keystroke_sample")
            baseline = context.require("keystroke_baseline")
        except SignalMissing as e:
            return self._neutral(e)
        if baseline.sample_count < self.config.typing_min_baseline_samples:
            return 0
        
        stddev = baseline.stddev if baseline.stddev > 0 else 1.0
        z = abs(sample.mean_inter_key_interval - baseline.mean) / stddev
        
        cap = self.weights.typing
        for bound, fraction in self.config.typing_z_bands:
            if z < bound:
                return round(cap * fraction)
        return cap
    
    def score_time_of_day(self, context: SignalContext) -> int:
        if context.activity_window.contains(context.timestamp):
            return 0
        return self.weights.time_of_day
    
    def score_velocity(self, context: SignalContext) -> int:
        """Impossible-travel check against the last successful login."""
        try:
            location = context.require("location")
            last = context.require("last_login")
            if last.location is None:
                raise SignalMissing("last_login.location", details={"user_id": context.user_id})
        except SignalMissing as e:
            return self._neutral(e)
        speed = implied_speed_kmh(
            last.location.lat, last.location.lon, last.timestamp,
            location.lat, location.lon, context.timestamp,
        )
        if speed > self.config.impossible_speed_kmh:
            return self.weights.velocity
        return 0
    
    def score_new_device(self, context: SignalContext) -> int:
        if context.device.is_known:
            return 0
        return self.weights.new_device
    
    def _neutral(self, missing: SignalMissing) -> int:
        logger.debug(
            "Signal missing, component scored neutral",
            extra={"signal": missing.details["signal"], "user_id": missing.details.get("user_id")}
        )
        return 0
