"""Signal schemas - login-time context and stored per-user baselines.

SignalContext is the immutable snapshot the scorer reads. UserBaseline is
what the orchestrator keeps between logins and folds new observations into.
"""

from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator, model_validator

from adaptive_auth.common.constants import ScoringConstants
from adaptive_auth.common.exceptions import SignalMissing


def _as_utc(value: datetime) -> datetime:
    """Naive datetimes are treated as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class GeoPoint(BaseModel):
    """A WGS84 coordinate pair."""
    lat: float = Field(..., ge=-90.0, le=90.0, description="Latitude in degrees")
    lon: float = Field(..., ge=-180.0, le=180.0, description="Longitude in degrees")
    
    model_config = {"frozen": True}


class LocationFix(BaseModel):
    """A location observed at a point in time."""
    lat: float = Field(..., ge=-90.0, le=90.0, description="Latitude in degrees")
    lon: float = Field(..., ge=-180.0, le=180.0, description="Longitude in degrees")
    timestamp: datetime = Field(..., description="When the location was observed")
    
    model_config = {"frozen": True}
    
    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        return _as_utc(v)
    
    @property
    def point(self) -> GeoPoint:
        return GeoPoint(lat=self.lat, lon=self.lon)


class DeviceSignal(BaseModel):
    """Device identifier presented with the login and the user's known set."""
    device_id: Optional[str] = Field(
        default=None,
        description="Hashed device fingerprint (None when the client sent none)"
    )
    known_devices: FrozenSet[str] = Field(
        default_factory=frozenset,
        description="Devices previously seen for this user"
    )
    
    model_config = {"frozen": True}
    
    @property
    def is_known(self) -> bool:
        return self.device_id is not None and self.device_id in self.known_devices


class KeystrokeSample(BaseModel):
    """Timing summary of the typed password."""
    mean_inter_key_interval: float = Field(
        ..., ge=0.0, description="Mean interval between key presses in ms"
    )
    sample_count: int = Field(default=0, ge=0, description="Number of intervals measured")
    
    model_config = {"frozen": True}


class KeystrokeBaseline(BaseModel):
    """Running statistics of the user's historical typing rhythm.
    
    ``m2`` is the Welford sum of squared deviations; it lets the baseline
    be updated one observation at a time without keeping raw samples.
    """
    mean: float = Field(..., ge=0.0, description="Mean inter-key interval in ms")
    stddev: float = Field(default=0.0, ge=0.0, description="Standard deviation in ms")
    sample_count: int = Field(default=0, ge=0, description="Observations folded in")
    m2: float = Field(default=0.0, ge=0.0, description="Sum of squared deviations")
    
    model_config = {"frozen": True}


class ActivityWindow(BaseModel):
    """Hours of the day the user normally signs in, in their own timezone.
    
    The window is [start_hour, end_hour). When start_hour > end_hour the
    window wraps past midnight (e.g. 22 -> 6). Equal bounds would be an
    empty window and are rejected; use 0 -> 24 for "any hour".
    """
    start_hour: int = Field(
        default=ScoringConstants.DEFAULT_ACTIVITY_START_HOUR, ge=0, le=23
    )
    end_hour: int = Field(
        default=ScoringConstants.DEFAULT_ACTIVITY_END_HOUR, ge=0, le=24
    )
    timezone: str = Field(
        default=ScoringConstants.DEFAULT_ACTIVITY_TIMEZONE,
        description="IANA timezone name"
    )
    
    model_config = {"frozen": True}
    
    @field_validator("timezone")
    @classmethod
    def known_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {v}") from e
        return v
    
    @model_validator(mode="after")
    def non_empty(self) -> "ActivityWindow":
        if self.start_hour == self.end_hour:
            raise ValueError("Activity window is empty: start_hour equals end_hour")
        return self
    
    def contains(self, moment: datetime) -> bool:
        """Whether ``moment`` falls inside the window in the window's timezone."""
        hour = _as_utc(moment).astimezone(ZoneInfo(self.timezone)).hour
        if self.start_hour < self.end_hour:
            return self.start_hour <= hour < self.end_hour
        return hour >= self.start_hour or hour < self.end_hour


class LastLogin(BaseModel):
    """Where and when the user last signed in successfully."""
    timestamp: datetime
    location: Optional[GeoPoint] = None
    
    model_config = {"frozen": True}
    
    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        return _as_utc(v)


class SignalContext(BaseModel):
    """Immutable per-request snapshot of every risk signal.
    
    Built once per evaluation by the ContextBuilder. The scorer reads it
    and never mutates it.
    """
    user_id: str = Field(..., min_length=1, description="Account being evaluated")
    failed_attempts: int = Field(
        default=0, ge=0, description="Consecutive prior failures for this account"
    )
    device: DeviceSignal = Field(default_factory=DeviceSignal)
    location: Optional[GeoPoint] = Field(default=None, description="Current location")
    location_history: Tuple[LocationFix, ...] = Field(
        default_factory=tuple,
        description="Previously seen locations, most recent last"
    )
    keystroke_sample: Optional[KeystrokeSample] = None
    keystroke_baseline: Optional[KeystrokeBaseline] = None
    timestamp: datetime = Field(..., description="When the attempt was made")
    activity_window: ActivityWindow = Field(default_factory=ActivityWindow)
    last_login: Optional[LastLogin] = None
    
    model_config = {
        "frozen": True,
        "json_schema_extra": {
            "example": {
                "user_id": "u_1234",
                "failed_attempts": 0,
                "device": {"device_id": "dev_abc", "known_devices": ["dev_abc"]},
                "location": {"lat": 28.61, "lon": 77.21},
                "location_history": [
                    {"lat": 28.61, "lon": 77.21, "timestamp": "2026-01-10T09:00:00Z"}
                ],
                "timestamp": "2026-01-11T05:30:00Z",
                "activity_window": {
                    "start_hour": 8, "end_hour": 20, "timezone": "Asia/Kolkata"
                },
            }
        },
    }
    
    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        return _as_utc(v)
    
    def to_signals(self) -> Dict[str, Any]:
        """JSON-serializable snapshot for audit and the policy evaluator."""
        data = self.model_dump(mode="json")
        data["device"]["known_devices"] = sorted(self.device.known_devices)
        return data
    
    def require(self, name: str) -> Any:
        """Value of a signal, raising SignalMissing when it is absent or empty."""
        value = getattr(self, name)
        if value is None or value == ():
            raise SignalMissing(name, details={"user_id": self.user_id})
        return value


class UserBaseline(BaseModel):
    """Stored per-user history the scorer compares new attempts against."""
    user_id: str
    known_devices: FrozenSet[str] = Field(default_factory=frozenset)
    location_history: Tuple[LocationFix, ...] = Field(default_factory=tuple)
    keystroke_baseline: Optional[KeystrokeBaseline] = None
    activity_window: ActivityWindow = Field(default_factory=ActivityWindow)
    last_login: Optional[LastLogin] = None
    
    model_config = {"frozen": True}


class LoginAttempt(BaseModel):
    """Raw login-time data sent by the client alongside credentials."""
    user_id: str = Field(..., min_length=1)
    device_id: Optional[str] = None
    location: Optional[GeoPoint] = None
    keystroke_sample: Optional[KeystrokeSample] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    
    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        return _as_utc(v)
