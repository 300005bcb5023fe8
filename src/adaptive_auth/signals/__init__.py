"""Signals - login-time context, stored baselines, and geo helpers."""

from adaptive_auth.signals.builder import ContextBuilder
from adaptive_auth.signals.geo import elapsed_hours, haversine_km, implied_speed_kmh
from adaptive_auth.signals.schemas import (
    ActivityWindow,
    DeviceSignal,
    GeoPoint,
    KeystrokeBaseline,
    KeystrokeSample,
    LastLogin,
    LocationFix,
    LoginAttempt,
    SignalContext,
    UserBaseline,
)

__all__ = [
    "ActivityWindow",
    "ContextBuilder",
    "DeviceSignal",
    "GeoPoint",
    "KeystrokeBaseline",
    "KeystrokeSample",
    "LastLogin",
    "LocationFix",
    "LoginAttempt",
    "SignalContext",
    "UserBaseline",
    "elapsed_hours",
    "haversine_km",
    "implied_speed_kmh",
]
