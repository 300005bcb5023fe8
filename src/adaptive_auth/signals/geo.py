"""Great-circle distance helpers."""

import math
from datetime import datetime

from adaptive_auth.common.constants import ScoringConstants


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points in kilometres."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)
    a = (
        math.sin(dphi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    )
    # Rounding can push a just past 1.0 for antipodal points
    a = min(1.0, a)
    return 2 * ScoringConstants.EARTH_RADIUS_KM * math.asin(math.sqrt(a))


def elapsed_hours(earlier: datetime, later: datetime) -> float:
    """Hours between two instants, floored to avoid division by zero."""
    hours = abs((later - earlier).total_seconds()) / 3600.0
    return max(hours, ScoringConstants.MIN_ELAPSED_HOURS)


def implied_speed_kmh(
    lat1: float, lon1: float, t1: datetime,
    lat2: float, lon2: float, t2: datetime,
) -> float:
    """Travel speed needed to get from one fix to the other."""
    return haversine_km(lat1, lon1, lat2, lon2) / elapsed_hours(t1, t2)
