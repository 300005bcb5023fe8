"""User baselines and consecutive-failure tracking.

After a successful login the attempt's signals are folded back into the
user's baseline, so the next evaluation compares against what was just
confirmed to be the real user.
"""

import math
import threading
from typing import Dict, Optional

from adaptive_auth.common.constants import ScoringConstants
from adaptive_auth.signals.schemas import (
    KeystrokeBaseline,
    KeystrokeSample,
    LastLogin,
    LocationFix,
    LoginAttempt,
    UserBaseline,
)


def merge_keystroke_sample(
    baseline: Optional[KeystrokeBaseline],
    sample: KeystrokeSample,
) -> KeystrokeBaseline:
    """Fold one observed mean interval into the running baseline (Welford)."""
    if baseline is None:
        return KeystrokeBaseline(
            mean=sample.mean_inter_key_interval, stddev=0.0, sample_count=1, m2=0.0
        )
    count = baseline.sample_count + 1
    value = sample.mean_inter_key_interval
    delta = value - baseline.mean
    mean = baseline.mean + delta / count
    m2 = baseline.m2 + delta * (value - mean)
    stddev = math.sqrt(m2 / (count - 1)) if count > 1 else 0.0
    return KeystrokeBaseline(mean=mean, stddev=stddev, sample_count=count, m2=max(m2, 0.0))


def update_after_success(
    baseline: UserBaseline,
    attempt: LoginAttempt,
    max_history: int = ScoringConstants.MAX_LOCATION_HISTORY,
) -> UserBaseline:
    """New baseline including the signals of a confirmed login."""
    known_devices = baseline.known_devices
    if attempt.device_id:
        known_devices = known_devices | {attempt.device_id}
    
    history = baseline.location_history
    if attempt.location is not None:
        fix = LocationFix(
            lat=attempt.location.lat, lon=attempt.location.lon, timestamp=attempt.timestamp
        )
        history = (history + (fix,))[-max_history:]
    
    keystroke_baseline = baseline.keystroke_baseline
    if attempt.keystroke_sample is not None:
        keystroke_baseline = merge_keystroke_sample(keystroke_baseline, attempt.keystroke_sample)
    
    return baseline.model_copy(update={
        "known_devices": known_devices,
        "location_history": history,
        "keystroke_baseline": keystroke_baseline,
        "last_login": LastLogin(timestamp=attempt.timestamp, location=attempt.location),
    })


class InMemoryBaselineStore:
    """Process-local baseline storage keyed by user id."""
    
    def __init__(self):
        self._lock = threading.Lock()
        self._baselines: Dict[str, UserBaseline] = {}
    
    def get(self, user_id: str) -> UserBaseline:
        with self._lock:
            return self._baselines.get(user_id) or UserBaseline(user_id=user_id)
    
    def put(self, baseline: UserBaseline) -> None:
        with self._lock:
            self._baselines[baseline.user_id] = baseline


class FailedAttemptTracker:
    """Consecutive password failures per account."""
    
    def __init__(self):
        self._lock = threading.Lock()
        self._counts: Dict[str, int] = {}
    
    def count(self, user_id: str) -> int:
        with self._lock:
            return self._counts.get(user_id, 0)
    
    def record_failure(self, user_id: str) -> int:
        with self._lock:
            self._counts[user_id] = self._counts.get(user_id, 0) + 1
            return self._counts[user_id]
    
    def reset(self, user_id: str) -> None:
        with self._lock:
            self._counts.pop(user_id, None)
