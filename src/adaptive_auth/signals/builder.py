"""Context builder - turns a login attempt plus stored baseline into signals."""

import logging
from typing import Optional

from adaptive_auth.signals.schemas import LoginAttempt, SignalContext, UserBaseline, DeviceSignal


logger = logging.getLogger(__name__)


class ContextBuilder:
    """Assembles the immutable SignalContext for one evaluation.
    
    Missing pieces are left empty rather than invented; the scorer decides
    how each absent signal contributes.
    """
    
    def build(
        self,
        user_id: str,
        attempt: LoginAttempt,
        baseline: Optional[UserBaseline] = None,
        failed_attempts: int = 0,
    ) -> SignalContext:
        if attempt.user_id != user_id:
            raise ValueError(
                f"Attempt belongs to {attempt.user_id!r}, not {user_id!r}"
            )
        baseline = baseline or UserBaseline(user_id=user_id)
        
        context = SignalContext(
            user_id=user_id,
            failed_attempts=failed_attempts,
            device=DeviceSignal(
                device_id=attempt.device_id,
                known_devices=baseline.known_devices,
            ),
            location=attempt.location,
            location_history=baseline.location_history,
            keystroke_sample=attempt.keystroke_sample,
            keystroke_baseline=baseline.keystroke_baseline,
            timestamp=attempt.timestamp,
            activity_window=baseline.activity_window,
            last_login=baseline.last_login,
        )
        
        logger.debug(
            "Built signal context",
            extra={
                "user_id": user_id,
                "has_location": context.location is not None,
                "history_size": len(context.location_history),
                "known_devices": len(context.device.known_devices),
            }
        )
        return context
