"""
Rate Limiter - Per-key "earliest next allowed time" throttling

Used by the webcam monitor to debounce warnings and violation logs so a
condition that persists across many checks does not flood the candidate
with toasts or the ledger with duplicate violations.
"""

import logging
from typing import Dict, Hashable, Optional

logger = logging.getLogger(__name__)


# ============================================================================
# Rate Limit Configuration (seconds between two allowed events per key)
# ============================================================================

MONITOR_RATE_LIMITS = {
    "violation_log": 5.0,        # one logged violation per kind per 5s
    "looking_away_toast": 3.0,   # looking-away reminder
    "multiple_faces_toast": 3.0, # multiple-faces reminder
    "position_toast": 10.0,      # not-centered / too-close / too-far / low-confidence
}


class RateLimiter:
    """
    In-memory rate limiter keyed by an arbitrary hashable key.

    Usage:
        limiter = RateLimiter(interval=5.0)

        if limiter.allow(ViolationType.NO_FACE_DETECTED, now):
            ledger.log_violation(...)

    The first event for a key is always allowed. Afterwards an event is
    allowed once ``interval`` seconds have elapsed since the last allowed
    one; rejected events do not push the window forward.
    """

    def __init__(self, interval: float):
        if interval < 0:
            raise ValueError("interval must be >= 0")
        self.interval = interval
        self._next_allowed: Dict[Hashable, float] = {}

    def allow(self, key: Hashable, now: float, interval: Optional[float] = None) -> bool:
        """
        Check and record an event for ``key`` at time ``now``.

        Args:
            key: Bucket to throttle (usually a ViolationType)
            now: Current time in seconds (monotonic clock)
            interval: Optional per-call override of the limiter interval

        Returns:
            True if the event is allowed (and recorded), False otherwise
        """
        next_allowed = self._next_allowed.get(key)
        if next_allowed is not None and now < next_allowed:
            return False

        window = self.interval if interval is None else interval
        self._next_allowed[key] = now + window
        return True

    def next_allowed_at(self, key: Hashable) -> Optional[float]:
        """Earliest time the next event for ``key`` will be allowed"""
        return self._next_allowed.get(key)

    def reset(self, key: Optional[Hashable] = None):
        """Forget one key, or every key when called without arguments"""
        if key is None:
            self._next_allowed.clear()
        else:
            self._next_allowed.pop(key, None)
