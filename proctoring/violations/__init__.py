"""Violation kinds, threshold policy, rate limiting and the violation ledger"""

from .types import (
    ViolationType,
    ViolationSeverity,
    ThresholdConfig,
    Violation,
    VIOLATION_THRESHOLDS
)
from .rate_limiter import RateLimiter, MONITOR_RATE_LIMITS
from .events import BROWSER_EVENT_VIOLATIONS, resolve_browser_event
from .ledger import ViolationLedger

__all__ = [
    "ViolationType",
    "ViolationSeverity",
    "ThresholdConfig",
    "Violation",
    "VIOLATION_THRESHOLDS",
    "RateLimiter",
    "MONITOR_RATE_LIMITS",
    "BROWSER_EVENT_VIOLATIONS",
    "resolve_browser_event",
    "ViolationLedger"
]
