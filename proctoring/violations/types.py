"""
Violation Types - Kinds, severities and the threshold policy table

Every violation the engine records is one of the ViolationType kinds below.
The policy table decides, per kind, when the candidate is warned and when
the attempt is auto-submitted.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional


class ViolationType(str, Enum):
    """Closed set of proctoring violation kinds"""
    TAB_SWITCH = "TAB_SWITCH"
    RIGHT_CLICK = "RIGHT_CLICK"
    KEYBOARD_SHORTCUT = "KEYBOARD_SHORTCUT"
    DEVTOOLS_OPEN = "DEVTOOLS_OPEN"
    NEW_WINDOW_ATTEMPT = "NEW_WINDOW_ATTEMPT"
    FULLSCREEN_EXIT = "FULLSCREEN_EXIT"
    NO_FACE_DETECTED = "NO_FACE_DETECTED"
    MULTIPLE_FACES = "MULTIPLE_FACES"
    FACE_MISMATCH = "FACE_MISMATCH"
    LOOKING_AWAY = "LOOKING_AWAY"
    FACE_NOT_CENTERED = "FACE_NOT_CENTERED"
    FACE_TOO_CLOSE = "FACE_TOO_CLOSE"
    FACE_TOO_FAR = "FACE_TOO_FAR"
    LOW_CONFIDENCE = "LOW_CONFIDENCE"
    IP_CHANGE = "IP_CHANGE"
    LOCATION_CHANGE = "LOCATION_CHANGE"
    COPY_PASTE = "COPY_PASTE"
    PAGE_BLUR = "PAGE_BLUR"

    @classmethod
    def parse(cls, value: Any) -> Optional["ViolationType"]:
        """Return the matching kind, or None for anything unrecognized"""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return None


class ViolationSeverity(str, Enum):
    """Urgency tag, ordered LOW < MEDIUM < HIGH < CRITICAL"""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    def __lt__(self, other):
        if not isinstance(other, ViolationSeverity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, ViolationSeverity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, ViolationSeverity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, ViolationSeverity):
            return NotImplemented
        return self.rank >= other.rank


_SEVERITY_RANK = {
    ViolationSeverity.LOW: 0,
    ViolationSeverity.MEDIUM: 1,
    ViolationSeverity.HIGH: 2,
    ViolationSeverity.CRITICAL: 3,
}


@dataclass(frozen=True)
class ThresholdConfig:
    """Warning / auto-submit counts and default severity for one kind"""
    warning_threshold: int
    auto_submit_threshold: int
    severity: ViolationSeverity

    def __post_init__(self):
        if self.warning_threshold > self.auto_submit_threshold:
            raise ValueError(
                f"warning_threshold ({self.warning_threshold}) must not exceed "
                f"auto_submit_threshold ({self.auto_submit_threshold})"
            )


def _policy(warning: int, auto_submit: int, severity: ViolationSeverity) -> ThresholdConfig:
    return ThresholdConfig(warning, auto_submit, severity)


# IP_CHANGE / LOCATION_CHANGE: first occurrence ends the attempt
VIOLATION_THRESHOLDS: Mapping[ViolationType, ThresholdConfig] = MappingProxyType({
    ViolationType.TAB_SWITCH: _policy(1, 3, ViolationSeverity.HIGH),
    ViolationType.PAGE_BLUR: _policy(3, 5, ViolationSeverity.HIGH),
    ViolationType.RIGHT_CLICK: _policy(3, 5, ViolationSeverity.LOW),
    ViolationType.KEYBOARD_SHORTCUT: _policy(3, 5, ViolationSeverity.MEDIUM),
    ViolationType.DEVTOOLS_OPEN: _policy(1, 2, ViolationSeverity.CRITICAL),
    ViolationType.NEW_WINDOW_ATTEMPT: _policy(1, 3, ViolationSeverity.HIGH),
    ViolationType.FULLSCREEN_EXIT: _policy(1, 3, ViolationSeverity.HIGH),
    ViolationType.NO_FACE_DETECTED: _policy(2, 7, ViolationSeverity.HIGH),
    ViolationType.MULTIPLE_FACES: _policy(1, 3, ViolationSeverity.HIGH),
    ViolationType.FACE_MISMATCH: _policy(1, 3, ViolationSeverity.CRITICAL),
    ViolationType.LOOKING_AWAY: _policy(2, 6, ViolationSeverity.HIGH),
    ViolationType.FACE_NOT_CENTERED: _policy(5, 10, ViolationSeverity.MEDIUM),
    ViolationType.FACE_TOO_CLOSE: _policy(5, 10, ViolationSeverity.MEDIUM),
    ViolationType.FACE_TOO_FAR: _policy(5, 10, ViolationSeverity.MEDIUM),
    ViolationType.LOW_CONFIDENCE: _policy(5, 10, ViolationSeverity.MEDIUM),
    ViolationType.IP_CHANGE: _policy(0, 1, ViolationSeverity.CRITICAL),
    ViolationType.LOCATION_CHANGE: _policy(0, 1, ViolationSeverity.CRITICAL),
    ViolationType.COPY_PASTE: _policy(3, 8, ViolationSeverity.MEDIUM),
})


def utc_now_iso() -> str:
    """Current instant as an ISO-8601 string with millisecond precision"""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class Violation:
    """
    A single recorded violation.

    Created once per ``ViolationLedger.log_violation`` call and never
    mutated afterwards. ``count`` is the running count of this kind within
    the session at the moment the violation was recorded.
    """
    assessment_id: str
    attempt_id: str
    type: ViolationType
    severity: ViolationSeverity
    count: int
    details: Mapping[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=utc_now_iso)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self):
        # Callers keep their dict; the record holds a read-only copy
        object.__setattr__(self, "details", MappingProxyType(dict(self.details or {})))

    def to_payload(self) -> Dict[str, Any]:
        """Wire shape used by both single and batch delivery"""
        return {
            "type": self.type.value,
            "timestamp": self.timestamp,
            "details": dict(self.details),
            "severity": self.severity.value,
            "count": self.count,
        }

    def to_record(self) -> Dict[str, Any]:
        """Full record, as written to local fallback storage"""
        record = {
            "id": self.id,
            "assessmentId": self.assessment_id,
            "attemptId": self.attempt_id,
        }
        record.update(self.to_payload())
        return record
