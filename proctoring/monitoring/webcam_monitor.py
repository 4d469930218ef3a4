"""
Webcam Monitor - Turns sustained face anomalies into violations

Reads the latest faces / verdict from the face detection loop every
``interval`` seconds and keeps one duration timer per anomaly kind. A timer
starts the first time its anomaly is seen and is cleared the first time it
is not; only anomalies that last long enough become violations.

Warnings (toasts) and violation logs are rate limited per kind so a
persistent anomaly does not flood the candidate or the ledger.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from ..detectors.face_validator import ValidationStatus
from ..violations.rate_limiter import MONITOR_RATE_LIMITS, RateLimiter
from ..violations.types import ViolationType, utc_now_iso

logger = logging.getLogger(__name__)


@dataclass
class AnomalyTimer:
    """Start instant of an ongoing anomaly (None when absent)"""
    started_at: Optional[float] = None

    @property
    def active(self) -> bool:
        return self.started_at is not None

    def start(self, now: float) -> bool:
        """Start if not running; True when this call started it"""
        if self.started_at is None:
            self.started_at = now
            return True
        return False

    def clear(self):
        self.started_at = None

    def duration(self, now: float) -> float:
        if self.started_at is None:
            return 0.0
        return now - self.started_at


# Warning-level statuses: (violation kind, toast message)
POSITION_ANOMALIES = {
    ValidationStatus.NOT_CENTERED: (ViolationType.FACE_NOT_CENTERED, "Please center your face in the frame"),
    ValidationStatus.TOO_CLOSE: (ViolationType.FACE_TOO_CLOSE, "Please move back from the camera"),
    ValidationStatus.TOO_FAR: (ViolationType.FACE_TOO_FAR, "Please move closer to the camera"),
    ValidationStatus.LOW_CONFIDENCE: (ViolationType.LOW_CONFIDENCE, "Please ensure good lighting"),
}

MONITORED_KINDS = (
    ViolationType.NO_FACE_DETECTED,
    ViolationType.LOOKING_AWAY,
    ViolationType.MULTIPLE_FACES,
    ViolationType.FACE_NOT_CENTERED,
    ViolationType.FACE_TOO_CLOSE,
    ViolationType.FACE_TOO_FAR,
    ViolationType.LOW_CONFIDENCE,
)


class WebcamMonitor:
    """
    Anomaly timers on top of a FaceDetectionLoop.

    Args:
        ledger: ViolationLedger receiving the violations
        detection: FaceDetectionLoop to read faces / verdict from (it is
            switched to 1s polling with the orientation check enabled)
        interval: Seconds between checks
        no_face_threshold: No-face duration before a violation is logged
        critical_no_face_threshold: No-face duration before on_critical fires
        looking_away_threshold: Looking-away duration before a violation
        warning_issue_threshold: Position/lighting duration before a violation
        on_warning: ``on_warning(kind)`` after a logged violation
        on_critical: ``on_critical(kind, seconds)`` for prolonged absence
        notifier: Toast sink with ``warning(message)``
        clock: Monotonic clock in seconds
    """

    DEFAULT_INTERVAL = 5.0
    DETECTION_INTERVAL = 1.0
    DEFAULT_NO_FACE_THRESHOLD = 10.0
    DEFAULT_CRITICAL_NO_FACE_THRESHOLD = 30.0
    DEFAULT_LOOKING_AWAY_THRESHOLD = 10.0
    DEFAULT_WARNING_ISSUE_THRESHOLD = 30.0
    LOOKING_AWAY_TOAST_AFTER = 3.0

    def __init__(
        self,
        ledger,
        detection,
        interval: float = DEFAULT_INTERVAL,
        no_face_threshold: float = DEFAULT_NO_FACE_THRESHOLD,
        critical_no_face_threshold: float = DEFAULT_CRITICAL_NO_FACE_THRESHOLD,
        looking_away_threshold: float = DEFAULT_LOOKING_AWAY_THRESHOLD,
        warning_issue_threshold: float = DEFAULT_WARNING_ISSUE_THRESHOLD,
        on_warning: Optional[Callable[[ViolationType], Any]] = None,
        on_critical: Optional[Callable[[ViolationType, int], Any]] = None,
        notifier=None,
        clock: Callable[[], float] = time.monotonic,
        detection_interval: float = DETECTION_INTERVAL
    ):
        self.ledger = ledger
        self.detection = detection
        self.interval = interval
        self.no_face_threshold = no_face_threshold
        self.critical_no_face_threshold = critical_no_face_threshold
        self.looking_away_threshold = looking_away_threshold
        self.warning_issue_threshold = warning_issue_threshold
        self.on_warning = on_warning
        self.on_critical = on_critical
        self.notifier = notifier
        self.clock = clock

        # Proctoring needs orientation checks at a steady 1s cadence
        self.detection.interval = detection_interval
        self.detection.skip_orientation_check = False

        self.timers: Dict[ViolationType, AnomalyTimer] = {k: AnomalyTimer() for k in MONITORED_KINDS}
        self.log_limiter = RateLimiter(MONITOR_RATE_LIMITS["violation_log"])
        self.toast_limiter = RateLimiter(MONITOR_RATE_LIMITS["position_toast"])

        self._check_task: Optional[asyncio.Task] = None

    @property
    def is_monitoring(self) -> bool:
        return self._check_task is not None

    # ========================================================================
    # Lifecycle
    # ========================================================================

    def start(self):
        if self._check_task is not None:
            return
        self.reset()
        self.detection.start()
        self._check_task = asyncio.get_running_loop().create_task(self._run())
        logger.info(f"[WebcamMonitoring] Monitoring started - checking every {self.interval}s")

    def stop(self):
        """Cancel checks and detection, forget timers and rate limits"""
        if self._check_task is not None:
            self._check_task.cancel()
            self._check_task = None
            logger.info("[WebcamMonitoring] Monitoring stopped")
        self.detection.stop()
        self.reset()

    def reset(self):
        for timer in self.timers.values():
            timer.clear()
        self.log_limiter.reset()
        self.toast_limiter.reset()

    async def _run(self):
        while True:
            await asyncio.sleep(self.interval)
            try:
                self.check()
            except Exception as e:
                logger.error(f"[WebcamMonitoring] Check failed: {e}")

    # ========================================================================
    # Checks
    # ========================================================================

    def check(self, now: Optional[float] = None):
        """Evaluate the latest detection result once"""
        faces = self.detection.faces
        if faces is None:
            # No detection has completed yet
            return

        now = self.clock() if now is None else now
        status = self.detection.validation_status
        face_count = len(faces)

        self._check_no_face(face_count, now)
        self._check_looking_away(face_count, status, now)
        self._check_multiple_faces(face_count, now)
        self._check_position(face_count, status, now)

    def _check_no_face(self, face_count: int, now: float):
        timer = self.timers[ViolationType.NO_FACE_DETECTED]
        if face_count > 0:
            timer.clear()
            return

        timer.start(now)
        duration = timer.duration(now)
        seconds = int(duration)

        if duration >= self.no_face_threshold:
            if self._log(ViolationType.NO_FACE_DETECTED, now, {"duration": seconds}):
                self._toast(f"No face detected for {seconds}s")
                self._warn(ViolationType.NO_FACE_DETECTED)

        if duration >= self.critical_no_face_threshold and self.on_critical is not None:
            self.on_critical(ViolationType.NO_FACE_DETECTED, seconds)

    def _check_looking_away(self, face_count: int, status, now: float):
        timer = self.timers[ViolationType.LOOKING_AWAY]
        if face_count != 1 or status is None or status.status != ValidationStatus.LOOKING_AWAY:
            timer.clear()
            return

        timer.start(now)
        duration = timer.duration(now)

        if duration >= self.LOOKING_AWAY_TOAST_AFTER:
            if self.toast_limiter.allow(ViolationType.LOOKING_AWAY, now,
                                        MONITOR_RATE_LIMITS["looking_away_toast"]):
                self._toast("Looking away detected! Please look at the screen.")

        if duration >= self.looking_away_threshold:
            if self._log(ViolationType.LOOKING_AWAY, now, {"duration": int(duration)}):
                self._warn(ViolationType.LOOKING_AWAY)

    def _check_multiple_faces(self, face_count: int, now: float):
        if face_count <= 1:
            return

        if self.toast_limiter.allow(ViolationType.MULTIPLE_FACES, now,
                                    MONITOR_RATE_LIMITS["multiple_faces_toast"]):
            self._toast("Multiple faces detected! Only you should be visible.")

        if self._log(ViolationType.MULTIPLE_FACES, now, {"face_count": face_count}):
            self._warn(ViolationType.MULTIPLE_FACES)

    def _check_position(self, face_count: int, status, now: float):
        current = None
        if face_count == 1 and status is not None and not status.is_valid:
            current = status.status

        # Only the current status's timer may run
        for anomaly, (kind, message) in POSITION_ANOMALIES.items():
            timer = self.timers[kind]
            if anomaly != current:
                timer.clear()
                continue

            if timer.start(now):
                if self.toast_limiter.allow(kind, now, MONITOR_RATE_LIMITS["position_toast"]):
                    self._toast(message)

            duration = timer.duration(now)
            if duration >= self.warning_issue_threshold:
                self._log(kind, now, {"duration": int(duration)})

    # ========================================================================
    # Helpers
    # ========================================================================

    def _log(self, kind: ViolationType, now: float, details: Dict[str, Any]) -> bool:
        """Log a violation if the per-kind log window allows it"""
        if not self.log_limiter.allow(kind, now):
            return False
        details = dict(details, timestamp=utc_now_iso())
        self.ledger.log_violation(kind, details)
        return True

    def _toast(self, message: str):
        if self.notifier is not None:
            self.notifier.warning(message)

    def _warn(self, kind: ViolationType):
        if self.on_warning is not None:
            self.on_warning(kind)
