"""
Proctor Session - Wires the proctoring components for one assessment attempt
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from .config import Settings, settings as default_settings
from .delivery import LocalFallbackStore, ViolationTransport
from .detectors import FaceDetectionLoop, LiveFaceComparator
from .detectors.face_verifier import ComparisonResult
from .monitoring import WebcamMonitor
from .violations import Violation, ViolationLedger, ViolationType, resolve_browser_event
from .violations.types import utc_now_iso

logger = logging.getLogger(__name__)


class ProctorSession:
    """
    Manages a single proctored assessment attempt.

    Always owns the violation ledger with its transport and fallback store.
    Webcam monitoring is wired when a frame ``source`` and face ``detector``
    are supplied; live identity comparison when a ``source`` and descriptor
    ``extractor`` are supplied.
    """

    def __init__(
        self,
        assessment_id: str,
        attempt_id: str,
        config: Settings = default_settings,
        transport: Optional[ViolationTransport] = None,
        fallback_store: Optional[LocalFallbackStore] = None,
        source=None,
        detector=None,
        extractor=None,
        reference_descriptor: Optional[Sequence[float]] = None,
        on_warning: Optional[Callable[[ViolationType], Any]] = None,
        on_critical: Optional[Callable[[ViolationType, int], Any]] = None,
        on_mismatch: Optional[Callable[[ComparisonResult], Any]] = None,
        notifier=None,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Build a new (inactive) proctoring session.

        Args:
            assessment_id: Assessment being taken
            attempt_id: Attempt being proctored
            config: Settings to wire into the components
            transport: Delivery transport (built from settings when omitted)
            fallback_store: Local fallback store (built from settings when omitted)
            source: Webcam frame source
            detector: External face detector
            extractor: External face descriptor extractor
            reference_descriptor: Descriptor captured at identity verification
            on_warning / on_critical: Webcam monitor callbacks
            on_mismatch: Called after a face mismatch has been recorded
            notifier: Toast sink with ``warning(message)``
            clock: Monotonic clock used by the webcam monitor
        """
        self.assessment_id = assessment_id
        self.attempt_id = attempt_id
        self.config = config

        self._owns_transport = transport is None
        self.transport = transport or ViolationTransport(
            base_url=config.PROCTOR_API_BASE_URL,
            token=config.PROCTOR_API_TOKEN,
            timeout=config.PROCTOR_HTTP_TIMEOUT
        )
        self.fallback_store = fallback_store or LocalFallbackStore(config.FALLBACK_STORAGE_DIR)
        self.ledger = ViolationLedger(
            self.transport,
            self.fallback_store,
            batch_interval=config.BATCH_INTERVAL_SECONDS
        )

        self.detection: Optional[FaceDetectionLoop] = None
        self.monitor: Optional[WebcamMonitor] = None
        if source is not None and detector is not None:
            self.detection = FaceDetectionLoop(source, detector, interval=config.DETECTION_INTERVAL)
            self.monitor = WebcamMonitor(
                self.ledger,
                self.detection,
                interval=config.MONITOR_CHECK_INTERVAL,
                no_face_threshold=config.NO_FACE_THRESHOLD,
                critical_no_face_threshold=config.CRITICAL_NO_FACE_THRESHOLD,
                looking_away_threshold=config.LOOKING_AWAY_THRESHOLD,
                warning_issue_threshold=config.WARNING_ISSUE_THRESHOLD,
                on_warning=on_warning,
                on_critical=on_critical,
                notifier=notifier,
                clock=clock,
                detection_interval=config.MONITOR_DETECTION_INTERVAL
            )

        self.comparator: Optional[LiveFaceComparator] = None
        if source is not None and extractor is not None:
            self.comparator = LiveFaceComparator(
                source,
                extractor,
                reference_descriptor=reference_descriptor,
                interval=config.FACE_COMPARISON_INTERVAL,
                mismatch_threshold=config.FACE_MISMATCH_THRESHOLD,
                on_mismatch=self._handle_mismatch,
                attempt_id=attempt_id,
                transport=self.transport
            )
        self._on_mismatch = on_mismatch

        self.auto_submit_requested = False
        self.auto_submit_reason: Optional[str] = None
        self._on_auto_submit: Optional[Callable[[ViolationType, int], Any]] = None

        self.initial_ip: Optional[str] = None
        self.initial_location: Optional[str] = None

        self.started_at: Optional[datetime] = None
        self.ended_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.ledger.is_active

    # ========================================================================
    # Lifecycle
    # ========================================================================

    def start(self, on_auto_submit: Optional[Callable[[ViolationType, int], Any]] = None):
        """Activate the ledger and start any wired monitoring loops"""
        if self.is_active:
            logger.debug(f"Session {self.attempt_id} already active")
            return

        self._on_auto_submit = on_auto_submit
        self.auto_submit_requested = False
        self.auto_submit_reason = None
        self.started_at = datetime.now(timezone.utc)
        self.ended_at = None

        self.ledger.start_proctoring(
            self.assessment_id,
            self.attempt_id,
            on_auto_submit=self._handle_auto_submit
        )

        if self.monitor is not None:
            self.monitor.start()
        if self.comparator is not None:
            self.comparator.start()

        logger.info(f"Proctoring session started: {self.attempt_id}")

    async def load_reference_descriptor(self) -> bool:
        """Fetch the reference face from the server for the comparator"""
        if self.comparator is None:
            return False
        descriptor = await self.transport.get_reference_descriptor(self.attempt_id)
        if descriptor is None:
            return False
        self.comparator.reference_descriptor = descriptor
        return True

    def stop(self):
        """Stop monitoring loops and deactivate the ledger. Safe to call repeatedly."""
        if self.monitor is not None:
            self.monitor.stop()
        if self.comparator is not None:
            self.comparator.stop()

        if self.is_active:
            self.ended_at = datetime.now(timezone.utc)
            logger.info(f"Proctoring session stopped: {self.attempt_id}")
        self.ledger.stop_proctoring()

    async def aclose(self):
        """Stop, wait for in-flight deliveries, close the owned transport"""
        self.stop()
        await self.ledger.wait_for_deliveries()
        if self._owns_transport:
            await self.transport.aclose()

    # ========================================================================
    # Inputs
    # ========================================================================

    @staticmethod
    def resolve_event(event_name: str) -> Optional[ViolationType]:
        return resolve_browser_event(event_name) or ViolationType.parse(event_name)

    def record_event(self, event_name: str, details: Optional[Dict[str, Any]] = None) -> Optional[Violation]:
        """
        Record a window event reported by the exam page.

        Accepts browser event names (``visibility_hidden``, ``copy``, ...)
        or violation kind values (``TAB_SWITCH``). Unknown events are
        logged and dropped.
        """
        kind = self.resolve_event(event_name)
        if kind is None:
            logger.warning(f"Unknown proctoring event dropped: {event_name}")
            return None

        event_details = dict(details or {})
        event_details.setdefault("event", event_name)
        event_details.setdefault("timestamp", utc_now_iso())
        return self.ledger.log_violation(kind, event_details)

    def set_initial_network(self, ip: Optional[str], location: Optional[str] = None):
        """Record the network baseline captured at session start"""
        self.initial_ip = ip
        self.initial_location = location

    def check_network(self, ip: Optional[str], location: Optional[str] = None) -> List[Violation]:
        """
        Compare the current network against the baseline.

        Returns:
            Violations recorded for a changed IP and/or location
        """
        recorded = []

        if self.initial_ip and ip and ip != self.initial_ip:
            violation = self.ledger.log_violation(
                ViolationType.IP_CHANGE,
                {"initial_ip": self.initial_ip, "current_ip": ip, "timestamp": utc_now_iso()}
            )
            if violation is not None:
                recorded.append(violation)

        if self.initial_location and location and location != self.initial_location:
            violation = self.ledger.log_violation(
                ViolationType.LOCATION_CHANGE,
                {
                    "initial_location": self.initial_location,
                    "current_location": location,
                    "timestamp": utc_now_iso()
                }
            )
            if violation is not None:
                recorded.append(violation)

        return recorded

    # ========================================================================
    # Callbacks
    # ========================================================================

    def _handle_auto_submit(self, kind: ViolationType, count: int):
        self.auto_submit_requested = True
        self.auto_submit_reason = f"{kind.value} limit reached ({count})"
        if self._on_auto_submit is not None:
            self._on_auto_submit(kind, count)

    def _handle_mismatch(self, result: ComparisonResult):
        self.ledger.log_violation(
            ViolationType.FACE_MISMATCH,
            {"distance": result.distance, "timestamp": result.timestamp}
        )
        if self._on_mismatch is not None:
            self._on_mismatch(result)

    # ========================================================================
    # Queries
    # ========================================================================

    def summary(self) -> Dict[str, Any]:
        """Violation summary plus session state"""
        end = self.ended_at or datetime.now(timezone.utc)
        duration = (end - self.started_at).total_seconds() if self.started_at else 0.0

        result = self.ledger.get_violation_summary()
        result.update({
            "assessment_id": self.assessment_id,
            "attempt_id": self.attempt_id,
            "is_active": self.is_active,
            "auto_submit_requested": self.auto_submit_requested,
            "auto_submit_reason": self.auto_submit_reason,
            "duration_seconds": duration,
        })

        if self.detection is not None and self.detection.validation_status is not None:
            result["validation_status"] = self.detection.validation_status.to_dict()
        if self.comparator is not None:
            result["match_statistics"] = self.comparator.get_match_statistics()

        return result
