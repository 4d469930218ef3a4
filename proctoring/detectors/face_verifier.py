"""
Face Verifier - Continuous identity comparison during an assessment

Every ``interval`` seconds a frame is captured, a face descriptor is
extracted from it and compared with the reference descriptor recorded at
identity verification. A distance below ``mismatch_threshold`` is a match.

Callbacks, threshold and attempt id are plain attributes read at the moment
they are needed, so the host may swap them at any time without restarting
the loop.
"""

import asyncio
import base64
import logging
from collections import deque
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

import cv2
import numpy as np

from .face_detector import call_capability
from ..violations.types import utc_now_iso

logger = logging.getLogger(__name__)


# Error event types reported through on_error
NO_FACE_DETECTED = "no_face_detected"
COMPARISON_ERROR = "comparison_error"


@dataclass
class ComparisonResult:
    """Outcome of one comparison tick"""
    distance: float
    matched: bool
    timestamp: str
    snapshot: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def euclidean_distance(a: Sequence[float], b: Sequence[float]) -> Dict[str, float]:
    """Default descriptor comparator (128-d face descriptors)"""
    ref = np.asarray(a, dtype=np.float32)
    live = np.asarray(b, dtype=np.float32)
    if ref.shape != live.shape:
        raise ValueError(f"Descriptor shape mismatch: {ref.shape} vs {live.shape}")
    return {"distance": float(np.linalg.norm(ref - live))}


def encode_snapshot(frame: np.ndarray, quality: int = 80) -> Optional[str]:
    """Encode a BGR frame as a JPEG data URL"""
    ok, buffer = cv2.imencode(".jpg", frame, [int(cv2.IMWRITE_JPEG_QUALITY), quality])
    if not ok:
        return None
    return "data:image/jpeg;base64," + base64.b64encode(buffer.tobytes()).decode("ascii")


class LiveFaceComparator:
    """
    Periodic live-vs-reference face comparison.

    Args:
        source: Frame source with ``is_ready()`` and ``read()``
        extractor: ``extract(frame) -> vector | None`` (sync or async)
        reference_descriptor: Descriptor fixed at session start
        comparator: ``compare(a, b) -> {"distance": float}``
        interval: Seconds between comparisons
        mismatch_threshold: Distance at or above which faces don't match
        on_mismatch / on_match / on_error: Optional callbacks
        attempt_id: Attempt to log comparison results against
        transport: Object with ``async log_face_comparison(attempt_id, data)``
    """

    DEFAULT_INTERVAL = 10.0
    DEFAULT_THRESHOLD = 0.6
    HISTORY_SIZE = 20

    def __init__(
        self,
        source,
        extractor,
        reference_descriptor: Optional[Sequence[float]] = None,
        comparator: Callable[[Any, Any], Dict[str, float]] = euclidean_distance,
        interval: float = DEFAULT_INTERVAL,
        mismatch_threshold: float = DEFAULT_THRESHOLD,
        on_mismatch: Optional[Callable[[ComparisonResult], Any]] = None,
        on_match: Optional[Callable[[ComparisonResult], Any]] = None,
        on_error: Optional[Callable[[Dict[str, Any]], Any]] = None,
        attempt_id: Optional[str] = None,
        transport=None
    ):
        self.source = source
        self.extractor = extractor
        self.reference_descriptor = (
            list(reference_descriptor) if reference_descriptor is not None else None
        )
        self.comparator = comparator
        self.interval = interval
        self.mismatch_threshold = mismatch_threshold
        self.on_mismatch = on_mismatch
        self.on_match = on_match
        self.on_error = on_error
        self.attempt_id = attempt_id
        self.transport = transport

        self.match_history = deque(maxlen=self.HISTORY_SIZE)
        self.last_match_score: Optional[float] = None
        self.last_check_time: Optional[datetime] = None
        self.comparison_count = 0

        self._timer_task: Optional[asyncio.Task] = None
        self._comparison_task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._timer_task is not None

    @property
    def is_comparing(self) -> bool:
        return self._comparison_task is not None and not self._comparison_task.done()

    # ========================================================================
    # Loop control
    # ========================================================================

    def start(self):
        """Compare now, then once per interval"""
        if self._timer_task is not None:
            return
        if self.reference_descriptor is None:
            logger.warning("[LiveFaceComparison] No reference descriptor, comparison not started")
            return

        logger.info(f"[LiveFaceComparison] Starting comparison loop (interval: {self.interval}s)")
        self._timer_task = asyncio.get_running_loop().create_task(self._run())

    def stop(self):
        if self._timer_task is not None:
            self._timer_task.cancel()
            self._timer_task = None
            logger.info("[LiveFaceComparison] Comparison stopped")
        if self._comparison_task is not None:
            self._comparison_task.cancel()
            self._comparison_task = None

    async def _run(self):
        while True:
            if self.is_comparing:
                logger.debug("[LiveFaceComparison] Skipping comparison - already processing")
            else:
                self._comparison_task = asyncio.get_running_loop().create_task(self._compare())
            await asyncio.sleep(self.interval)

    async def compare_once(self) -> Optional[ComparisonResult]:
        """
        Run a single guarded comparison.

        Returns:
            The ComparisonResult, or None if skipped, faceless or failed
        """
        if self.is_comparing:
            logger.debug("[LiveFaceComparison] Skipping comparison - already processing")
            return None

        task = asyncio.get_running_loop().create_task(self._compare())
        self._comparison_task = task
        await asyncio.wait({task})
        return None if task.cancelled() else task.result()

    # ========================================================================
    # Comparison
    # ========================================================================

    async def _compare(self) -> Optional[ComparisonResult]:
        if self.reference_descriptor is None:
            logger.warning("[LiveFaceComparison] No reference descriptor available")
            return None

        if not self.source.is_ready():
            logger.warning("[LiveFaceComparison] Video not ready")
            return None

        try:
            frame = await asyncio.to_thread(self.source.read)
            if frame is None:
                logger.warning("[LiveFaceComparison] No frame available")
                return None

            live_descriptor = await call_capability(self.extractor.extract, frame)

            if live_descriptor is None or len(live_descriptor) == 0:
                logger.warning("[LiveFaceComparison] No face detected in current frame")
                self._emit_error(NO_FACE_DETECTED, "No face detected in webcam")
                await self._log_comparison({
                    "matchScore": None,
                    "matched": False,
                    "faceDetected": False,
                    "faceCount": 0,
                })
                return None

            distance = float(self.comparator(self.reference_descriptor, live_descriptor)["distance"])
            threshold = self.mismatch_threshold
            matched = distance < threshold

            logger.info(
                f"[LiveFaceComparison] Distance: {distance:.4f} | "
                f"Matched: {matched} | Threshold: {threshold}"
            )

            result = ComparisonResult(distance=distance, matched=matched, timestamp=utc_now_iso())
            self.last_match_score = distance
            self.last_check_time = datetime.now(timezone.utc)
            self.match_history.append(result)
            self.comparison_count += 1

            on_mismatch = self.on_mismatch
            if not matched and on_mismatch is not None:
                result.snapshot = await asyncio.to_thread(encode_snapshot, frame)

            if matched:
                if self.on_match is not None:
                    self.on_match(result)
            elif on_mismatch is not None:
                on_mismatch(result)

            await self._log_comparison({
                "matchScore": distance,
                "matched": matched,
                "faceDetected": True,
                "faceCount": 1,
                "snapshotBase64": result.snapshot if not matched else None,
            })
            return result

        except Exception as e:
            logger.error(f"[LiveFaceComparison] Comparison error: {e}")
            self._emit_error(COMPARISON_ERROR, str(e))
            return None

    def _emit_error(self, error_type: str, message: str):
        if self.on_error is not None:
            self.on_error({
                "type": error_type,
                "message": message,
                "timestamp": utc_now_iso(),
            })

    async def _log_comparison(self, data: Dict[str, Any]):
        """Best-effort server log; failures never interrupt the loop"""
        attempt_id = self.attempt_id
        if not attempt_id or self.transport is None:
            return
        try:
            await self.transport.log_face_comparison(attempt_id, data)
        except Exception as e:
            logger.error(f"[LiveFaceComparison] Failed to log face comparison: {e}")

    def get_match_statistics(self) -> Dict[str, Any]:
        """Aggregate statistics over the rolling history"""
        history: List[ComparisonResult] = list(self.match_history)
        if not history:
            return {
                "total_checks": 0,
                "match_count": 0,
                "mismatch_count": 0,
                "match_percentage": 0.0,
                "average_distance": None,
            }

        match_count = sum(1 for h in history if h.matched)
        return {
            "total_checks": len(history),
            "match_count": match_count,
            "mismatch_count": len(history) - match_count,
            "match_percentage": match_count / len(history) * 100,
            "average_distance": sum(h.distance for h in history) / len(history),
        }
