"""
Face Detection Loop - Polls an external face detector on a fixed interval

Each tick reads the current webcam frame, runs the detector, and classifies
the result with the face validator. At most one detection is in flight:
a tick that finds the previous detection still running is dropped, never
queued.
"""

import asyncio
import inspect
import logging
from typing import Any, List, Optional

import cv2
import numpy as np

from .face_validator import DetectedFace, ValidationResult, get_validation_status

logger = logging.getLogger(__name__)


async def call_capability(func, *args):
    """
    Call an external capability without blocking the event loop.

    Coroutine functions are awaited directly; plain callables run in a
    worker thread, and an awaitable they return is awaited afterwards.
    """
    if inspect.iscoroutinefunction(func):
        return await func(*args)
    result = await asyncio.to_thread(func, *args)
    if inspect.isawaitable(result):
        result = await result
    return result


class CameraSource:
    """
    Read-only frame source backed by an OpenCV VideoCapture.

    Any object with ``is_ready() -> bool`` and ``read() -> ndarray | None``
    can stand in for it (tests, pre-recorded video, browser frames).
    """

    def __init__(self, capture: Any = 0):
        """
        Args:
            capture: Camera index / video path, or an opened cv2.VideoCapture
        """
        if isinstance(capture, (int, str)):
            capture = cv2.VideoCapture(capture)
        self.capture = capture

    def is_ready(self) -> bool:
        return self.capture is not None and self.capture.isOpened()

    def read(self) -> Optional[np.ndarray]:
        if not self.is_ready():
            return None
        ok, frame = self.capture.read()
        if not ok or frame is None or frame.size == 0:
            return None
        return frame

    def release(self):
        if self.capture is not None:
            self.capture.release()


class FaceDetectionLoop:
    """
    Interval-driven face detection with a single-flight guard.

    Exposes the latest ``faces``, ``validation_status`` and ``error``.
    ``faces`` stays None until the first successful detection.

    The detector must provide ``detect(frame)`` returning a list of
    detections (dicts or DetectedFace); it may be sync or async.
    """

    DEFAULT_INTERVAL = 0.1

    def __init__(
        self,
        source,
        detector,
        interval: float = DEFAULT_INTERVAL,
        skip_orientation_check: bool = True
    ):
        self.source = source
        self.detector = detector
        self.interval = interval
        self.skip_orientation_check = skip_orientation_check

        self.faces: Optional[List[DetectedFace]] = None
        self.validation_status: Optional[ValidationResult] = None
        self.error: Optional[str] = None
        self.detection_count = 0

        self._timer_task: Optional[asyncio.Task] = None
        self._detection_task: Optional[asyncio.Task] = None

    @property
    def is_detecting(self) -> bool:
        """True while the interval loop is scheduled"""
        return self._timer_task is not None

    @property
    def is_processing(self) -> bool:
        """True while a detection is in flight"""
        return self._detection_task is not None and not self._detection_task.done()

    def start(self):
        """Run one detection now, then one per interval"""
        if self._timer_task is not None:
            logger.debug("Detection already running, skipping start")
            return

        logger.info(
            f"Starting detection loop - interval: {self.interval}s, "
            f"skip_orientation_check: {self.skip_orientation_check}"
        )
        self._timer_task = asyncio.get_running_loop().create_task(self._run())

    def stop(self):
        """Cancel the loop and any in-flight detection; last state stays frozen"""
        if self._timer_task is not None:
            logger.info("Stopping detection loop")
            self._timer_task.cancel()
            self._timer_task = None
        if self._detection_task is not None:
            self._detection_task.cancel()
            self._detection_task = None

    def set_enabled(self, enabled: bool):
        if enabled:
            self.start()
        else:
            self.stop()

    async def _run(self):
        while True:
            self._tick()
            await asyncio.sleep(self.interval)

    def _tick(self):
        if self.is_processing:
            logger.debug("Skipping detection tick - previous detection still running")
            return
        self._begin_detection()

    def _begin_detection(self) -> asyncio.Task:
        self._detection_task = asyncio.get_running_loop().create_task(self._detect())
        return self._detection_task

    async def detect_once(self) -> Optional[ValidationResult]:
        """
        Run a single guarded detection.

        Returns:
            The new verdict, or None if the call was skipped, failed, or
            was cancelled by stop()
        """
        if self.is_processing:
            logger.debug("Skipping detection - previous detection still running")
            return None

        task = self._begin_detection()
        await asyncio.wait({task})
        return None if task.cancelled() else task.result()

    async def _detect(self) -> Optional[ValidationResult]:
        try:
            if not self.source.is_ready():
                logger.debug("Video not ready, skipping detection")
                return None

            frame = await asyncio.to_thread(self.source.read)
            if frame is None:
                logger.debug("No frame available, skipping detection")
                return None

            detections = await call_capability(self.detector.detect, frame)

            faces = [DetectedFace.from_detection(d) for d in (detections or [])]
            frame_height, frame_width = frame.shape[:2]
            status = get_validation_status(
                faces,
                frame_width,
                frame_height,
                self.skip_orientation_check
            )

        except Exception as e:
            # Previous faces/verdict stay untouched
            logger.error(f"Detection error: {e}")
            self.error = str(e)
            return None

        self.faces = faces
        self.validation_status = status
        self.error = None
        self.detection_count += 1
        logger.debug(f"Detection complete - faces: {len(faces)}, status: {status.status.value}")
        return status
