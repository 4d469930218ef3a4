"""
Pytest Configuration for Proctoring Engine Tests
"""
import pytest
import numpy as np
from unittest.mock import AsyncMock, MagicMock


FRAME_WIDTH = 640
FRAME_HEIGHT = 480


@pytest.fixture
def fake_transport():
    """Transport double: every delivery succeeds unless a test says otherwise"""
    transport = MagicMock()
    transport.send_batch = AsyncMock(return_value=True)
    transport.send_immediate = AsyncMock(return_value=True)
    transport.log_face_comparison = AsyncMock(return_value={"success": True})
    transport.get_reference_descriptor = AsyncMock(return_value=None)
    transport.aclose = AsyncMock()
    return transport


@pytest.fixture
def fallback_store(tmp_path):
    """Local fallback store writing under the test's tmp dir"""
    from proctoring.delivery import LocalFallbackStore
    return LocalFallbackStore(tmp_path / "fallback")


@pytest.fixture
def ledger(fake_transport, fallback_store):
    """Ledger with a batch interval long enough to never fire in a test"""
    from proctoring.violations import ViolationLedger
    return ViolationLedger(fake_transport, fallback_store, batch_interval=3600)


@pytest.fixture
def make_frame():
    """Factory for blank BGR frames"""
    def _make(width=FRAME_WIDTH, height=FRAME_HEIGHT):
        return np.zeros((height, width, 3), dtype=np.uint8)
    return _make


@pytest.fixture
def make_face():
    """
    Factory for DetectedFace instances.

    Default face: centered in a 640x480 frame, ~16% of the frame area,
    confident, with frontal landmarks.
    """
    from proctoring.detectors import DetectedFace

    def _make(cx=320.0, cy=240.0, width=200.0, height=240.0,
              probability=0.95, landmarks="frontal"):
        x0, y0 = cx - width / 2, cy - height / 2
        eye_y = y0 + height / 3

        if landmarks == "frontal":
            points = (
                (x0 + 0.25 * width, eye_y),        # right eye
                (x0 + 0.75 * width, eye_y),        # left eye
                (cx, eye_y + 0.2 * height),        # nose
                (cx, eye_y + 0.4 * height),        # mouth
                (x0 + 0.02 * width, eye_y),        # right ear
                (x0 + 0.98 * width, eye_y),        # left ear
            )
        elif landmarks == "away":
            # Eyes bunched together: head turned sideways
            points = (
                (cx - 0.07 * width, eye_y),
                (cx + 0.07 * width, eye_y),
                (cx, eye_y + 0.2 * height),
                (cx, eye_y + 0.4 * height),
                (x0, eye_y),
                (x0 + width, eye_y),
            )
        else:
            points = landmarks

        return DetectedFace(
            top_left=(x0, y0),
            bottom_right=(x0 + width, y0 + height),
            probability=probability,
            landmarks=points,
        )
    return _make


@pytest.fixture
def frame_source(make_frame):
    """Ready frame source returning a blank frame"""
    source = MagicMock()
    source.is_ready.return_value = True
    source.read.return_value = make_frame()
    return source
