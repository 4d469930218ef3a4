"""Detector modules for proctoring"""

from .face_validator import (
    DetectedFace,
    ValidationResult,
    ValidationStatus,
    get_validation_status
)
from .face_detector import CameraSource, FaceDetectionLoop
from .face_verifier import ComparisonResult, LiveFaceComparator

__all__ = [
    "DetectedFace",
    "ValidationResult",
    "ValidationStatus",
    "get_validation_status",
    "CameraSource",
    "FaceDetectionLoop",
    "ComparisonResult",
    "LiveFaceComparator"
]
