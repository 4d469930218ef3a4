"""
Face Validator - Classifies one frame's face detections into a verdict

Pure functions only: no state, no I/O, inputs are never mutated.

Rules are checked in a fixed priority order and the first failing rule
wins:
    NO_FACE > MULTIPLE_FACES > LOW_CONFIDENCE > LOOKING_AWAY
    > NOT_CENTERED > TOO_FAR / TOO_CLOSE > VALID
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

Point = Tuple[float, float]

# Thresholds
MIN_CONFIDENCE = 0.6
CENTER_TOLERANCE = 0.4       # max center offset, fraction of frame width/height
HINT_OFFSET = 0.2            # offset beyond which a direction hint is given
MIN_FACE_AREA = 0.10         # fraction of frame area
MAX_FACE_AREA = 0.60

# Orientation heuristics (landmarks: right eye, left eye, nose, mouth, right ear, left ear)
MIN_LANDMARKS = 6
MIN_EYE_DISTANCE_RATIO = 0.25    # eye separation / face width
MAX_EYE_ALIGNMENT_RATIO = 0.15   # eye vertical offset / face height
MAX_NOSE_HORIZONTAL_RATIO = 0.3  # nose offset from eye midpoint / eye separation
MIN_NOSE_VERTICAL_RATIO = 0.05   # nose drop below eyes / face height
MAX_NOSE_VERTICAL_RATIO = 0.35
MIN_ASPECT_RATIO = 0.6           # face width / height
MAX_ASPECT_RATIO = 1.0


class ValidationStatus(str, Enum):
    """Verdict tags for a single detection cycle"""
    VALID = "VALID"
    NO_FACE = "NO_FACE"
    MULTIPLE_FACES = "MULTIPLE_FACES"
    LOW_CONFIDENCE = "LOW_CONFIDENCE"
    LOOKING_AWAY = "LOOKING_AWAY"
    NOT_CENTERED = "NOT_CENTERED"
    TOO_FAR = "TOO_FAR"
    TOO_CLOSE = "TOO_CLOSE"


@dataclass(frozen=True)
class DetectedFace:
    """One face returned by the external detector"""
    top_left: Point
    bottom_right: Point
    probability: float
    landmarks: Optional[Tuple[Point, ...]] = None

    @property
    def width(self) -> float:
        return self.bottom_right[0] - self.top_left[0]

    @property
    def height(self) -> float:
        return self.bottom_right[1] - self.top_left[1]

    @property
    def center(self) -> Point:
        return (
            (self.top_left[0] + self.bottom_right[0]) / 2,
            (self.top_left[1] + self.bottom_right[1]) / 2,
        )

    @classmethod
    def from_detection(cls, detection: Any) -> "DetectedFace":
        """
        Build from a detector result.

        Accepts an existing DetectedFace or a dict shaped like
        ``{"topLeft": [x, y], "bottomRight": [x, y], "probability": p,
        "landmarks": [[x, y], ...]}`` (snake_case keys also accepted).
        """
        if isinstance(detection, cls):
            return detection

        def pick(*keys):
            for key in keys:
                if key in detection:
                    return detection[key]
            return None

        top_left = pick("topLeft", "top_left")
        bottom_right = pick("bottomRight", "bottom_right")
        if top_left is None or bottom_right is None:
            raise ValueError("Detection is missing its bounding box")

        probability = pick("probability")
        # Some detectors report probability as a one-element list
        if isinstance(probability, (list, tuple)):
            probability = probability[0] if probability else 0.0

        landmarks = pick("landmarks")
        if landmarks is not None:
            landmarks = tuple((float(p[0]), float(p[1])) for p in landmarks)

        return cls(
            top_left=(float(top_left[0]), float(top_left[1])),
            bottom_right=(float(bottom_right[0]), float(bottom_right[1])),
            probability=float(probability if probability is not None else 0.0),
            landmarks=landmarks,
        )


@dataclass(frozen=True)
class ValidationResult:
    """Verdict for one detection cycle"""
    is_valid: bool
    status: ValidationStatus
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "status": self.status.value,
            "message": self.message,
        }


# ============================================================================
# Individual checks
# ============================================================================

def is_face_centered(face: DetectedFace, frame_width: float, frame_height: float,
                     tolerance: float = CENTER_TOLERANCE) -> bool:
    center_x, center_y = face.center
    offset_x = abs(center_x - frame_width / 2) / frame_width
    offset_y = abs(center_y - frame_height / 2) / frame_height
    return offset_x < tolerance and offset_y < tolerance


def get_face_size_percentage(face: DetectedFace, frame_width: float, frame_height: float) -> float:
    """Face bounding-box area as a fraction of the frame area"""
    return (face.width * face.height) / (frame_width * frame_height)


def is_face_proper_size(face: DetectedFace, frame_width: float, frame_height: float,
                        min_size: float = MIN_FACE_AREA, max_size: float = MAX_FACE_AREA) -> bool:
    percentage = get_face_size_percentage(face, frame_width, frame_height)
    return min_size <= percentage <= max_size


def has_good_confidence(face: DetectedFace, threshold: float = MIN_CONFIDENCE) -> bool:
    return face.probability >= threshold


def is_face_looking_at_screen(face: DetectedFace) -> bool:
    """
    Landmark heuristics for head orientation.

    Returns False when any check says the head is turned, tilted or
    pitched away. Without a full 6-point landmark set the face gets the
    benefit of the doubt, so detector limitations never count against
    the candidate.
    """
    if not face.landmarks or len(face.landmarks) < MIN_LANDMARKS:
        logger.debug("Insufficient landmarks for orientation check")
        return True

    face_width = face.width
    face_height = face.height
    if face_width <= 0 or face_height <= 0:
        return True

    right_eye, left_eye, nose = face.landmarks[0], face.landmarks[1], face.landmarks[2]

    eye_distance_x = abs(left_eye[0] - right_eye[0])
    eye_distance_y = abs(left_eye[1] - right_eye[1])

    # Eyes close together horizontally: head turned sideways
    eye_distance_ratio = eye_distance_x / face_width
    if eye_distance_ratio < MIN_EYE_DISTANCE_RATIO:
        logger.debug(f"Eyes too close - head turned sideways ({eye_distance_ratio:.2f})")
        return False

    # Eyes at different heights: head tilted
    eye_alignment_ratio = eye_distance_y / face_height
    if eye_alignment_ratio > MAX_EYE_ALIGNMENT_RATIO:
        logger.debug(f"Eyes misaligned - head tilted ({eye_alignment_ratio:.2f})")
        return False

    eye_mid_x = (left_eye[0] + right_eye[0]) / 2
    eye_mid_y = (left_eye[1] + right_eye[1]) / 2

    nose_horizontal_ratio = abs(nose[0] - eye_mid_x) / eye_distance_x
    if nose_horizontal_ratio > MAX_NOSE_HORIZONTAL_RATIO:
        logger.debug(f"Nose offset horizontally - head turned ({nose_horizontal_ratio:.2f})")
        return False

    nose_vertical_ratio = (nose[1] - eye_mid_y) / face_height
    if nose_vertical_ratio < MIN_NOSE_VERTICAL_RATIO or nose_vertical_ratio > MAX_NOSE_VERTICAL_RATIO:
        logger.debug(f"Nose-eye distance unusual - looking up/down ({nose_vertical_ratio:.2f})")
        return False

    # Profile views produce narrow boxes
    aspect_ratio = face_width / face_height
    if aspect_ratio < MIN_ASPECT_RATIO or aspect_ratio > MAX_ASPECT_RATIO:
        logger.debug(f"Face aspect ratio unusual - head turned ({aspect_ratio:.2f})")
        return False

    return True


def get_positioning_hints(face: DetectedFace, frame_width: float, frame_height: float) -> Dict[str, str]:
    """Direction the candidate should move to re-center, per axis"""
    center_x, center_y = face.center
    offset_x = (center_x - frame_width / 2) / frame_width
    offset_y = (center_y - frame_height / 2) / frame_height

    horizontal = "centered"
    vertical = "centered"

    if offset_x < -HINT_OFFSET:
        horizontal = "move right"
    elif offset_x > HINT_OFFSET:
        horizontal = "move left"

    if offset_y < -HINT_OFFSET:
        vertical = "move down"
    elif offset_y > HINT_OFFSET:
        vertical = "move up"

    return {"horizontal": horizontal, "vertical": vertical}


# ============================================================================
# Verdict
# ============================================================================

def get_validation_status(
    faces: Sequence[Any],
    frame_width: float,
    frame_height: float,
    skip_orientation_check: bool = False
) -> ValidationResult:
    """
    Classify one frame's detections.

    Args:
        faces: DetectedFace instances or raw detector dicts
        frame_width: Frame width in pixels
        frame_height: Frame height in pixels
        skip_orientation_check: Skip the looking-away heuristics

    Returns:
        ValidationResult for the first failing rule, or VALID
    """
    if frame_width <= 0 or frame_height <= 0:
        raise ValueError(f"Invalid frame size {frame_width}x{frame_height}")

    if len(faces) == 0:
        return ValidationResult(
            False, ValidationStatus.NO_FACE,
            "No face detected. Please position yourself in front of camera."
        )

    if len(faces) > 1:
        return ValidationResult(
            False, ValidationStatus.MULTIPLE_FACES,
            f"Multiple faces detected ({len(faces)}). Ensure only you are visible."
        )

    face = DetectedFace.from_detection(faces[0])

    if not has_good_confidence(face):
        return ValidationResult(
            False, ValidationStatus.LOW_CONFIDENCE,
            "Face not clear. Ensure good lighting and face the camera."
        )

    if not skip_orientation_check and not is_face_looking_at_screen(face):
        return ValidationResult(
            False, ValidationStatus.LOOKING_AWAY,
            "Please look directly at the screen."
        )

    if not is_face_centered(face, frame_width, frame_height):
        hints = get_positioning_hints(face, frame_width, frame_height)
        directions = [d for d in (hints["horizontal"], hints["vertical"]) if d != "centered"]
        message = f"Please {' and '.join(directions)}." if directions else "Please center your face."
        return ValidationResult(False, ValidationStatus.NOT_CENTERED, message)

    if not is_face_proper_size(face, frame_width, frame_height):
        if get_face_size_percentage(face, frame_width, frame_height) < MIN_FACE_AREA:
            return ValidationResult(False, ValidationStatus.TOO_FAR, "Move closer to the camera.")
        return ValidationResult(False, ValidationStatus.TOO_CLOSE, "Move back from the camera.")

    return ValidationResult(True, ValidationStatus.VALID, "Perfect! Face detected and positioned correctly.")
