"""Head-pose engagement heuristic from five facial landmarks."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Mapping, Sequence


HORIZONTAL_RATIO_THRESHOLD = 0.3
VERTICAL_RATIO_THRESHOLD = 0.5

# Indices of the 68-point landmark layout
NOSE_TIP = 30
LEFT_EYE_OUTER = 36
RIGHT_EYE_OUTER = 45
LEFT_MOUTH = 48
RIGHT_MOUTH = 54


@dataclass(frozen=True)
class Point:
    x: float
    y: float

    @classmethod
    def coerce(cls, value: Any) -> "Point":
        if isinstance(value, Point):
            return value
        if isinstance(value, Mapping):
            return cls(float(value['x']), float(value['y']))
        x, y = value
        return cls(float(x), float(y))


@dataclass(frozen=True)
class FaceLandmarks:
    nose: Point
    left_eye: Point
    right_eye: Point
    left_mouth: Point
    right_mouth: Point

    @classmethod
    def from_68_points(cls, positions: Sequence[Any]) -> "FaceLandmarks":
        if len(positions) < 68:
            raise ValueError(f"Expected 68 landmark points, got {len(positions)}")
        return cls(
            nose=Point.coerce(positions[NOSE_TIP]),
            left_eye=Point.coerce(positions[LEFT_EYE_OUTER]),
            right_eye=Point.coerce(positions[RIGHT_EYE_OUTER]),
            left_mouth=Point.coerce(positions[LEFT_MOUTH]),
            right_mouth=Point.coerce(positions[RIGHT_MOUTH]),
        )

    @classmethod
    def parse(cls, payload: Any) -> "FaceLandmarks":
        """Accept either named points or a raw 68-point ``positions`` list."""
        if isinstance(payload, FaceLandmarks):
            return payload
        if isinstance(payload, Mapping):
            if 'positions' in payload:
                return cls.from_68_points(payload['positions'])
            return cls(
                nose=Point.coerce(payload['nose']),
                left_eye=Point.coerce(payload['leftEye']),
                right_eye=Point.coerce(payload['rightEye']),
                left_mouth=Point.coerce(payload['leftMouth']),
                right_mouth=Point.coerce(payload['rightMouth']),
            )
        return cls.from_68_points(payload)


@dataclass(frozen=True)
class HeadPose:
    horizontal_ratio: float
    vertical_ratio: float
    is_looking_forward: bool
    direction: str


def _ratio(deviation: float, baseline: float) -> float:
    if baseline == 0:
        return 0.0 if deviation == 0 else math.inf
    return deviation / baseline


def calculate_head_pose(landmarks: FaceLandmarks) -> HeadPose:
    """Classify whether the face points at the camera.

    The nose tip is compared with the midpoint of the outer eye corners and
    the offset is normalised by the eye distance, so the result does not
    depend on how close the student sits to the camera.
    """
    center_x = (landmarks.left_eye.x + landmarks.right_eye.x) / 2
    center_y = (landmarks.left_eye.y + landmarks.right_eye.y) / 2
    eye_distance = abs(landmarks.right_eye.x - landmarks.left_eye.x)

    horizontal_ratio = _ratio(abs(landmarks.nose.x - center_x), eye_distance)
    vertical_ratio = _ratio(abs(landmarks.nose.y - center_y), eye_distance)

    is_forward = (
        horizontal_ratio < HORIZONTAL_RATIO_THRESHOLD
        and vertical_ratio < VERTICAL_RATIO_THRESHOLD
    )
    if horizontal_ratio < HORIZONTAL_RATIO_THRESHOLD:
        direction = 'forward'
    elif landmarks.nose.x > center_x:
        direction = 'right'
    else:
        direction = 'left'

    return HeadPose(
        horizontal_ratio=horizontal_ratio,
        vertical_ratio=vertical_ratio,
        is_looking_forward=is_forward,
        direction=direction,
    )
