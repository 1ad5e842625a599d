"""Head pose classification from 68-point facial landmarks."""

from __future__ import annotations

import logging
import math
from typing import Any, Optional, Sequence

from selfiematch.types import (
    FRONTAL,
    LEFT_PROFILE,
    PROFILE,
    RIGHT_PROFILE,
    SLIGHT_LEFT,
    SLIGHT_RIGHT,
    TILTED_LEFT,
    TILTED_RIGHT,
    Point,
)

LOGGER = logging.getLogger("selfiematch.recognition.pose")

# Indices in the 68-point convention
LEFT_EYE_OUTER = 36
LEFT_EYE_INNER = 39
RIGHT_EYE_INNER = 42
RIGHT_EYE_OUTER = 45
NOSE_TIP = 30

FACE_WIDTH_PER_EYE_DISTANCE = 2.5
PROFILE_EYE_RATIO = 0.2
PROFILE_VISIBILITY_RATIO = 1.5
TILT_RATIO = 0.15
SLIGHT_RIGHT_NOSE_RATIO = 0.4
SLIGHT_LEFT_NOSE_RATIO = 0.6


def _point(landmarks: Sequence[Any], idx: int) -> Optional[Point]:
    if idx >= len(landmarks):
        return None
    raw = landmarks[idx]
    if raw is None:
        return None
    x, y = float(raw[0]), float(raw[1])
    if math.isnan(x) or math.isnan(y):
        return None
    return x, y


def _midpoint(a: Point, b: Point) -> Point:
    return (a[0] + b[0]) / 2.0, (a[1] + b[1]) / 2.0


def classify_pose(landmarks: Optional[Sequence[Any]]) -> str:
    """Map a landmark set to a pose label; ``frontal`` when it cannot be judged."""
    if landmarks is None or len(landmarks) == 0:
        return FRONTAL
    try:
        return _classify(landmarks)
    except Exception as exc:
        LOGGER.warning("Pose classification failed (%s); assuming frontal", exc)
        return FRONTAL


def _classify(landmarks: Sequence[Any]) -> str:
    left_outer = _point(landmarks, LEFT_EYE_OUTER)
    left_inner = _point(landmarks, LEFT_EYE_INNER)
    right_inner = _point(landmarks, RIGHT_EYE_INNER)
    right_outer = _point(landmarks, RIGHT_EYE_OUTER)
    nose = _point(landmarks, NOSE_TIP)
    if None in (left_outer, left_inner, right_inner, right_outer, nose):
        return FRONTAL

    left_eye = _midpoint(left_outer, left_inner)
    right_eye = _midpoint(right_outer, right_inner)

    eye_distance = abs(right_eye[0] - left_eye[0])
    face_width = eye_distance * FACE_WIDTH_PER_EYE_DISTANCE

    if eye_distance < face_width * PROFILE_EYE_RATIO:
        left_visibility = 1.0 if left_outer and left_inner else 0.8
        right_visibility = 1.0 if right_outer and right_inner else 0.8
        if left_visibility > right_visibility * PROFILE_VISIBILITY_RATIO:
            return RIGHT_PROFILE
        if right_visibility > left_visibility * PROFILE_VISIBILITY_RATIO:
            return LEFT_PROFILE
        return PROFILE

    vertical_diff = abs(right_eye[1] - left_eye[1])
    if vertical_diff > eye_distance * TILT_RATIO:
        # Image y grows downwards
        return TILTED_RIGHT if right_eye[1] > left_eye[1] else TILTED_LEFT

    nose_to_left = abs(nose[0] - left_eye[0])
    nose_to_right = abs(nose[0] - right_eye[0])
    denom = nose_to_left + nose_to_right
    if denom <= 0:
        return FRONTAL
    ratio = nose_to_left / denom
    if ratio < SLIGHT_RIGHT_NOSE_RATIO:
        return SLIGHT_RIGHT
    if ratio > SLIGHT_LEFT_NOSE_RATIO:
        return SLIGHT_LEFT
    return FRONTAL
