"""Pose-aware confidence adjustment.

Embeddings of differently posed faces are less comparable than those of
similarly posed ones. Each pose label lists the labels it is considered
compatible with; the overlap between two labels' lists scales the score.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import FrozenSet, Mapping

from selfiematch.types import (
    FRONTAL,
    LEFT_PROFILE,
    PROFILE,
    RIGHT_PROFILE,
    SLIGHT_LEFT,
    SLIGHT_RIGHT,
    TILTED_LEFT,
    TILTED_RIGHT,
)

ANGLE_COMPATIBILITY: Mapping[str, FrozenSet[str]] = MappingProxyType(
    {
        FRONTAL: frozenset({FRONTAL, SLIGHT_LEFT, SLIGHT_RIGHT, TILTED_LEFT, TILTED_RIGHT}),
        SLIGHT_LEFT: frozenset({FRONTAL, SLIGHT_LEFT, TILTED_LEFT, LEFT_PROFILE}),
        SLIGHT_RIGHT: frozenset({FRONTAL, SLIGHT_RIGHT, TILTED_RIGHT, RIGHT_PROFILE}),
        TILTED_LEFT: frozenset({FRONTAL, SLIGHT_LEFT, TILTED_LEFT, LEFT_PROFILE}),
        TILTED_RIGHT: frozenset({FRONTAL, SLIGHT_RIGHT, TILTED_RIGHT, RIGHT_PROFILE}),
        LEFT_PROFILE: frozenset({SLIGHT_LEFT, TILTED_LEFT, LEFT_PROFILE, PROFILE}),
        RIGHT_PROFILE: frozenset({SLIGHT_RIGHT, TILTED_RIGHT, RIGHT_PROFILE, PROFILE}),
        PROFILE: frozenset({LEFT_PROFILE, RIGHT_PROFILE, PROFILE}),
    }
)

_UNKNOWN_GROUP: FrozenSet[str] = frozenset({FRONTAL})

COMPATIBLE_FLOOR = 0.85
INCOMPATIBLE_FACTOR = 0.6


def compatibility_score(angle_a: str, angle_b: str) -> float:
    """Overlap of the two labels' compatible sets, 0.0 when disjoint."""
    group_a = ANGLE_COMPATIBILITY.get(angle_a, _UNKNOWN_GROUP)
    group_b = ANGLE_COMPATIBILITY.get(angle_b, _UNKNOWN_GROUP)
    shared = group_a & group_b
    if not shared:
        return 0.0
    return len(shared) / max(len(group_a), len(group_b))


def adjust_confidence_for_angle(base_confidence: float, angle_a: str, angle_b: str) -> float:
    if angle_a == angle_b:
        return base_confidence
    score = compatibility_score(angle_a, angle_b)
    if score > 0.0:
        return base_confidence * (COMPATIBLE_FLOOR + (1.0 - COMPATIBLE_FLOOR) * score)
    return base_confidence * INCOMPATIBLE_FACTOR
