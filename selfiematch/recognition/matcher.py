"""Euclidean-distance matcher scoring detected faces against a reference selfie."""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np

from selfiematch.recognition.angles import adjust_confidence_for_angle
from selfiematch.recognition.pose import classify_pose
from selfiematch.types import (
    FRONTAL,
    Detection,
    FaceLocation,
    ImageMatchResult,
    MatchCandidate,
    MediaItem,
)

LOGGER = logging.getLogger("selfiematch.recognition.matcher")

DEFAULT_LOCATION_SCORE = 0.3


def euclidean_distance(a: np.ndarray, b: np.ndarray) -> float:
    a = np.asarray(a, dtype=np.float64).reshape(-1)
    b = np.asarray(b, dtype=np.float64).reshape(-1)
    if a.shape != b.shape:
        raise ValueError(f"Embedding shapes do not match: {a.shape} vs {b.shape}")
    return float(np.linalg.norm(a - b))


def similarity_from_distance(distance: float) -> float:
    """Map a descriptor distance to a 0-100 similarity (0 at distance >= 1)."""
    return float(np.clip(100.0 - distance * 100.0, 0.0, 100.0))


class ReferenceMatcher:
    """Scores faces against one reference embedding captured at construction."""

    def __init__(
        self,
        reference_embedding: np.ndarray,
        reference_angle: str = FRONTAL,
        match_threshold: float = 50.0,
        enable_angle_matching: bool = True,
    ) -> None:
        self.reference_embedding = np.array(reference_embedding, dtype=np.float32).reshape(-1)
        self.reference_embedding.setflags(write=False)
        self.reference_angle = reference_angle or FRONTAL
        self.match_threshold = float(match_threshold)
        self.enable_angle_matching = enable_angle_matching

    def score(self, detection: Detection, angle: Optional[str] = None) -> MatchCandidate:
        angle = angle or classify_pose(detection.landmarks)
        distance = euclidean_distance(self.reference_embedding, detection.embedding)
        similarity = similarity_from_distance(distance)
        if self.enable_angle_matching:
            similarity = adjust_confidence_for_angle(similarity, self.reference_angle, angle)
        similarity = float(np.clip(similarity, 0.0, 100.0))
        return MatchCandidate(
            similarity=similarity,
            distance=distance,
            confidence=similarity,
            angle=angle,
            position=detection.box,
        )

    def score_all(self, detections: Sequence[Detection]) -> Tuple[List[MatchCandidate], List[FaceLocation]]:
        candidates: List[MatchCandidate] = []
        locations: List[FaceLocation] = []
        for detection in detections:
            angle = classify_pose(detection.landmarks)
            score = detection.score if detection.score else DEFAULT_LOCATION_SCORE
            locations.append(FaceLocation(box=detection.box, score=float(score), angle=angle))
            candidates.append(self.score(detection, angle=angle))
        return candidates, locations

    def match_image(
        self,
        source: MediaItem,
        detections: Sequence[Detection],
        processing_time_s: float = 0.0,
    ) -> Optional[ImageMatchResult]:
        """Build the image result, or ``None`` when no face reaches the threshold."""
        if not detections:
            return None
        candidates, locations = self.score_all(detections)
        # max() keeps the first of equal scores
        best = max(candidates, key=lambda c: c.confidence)
        if best.confidence < self.match_threshold:
            LOGGER.debug(
                "Image %s best confidence %.2f below threshold %.2f",
                source.id,
                best.confidence,
                self.match_threshold,
            )
            return None
        matched = sum(1 for c in candidates if c.confidence >= self.match_threshold)
        return ImageMatchResult(
            source=source,
            matches=candidates,
            best_match=best,
            face_count=len(detections),
            face_locations=locations,
            matched_face_count=matched,
            processing_time_s=processing_time_s,
        )
