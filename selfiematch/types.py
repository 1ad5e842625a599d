"""Common dataclasses and type aliases used across the selfiematch package."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

import numpy as np

Point = Tuple[float, float]

# Discrete head pose labels, ordered roughly along the frontal -> profile continuum
FRONTAL = "frontal"
SLIGHT_LEFT = "slight-left"
SLIGHT_RIGHT = "slight-right"
TILTED_LEFT = "tilted-left"
TILTED_RIGHT = "tilted-right"
LEFT_PROFILE = "left-profile"
RIGHT_PROFILE = "right-profile"
PROFILE = "profile"

POSE_LABELS: Tuple[str, ...] = (
    FRONTAL,
    SLIGHT_LEFT,
    SLIGHT_RIGHT,
    TILTED_LEFT,
    TILTED_RIGHT,
    LEFT_PROFILE,
    RIGHT_PROFILE,
    PROFILE,
)

MEDIA_IMAGE = "image"
MEDIA_VIDEO = "video"
MEDIA_DOCUMENT = "document"


@dataclass(frozen=True)
class FaceBox:
    """Axis-aligned face rectangle in source-image pixel coordinates."""

    x: float
    y: float
    width: float
    height: float

    @classmethod
    def from_xyxy(cls, x1: float, y1: float, x2: float, y2: float) -> "FaceBox":
        return cls(float(x1), float(y1), float(x2 - x1), float(y2 - y1))

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        return self.x, self.y, self.x + self.width, self.y + self.height

    @property
    def area(self) -> float:
        return max(0.0, self.width) * max(0.0, self.height)

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


@dataclass
class Detection:
    """One face found in one image by a face descriptor provider."""

    box: FaceBox
    score: float
    embedding: np.ndarray
    landmarks: Optional[np.ndarray] = None


@dataclass(frozen=True)
class FaceLocation:
    box: FaceBox
    score: float
    angle: str

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = self.box.to_dict()
        payload.update({"score": self.score, "angle": self.angle})
        return payload


@dataclass(frozen=True)
class MatchCandidate:
    """A detected face scored against the reference embedding.

    ``confidence`` is the angle-adjusted ``similarity``; both are on a 0-100 scale.
    """

    similarity: float
    distance: float
    confidence: float
    angle: str
    position: FaceBox

    def to_dict(self) -> Dict[str, Any]:
        return {
            "similarity": self.similarity,
            "distance": self.distance,
            "confidence": self.confidence,
            "angle": self.angle,
            "position": self.position.to_dict(),
        }


@dataclass(frozen=True)
class MediaItem:
    """An entry of an event's media collection."""

    id: str
    url: str
    type: str = MEDIA_IMAGE
    original_name: Optional[str] = None
    size: Optional[int] = None
    format: Optional[str] = None

    @property
    def is_image(self) -> bool:
        return self.type == MEDIA_IMAGE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "url": self.url,
            "type": self.type,
            "original_name": self.original_name,
            "size": self.size,
            "format": self.format,
        }


@dataclass
class ImageMatchResult:
    source: MediaItem
    matches: List[MatchCandidate]
    best_match: MatchCandidate
    face_count: int
    face_locations: List[FaceLocation]
    matched_face_count: int
    processing_time_s: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source.to_dict(),
            "matches": [m.to_dict() for m in self.matches],
            "best_match": self.best_match.to_dict(),
            "face_count": self.face_count,
            "face_locations": [loc.to_dict() for loc in self.face_locations],
            "matched_face_count": self.matched_face_count,
            "processing_time_s": self.processing_time_s,
        }


@dataclass(frozen=True)
class ValidationResult:
    """Verdict for an uploaded selfie. Re-validation produces a new instance."""

    is_valid: bool
    issues: Tuple[str, ...]
    face_count: int
    resolution: str
    brightness: int
    contrast: int
    face_angle: str = FRONTAL
    face_box: Optional[FaceBox] = None
    embedding: Optional[np.ndarray] = field(default=None, compare=False, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "issues": list(self.issues),
            "face_count": self.face_count,
            "resolution": self.resolution,
            "brightness": self.brightness,
            "contrast": self.contrast,
            "face_angle": self.face_angle,
            "face_box": self.face_box.to_dict() if self.face_box else None,
            "has_embedding": self.embedding is not None,
        }


@dataclass(frozen=True)
class MatchSessionStats:
    images_processed: int = 0
    images_with_matches: int = 0
    total_faces_detected: int = 0
    average_confidence: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "images_processed": self.images_processed,
            "images_with_matches": self.images_with_matches,
            "total_faces_detected": self.total_faces_detected,
            "average_confidence": self.average_confidence,
        }


def iter_batches(iterable: Iterable, batch_size: int) -> Iterable[List]:
    """Yield successive batches from an iterable."""
    batch: List = []
    for item in iterable:
        batch.append(item)
        if len(batch) >= batch_size:
            yield batch
            batch = []
    if batch:
        yield batch
