import numpy as np
import pytest

pytest.importorskip("cv2")

from selfiematch.viz.overlay import BEST_COLOR, OTHER_COLOR, draw_match_overlay, write_overlay
from selfiematch.types import FaceBox, ImageMatchResult, MatchCandidate, MediaItem


def candidate(confidence: float, box: FaceBox) -> MatchCandidate:
    return MatchCandidate(
        similarity=confidence,
        distance=(100.0 - confidence) / 100.0,
        confidence=confidence,
        angle="frontal",
        position=box,
    )


def build_result() -> ImageMatchResult:
    best = candidate(91.0, FaceBox(10, 30, 40, 40))
    other = candidate(20.0, FaceBox(60, 30, 30, 30))
    return ImageMatchResult(
        source=MediaItem(id="photo-1", url="photo-1.jpg"),
        matches=[best, other],
        best_match=best,
        face_count=2,
        face_locations=[],
        matched_face_count=1,
    )


def test_overlay_draws_on_a_copy():
    image = np.zeros((100, 120, 3), dtype=np.uint8)
    annotated = draw_match_overlay(image, build_result(), threshold=50.0)
    assert annotated.shape == image.shape
    assert not image.any()
    # Right edge of the best box and of the other box
    assert tuple(annotated[60, 50]) == BEST_COLOR
    assert tuple(annotated[50, 90]) == OTHER_COLOR


def test_matched_only_skips_weak_faces():
    image = np.zeros((100, 120, 3), dtype=np.uint8)
    annotated = draw_match_overlay(image, build_result(), threshold=50.0, matched_only=True)
    assert not annotated[:, 80:].any()


def test_write_overlay(tmp_path):
    image = np.zeros((100, 120, 3), dtype=np.uint8)
    path = write_overlay(image, build_result(), 50.0, tmp_path / "overlays")
    assert path.name == "photo-1.jpg"
    assert path.exists()
