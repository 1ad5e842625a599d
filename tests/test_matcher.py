import numpy as np
import pytest

from selfiematch.recognition.matcher import (
    ReferenceMatcher,
    euclidean_distance,
    similarity_from_distance,
)
from selfiematch.types import Detection, FaceBox, MediaItem

REFERENCE = np.array([1.0, 0.0, 0.0, 0.0], dtype=np.float32)


def face_at(distance: float, score: float = 0.9, landmarks=None) -> Detection:
    return Detection(
        box=FaceBox(10.0, 20.0, 30.0, 40.0),
        score=score,
        embedding=np.array([1.0, distance, 0.0, 0.0], dtype=np.float32),
        landmarks=landmarks,
    )


def tilted_landmarks() -> np.ndarray:
    # Right eye clearly lower than the left
    points = np.zeros((68, 2), dtype=np.float32)
    points[36], points[39] = (30.0, 50.0), (40.0, 50.0)
    points[42], points[45] = (60.0, 62.0), (70.0, 62.0)
    points[30] = (50.0, 70.0)
    return points


def test_distance_is_symmetric_and_zero_for_identical():
    a = np.array([0.1, 0.2, 0.3])
    b = np.array([0.3, 0.2, 0.1])
    assert euclidean_distance(a, a) == 0.0
    assert euclidean_distance(a, b) == pytest.approx(euclidean_distance(b, a))


def test_distance_rejects_mismatched_dimensions():
    with pytest.raises(ValueError):
        euclidean_distance(np.zeros(128), np.zeros(64))


def test_similarity_is_clamped_and_decreasing():
    assert similarity_from_distance(0.0) == 100.0
    assert similarity_from_distance(1.0) == 0.0
    assert similarity_from_distance(1.7) == 0.0
    values = [similarity_from_distance(d) for d in np.linspace(0.0, 0.99, 25)]
    assert all(a > b for a, b in zip(values, values[1:]))


def test_identical_face_scores_full_confidence():
    matcher = ReferenceMatcher(REFERENCE, match_threshold=100.0)
    result = matcher.match_image(MediaItem(id="a", url="a.jpg"), [face_at(0.0)])
    assert result is not None
    assert result.best_match.similarity == 100.0
    assert result.best_match.confidence == 100.0
    assert result.best_match.distance == 0.0


def test_image_below_threshold_is_discarded():
    matcher = ReferenceMatcher(REFERENCE, match_threshold=50.0)
    assert matcher.match_image(MediaItem(id="b", url="b.jpg"), [face_at(1.0)]) is None


def test_no_detections_yield_no_result():
    matcher = ReferenceMatcher(REFERENCE)
    assert matcher.match_image(MediaItem(id="c", url="c.jpg"), []) is None


def test_counts_all_faces_but_only_matched_ones_as_matched():
    matcher = ReferenceMatcher(REFERENCE, match_threshold=50.0)
    detections = [face_at(0.8), face_at(0.1), face_at(0.3)]
    result = matcher.match_image(MediaItem(id="d", url="d.jpg"), detections)
    assert result is not None
    assert result.face_count == 3
    assert result.matched_face_count == 2
    assert result.best_match.confidence == pytest.approx(90.0)
    assert len(result.face_locations) == 3
    assert result.best_match.position == FaceBox(10.0, 20.0, 30.0, 40.0)


def test_first_of_equal_best_matches_wins():
    matcher = ReferenceMatcher(REFERENCE, match_threshold=0.0)
    first = face_at(0.2)
    second = Detection(box=FaceBox(0, 0, 5, 5), score=0.5, embedding=first.embedding.copy())
    result = matcher.match_image(MediaItem(id="e", url="e.jpg"), [first, second])
    assert result.best_match.position == first.box


def test_angle_matching_scales_confidence():
    detection = face_at(0.0, landmarks=tilted_landmarks())
    with_angles = ReferenceMatcher(REFERENCE, reference_angle="frontal", enable_angle_matching=True)
    without = ReferenceMatcher(REFERENCE, reference_angle="frontal", enable_angle_matching=False)

    adjusted = with_angles.score(detection)
    raw = without.score(detection)
    assert adjusted.angle == "tilted-right"
    assert raw.confidence == 100.0
    # frontal vs tilted-right share 3 labels out of 5
    assert adjusted.confidence == pytest.approx(94.0)
    assert adjusted.similarity == adjusted.confidence


def test_missing_detector_score_uses_default_location_score():
    matcher = ReferenceMatcher(REFERENCE, match_threshold=0.0)
    result = matcher.match_image(MediaItem(id="f", url="f.jpg"), [face_at(0.1, score=0.0)])
    assert result.face_locations[0].score == pytest.approx(0.3)


def test_reference_embedding_is_copied():
    reference = REFERENCE.copy()
    matcher = ReferenceMatcher(reference, match_threshold=99.0)
    reference[:] = 0.0
    assert matcher.match_image(MediaItem(id="g", url="g.jpg"), [face_at(0.0)]) is not None
