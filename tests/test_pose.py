import numpy as np

from selfiematch.recognition.pose import classify_pose


def make_landmarks(
    left_eye_y: float = 50.0,
    right_eye_y: float = 50.0,
    nose_x: float = 50.0,
) -> np.ndarray:
    points = np.zeros((68, 2), dtype=np.float32)
    points[36] = (30.0, left_eye_y)
    points[39] = (40.0, left_eye_y)
    points[42] = (60.0, right_eye_y)
    points[45] = (70.0, right_eye_y)
    points[30] = (nose_x, 70.0)
    return points


def test_centered_nose_is_frontal():
    assert classify_pose(make_landmarks()) == "frontal"


def test_nose_towards_left_eye_is_slight_right():
    assert classify_pose(make_landmarks(nose_x=40.0)) == "slight-right"


def test_nose_towards_right_eye_is_slight_left():
    assert classify_pose(make_landmarks(nose_x=60.0)) == "slight-left"


def test_lower_right_eye_is_tilted_right():
    assert classify_pose(make_landmarks(right_eye_y=60.0)) == "tilted-right"


def test_lower_left_eye_is_tilted_left():
    assert classify_pose(make_landmarks(left_eye_y=60.0)) == "tilted-left"


def test_small_vertical_offset_is_not_tilt():
    # 0.15 * eye distance (30) = 4.5
    assert classify_pose(make_landmarks(right_eye_y=54.0)) == "frontal"


def test_missing_or_empty_landmarks_default_to_frontal():
    assert classify_pose(None) == "frontal"
    assert classify_pose([]) == "frontal"
    assert classify_pose(np.zeros((0, 2))) == "frontal"


def test_truncated_landmarks_default_to_frontal():
    # Only 31 points: eye corners 36-45 are absent
    points = make_landmarks(nose_x=40.0)[:31]
    assert classify_pose(points) == "frontal"


def test_absent_key_point_defaults_to_frontal():
    points = [tuple(p) for p in make_landmarks(nose_x=40.0)]
    points[42] = None
    assert classify_pose(points) == "frontal"


def test_nan_key_point_defaults_to_frontal():
    points = make_landmarks(nose_x=40.0)
    points[39] = (np.nan, np.nan)
    assert classify_pose(points) == "frontal"


def test_malformed_points_default_to_frontal():
    points = [("a", "b")] * 68
    assert classify_pose(points) == "frontal"


def test_collapsed_eyes_do_not_raise():
    points = make_landmarks()
    for idx in (36, 39, 42, 45):
        points[idx] = (50.0, 50.0)
    assert classify_pose(points) == "frontal"


def test_keyed_landmarks_missing_a_point_default_to_frontal():
    points = {idx: tuple(p) for idx, p in enumerate(make_landmarks(nose_x=40.0)) if idx != 42}
    assert classify_pose(points) == "frontal"
