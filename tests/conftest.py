import pytest

from plank_pose import NUM_LANDMARKS, Landmark, PoseLandmark as PL


def lm(x, y, visibility=0.9):
    return Landmark(x, y, 0.0, visibility)


def build_landmarks(points, default_visibility=0.9):
    landmarks = [lm(0.5, 0.5, default_visibility) for _ in range(NUM_LANDMARKS)]
    for idx, point in points.items():
        landmarks[idx] = point
    return landmarks


# Side view, straight-arm plank facing left, camera on the user's left
SIDE_PLANK = {
    PL.NOSE: lm(0.3, 0.4),
    PL.LEFT_SHOULDER: lm(0.3, 0.45),
    PL.LEFT_ELBOW: lm(0.3, 0.5),
    PL.LEFT_WRIST: lm(0.3, 0.55),
    PL.LEFT_HIP: lm(0.6, 0.45),
    PL.LEFT_KNEE: lm(0.8, 0.45),
    PL.LEFT_ANKLE: lm(0.95, 0.45),
}

# Front view, camera in front of the user's head
FRONT_PLANK = {
    PL.NOSE: lm(0.5, 0.55),
    PL.LEFT_SHOULDER: lm(0.4, 0.6),
    PL.RIGHT_SHOULDER: lm(0.6, 0.6),
    PL.LEFT_ELBOW: lm(0.4, 0.7),
    PL.RIGHT_ELBOW: lm(0.6, 0.7),
    PL.LEFT_WRIST: lm(0.4, 0.8),
    PL.RIGHT_WRIST: lm(0.6, 0.8),
    PL.LEFT_HIP: lm(0.45, 0.5),
    PL.RIGHT_HIP: lm(0.55, 0.5),
    PL.LEFT_KNEE: lm(0.46, 0.45),
    PL.RIGHT_KNEE: lm(0.54, 0.45),
    PL.LEFT_ANKLE: lm(0.47, 0.4),
    PL.RIGHT_ANKLE: lm(0.53, 0.4),
}


@pytest.fixture
def side_plank():
    """Side-view landmarks; keyword overrides replace individual joints"""
    def build(overrides=None, **kwargs):
        points = dict(SIDE_PLANK)
        points.update(overrides or {})
        return build_landmarks(points, **kwargs)
    return build


@pytest.fixture
def front_plank():
    def build(overrides=None, **kwargs):
        points = dict(FRONT_PLANK)
        points.update(overrides or {})
        return build_landmarks(points, **kwargs)
    return build
