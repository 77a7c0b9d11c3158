import numpy as np
import pytest

from stereoslam.frame import Frame, KeyPoint
from stereoslam.initializer import Initializer, Reconstruction

K = np.array([[500.0, 0.0, 320.0], [0.0, 500.0, 240.0], [0.0, 0.0, 1.0]])


def _rot_y(angle):
    c, s = np.cos(angle), np.sin(angle)
    return np.array([[c, 0.0, s], [0.0, 1.0, 0.0], [-s, 0.0, c]])


def _project(R, t, X):
    Xc = X @ R.T + t
    uv = Xc @ K.T
    return uv[:, :2] / uv[:, 2:3]


def _frame(points):
    keys = [KeyPoint(float(x), float(y)) for x, y in points]
    return Frame(keys, None, 0.0, K, np.zeros(5), 40.0, 35.0, (640, 480))


def _general_scene(n=120):
    rng = np.random.default_rng(7)
    X = np.column_stack(
        (rng.uniform(-2.0, 2.0, n), rng.uniform(-1.5, 1.5, n), rng.uniform(4.0, 10.0, n))
    )
    R = _rot_y(0.05)
    t = np.array([-1.0, 0.1, 0.05])
    return X, R, t


def _frames(X, R, t):
    f1 = _frame(_project(np.eye(3), np.zeros(3), X))
    f2 = _frame(_project(R, t, X))
    return f1, f2


def test_general_scene_recovers_motion_and_structure():
    X, R, t = _general_scene()
    f1, f2 = _frames(X, R, t)
    init = Initializer(f1, 1.0, 200)
    result = init.initialize(f2, list(range(len(X))))
    assert isinstance(result, Reconstruction)
    np.testing.assert_allclose(result.rotation, R, atol=1e-3)
    np.testing.assert_allclose(result.translation, t / np.linalg.norm(t), atol=1e-3)
    assert all(result.triangulated)
    np.testing.assert_allclose(result.points * np.linalg.norm(t), X, rtol=1e-3, atol=1e-3)


def test_fundamental_beats_homography_on_general_scene():
    X, R, t = _general_scene()
    f1, f2 = _frames(X, R, t)
    init = Initializer(f1, 1.0, 50)
    init.initialize(f2, list(range(len(X))))
    _, inliers_f, score_f = init.find_fundamental()
    _, _, score_h = init.find_homography()
    assert all(inliers_f)
    assert score_f > score_h


def test_ransac_sets_are_distinct_valid_indices():
    X, R, t = _general_scene(40)
    f1, f2 = _frames(X, R, t)
    init = Initializer(f1, 1.0, 30)
    init.initialize(f2, list(range(len(X))))
    assert len(init.sets) == 30
    for chosen in init.sets:
        assert len(set(chosen)) == 8
        assert all(0 <= i < len(init.matches12) for i in chosen)


def test_matched_flags_follow_matches():
    X, R, t = _general_scene(30)
    f1, f2 = _frames(X, R, t)
    matches = [i if i % 3 else -1 for i in range(len(X))]
    init = Initializer(f1, 1.0, 10)
    init.initialize(f2, matches)
    assert init.matched1 == [m >= 0 for m in matches]
    assert init.matches12 == [(i, m) for i, m in enumerate(matches) if m >= 0]


def test_too_few_matches_raises():
    X, R, t = _general_scene(20)
    f1, f2 = _frames(X, R, t)
    init = Initializer(f1, 1.0, 10)
    matches = [i if i < 7 else -1 for i in range(len(X))]
    with pytest.raises(ValueError):
        init.initialize(f2, matches)


def test_true_fundamental_explains_all_matches():
    X, R, t = _general_scene(60)
    f1, f2 = _frames(X, R, t)
    init = Initializer(f1, 1.0, 10)
    init.initialize(f2, list(range(len(X))))
    tx = np.array([[0.0, -t[2], t[1]], [t[2], 0.0, -t[0]], [-t[1], t[0], 0.0]])
    Kinv = np.linalg.inv(K)
    F = Kinv.T @ tx @ R @ Kinv
    score, inliers = init.check_fundamental(F, 1.0)
    assert all(inliers)
    assert score == pytest.approx(2 * 5.991 * len(X), rel=1e-4)


def test_true_homography_explains_planar_matches():
    rng = np.random.default_rng(3)
    n = 60
    X = np.column_stack((rng.uniform(-2, 2, n), rng.uniform(-1.5, 1.5, n), np.full(n, 5.0)))
    R = _rot_y(0.04)
    t = np.array([-0.5, 0.05, 0.02])
    f1, f2 = _frames(X, R, t)
    init = Initializer(f1, 1.0, 20)
    init.initialize(f2, list(range(n)))
    normal = np.array([0.0, 0.0, 1.0])
    H21 = K @ (R + np.outer(t, normal) / 5.0) @ np.linalg.inv(K)
    score, inliers = init.check_homography(H21, np.linalg.inv(H21), 1.0)
    assert all(inliers)
    assert score == pytest.approx(2 * 5.991 * n, rel=1e-4)


def test_pure_rotation_homography_is_rejected():
    X, R, t = _general_scene(20)
    f1, _ = _frames(X, R, t)
    init = Initializer(f1, 1.0, 10)
    H = K @ _rot_y(0.1) @ np.linalg.inv(K)
    assert init.reconstruct_h([], H, K, 1.0, 50) is None