import math

import numpy as np
import pytest

from stereoslam.epipolar import (
    check_rt,
    compute_f21,
    compute_h21,
    decompose_e,
    normalize,
    triangulate,
)
from stereoslam.frame import KeyPoint

K = np.array([[500.0, 0.0, 320.0], [0.0, 500.0, 240.0], [0.0, 0.0, 1.0]])


def _rot(axis, angle):
    axis = np.asarray(axis, dtype=float)
    axis = axis / np.linalg.norm(axis)
    k = np.array([[0, -axis[2], axis[1]], [axis[2], 0, -axis[0]], [-axis[1], axis[0], 0]])
    return np.eye(3) + math.sin(angle) * k + (1 - math.cos(angle)) * k @ k


def _skew(v):
    return np.array([[0, -v[2], v[1]], [v[2], 0, -v[0]], [-v[1], v[0], 0]])


def _project(X):
    p = (K @ X.T).T
    return p[:, :2] / p[:, 2:3]


def _scene(n=30, planar=False, seed=1):
    rng = np.random.default_rng(seed)
    X = np.column_stack(
        (
            rng.uniform(-1.5, 1.5, n),
            rng.uniform(-1.0, 1.0, n),
            np.full(n, 5.0) if planar else rng.uniform(4.0, 8.0, n),
        )
    )
    R = _rot([0, 1, 0], 0.1)
    t = np.array([-1.0, 0.1, 0.05])
    X2 = (R @ X.T).T + t
    keys1 = [KeyPoint(float(x), float(y)) for x, y in _project(X)]
    keys2 = [KeyPoint(float(x), float(y)) for x, y in _project(X2)]
    return X, R, t, keys1, keys2


def test_normalize_properties():
    _, _, _, keys1, _ = _scene()
    pts, T = normalize(keys1)
    assert np.allclose(pts.mean(axis=0), 0.0)
    assert np.allclose(np.abs(pts).mean(axis=0), 1.0)
    raw = np.array([[kp.x, kp.y, 1.0] for kp in keys1])
    mapped = (T @ raw.T).T
    assert np.allclose(mapped[:, :2], pts)


def test_normalize_errors():
    with pytest.raises(ValueError):
        normalize([])
    with pytest.raises(ValueError):
        normalize([KeyPoint(1.0, 2.0), KeyPoint(1.0, 3.0)])


def test_homography_from_planar_scene():
    _, _, _, keys1, keys2 = _scene(planar=True)
    pn1, T1 = normalize(keys1)
    pn2, T2 = normalize(keys2)
    Hn = compute_h21(pn1[:8], pn2[:8])
    H = np.linalg.inv(T2) @ Hn @ T1
    for kp1, kp2 in zip(keys1, keys2):
        p = H @ np.array([kp1.x, kp1.y, 1.0])
        assert np.allclose(p[:2] / p[2], [kp2.x, kp2.y], atol=1e-6)


def test_homography_length_mismatch():
    with pytest.raises(ValueError):
        compute_h21(np.zeros((8, 2)), np.zeros((7, 2)))


def test_fundamental_epipolar_constraint():
    _, _, _, keys1, keys2 = _scene()
    pn1, T1 = normalize(keys1)
    pn2, T2 = normalize(keys2)
    Fn = compute_f21(pn1[:8], pn2[:8])
    assert abs(np.linalg.det(Fn)) < 1e-10
    F = T2.T @ Fn @ T1
    F = F / np.linalg.norm(F)
    for kp1, kp2 in zip(keys1, keys2):
        x1 = np.array([kp1.x, kp1.y, 1.0])
        x2 = np.array([kp2.x, kp2.y, 1.0])
        line = F @ x1
        assert abs(x2 @ line) / np.linalg.norm(line[:2]) < 1e-4


def test_triangulate_recovers_point():
    X, R, t, keys1, keys2 = _scene()
    P1 = np.hstack((K, np.zeros((3, 1))))
    P2 = K @ np.hstack((R, t.reshape(3, 1)))
    for i in range(5):
        assert np.allclose(triangulate(keys1[i], keys2[i], P1, P2), X[i], atol=1e-6)


def test_decompose_e_contains_true_motion():
    R = _rot([1, 2, 0.5], 0.2)
    t = np.array([1.0, -0.5, 0.2])
    R1, R2, t_est = decompose_e(_skew(t) @ R)
    for rot in (R1, R2):
        assert math.isclose(np.linalg.det(rot), 1.0, rel_tol=1e-9)
        assert np.allclose(rot @ rot.T, np.eye(3), atol=1e-9)
    assert np.allclose(R1, R, atol=1e-9) or np.allclose(R2, R, atol=1e-9)
    unit = t / np.linalg.norm(t)
    assert np.allclose(t_est, unit) or np.allclose(t_est, -unit)


def test_check_rt_true_motion_accepts_all():
    X, R, t, keys1, keys2 = _scene()
    n = len(keys1)
    matches = [(i, i) for i in range(n)]
    result = check_rt(R, t, keys1, keys2, matches, [True] * n, K, 4.0)
    assert result.n_good == n
    assert all(result.good)
    assert np.allclose(result.points, X, atol=1e-6)
    assert result.parallax > 1.0


def test_check_rt_wrong_direction_rejects():
    _, R, t, keys1, keys2 = _scene()
    n = len(keys1)
    matches = [(i, i) for i in range(n)]
    result = check_rt(R, -t, keys1, keys2, matches, [True] * n, K, 4.0)
    assert result.n_good < n


def test_check_rt_no_inliers():
    _, R, t, keys1, keys2 = _scene()
    n = len(keys1)
    matches = [(i, i) for i in range(n)]
    result = check_rt(R, t, keys1, keys2, matches, [False] * n, K, 4.0)
    assert result.n_good == 0
    assert result.parallax == 0.0
    assert not any(result.good)
    assert np.all(result.points == 0.0)


def test_check_rt_mask_length_mismatch():
    _, R, t, keys1, keys2 = _scene()
    with pytest.raises(ValueError):
        check_rt(R, t, keys1, keys2, [(0, 0), (1, 1)], [True], K, 4.0)