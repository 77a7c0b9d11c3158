"""Two-view geometry: normalisation, homography, fundamental matrix and triangulation."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

import numpy as np

_PARALLAX_COS_LIMIT = 0.99998


@dataclass
class RTCheck:
    """Outcome of checking a motion hypothesis against matched keypoints."""

    n_good: int
    points: np.ndarray
    good: list[bool]
    parallax: float


def _xy(kp) -> tuple[float, float]:
    return float(kp.x), float(kp.y)


def normalize(keys) -> tuple[np.ndarray, np.ndarray]:
    """Centre keypoints and scale them to unit mean absolute deviation.

    Returns the normalised points (N x 2) and the 3x3 transform that maps
    homogeneous pixel points to them.
    """
    pts = np.array([_xy(kp) for kp in keys], dtype=np.float64).reshape(-1, 2)
    if len(pts) == 0:
        raise ValueError("cannot normalize an empty set of keypoints")
    mean = pts.mean(axis=0)
    centred = pts - mean
    deviation = np.abs(centred).mean(axis=0)
    if np.any(deviation == 0):
        raise ValueError("keypoints have no spread along an axis")
    scale = 1.0 / deviation
    T = np.eye(3)
    T[0, 0], T[1, 1] = scale
    T[0, 2] = -mean[0] * scale[0]
    T[1, 2] = -mean[1] * scale[1]
    return centred * scale, T


def _paired(p1, p2) -> tuple[np.ndarray, np.ndarray]:
    a = np.asarray(p1, dtype=np.float64).reshape(-1, 2)
    b = np.asarray(p2, dtype=np.float64).reshape(-1, 2)
    if len(a) != len(b):
        raise ValueError("point sets differ in length")
    return a, b


def compute_h21(p1, p2) -> np.ndarray:
    """Homography mapping points of view 1 to view 2 by direct linear transform."""
    a, b = _paired(p1, p2)
    u1, v1 = a.T
    u2, v2 = b.T
    zeros = np.zeros_like(u1)
    ones = np.ones_like(u1)
    A = np.empty((2 * len(a), 9))
    A[0::2] = np.column_stack((zeros, zeros, zeros, -u1, -v1, -ones, v2 * u1, v2 * v1, v2))
    A[1::2] = np.column_stack((u1, v1, ones, zeros, zeros, zeros, -u2 * u1, -u2 * v1, -u2))
    _, _, vt = np.linalg.svd(A, full_matrices=True)
    return vt[8].reshape(3, 3)


def compute_f21(p1, p2) -> np.ndarray:
    """Rank-2 fundamental matrix with x2^T F21 x1 = 0 by the eight-point method."""
    a, b = _paired(p1, p2)
    u1, v1 = a.T
    u2, v2 = b.T
    A = np.column_stack(
        (u2 * u1, u2 * v1, u2, v2 * u1, v2 * v1, v2, u1, v1, np.ones_like(u1))
    )
    _, _, vt = np.linalg.svd(A, full_matrices=True)
    f_pre = vt[8].reshape(3, 3)
    u, w, vt = np.linalg.svd(f_pre)
    w[2] = 0.0
    return u @ np.diag(w) @ vt


def triangulate(kp1, kp2, P1, P2) -> np.ndarray:
    """3D point seen at ``kp1`` by projection ``P1`` and at ``kp2`` by ``P2``."""
    P1 = np.asarray(P1, dtype=np.float64)
    P2 = np.asarray(P2, dtype=np.float64)
    x1, y1 = _xy(kp1)
    x2, y2 = _xy(kp2)
    A = np.vstack(
        (
            x1 * P1[2] - P1[0],
            y1 * P1[2] - P1[1],
            x2 * P2[2] - P2[0],
            y2 * P2[2] - P2[1],
        )
    )
    _, _, vt = np.linalg.svd(A, full_matrices=True)
    X = vt[3]
    with np.errstate(divide="ignore", invalid="ignore"):
        return X[:3] / X[3]


def decompose_e(E) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """The two rotations and the unit translation encoded by an essential matrix."""
    u, _, vt = np.linalg.svd(np.asarray(E, dtype=np.float64))
    t = u[:, 2] / np.linalg.norm(u[:, 2])
    W = np.array([[0.0, -1.0, 0.0], [1.0, 0.0, 0.0], [0.0, 0.0, 1.0]])
    R1 = u @ W @ vt
    if np.linalg.det(R1) < 0:
        R1 = -R1
    R2 = u @ W.T @ vt
    if np.linalg.det(R2) < 0:
        R2 = -R2
    return R1, R2, t


def check_rt(
    R,
    t,
    keys1: Sequence,
    keys2: Sequence,
    matches12: Sequence[tuple[int, int]],
    inliers: Sequence[bool],
    K,
    th2: float,
) -> RTCheck:
    """Triangulate inlier matches under motion (R, t) and count the plausible ones.

    A point counts when it lies in front of both cameras (unless its parallax
    is too small to tell) and reprojects within ``th2`` squared pixels in both
    images. ``good`` marks counted points that also have enough parallax.
    """
    R = np.asarray(R, dtype=np.float64)
    t = np.asarray(t, dtype=np.float64).ravel()
    K = np.asarray(K, dtype=np.float64)
    fx, fy, cx, cy = K[0, 0], K[1, 1], K[0, 2], K[1, 2]

    good = [False] * len(keys1)
    points = np.zeros((len(keys1), 3))
    cos_parallaxes: list[float] = []

    P1 = np.zeros((3, 4))
    P1[:, :3] = K
    P2 = K @ np.hstack((R, t.reshape(3, 1)))
    O2 = -R.T @ t

    n_good = 0
    with np.errstate(divide="ignore", invalid="ignore"):
        for (i1, i2), inlier in zip(matches12, inliers, strict=True):
            if not inlier:
                continue
            kp1 = keys1[i1]
            kp2 = keys2[i2]
            p3d_c1 = triangulate(kp1, kp2, P1, P2)
            if not np.all(np.isfinite(p3d_c1)):
                good[i1] = False
                continue

            normal2 = p3d_c1 - O2
            cos_parallax = float(
                p3d_c1 @ normal2 / (np.linalg.norm(p3d_c1) * np.linalg.norm(normal2))
            )

            if p3d_c1[2] <= 0 and cos_parallax < _PARALLAX_COS_LIMIT:
                continue
            p3d_c2 = R @ p3d_c1 + t
            if p3d_c2[2] <= 0 and cos_parallax < _PARALLAX_COS_LIMIT:
                continue

            x1, y1 = _xy(kp1)
            inv_z1 = 1.0 / p3d_c1[2]
            im1x = fx * p3d_c1[0] * inv_z1 + cx
            im1y = fy * p3d_c1[1] * inv_z1 + cy
            if (im1x - x1) ** 2 + (im1y - y1) ** 2 > th2:
                continue

            x2, y2 = _xy(kp2)
            inv_z2 = 1.0 / p3d_c2[2]
            im2x = fx * p3d_c2[0] * inv_z2 + cx
            im2y = fy * p3d_c2[1] * inv_z2 + cy
            if (im2x - x2) ** 2 + (im2y - y2) ** 2 > th2:
                continue

            cos_parallaxes.append(cos_parallax)
            points[i1] = p3d_c1
            n_good += 1
            if cos_parallax < _PARALLAX_COS_LIMIT:
                good[i1] = True

    if n_good > 0:
        cos_parallaxes.sort()
        idx = min(50, len(cos_parallaxes) - 1)
        value = max(-1.0, min(1.0, cos_parallaxes[idx]))
        parallax = math.degrees(math.acos(value))
    else:
        parallax = 0.0

    return RTCheck(n_good=n_good, points=points, good=good, parallax=parallax)