"""Augmented-reality helpers: planes fitted to map points and status labels."""

from __future__ import annotations

import math
import random
from typing import Optional, Sequence

import numpy as np

_EPS = 1e-4
_MIN_PLANE_POINTS = 50
_MIN_OBSERVATIONS = 5
_HALF_RANGE = 3.14

_RED = (255, 0, 0)
_GREEN = (0, 255, 0)


def exp_so3(x: float, y: float, z: float) -> np.ndarray:
    """Rotation matrix of the axis-angle vector (x, y, z)."""
    identity = np.eye(3)
    d2 = x * x + y * y + z * z
    d = math.sqrt(d2)
    W = np.array([[0.0, -z, y], [z, 0.0, -x], [-y, x, 0.0]])
    if d < _EPS:
        return identity + W + 0.5 * (W @ W)
    return identity + W * math.sin(d) / d + (W @ W) * (1.0 - math.cos(d)) / d2


def status_label(status: int, localization_mode: bool) -> Optional[tuple[str, tuple[int, int, int]]]:
    """Text and RGB colour shown for a tracking status, or None when nothing is shown."""
    if status == 1:
        return "SLAM NOT INITIALIZED", _RED
    if status == 2:
        return ("LOCALIZATION ON" if localization_mode else "SLAM ON"), _GREEN
    if status == 3:
        return ("LOCALIZATION LOST" if localization_mode else "SLAM LOST"), _RED
    return None


def _attribute(item, name: str, default):
    value = getattr(item, name, default)
    return value() if callable(value) else value


def _world_position(item) -> Optional[np.ndarray]:
    """Position of a point, or None when the point is marked bad.

    A point is either a 3-vector or an object with a ``world_pos`` and,
    optionally, an ``is_bad`` attribute (values or methods).
    """
    if _attribute(item, "is_bad", False):
        return None
    position = _attribute(item, "world_pos", item)
    values = np.asarray(position, dtype=np.float64).ravel()
    if values.size < 3:
        raise ValueError("a point needs three coordinates")
    return values[:3]


def _random_rang(rng: random.Random) -> float:
    return -_HALF_RANGE / 2 + rng.random() * _HALF_RANGE


def _plane_rotation(normal: np.ndarray, rang: float) -> np.ndarray:
    """Rotation taking the up axis onto ``normal``, spun by ``rang`` about up."""
    up = np.array([0.0, 1.0, 0.0])
    v = np.cross(up, normal)
    sa = float(np.linalg.norm(v))
    ca = float(up @ normal)
    angle = math.atan2(sa, ca)
    if sa < 1e-12:
        # Normal parallel to the up axis: no turn, or a half turn about x.
        align = np.eye(3) if ca >= 0 else exp_so3(math.pi, 0.0, 0.0)
    else:
        align = exp_so3(*(v * angle / sa))
    return align @ exp_so3(*(up * rang))


class Plane:
    """A plane fitted to map points, with its world-to-plane transform."""

    def __init__(self, points: Sequence, Tcw, rang: Optional[float] = None):
        self.points = list(points)
        self.Tcw = np.array(Tcw, dtype=np.float64)
        self.rang = _random_rang(random.Random()) if rang is None else float(rang)
        self.XC: Optional[np.ndarray] = None
        self.normal = np.zeros(3)
        self.origin = np.zeros(3)
        self.Tpw = np.eye(4)
        self.recompute()

    @classmethod
    def from_normal(cls, normal, origin, rang: Optional[float] = None) -> "Plane":
        """A plane given directly by its normal and origin, with no supporting points."""
        plane = cls.__new__(cls)
        plane.points = []
        plane.Tcw = None
        plane.XC = None
        plane.rang = _random_rang(random.Random()) if rang is None else float(rang)
        plane.normal = np.asarray(normal, dtype=np.float64).ravel()[:3].copy()
        plane.origin = np.asarray(origin, dtype=np.float64).ravel()[:3].copy()
        plane._update_transform()
        return plane

    def recompute(self) -> None:
        """Refit the plane to all of its points that are not bad."""
        positions = [p for p in (_world_position(item) for item in self.points) if p is not None]
        if not positions:
            raise ValueError("plane has no valid points to fit")
        if self.Tcw is None:
            raise ValueError("plane has no camera pose to orient its normal")

        X = np.array(positions)
        A = np.column_stack((X, np.ones(len(X))))
        _, _, vt = np.linalg.svd(A, full_matrices=True)
        abc = vt[3, :3].copy()

        self.origin = X.mean(axis=0)
        f = 1.0 / math.sqrt(float(abc @ abc))

        if self.XC is None:
            R = self.Tcw[:3, :3]
            t = self.Tcw[:3, 3]
            camera_centre = -R.T @ t
            self.XC = camera_centre - self.origin

        if float(self.XC @ abc) > 0:
            abc = -abc

        self.normal = abc * f
        self._update_transform()

    def _update_transform(self) -> None:
        self.Tpw = np.eye(4)
        self.Tpw[:3, :3] = _plane_rotation(self.normal, self.rang)
        self.Tpw[:3, 3] = self.origin

    def gl_matrix(self) -> list[float]:
        """The transform as 16 values in column-major order."""
        matrix = self.Tpw.copy()
        matrix[3] = (0.0, 0.0, 0.0, 1.0)
        return [float(v) for v in matrix.T.ravel()]


def detect_plane(
    points: Sequence,
    Tcw,
    iterations: int = 50,
    rng: Optional[random.Random] = None,
) -> Optional[Plane]:
    """Fit a plane to tracked map points by RANSAC.

    Points with an ``observations`` count of five or fewer are ignored.
    Returns None when fewer than fifty points remain or no inlier is found.
    """
    if rng is None:
        rng = random.Random()

    candidates = []
    positions = []
    for item in points:
        if item is None:
            continue
        observations = _attribute(item, "observations", None)
        if observations is not None and observations <= _MIN_OBSERVATIONS:
            continue
        position = _world_position(item)
        if position is None:
            continue
        candidates.append(item)
        positions.append(position)

    n = len(positions)
    if n < _MIN_PLANE_POINTS:
        return None
    if iterations < 1:
        raise ValueError("at least one iteration is needed")

    X = np.array(positions)
    best_dist = 1e10
    best_distances: Optional[np.ndarray] = None
    nth = max(int(0.2 * n), 20)

    for _ in range(iterations):
        available = list(range(n))
        chosen = []
        for _ in range(3):
            randi = rng.randint(0, len(available) - 1)
            chosen.append(available[randi])
            available[randi] = available[-1]
            available.pop()

        A = np.column_stack((X[chosen], np.ones(3)))
        _, _, vt = np.linalg.svd(A, full_matrices=True)
        a, b, c, d = vt[3]
        f = 1.0 / math.sqrt(a * a + b * b + c * c + d * d)
        distances = np.abs(X @ np.array([a, b, c]) + d) * f

        median = float(np.sort(distances)[nth])
        if best_distances is None or median < best_dist:
            best_dist = median
            best_distances = distances

    threshold = 1.4 * best_dist
    inliers = [item for item, dist in zip(candidates, best_distances) if dist < threshold]
    if not inliers:
        return None
    return Plane(inliers, Tcw, _random_rang(rng))