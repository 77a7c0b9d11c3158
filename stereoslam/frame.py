"""Camera frames: keypoints, undistortion, the feature grid and depth."""

from __future__ import annotations

import itertools
import math
from dataclasses import dataclass, field
from typing import Optional, Sequence

import numpy as np

FRAME_GRID_COLS = 64
FRAME_GRID_ROWS = 48

_UNDISTORT_ITERATIONS = 5


@dataclass
class KeyPoint:
    """An image keypoint with its pyramid level."""

    x: float
    y: float
    octave: int = 0
    size: float = 0.0
    angle: float = -1.0
    response: float = 0.0

    def moved_to(self, x: float, y: float) -> "KeyPoint":
        """Return a copy of this keypoint at another position."""
        return KeyPoint(x, y, self.octave, self.size, self.angle, self.response)


def _round_half_away(value: float) -> int:
    return int(math.floor(value + 0.5)) if value >= 0 else -int(math.floor(-value + 0.5))


def undistort_points(points, K, dist_coef) -> np.ndarray:
    """Remove radial/tangential lens distortion from pixel points.

    ``dist_coef`` holds k1, k2, p1, p2 and optionally k3. The result is
    re-projected with the same camera matrix ``K``.
    """
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    K = np.asarray(K, dtype=np.float64)
    coef = np.zeros(5)
    given = np.asarray(dist_coef, dtype=np.float64).ravel()[:5]
    coef[: given.size] = given
    k1, k2, p1, p2, k3 = coef

    fx, fy, cx, cy = K[0, 0], K[1, 1], K[0, 2], K[1, 2]
    x0 = (pts[:, 0] - cx) / fx
    y0 = (pts[:, 1] - cy) / fy
    x, y = x0.copy(), y0.copy()
    for _ in range(_UNDISTORT_ITERATIONS):
        r2 = x * x + y * y
        icdist = 1.0 / (1.0 + ((k3 * r2 + k2) * r2 + k1) * r2)
        delta_x = 2.0 * p1 * x * y + p2 * (r2 + 2.0 * x * x)
        delta_y = p1 * (r2 + 2.0 * y * y) + 2.0 * p2 * x * y
        x = (x0 - delta_x) * icdist
        y = (y0 - delta_y) * icdist

    return np.column_stack((x * fx + cx, y * fy + cy))


@dataclass
class _Bounds:
    min_x: float
    max_x: float
    min_y: float
    max_y: float


class Frame:
    """A single camera frame with its features and optional depth."""

    _ids = itertools.count()

    def __init__(
        self,
        keypoints: Sequence[KeyPoint],
        descriptors,
        timestamp: float,
        K,
        dist_coef,
        bf: float,
        th_depth: float,
        image_size: tuple[int, int],
        depth=None,
    ):
        self.id = next(Frame._ids)
        self.timestamp = timestamp
        self.K = np.array(K, dtype=np.float64)
        self.dist_coef = np.array(dist_coef, dtype=np.float64).ravel()
        self.bf = bf
        self.th_depth = th_depth
        self.keys: list[KeyPoint] = list(keypoints)
        self.descriptors = np.array(descriptors) if descriptors is not None else None
        self.n = len(self.keys)

        self.fx = float(self.K[0, 0])
        self.fy = float(self.K[1, 1])
        self.cx = float(self.K[0, 2])
        self.cy = float(self.K[1, 2])
        self.invfx = 1.0 / self.fx
        self.invfy = 1.0 / self.fy
        self.mb = bf / self.fx

        self.Tcw: Optional[np.ndarray] = None
        self.Rcw = self.Rwc = self.tcw = self.Ow = None

        self.grid: list[list[list[int]]] = [
            [[] for _ in range(FRAME_GRID_ROWS)] for _ in range(FRAME_GRID_COLS)
        ]
        self.keys_un: list[KeyPoint] = []
        self.u_right: list[float] = []
        self.depth: list[float] = []
        self.map_points: list = []
        self.outliers: list[bool] = []

        width, height = image_size
        self.bounds = self._compute_image_bounds(width, height)
        self.grid_element_width_inv = FRAME_GRID_COLS / (self.bounds.max_x - self.bounds.min_x)
        self.grid_element_height_inv = FRAME_GRID_ROWS / (self.bounds.max_y - self.bounds.min_y)

        if not self.keys:
            return

        self._undistort_keypoints()

        if depth is not None:
            self.compute_stereo_from_rgbd(depth)
        else:
            self.u_right = [-1.0] * self.n
            self.depth = [-1.0] * self.n

        self.map_points = [None] * self.n
        self.outliers = [False] * self.n
        self._assign_features_to_grid()

    @property
    def min_x(self) -> float:
        return self.bounds.min_x

    @property
    def max_x(self) -> float:
        return self.bounds.max_x

    @property
    def min_y(self) -> float:
        return self.bounds.min_y

    @property
    def max_y(self) -> float:
        return self.bounds.max_y

    def _distorted(self) -> bool:
        return self.dist_coef.size > 0 and self.dist_coef[0] != 0.0

    def _undistort_keypoints(self) -> None:
        if not self._distorted():
            self.keys_un = list(self.keys)
            return
        pts = undistort_points([(kp.x, kp.y) for kp in self.keys], self.K, self.dist_coef)
        self.keys_un = [kp.moved_to(float(x), float(y)) for kp, (x, y) in zip(self.keys, pts)]

    def _compute_image_bounds(self, width: float, height: float) -> _Bounds:
        if not self._distorted():
            return _Bounds(0.0, float(width), 0.0, float(height))
        corners = undistort_points(
            [(0.0, 0.0), (width, 0.0), (0.0, height), (width, height)], self.K, self.dist_coef
        )
        return _Bounds(
            min_x=float(min(corners[0, 0], corners[2, 0])),
            max_x=float(max(corners[1, 0], corners[3, 0])),
            min_y=float(min(corners[0, 1], corners[1, 1])),
            max_y=float(max(corners[2, 1], corners[3, 1])),
        )

    def _assign_features_to_grid(self) -> None:
        for index, kp in enumerate(self.keys_un):
            cell = self.pos_in_grid(kp)
            if cell is not None:
                gx, gy = cell
                self.grid[gx][gy].append(index)

    def set_pose(self, Tcw) -> None:
        """Set the world-to-camera pose and derive rotation, translation and centre."""
        self.Tcw = np.array(Tcw, dtype=np.float64)
        self.Rcw = self.Tcw[:3, :3]
        self.Rwc = self.Rcw.T
        self.tcw = self.Tcw[:3, 3]
        self.Ow = -self.Rwc @ self.tcw

    def pos_in_grid(self, kp: KeyPoint) -> Optional[tuple[int, int]]:
        """Grid cell of an undistorted keypoint, or None when it falls outside."""
        pos_x = _round_half_away((kp.x - self.bounds.min_x) * self.grid_element_width_inv)
        pos_y = _round_half_away((kp.y - self.bounds.min_y) * self.grid_element_height_inv)
        if not (0 <= pos_x < FRAME_GRID_COLS and 0 <= pos_y < FRAME_GRID_ROWS):
            return None
        return pos_x, pos_y

    def get_features_in_area(
        self, x: float, y: float, r: float, min_level: int = -1, max_level: int = -1
    ) -> list[int]:
        """Indices of undistorted keypoints within a square of half-side ``r``."""
        min_cell_x = max(0, math.floor((x - self.bounds.min_x - r) * self.grid_element_width_inv))
        if min_cell_x >= FRAME_GRID_COLS:
            return []
        max_cell_x = min(
            FRAME_GRID_COLS - 1, math.ceil((x - self.bounds.min_x + r) * self.grid_element_width_inv)
        )
        if max_cell_x < 0:
            return []
        min_cell_y = max(0, math.floor((y - self.bounds.min_y - r) * self.grid_element_height_inv))
        if min_cell_y >= FRAME_GRID_ROWS:
            return []
        max_cell_y = min(
            FRAME_GRID_ROWS - 1, math.ceil((y - self.bounds.min_y + r) * self.grid_element_height_inv)
        )
        if max_cell_y < 0:
            return []

        check_levels = min_level > 0 or max_level >= 0
        found: list[int] = []
        for ix in range(min_cell_x, max_cell_x + 1):
            for iy in range(min_cell_y, max_cell_y + 1):
                for index in self.grid[ix][iy]:
                    kp = self.keys_un[index]
                    if check_levels:
                        if kp.octave < min_level:
                            continue
                        if max_level >= 0 and kp.octave > max_level:
                            continue
                    if abs(kp.x - x) < r and abs(kp.y - y) < r:
                        found.append(index)
        return found

    def compute_stereo_from_rgbd(self, depth) -> None:
        """Fill depth and virtual right coordinates from a registered depth image."""
        depth_image = np.asarray(depth)
        self.u_right = [-1.0] * self.n
        self.depth = [-1.0] * self.n
        for i, (kp, kp_un) in enumerate(zip(self.keys, self.keys_un)):
            d = float(depth_image[int(kp.y), int(kp.x)])
            if d > 0:
                self.depth[i] = d
                self.u_right[i] = kp_un.x - self.bf / d

    def unproject_stereo(self, i: int) -> Optional[np.ndarray]:
        """World coordinates of keypoint ``i`` from its depth, or None without depth."""
        z = self.depth[i]
        if z <= 0:
            return None
        if self.Rwc is None:
            raise ValueError("frame pose is not set")
        kp = self.keys_un[i]
        x = (kp.x - self.cx) * z * self.invfx
        y = (kp.y - self.cy) * z * self.invfy
        return self.Rwc @ np.array([x, y, z]) + self.Ow