"""Monocular map initialisation from two views by homography or fundamental matrix."""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from .epipolar import RTCheck, check_rt, compute_f21, compute_h21, decompose_e, normalize

_MIN_SET = 8
_HOMOGRAPHY_TH = 5.991
_FUNDAMENTAL_TH = 3.841
_FUNDAMENTAL_SCORE_TH = 5.991
_HOMOGRAPHY_RATIO = 0.40
_MIN_PARALLAX = 1.0
_MIN_TRIANGULATED = 50


@dataclass
class Reconstruction:
    """Relative motion of the second view and the triangulated points of the first."""

    rotation: np.ndarray
    translation: np.ndarray
    points: np.ndarray
    triangulated: list[bool]


def _inverse(matrix: np.ndarray) -> np.ndarray:
    try:
        return np.linalg.inv(matrix)
    except np.linalg.LinAlgError:
        return np.zeros_like(matrix)


def _coords(keys: Sequence, indices: Sequence[int]) -> np.ndarray:
    return np.array([(keys[i].x, keys[i].y) for i in indices], dtype=np.float64).reshape(-1, 2)


class Initializer:
    """Estimates the initial two-view reconstruction against a reference frame."""

    def __init__(self, reference_frame, sigma: float = 1.0, iterations: int = 200):
        self.K = np.array(reference_frame.K, dtype=np.float64)
        self.keys1 = list(reference_frame.keys_un)
        self.sigma = sigma
        self.sigma2 = sigma * sigma
        self.max_iterations = iterations
        self.keys2: list = []
        self.matches12: list[tuple[int, int]] = []
        self.matched1: list[bool] = []
        self.sets: list[list[int]] = []
        self._rng = random.Random(0)

    def initialize(self, current_frame, matches12: Sequence[int]) -> Optional[Reconstruction]:
        """Reconstruct from matches (index in the current frame, or -1, per reference key)."""
        self.keys2 = list(current_frame.keys_un)
        self.matches12 = [(i, int(m)) for i, m in enumerate(matches12) if m >= 0]
        self.matched1 = [m >= 0 for m in matches12]

        n = len(self.matches12)
        if n < _MIN_SET:
            raise ValueError(f"at least {_MIN_SET} matches are needed, got {n}")

        self.sets = []
        for _ in range(self.max_iterations):
            available = list(range(n))
            chosen = []
            for _ in range(_MIN_SET):
                randi = self._rng.randint(0, len(available) - 1)
                chosen.append(available[randi])
                available[randi] = available[-1]
                available.pop()
            self.sets.append(chosen)

        H, inliers_h, score_h = self.find_homography()
        F, inliers_f, score_f = self.find_fundamental()

        total = score_h + score_f
        ratio = score_h / total if total else float("nan")

        if ratio > _HOMOGRAPHY_RATIO:
            if H is None:
                return None
            return self.reconstruct_h(inliers_h, H, self.K, _MIN_PARALLAX, _MIN_TRIANGULATED)
        if F is None:
            return None
        return self.reconstruct_f(inliers_f, F, self.K, _MIN_PARALLAX, _MIN_TRIANGULATED)

    def _match_indices(self) -> tuple[np.ndarray, np.ndarray]:
        first = np.array([i for i, _ in self.matches12], dtype=int)
        second = np.array([j for _, j in self.matches12], dtype=int)
        return first, second

    def _matched_points(self) -> tuple[np.ndarray, np.ndarray]:
        first, second = self._match_indices()
        return _coords(self.keys1, first), _coords(self.keys2, second)

    def find_homography(self) -> tuple[Optional[np.ndarray], list[bool], float]:
        """Best homography H21 over the RANSAC sets, with its inliers and score."""
        pn1, T1 = normalize(self.keys1)
        pn2, T2 = normalize(self.keys2)
        T2inv = np.linalg.inv(T2)
        first, second = self._match_indices()

        best_score = 0.0
        best_inliers = [False] * len(self.matches12)
        best_H: Optional[np.ndarray] = None
        for chosen in self.sets:
            idx = np.array(chosen, dtype=int)
            Hn = compute_h21(pn1[first[idx]], pn2[second[idx]])
            H21 = T2inv @ Hn @ T1
            H12 = _inverse(H21)
            score, inliers = self.check_homography(H21, H12, self.sigma)
            if score > best_score:
                best_H = H21.copy()
                best_inliers = inliers
                best_score = score
        return best_H, best_inliers, best_score

    def find_fundamental(self) -> tuple[Optional[np.ndarray], list[bool], float]:
        """Best fundamental matrix F21 over the RANSAC sets, with its inliers and score."""
        pn1, T1 = normalize(self.keys1)
        pn2, T2 = normalize(self.keys2)
        T2t = T2.T
        first, second = self._match_indices()

        best_score = 0.0
        best_inliers = [False] * len(self.matches12)
        best_F: Optional[np.ndarray] = None
        for chosen in self.sets:
            idx = np.array(chosen, dtype=int)
            Fn = compute_f21(pn1[first[idx]], pn2[second[idx]])
            F21 = T2t @ Fn @ T1
            score, inliers = self.check_fundamental(F21, self.sigma)
            if score > best_score:
                best_F = F21.copy()
                best_inliers = inliers
                best_score = score
        return best_F, best_inliers, best_score

    def check_homography(self, H21, H12, sigma: float) -> tuple[float, list[bool]]:
        """Symmetric transfer score of a homography pair and the matches it explains."""
        H21 = np.asarray(H21, dtype=np.float64)
        H12 = np.asarray(H12, dtype=np.float64)
        p1, p2 = self._matched_points()
        inv_sigma2 = 1.0 / (sigma * sigma)

        def transfer(H: np.ndarray, pts: np.ndarray) -> np.ndarray:
            hom = np.column_stack((pts, np.ones(len(pts))))
            mapped = hom @ H.T
            return mapped[:, :2] * (1.0 / mapped[:, 2:3])

        with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
            chi1 = np.sum((p1 - transfer(H12, p2)) ** 2, axis=1) * inv_sigma2
            chi2 = np.sum((p2 - transfer(H21, p1)) ** 2, axis=1) * inv_sigma2
            in1 = ~(chi1 > _HOMOGRAPHY_TH)
            in2 = ~(chi2 > _HOMOGRAPHY_TH)
            score = float(
                np.where(in1, _HOMOGRAPHY_TH - chi1, 0.0).sum()
                + np.where(in2, _HOMOGRAPHY_TH - chi2, 0.0).sum()
            )
        return score, [bool(v) for v in in1 & in2]

    def check_fundamental(self, F21, sigma: float) -> tuple[float, list[bool]]:
        """Point-to-epipolar-line score of a fundamental matrix and its inliers."""
        F21 = np.asarray(F21, dtype=np.float64)
        p1, p2 = self._matched_points()
        h1 = np.column_stack((p1, np.ones(len(p1))))
        h2 = np.column_stack((p2, np.ones(len(p2))))
        inv_sigma2 = 1.0 / (sigma * sigma)

        with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
            l2 = h1 @ F21.T
            num2 = np.sum(l2 * h2, axis=1)
            chi1 = num2 * num2 / (l2[:, 0] ** 2 + l2[:, 1] ** 2) * inv_sigma2

            l1 = h2 @ F21
            num1 = np.sum(l1 * h1, axis=1)
            chi2 = num1 * num1 / (l1[:, 0] ** 2 + l1[:, 1] ** 2) * inv_sigma2

            in1 = ~(chi1 > _FUNDAMENTAL_TH)
            in2 = ~(chi2 > _FUNDAMENTAL_TH)
            score = float(
                np.where(in1, _FUNDAMENTAL_SCORE_TH - chi1, 0.0).sum()
                + np.where(in2, _FUNDAMENTAL_SCORE_TH - chi2, 0.0).sum()
            )
        return score, [bool(v) for v in in1 & in2]

    def _check(self, R, t, inliers, K) -> RTCheck:
        return check_rt(
            R, t, self.keys1, self.keys2, self.matches12, inliers, K, 4.0 * self.sigma2
        )

    def reconstruct_f(
        self, inliers, F21, K, min_parallax: float, min_triangulated: int
    ) -> Optional[Reconstruction]:
        """Pick the one of four essential-matrix motions that triangulates best."""
        inliers = list(inliers)
        n = sum(1 for v in inliers if v)
        K = np.asarray(K, dtype=np.float64)
        E21 = K.T @ np.asarray(F21, dtype=np.float64) @ K
        R1, R2, t = decompose_e(E21)

        hypotheses = [(R1, t), (R2, t), (R1, -t), (R2, -t)]
        checks = [self._check(R, tt, inliers, K) for R, tt in hypotheses]
        max_good = max(c.n_good for c in checks)
        min_good = max(int(0.9 * n), min_triangulated)
        n_similar = sum(1 for c in checks if c.n_good > 0.7 * max_good)

        if max_good < min_good or n_similar > 1:
            return None

        best = next(i for i, c in enumerate(checks) if c.n_good == max_good)
        chosen = checks[best]
        if chosen.parallax > min_parallax:
            R, tt = hypotheses[best]
            return Reconstruction(R.copy(), tt.copy(), chosen.points, chosen.good)
        return None

    def reconstruct_h(
        self, inliers, H21, K, min_parallax: float, min_triangulated: int
    ) -> Optional[Reconstruction]:
        """Decompose a homography into eight motions and keep a clear winner."""
        inliers = list(inliers)
        n = sum(1 for v in inliers if v)
        K = np.asarray(K, dtype=np.float64)
        A = np.linalg.inv(K) @ np.asarray(H21, dtype=np.float64) @ K

        U, w, Vt = np.linalg.svd(A)
        s = np.linalg.det(U) * np.linalg.det(Vt)
        d1, d2, d3 = w

        rotations: list[np.ndarray] = []
        translations: list[np.ndarray] = []
        with np.errstate(divide="ignore", invalid="ignore"):
            if d1 / d2 < 1.00001 or d2 / d3 < 1.00001:
                return None

            aux1 = np.sqrt((d1 * d1 - d2 * d2) / (d1 * d1 - d3 * d3))
            aux3 = np.sqrt((d2 * d2 - d3 * d3) / (d1 * d1 - d3 * d3))
            x1 = [aux1, aux1, -aux1, -aux1]
            x3 = [aux3, -aux3, aux3, -aux3]

            aux_stheta = np.sqrt((d1 * d1 - d2 * d2) * (d2 * d2 - d3 * d3)) / ((d1 + d3) * d2)
            ctheta = (d2 * d2 + d1 * d3) / ((d1 + d3) * d2)
            stheta = [aux_stheta, -aux_stheta, -aux_stheta, aux_stheta]

            for a, b, st in zip(x1, x3, stheta):
                Rp = np.eye(3)
                Rp[0, 0] = ctheta
                Rp[0, 2] = -st
                Rp[2, 0] = st
                Rp[2, 2] = ctheta
                rotations.append(s * U @ Rp @ Vt)
                t = U @ (np.array([a, 0.0, -b]) * (d1 - d3))
                translations.append(t / np.linalg.norm(t))

            aux_sphi = np.sqrt((d1 * d1 - d2 * d2) * (d2 * d2 - d3 * d3)) / ((d1 - d3) * d2)
            cphi = (d1 * d3 - d2 * d2) / ((d1 - d3) * d2)
            sphi = [aux_sphi, -aux_sphi, -aux_sphi, aux_sphi]

            for a, b, sp in zip(x1, x3, sphi):
                Rp = np.eye(3)
                Rp[0, 0] = cphi
                Rp[0, 2] = sp
                Rp[1, 1] = -1.0
                Rp[2, 0] = sp
                Rp[2, 2] = -cphi
                rotations.append(s * U @ Rp @ Vt)
                t = U @ (np.array([a, 0.0, b]) * (d1 + d3))
                translations.append(t / np.linalg.norm(t))

        best_good = 0
        second_best_good = 0
        best_index = -1
        best_check: Optional[RTCheck] = None
        for index, (R, t) in enumerate(zip(rotations, translations)):
            check = self._check(R, t, inliers, K)
            if check.n_good > best_good:
                second_best_good = best_good
                best_good = check.n_good
                best_index = index
                best_check = check
            elif check.n_good > second_best_good:
                second_best_good = check.n_good

        if (
            best_check is not None
            and second_best_good < 0.75 * best_good
            and best_check.parallax >= min_parallax
            and best_good > min_triangulated
            and best_good > 0.9 * n
        ):
            return Reconstruction(
                rotations[best_index].copy(),
                translations[best_index].copy(),
                best_check.points,
                best_check.good,
            )
        return None