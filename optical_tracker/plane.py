"""Plane fitting for marker region samples."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .config import PlaneFitConfig

logger = logging.getLogger(__name__)


@dataclass
class PlaneEstimate:
    normal: np.ndarray    # unit normal, sign is arbitrary
    centroid: np.ndarray
    num_points: int
    rmse: float


def _residual_rmse(points: np.ndarray, centroid: np.ndarray, normal: np.ndarray) -> float:
    d = (points - centroid) @ normal
    return float(np.sqrt(np.mean(d * d)))


def fit_plane_least_squares(points: np.ndarray, min_points: int = 3) -> Optional[PlaneEstimate]:
    """
    Total least-squares plane through the points.

    Returns None for too few points or a degenerate (collinear) set.
    """
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    if pts.shape[0] < max(3, min_points) or not np.all(np.isfinite(pts)):
        return None
    centroid = np.mean(pts, axis=0)
    _, s, vh = np.linalg.svd(pts - centroid, full_matrices=False)
    # second singular value ~0 means all points on a line
    if s[1] <= 1e-9 * max(s[0], 1.0):
        return None
    normal = vh[-1] / np.linalg.norm(vh[-1])
    return PlaneEstimate(normal, centroid, int(pts.shape[0]), _residual_rmse(pts, centroid, normal))


def _ransac_iterations(inlier_ratio: float, desired_probability: float, cap: int) -> int:
    if inlier_ratio >= 1.0:
        return 1
    if inlier_ratio <= 0.0:
        return cap
    denom = math.log(1.0 - inlier_ratio ** 3)
    if denom == 0.0:
        return cap
    return min(cap, max(1, int(math.ceil(math.log(1.0 - desired_probability) / denom))))


def fit_plane_ransac(
    points: np.ndarray,
    max_distance: float = 0.5,
    desired_probability: float = 0.90,
    max_iterations: int = 200,
    min_points: int = 3,
    rng: Optional[np.random.Generator] = None,
) -> Optional[PlaneEstimate]:
    """
    RANSAC plane fit with a least-squares refit on the consensus set.

    The iteration count adapts to the best inlier ratio seen so far and never
    exceeds max_iterations.
    """
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    n = int(pts.shape[0])
    if n < max(3, min_points):
        return None
    rng = rng or np.random.default_rng()

    best_count = 0
    best_mask = None
    needed = max(1, int(max_iterations))
    it = 0
    while it < needed:
        it += 1
        p0, p1, p2 = pts[rng.choice(n, size=3, replace=False)]
        normal = np.cross(p1 - p0, p2 - p0)
        nn = float(np.linalg.norm(normal))
        if nn < 1e-10:
            continue
        normal = normal / nn
        mask = np.abs((pts - p0) @ normal) <= float(max_distance)
        cnt = int(np.count_nonzero(mask))
        if cnt > best_count:
            best_count = cnt
            best_mask = mask
            needed = _ransac_iterations(cnt / n, desired_probability, int(max_iterations))

    if best_mask is None or best_count < max(3, min_points):
        return None
    logger.debug("ransac: %d/%d inliers after %d iterations", best_count, n, it)
    return fit_plane_least_squares(pts[best_mask], min_points)


class PlaneFitter:
    """Fits marker planes with the configured estimator; never raises on bad input."""

    def __init__(self, config: Optional[PlaneFitConfig] = None):
        self.config = config or PlaneFitConfig()
        if self.config.method not in ("least_squares", "ransac"):
            raise ValueError(f"Unknown plane fit method: {self.config.method!r}")
        self._rng = np.random.default_rng(self.config.seed)

    def fit(self, points: np.ndarray) -> Optional[PlaneEstimate]:
        cfg = self.config
        if cfg.method == "ransac":
            return fit_plane_ransac(
                points,
                max_distance=cfg.max_distance_from_plane,
                desired_probability=cfg.desired_probability,
                max_iterations=cfg.max_iterations,
                min_points=cfg.min_points,
                rng=self._rng,
            )
        return fit_plane_least_squares(points, cfg.min_points)
