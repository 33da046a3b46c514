"""Rasterize a marker quadrilateral against an aligned point cloud.

The marker interior is described per image row by a left and a right column
bound. Each bound is a piecewise-linear path along the marker corners; which
corners make up each path depends on the marker's orientation class.
"""

from __future__ import annotations

from typing import Callable, Sequence

import numpy as np

from .orientation import MarkerOrientation, classify_corners
from .transforms import determine_slope

DEFAULT_FRAME_WIDTH = 640
DEFAULT_DEPTH_RANGE = (50.0, 2000.0)

# (top row, bottom row, left path, right path)
RegionPaths = tuple[int, int, list, list]


def _rotated_paths(c: np.ndarray) -> RegionPaths:
    top, right, bottom, left = c
    return int(top[1]), int(bottom[1]), [top, left, bottom], [top, right, bottom]


def _skew_left_paths(c: np.ndarray) -> RegionPaths:
    top, bottom, lower_left, upper_left = c
    return (
        int(top[1]),
        int(bottom[1]),
        [top, upper_left, lower_left, bottom],
        [top, bottom],
    )


def _skew_right_paths(c: np.ndarray) -> RegionPaths:
    top, upper_right, lower_right, bottom = c
    return (
        int(top[1]),
        int(bottom[1]),
        [top, bottom],
        [top, upper_right, lower_right, bottom],
    )


_PATH_BUILDERS: dict[MarkerOrientation, Callable[[np.ndarray], RegionPaths]] = {
    MarkerOrientation.ROTATED: _rotated_paths,
    MarkerOrientation.SKEW_LEFT: _skew_left_paths,
    MarkerOrientation.SKEW_RIGHT: _skew_right_paths,
}


def generate_boundary(path: Sequence, top: int, height: int) -> np.ndarray:
    """
    Column bound for each row in [top, top + height) along a corner path.

    Every segment writes the rows it spans, so a row shared by two segments
    takes the value of the later one. Rows no segment reaches stay NaN.
    """
    bound = np.full(height, np.nan)
    for start, end in zip(path[:-1], path[1:]):
        m = determine_slope(start, end)
        x1, y1 = int(start[0]), int(start[1])
        y2 = int(end[1])
        rows = np.arange(min(y1, y2), max(y1, y2) + 1)
        idx = rows - top
        keep = (idx >= 0) & (idx < height)
        bound[idx[keep]] = np.trunc(m * (rows[keep] - y1) + x1)
    return bound


def region_bounds(corners) -> tuple[int, np.ndarray, np.ndarray]:
    """
    Left and right column bounds of the marker interior.

    Returns:
        (top, left, right); left[i] and right[i] bound row top + i
    """
    orientation, ordered = classify_corners(corners)
    top, bottom, left_path, right_path = _PATH_BUILDERS[orientation](ordered)
    height = max(bottom - top + 1, 0)
    return (
        top,
        generate_boundary(left_path, top, height),
        generate_boundary(right_path, top, height),
    )


def _as_points(point_cloud, frame_width: int) -> tuple[np.ndarray, int]:
    pts = np.asarray(point_cloud, dtype=np.float64)
    if pts.ndim == 3:
        # organized (H, W, 3) cloud carries its own width
        frame_width = pts.shape[1]
    return pts.reshape(-1, 3), int(frame_width)


def depth_filter(samples: np.ndarray, depth_range=DEFAULT_DEPTH_RANGE) -> np.ndarray:
    """Keep samples whose z lies strictly inside depth_range; NaN is rejected."""
    near, far = depth_range
    z = samples[:, 2]
    return samples[(z > near) & (z < far)]


def copy_region(
    point_cloud,
    top: int,
    left: np.ndarray,
    right: np.ndarray,
    frame_width: int = DEFAULT_FRAME_WIDTH,
    depth_range=DEFAULT_DEPTH_RANGE,
) -> np.ndarray:
    """Gather the cloud points between the bounds, row-major by frame width."""
    points, width = _as_points(point_cloud, frame_width)
    n_rows = len(points) // width if width > 0 else 0

    rows, cols = [], []
    for i, (lo, hi) in enumerate(zip(left, right)):
        y = top + i
        if np.isnan(lo) or np.isnan(hi) or y < 0 or y >= n_rows:
            continue
        lo, hi = max(int(lo), 0), min(int(hi), width - 1)
        if lo > hi:
            continue
        cols.append(np.arange(lo, hi + 1))
        rows.append(np.full(hi - lo + 1, y))

    if not rows:
        return np.empty((0, 3))
    idx = np.concatenate(rows) * width + np.concatenate(cols)
    return depth_filter(points[idx], depth_range)


def extract_region(
    point_cloud,
    corners,
    frame_width: int = DEFAULT_FRAME_WIDTH,
    depth_range=DEFAULT_DEPTH_RANGE,
) -> np.ndarray:
    """
    Collect the 3D points that lie on the marker's face.

    Args:
        point_cloud: (H*W, 3) or (H, W, 3) points aligned to the image
        corners: 4 pixel corners of the marker, any cyclic order
        frame_width: row length used to index a flat cloud
        depth_range: exclusive (near, far) band on z

    Returns:
        (N, 3) float64 array of region samples, possibly empty
    """
    top, left, right = region_bounds(corners)
    return copy_region(point_cloud, top, left, right, frame_width, depth_range)
