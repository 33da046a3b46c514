"""Image-space orientation of a detected marker quadrilateral."""

from __future__ import annotations

import logging
from enum import Enum

import numpy as np

logger = logging.getLogger(__name__)


class MarkerOrientation(str, Enum):
    """How the marker's quadrilateral sits in the image, named by where its
    bottommost corner lands once the topmost corner is put first."""

    SKEW_LEFT = "skew_left"    # bottom is the next corner after the top
    ROTATED = "rotated"        # bottom is opposite the top
    SKEW_RIGHT = "skew_right"  # bottom is the corner before the top


def classify_corners(corners) -> tuple[MarkerOrientation, np.ndarray]:
    """
    Reorder corners so index 0 is the topmost corner and classify the marker.

    The reordering is a cyclic rotation, so the relative corner order is kept.
    Ties on the row resolve to the corner met first in index order.

    Args:
        corners: 4 pixel corners, (4,2) array-like of (x, y)

    Returns:
        (orientation, ordered) where ordered is a (4,2) float64 array
    """
    pts = np.asarray(corners, dtype=np.float64).reshape(4, 2)

    top = 0
    for i in range(1, 4):
        if pts[i, 1] < pts[top, 1]:
            top = i
    ordered = np.roll(pts, -top, axis=0)

    bottom = 0
    for i in range(1, 4):
        if ordered[i, 1] > ordered[bottom, 1]:
            bottom = i

    if bottom == 1:
        orientation = MarkerOrientation.SKEW_LEFT
    elif bottom == 2:
        orientation = MarkerOrientation.ROTATED
    else:
        orientation = MarkerOrientation.SKEW_RIGHT
    logger.debug("marker orientation %s (top corner was %d)", orientation.value, top)
    return orientation, ordered
