"""Combination of optical and depth marker poses."""

from __future__ import annotations

from enum import Enum

import numpy as np


class FusionMethod(str, Enum):
    RGB_ONLY = "RGB_ONLY"
    DEPTH_ONLY = "DEPTH_ONLY"
    COMPONENT = "COMPONENT"
    KALMAN = "KALMAN"

    @property
    def requires_depth(self) -> bool:
        return self is not FusionMethod.RGB_ONLY

    @classmethod
    def parse(cls, value) -> "FusionMethod":
        if isinstance(value, cls):
            return value
        key = str(value).strip().upper()
        if key == "COMPONENTS":
            key = "COMPONENT"
        try:
            return cls(key)
        except ValueError:
            raise ValueError(
                f"Unknown data fusion method {value!r}; "
                f"expected one of {[m.value for m in cls]}"
            ) from None


class FusionNotSupportedError(NotImplementedError):
    """Raised for fusion methods that can be configured but are not implemented."""


def fuse_component(rgb: np.ndarray, depth: np.ndarray) -> np.ndarray:
    """
    Rotation and in-plane (x, y) position from the optical pose, range (z)
    from the depth pose.
    """
    fused = np.eye(4)
    fused[:3, :3] = rgb[:3, :3]
    fused[0, 3] = rgb[0, 3]
    fused[1, 3] = rgb[1, 3]
    fused[2, 3] = depth[2, 3]
    return fused


def fuse(method: FusionMethod, rgb: np.ndarray, depth: np.ndarray | None) -> np.ndarray:
    """
    Marker-to-camera transform reported for a tool under the given method.

    Raises:
        ValueError: the method needs a depth transform and none was given
        FusionNotSupportedError: KALMAN
    """
    if method is FusionMethod.RGB_ONLY:
        return np.array(rgb, dtype=np.float64)
    if depth is None:
        raise ValueError(f"{method.value} fusion requires a depth transform")
    if method is FusionMethod.DEPTH_ONLY:
        return np.array(depth, dtype=np.float64)
    if method is FusionMethod.COMPONENT:
        return fuse_component(rgb, depth)
    raise FusionNotSupportedError(f"{method.value} fusion is not implemented")
