"""SE(3) and small vector utilities for marker pose handling."""

import numpy as np
import cv2
from typing import Tuple

MM_PER_M = 1000.0


def build_transform(rotation: np.ndarray, translation: np.ndarray) -> np.ndarray:
    """
    Assemble a 4x4 homogeneous transformation matrix.

    Args:
        rotation: 3x3 rotation matrix
        translation: Translation vector (3,) or (3,1)

    Returns:
        4x4 homogeneous transformation matrix
    """
    T = np.eye(4)
    T[:3, :3] = np.asarray(rotation, dtype=np.float64).reshape(3, 3)
    T[:3, 3] = np.asarray(translation, dtype=np.float64).reshape(3)
    return T


def rvec_tvec_to_matrix(rvec: np.ndarray, tvec: np.ndarray, scale: float = 1.0) -> np.ndarray:
    """
    Convert rotation vector and translation vector to 4x4 transformation matrix.

    Args:
        rvec: Rotation vector (3,) or (3,1)
        tvec: Translation vector (3,) or (3,1)
        scale: Factor applied to the translation (MM_PER_M turns meters into mm)

    Returns:
        4x4 homogeneous transformation matrix
    """
    rvec = np.array(rvec, dtype=np.float64).reshape(3)
    tvec = np.array(tvec, dtype=np.float64).reshape(3)

    R, _ = cv2.Rodrigues(rvec)

    return build_transform(R, scale * tvec)


def matrix_to_rvec_tvec(T: np.ndarray, scale: float = 1.0) -> Tuple[np.ndarray, np.ndarray]:
    """
    Convert 4x4 transformation matrix to rotation vector and translation vector.

    Args:
        T: 4x4 homogeneous transformation matrix
        scale: Factor applied to the translation (1 / MM_PER_M turns mm into meters)

    Returns:
        (rvec, tvec) where rvec is (3,1) and tvec is (3,1)
    """
    R = np.ascontiguousarray(T[:3, :3], dtype=np.float64)
    tvec = scale * T[:3, 3].reshape(3, 1)

    rvec, _ = cv2.Rodrigues(R)

    return rvec, tvec


def vector_angle_deg(a: np.ndarray, b: np.ndarray) -> float:
    """Angle between two unit vectors in degrees."""
    dot = float(np.dot(np.asarray(a, dtype=np.float64), np.asarray(b, dtype=np.float64)))
    return abs(float(np.degrees(np.arccos(np.clip(dot, -1.0, 1.0)))))


def determine_slope(corner1, corner2) -> float:
    """
    Inverse slope dx/dy of the segment between two pixel corners, i.e. the m
    in x = m*y + b. Corners on the same row give 0.0.
    """
    if corner1[1] == corner2[1]:
        return 0.0
    return float(corner1[0] - corner2[0]) / float(corner1[1] - corner2[1])


def is_rigid(T: np.ndarray, atol: float = 1e-6) -> bool:
    """True if T is a finite 4x4 transform with a proper orthonormal rotation block."""
    T = np.asarray(T)
    if T.shape != (4, 4) or not np.all(np.isfinite(T)):
        return False
    if not np.allclose(T[3, :], [0, 0, 0, 1], atol=atol):
        return False
    R = T[:3, :3]
    return bool(
        np.allclose(R @ R.T, np.eye(3), atol=atol)
        and np.isclose(np.linalg.det(R), 1.0, atol=atol)
    )
