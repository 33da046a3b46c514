"""Marker-to-camera transform from a fitted depth plane."""

from __future__ import annotations

import logging

import numpy as np

from .transforms import build_transform, vector_angle_deg

logger = logging.getLogger(__name__)

DEFAULT_STABLE_ANGLE_DEG = 10.0

# Marker face normal as seen from the camera
Z_EXPECTED = np.array([0.0, 0.0, -1.0])
X_THEORETICAL = np.array([1.0, 0.0, 0.0])
Y_THEORETICAL = np.array([0.0, 1.0, 0.0])


def _unit(v: np.ndarray) -> np.ndarray:
    return v / np.linalg.norm(v)


def _line_angle_deg(a: np.ndarray, b: np.ndarray) -> float:
    # angle between the lines through a and b, 0..90
    angle = vector_angle_deg(a, b)
    return min(angle, 180.0 - angle)


def compute_plane_transform(
    normal,
    x_guess,
    centroid,
    stable_angle_deg: float = DEFAULT_STABLE_ANGLE_DEG,
) -> np.ndarray:
    """
    Build a right-handed marker frame from a plane fit.

    z is the plane normal turned toward the camera, x comes from x_guess
    (normally the optical marker x axis) projected into the plane. When
    x_guess is within stable_angle_deg of the normal line the camera x axis is
    used instead, and when that is too close as well the camera y axis.

    Args:
        normal: plane normal in point-cloud coordinates, any sign
        x_guess: approximate in-plane x axis in transform coordinates
        centroid: plane centroid in point-cloud coordinates

    Returns:
        4x4 marker-to-camera transform
    """
    z_axis = np.array(normal, dtype=np.float64).reshape(3)
    z_axis[1] = -z_axis[1]  # point cloud y axis is flipped
    if np.dot(Z_EXPECTED, z_axis) < 0:
        z_axis = -z_axis

    x_guess = _unit(np.asarray(x_guess, dtype=np.float64).reshape(3))
    z_axis = _unit(z_axis)

    if _line_angle_deg(x_guess, z_axis) > stable_angle_deg:
        logger.debug("plane frame: using optical x axis")
        y_axis = np.cross(z_axis, x_guess)
        x_axis = np.cross(y_axis, z_axis)
    elif _line_angle_deg(X_THEORETICAL, z_axis) > stable_angle_deg:
        logger.debug("plane frame: using camera x axis")
        y_axis = np.cross(z_axis, X_THEORETICAL)
        x_axis = np.cross(y_axis, z_axis)
    else:
        logger.debug("plane frame: using camera y axis")
        x_axis = np.cross(Y_THEORETICAL, z_axis)
        y_axis = np.cross(z_axis, x_axis)

    rotation = np.column_stack([_unit(x_axis), _unit(y_axis), z_axis])
    c = np.asarray(centroid, dtype=np.float64).reshape(3)
    return build_transform(rotation, [c[0], -c[1], c[2]])
