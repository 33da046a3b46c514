import numpy as np
import pytest

from optical_tracker.plane_transform import compute_plane_transform
from optical_tracker.transforms import is_rigid

FACING = np.diag([1.0, -1.0, -1.0])


@pytest.mark.parametrize("normal", [(0.0, 0.0, 1.0), (0.0, 0.0, -1.0)])
def test_frontal_plane_faces_camera_whatever_the_fit_sign(normal):
    T = compute_plane_transform(normal, (1.0, 0.0, 0.0), (10.0, 20.0, 500.0))

    assert np.allclose(T[:3, :3], FACING)
    assert np.allclose(T[:3, 3], [10.0, -20.0, 500.0])
    assert is_rigid(T)


def test_point_cloud_y_is_flipped_before_use():
    normal = np.array([0.0, 0.6, -0.8])
    T = compute_plane_transform(normal, (1.0, 0.0, 0.0), (0.0, 0.0, 400.0))

    assert np.allclose(T[:3, 2], [0.0, -0.6, -0.8])
    assert np.allclose(T[:3, 0], [1.0, 0.0, 0.0])
    assert is_rigid(T)


def test_x_guess_is_projected_into_plane():
    normal = np.array([0.0, 0.0, -1.0])
    T = compute_plane_transform(normal, (1.0, 0.3, 0.2), (0.0, 0.0, 300.0))

    x = T[:3, 0]
    assert x[2] == pytest.approx(0.0, abs=1e-12)
    assert np.allclose(x, np.array([1.0, 0.3, 0.0]) / np.linalg.norm([1.0, 0.3]))
    assert is_rigid(T)


@pytest.mark.parametrize("x_guess", [(0.0, 0.0, 1.0), (0.0, 0.0, -1.0), (0.02, 0.0, 1.0)])
def test_guess_along_normal_falls_back_to_camera_x(x_guess):
    T = compute_plane_transform((0.0, 0.0, 1.0), x_guess, (0.0, 0.0, 500.0))

    assert np.allclose(T[:3, :3], FACING)
    assert is_rigid(T)


def test_normal_along_camera_x_falls_back_to_camera_y():
    T = compute_plane_transform((1.0, 0.0, 0.0), (1.0, 0.0, 0.0), (0.0, 0.0, 0.0))

    assert np.allclose(T[:3, 0], [0.0, 0.0, -1.0])
    assert np.allclose(T[:3, 1], [0.0, 1.0, 0.0])
    assert np.allclose(T[:3, 2], [1.0, 0.0, 0.0])
    assert is_rigid(T)


def test_stable_angle_threshold_is_configurable():
    # 20 degrees from the normal: usable at 10, too close at 30
    a = np.radians(20.0)
    x_guess = (np.sin(a) / np.sqrt(2.0), np.sin(a) / np.sqrt(2.0), -np.cos(a))
    loose = compute_plane_transform((0.0, 0.0, -1.0), x_guess, (0.0, 0.0, 0.0), stable_angle_deg=10.0)
    strict = compute_plane_transform((0.0, 0.0, -1.0), x_guess, (0.0, 0.0, 0.0), stable_angle_deg=30.0)

    assert np.allclose(loose[:3, 0], np.array([1.0, 1.0, 0.0]) / np.sqrt(2.0))
    assert np.allclose(strict[:3, 0], [1.0, 0.0, 0.0])
    assert is_rigid(loose) and is_rigid(strict)
