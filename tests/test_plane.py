import numpy as np
import pytest

from optical_tracker.config import PlaneFitConfig
from optical_tracker.plane import PlaneFitter, fit_plane_least_squares, fit_plane_ransac


def _tilted_plane(n=200, seed=0):
    """Points on z = 0.2 x - 0.1 y + 400."""
    rng = np.random.default_rng(seed)
    xy = rng.uniform(-40.0, 40.0, size=(n, 2))
    z = 0.2 * xy[:, 0] - 0.1 * xy[:, 1] + 400.0
    return np.column_stack([xy, z])


def _expected_normal():
    n = np.array([0.2, -0.1, -1.0])
    return n / np.linalg.norm(n)


def test_least_squares_recovers_plane():
    pts = _tilted_plane()
    plane = fit_plane_least_squares(pts)

    assert plane is not None
    assert abs(np.dot(plane.normal, _expected_normal())) == pytest.approx(1.0, abs=1e-9)
    assert np.allclose(plane.centroid, pts.mean(axis=0))
    assert plane.num_points == len(pts)
    assert plane.rmse == pytest.approx(0.0, abs=1e-9)
    assert np.linalg.norm(plane.normal) == pytest.approx(1.0)


@pytest.mark.parametrize(
    "points",
    [
        np.empty((0, 3)),
        np.array([[0.0, 0.0, 500.0], [1.0, 0.0, 500.0]]),
        np.array([[0.0, 0.0, 500.0], [1.0, 1.0, 501.0], [2.0, 2.0, 502.0], [3.0, 3.0, 503.0]]),
        np.array([[0.0, 0.0, 500.0], [1.0, 0.0, 500.0], [0.0, 1.0, np.nan]]),
    ],
    ids=["empty", "two-points", "collinear", "non-finite"],
)
def test_least_squares_degenerate_input_returns_none(points):
    assert fit_plane_least_squares(points) is None


def test_min_points_is_respected():
    pts = _tilted_plane(n=10)
    assert fit_plane_least_squares(pts, min_points=20) is None
    assert fit_plane_least_squares(pts, min_points=10) is not None


def test_ransac_ignores_outliers():
    rng = np.random.default_rng(1)
    xy = rng.uniform(-50.0, 50.0, size=(400, 2))
    inliers = np.column_stack([xy, np.full(400, 500.0)])
    outliers = np.column_stack(
        [rng.uniform(-50.0, 50.0, size=(40, 2)), rng.uniform(520.0, 600.0, size=40)]
    )
    pts = np.vstack([inliers, outliers])

    plane = fit_plane_ransac(pts, max_distance=0.5, rng=np.random.default_rng(7))
    naive = fit_plane_least_squares(pts)

    assert plane is not None
    assert plane.num_points == 400
    assert abs(plane.normal[2]) == pytest.approx(1.0, abs=1e-9)
    assert plane.centroid[2] == pytest.approx(500.0)
    assert naive.centroid[2] > 501.0


def test_ransac_too_few_points():
    assert fit_plane_ransac(np.zeros((2, 3))) is None


def test_plane_fitter_dispatches_on_method():
    pts = _tilted_plane()
    ls = PlaneFitter(PlaneFitConfig(method="least_squares")).fit(pts)
    rs = PlaneFitter(PlaneFitConfig(method="ransac", seed=3)).fit(pts)

    assert ls is not None and rs is not None
    assert abs(np.dot(ls.normal, rs.normal)) == pytest.approx(1.0, abs=1e-9)


def test_plane_fitter_seed_makes_ransac_repeatable():
    pts = _tilted_plane()
    pts[::10, 2] += 30.0
    a = PlaneFitter(PlaneFitConfig(method="ransac", seed=11)).fit(pts)
    b = PlaneFitter(PlaneFitConfig(method="ransac", seed=11)).fit(pts)
    assert np.array_equal(a.normal, b.normal)
    assert a.num_points == b.num_points


def test_plane_fitter_unknown_method():
    with pytest.raises(ValueError):
        PlaneFitter(PlaneFitConfig(method="hough"))
