import numpy as np
import pytest

from marker_pipeline.mp_types import Detection, Pose

FX = FY = 600.0
CX, CY = 320.0, 240.0
WIDTH, HEIGHT = 640, 480


class FakeDetector:
    """Returns the same detections for every frame."""

    def __init__(self, detections=None):
        self.detections = list(detections or [])
        self.calls = 0

    def detect(self, frame):
        self.calls += 1
        return list(self.detections)


class FakePoseTracker:
    """Stands in for MarkerPoseTracker with a fixed answer."""

    def __init__(self, pose=None):
        self.pose = pose
        self.calls = []

    def estimate_pose(self, det, K, dist, marker_length_m):
        self.calls.append((det.marker_id, marker_length_m))
        return self.pose


@pytest.fixture
def camera_matrix():
    return np.array([[FX, 0.0, CX], [0.0, FY, CY], [0.0, 0.0, 1.0]])


@pytest.fixture
def frontal_cloud():
    """Organized (H, W, 3) cloud of a wall facing the camera at 500 mm."""

    def _make(depth=500.0, width=WIDTH, height=HEIGHT):
        u, v = np.meshgrid(np.arange(width, dtype=np.float64), np.arange(height, dtype=np.float64))
        z = np.full_like(u, depth)
        x = (u - CX) * z / FX
        y = (v - CY) * z / FY
        return np.stack([x, y, z], axis=-1)

    return _make


@pytest.fixture
def square_detection():
    """Marker 7 as an axis-aligned 41x41 px square centred on the principal point."""
    corners = np.array([[300.0, 220.0], [340.0, 220.0], [340.0, 260.0], [300.0, 260.0]])
    return Detection(7, corners)


@pytest.fixture
def facing_pose():
    """Marker facing the camera (rotation of pi about x), 450 mm away."""
    return Pose(np.array([[np.pi], [0.0], [0.0]]), np.array([[0.01], [0.02], [0.45]]))
