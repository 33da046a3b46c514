import csv
import json
from pathlib import Path
from unittest.mock import MagicMock, patch

import cv2
import numpy as np
import pytest

from marker_pipeline.mp_types import ToolStatus, ToolUpdate
from marker_pipeline.services.calib import load_calib
from marker_pipeline.services.csv_writer import CsvWriter
from marker_pipeline.services.storage import SessionStorage


def test_session_storage_creates_dirs_and_manifest(tmp_path):
    """SessionStorage should create directories, save annotated frames, and emit config."""
    storage = SessionStorage(tmp_path, name="demo")
    session_dir = Path(storage.begin())
    assert session_dir.name.startswith("demo_")
    assert (session_dir / "annotated").exists()
    assert (session_dir / "logs").exists()
    assert storage.log_path == session_dir / "logs" / "session.log"

    path = storage.save_annotated(4, np.zeros((8, 8, 3), dtype=np.uint8))
    assert path.endswith("f000004_tools.jpg")
    assert Path(path).exists()
    assert storage.last_path == path

    storage.write_manifest({"device_id": "demo"})
    manifest = json.loads((session_dir / "config.json").read_text())
    assert manifest["device_id"] == "demo"


def test_csv_writer_writes_flattened_transforms(tmp_path):
    """Each row carries the 3x4 block of the transform, row-major."""
    csv_path = tmp_path / "transforms.csv"
    T = np.arange(16, dtype=np.float64).reshape(4, 4)
    writer = CsvWriter(str(csv_path))
    writer.open()
    writer.append(ToolUpdate("StylusToTracker", T, ToolStatus.OK, 3, 1.5))
    writer.append(ToolUpdate("ProbeToTracker", np.eye(4), ToolStatus.OUT_OF_VIEW, 3, 1.5))
    writer.close()

    with csv_path.open(newline="") as fp:
        rows = list(csv.reader(fp))

    assert rows[0] == CsvWriter.HEADER
    assert rows[1][:4] == ["1.500000", "3", "StylusToTracker", "OK"]
    assert [float(v) for v in rows[1][4:]] == list(range(12))
    assert rows[2][3] == "OUT_OF_VIEW"
    assert rows[2][7] == "0.0"  # tx of identity


def test_csv_line_matches_written_row():
    update = ToolUpdate("StylusToTracker", np.eye(4), ToolStatus.OK, 7, 2.0)
    line = CsvWriter.to_csv_line(update)
    assert line.startswith("2.000000,7,StylusToTracker,OK,1.0,0.0,0.0,0.0")
    assert len(line.split(",")) == len(CsvWriter.HEADER)


def test_load_calib_reads_expected_nodes(tmp_path):
    """load_calib must pull the expected nodes from cv2.FileStorage."""
    calib = tmp_path / "calib.yml"
    calib.write_text("%YAML:1.0\n")
    fs = MagicMock()
    matrix_node = MagicMock()
    matrix_node.mat.return_value = "K"
    dist_node = MagicMock()
    dist_node.mat.return_value = "D"
    width_node = MagicMock()
    width_node.real.return_value = 1280
    height_node = MagicMock()
    height_node.real.return_value = 720

    fs.getNode.side_effect = [matrix_node, dist_node, width_node, height_node]

    with patch("marker_pipeline.services.calib.cv2.FileStorage", return_value=fs):
        K, dist, size = load_calib(str(calib))

    assert K == "K"
    assert dist == "D"
    assert size == (1280, 720)
    fs.release.assert_called_once()


def test_load_calib_reads_aruco_calibration_names(tmp_path):
    """ArUco calibration files store distortion under distortion_coefficients."""
    path = tmp_path / "camera.yml"
    K = np.array([[600.0, 0.0, 320.0], [0.0, 600.0, 240.0], [0.0, 0.0, 1.0]])
    D = np.array([[0.1], [-0.05], [0.0], [0.0], [0.01]])
    fs = cv2.FileStorage(str(path), cv2.FILE_STORAGE_WRITE)
    fs.write("image_width", 640)
    fs.write("image_height", 480)
    fs.write("camera_matrix", K)
    fs.write("distortion_coefficients", D)
    fs.release()

    K_read, D_read, size = load_calib(str(path))

    assert np.allclose(K_read, K)
    assert np.allclose(D_read, D)
    assert size == (640, 480)


def test_load_calib_defaults_distortion_to_zero(tmp_path):
    path = tmp_path / "camera.yml"
    fs = cv2.FileStorage(str(path), cv2.FILE_STORAGE_WRITE)
    fs.write("camera_matrix", np.eye(3))
    fs.release()

    _, dist, _ = load_calib(str(path))

    assert dist.shape == (5, 1)
    assert not dist.any()


def test_load_calib_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_calib(str(tmp_path / "missing.yml"))


def test_load_calib_without_camera_matrix(tmp_path):
    path = tmp_path / "camera.yml"
    fs = cv2.FileStorage(str(path), cv2.FILE_STORAGE_WRITE)
    fs.write("image_width", 640)
    fs.release()

    with pytest.raises(ValueError, match="camera_matrix"):
        load_calib(str(path))
