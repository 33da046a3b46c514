import cv2, numpy as np
from pathlib import Path
from typing import Tuple

def load_calib(path: str) -> Tuple[np.ndarray, np.ndarray, tuple[int,int]]:
    if not Path(path).exists():
        raise FileNotFoundError(f"Calibration file not found: {path}")
    fs = cv2.FileStorage(str(path), cv2.FILE_STORAGE_READ)
    K = fs.getNode("camera_matrix").mat()
    # OpenCV samples write dist_coeffs, ArUco calibration writes distortion_coefficients
    dist = fs.getNode("dist_coeffs").mat()
    if dist is None:
        dist = fs.getNode("distortion_coefficients").mat()
    w = int(fs.getNode("image_width").real()); h = int(fs.getNode("image_height").real())
    fs.release()
    if K is None:
        raise ValueError(f"camera_matrix missing from calibration file: {path}")
    if dist is None:
        dist = np.zeros((5, 1))
    return K, dist, (w, h)
