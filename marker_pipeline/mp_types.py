from dataclasses import dataclass
from enum import Enum
from typing import Any

import numpy as np

@dataclass
class Frame:
    idx: int
    ts_iso: str
    image: Any  # numpy array, None when video is not yet available
    point_cloud: Any | None = None  # (N,3) or (H,W,3) ndarray aligned to image

@dataclass
class Detection:
    marker_id: int
    corners: Any  # (4,2) ndarray, pixel coordinates

@dataclass
class Pose:
    rvec: Any
    tvec: Any  # meters
    reprojection_error: float = 0.0

class ToolStatus(str, Enum):
    OK = "OK"
    OUT_OF_VIEW = "OUT_OF_VIEW"

@dataclass
class ToolUpdate:
    source_id: str
    transform: np.ndarray  # 4x4, translation in mm
    status: ToolStatus
    frame_number: int
    timestamp: float
