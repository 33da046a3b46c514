import cv2
import numpy as np
from ..mp_types import Frame, Detection

# "4x4_50" style short names for the square ArUco families
_SHORT_NAMES = {
    f"{bits}x{bits}_{count}": f"DICT_{bits}X{bits}_{count}"
    for bits in (4, 5, 6, 7)
    for count in (50, 100, 250, 1000)
}


def _dict_code(name: str) -> int:
    raw = (name or "").strip()
    if not raw:
        raise ValueError("Unknown marker dictionary: ''")
    if raw.lower() in _SHORT_NAMES:
        return getattr(cv2.aruco, _SHORT_NAMES[raw.lower()])

    stem = raw[5:] if raw.upper().startswith("DICT_") else raw
    # cv2 keeps the family suffix lower case: DICT_ARUCO_MIP_36h12, DICT_APRILTAG_36h11
    for candidate in (stem, stem.upper(), stem.upper().replace("H", "h")):
        code = getattr(cv2.aruco, f"DICT_{candidate}", None)
        if code is not None:
            return code
    raise ValueError(f"Unknown marker dictionary: {name!r}")


def get_dict(name: str):
    """
    Marker dictionary by name.

    Accepts short names ("4x4_50"), OpenCV constant names ("DICT_4X4_50") and
    the ArUco library names tracker configs use ("ARUCO_MIP_36h12").
    Raises ValueError for anything else.
    """
    code = _dict_code(name)
    if hasattr(cv2.aruco, "getPredefinedDictionary"):           # OpenCV >= 4.7
        return cv2.aruco.getPredefinedDictionary(code)
    return cv2.aruco.Dictionary_get(code)                        # Older OpenCV


def _make_params():
    if hasattr(cv2.aruco, "DetectorParameters_create"):
        return cv2.aruco.DetectorParameters_create()
    return cv2.aruco.DetectorParameters()


class ArucoDetect:
    """
    Strategy: find markers of one dictionary in a frame.

    Each Detection carries the marker id and its 4 pixel corners as a (4,2)
    float64 array in detector order (top-left, top-right, bottom-right,
    bottom-left in marker coordinates). Poses are estimated per tool later.
    """
    def __init__(self, dict_name: str = "4x4_50"):
        self.dictionary = get_dict(dict_name)
        self.params = _make_params()
        self._detector = None
        if hasattr(cv2.aruco, "ArucoDetector"):
            self._detector = cv2.aruco.ArucoDetector(self.dictionary, self.params)

    def _find(self, image):
        if self._detector is not None:
            return self._detector.detectMarkers(image)
        return cv2.aruco.detectMarkers(image, self.dictionary, parameters=self.params)

    def detect(self, f: Frame) -> list[Detection]:
        corners, ids, _rejected = self._find(f.image)
        if ids is None:
            return []
        return [
            Detection(int(mid), np.asarray(c, dtype=np.float64).reshape(4, 2))
            for mid, c in zip(ids.flatten(), corners)
        ]
