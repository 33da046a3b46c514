import cv2, numpy as np
from ..mp_types import Detection, Pose


def marker_object_points(marker_length_m: float) -> np.ndarray:
    """Marker corners in the marker frame, in the order the detector reports them."""
    h = marker_length_m / 2.0
    return np.array(
        [[-h, h, 0.0], [h, h, 0.0], [h, -h, 0.0], [-h, -h, 0.0]],
        dtype=np.float64,
    )


def reprojection_error(obj, img, rvec, tvec, K, dist) -> float:
    proj, _ = cv2.projectPoints(obj, rvec, tvec, K, dist)
    diff = proj.reshape(-1, 2) - img.reshape(-1, 2)
    return float(np.sqrt(np.mean(np.sum(diff * diff, axis=1))))


class MarkerPoseTracker:
    """
    Pose estimator for one marker id that keeps the last accepted estimate.

    The first estimate uses IPPE and is only accepted when the planar
    ambiguity is resolved, i.e. the second-best solution reprojects at least
    `min_error_ratio` times worse than the best one. Once a pose is known,
    later frames are refined iteratively from it.
    """

    def __init__(self, min_error_ratio: float = 4.0, max_reprojection_error_px: float = 5.0):
        self.min_error_ratio = min_error_ratio
        self.max_reprojection_error_px = max_reprojection_error_px
        self.rvec = None
        self.tvec = None

    @property
    def valid(self) -> bool:
        return self.rvec is not None

    def reset(self) -> None:
        self.rvec = None
        self.tvec = None

    def estimate_pose(self, det: Detection, K, dist, marker_length_m: float) -> Pose | None:
        if marker_length_m <= 0:
            return None
        dist = np.zeros(5) if dist is None else dist
        obj = marker_object_points(marker_length_m)
        img = np.asarray(det.corners, dtype=np.float64).reshape(4, 2)

        if self.valid:
            pose = self._refine(obj, img, K, dist)
            if pose is not None:
                return pose
            self.reset()
        return self._initial(obj, img, K, dist)

    def _initial(self, obj, img, K, dist) -> Pose | None:
        try:
            n, rvecs, tvecs, errs = cv2.solvePnPGeneric(
                obj, img, K, dist, flags=cv2.SOLVEPNP_IPPE_SQUARE
            )
        except cv2.error:
            return None
        if not n:
            return None
        errs = np.asarray(errs, dtype=np.float64).reshape(-1)
        order = np.argsort(errs)
        best = int(order[0])
        if len(order) > 1:
            second = int(order[1])
            if errs[second] < self.min_error_ratio * max(errs[best], 1e-12):
                return None  # ambiguous flip
        if errs[best] > self.max_reprojection_error_px:
            return None
        self.rvec = np.asarray(rvecs[best], dtype=np.float64).reshape(3, 1)
        self.tvec = np.asarray(tvecs[best], dtype=np.float64).reshape(3, 1)
        return Pose(self.rvec.copy(), self.tvec.copy(), float(errs[best]))

    def _refine(self, obj, img, K, dist) -> Pose | None:
        try:
            ok, rvec, tvec = cv2.solvePnP(
                obj, img, K, dist,
                rvec=self.rvec.copy(), tvec=self.tvec.copy(),
                useExtrinsicGuess=True, flags=cv2.SOLVEPNP_ITERATIVE,
            )
        except cv2.error:
            return None
        if not ok:
            return None
        err = reprojection_error(obj, img, rvec, tvec, K, dist)
        if err > self.max_reprojection_error_px:
            return None
        self.rvec = rvec.reshape(3, 1)
        self.tvec = tvec.reshape(3, 1)
        return Pose(self.rvec.copy(), self.tvec.copy(), err)
