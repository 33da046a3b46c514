from __future__ import annotations

import time
from typing import Optional

import cv2
import numpy as np

from marker_pipeline.mp_types import Detection, Frame, ToolStatus, ToolUpdate
from marker_pipeline.services.calib import load_calib
from marker_pipeline.strategies.detect_aruco import ArucoDetect

from .config import ConfigurationError, TrackerConfig
from .fusion import FusionMethod, FusionNotSupportedError, fuse
from .logging_utils import setup_logger
from .plane import PlaneFitter
from .plane_transform import compute_plane_transform
from .region import extract_region
from .tool import TrackedTool, TrackingMode, tools_from_config
from .transforms import MM_PER_M, is_rigid, rvec_tvec_to_matrix


class OpticalMarkerTracker:
    """
    Per-frame marker tracker fusing optical marker poses with depth plane fits.

    One update() call processes one video frame (and its aligned point cloud
    when the input has depth) and returns one ToolUpdate per tool, except for
    tools whose pose, plane fit or fusion failed in that frame. Not thread-safe;
    run at most one update at a time.
    """

    def __init__(
        self,
        config: TrackerConfig,
        logger=None,
        detector=None,
        plane_fitter: Optional[PlaneFitter] = None,
    ):
        self.config = config
        self.logger = logger or setup_logger(config.device_id, config.log_level)
        self.detector = detector
        self.plane_fitter = plane_fitter
        self.tools: list[TrackedTool] = []
        self.K = None
        self.dist = None
        self.frame_number = 0
        self.connected = False
        self.last_detections: list[Detection] = []
        self._unsupported_reported: set[str] = set()

    def connect(self, camera_matrix=None, dist_coeffs=None) -> None:
        """
        Validate the configuration and set up calibration, detector and tools.

        Intrinsics are read from the configured calibration file unless a
        camera matrix is passed in.

        Raises:
            ConfigurationError: invalid configuration, missing calibration or
                unknown marker dictionary
        """
        self.config.validate()

        if camera_matrix is None:
            calib_path = self.config.camera_calibration_file
            self.logger.info("Use camera calibration file located at: %s", calib_path)
            try:
                self.K, self.dist, _ = load_calib(calib_path)
            except (FileNotFoundError, ValueError, cv2.error) as e:
                raise ConfigurationError(f"Unable to load camera calibration: {e}") from e
        else:
            self.K = np.asarray(camera_matrix, dtype=np.float64)
            self.dist = np.zeros(5) if dist_coeffs is None else np.asarray(dist_coeffs, dtype=np.float64)

        if self.detector is None:
            try:
                self.detector = ArucoDetect(self.config.marker_dictionary)
            except ValueError as e:
                raise ConfigurationError(str(e)) from e
        if self.plane_fitter is None:
            self.plane_fitter = PlaneFitter(self.config.plane_fit)

        self.tools = tools_from_config(
            self.config.tools,
            self.config.tool_reference_frame,
            self.config.pose,
            logger=self.logger,
        )
        for tool in self.tools:
            if tool.tracking_mode is TrackingMode.MARKER_MAP:
                self.logger.warning(
                    "Tool %s uses marker map %s; marker map tracking is not supported, "
                    "the tool will be reported out of view",
                    tool.source_id, tool.marker_map_file,
                )
        self.logger.info(
            "connected: input=%s tools=%s",
            self.config.input_type, [t.source_id for t in self.tools],
        )
        self.frame_number = 0
        self._unsupported_reported.clear()
        self.connected = True

    def disconnect(self) -> None:
        self.connected = False

    def update(self, frame: Optional[Frame]) -> list[ToolUpdate]:
        """
        Track all tools in one frame.

        Returns an empty list without advancing the frame number when the
        frame's video, or its point cloud for RGB_AND_DEPTH input, is not
        available yet.
        """
        if not self.connected:
            raise RuntimeError("tracker is not connected")
        if frame is None or frame.image is None:
            self.logger.debug("not tracking, video data is not available yet")
            return []
        if self.config.has_depth and frame.point_cloud is None:
            self.logger.debug("not tracking, depth data is not available yet")
            return []

        detections = self.detector.detect(frame)
        self.last_detections = detections
        timestamp = time.time()

        by_id: dict[int, Detection] = {}
        for det in detections:
            by_id.setdefault(det.marker_id, det)

        updates: list[ToolUpdate] = []
        for tool in self.tools:
            det = None
            if tool.tracking_mode is TrackingMode.SINGLE_MARKER:
                det = by_id.get(tool.marker_id)
            if det is None:
                updates.append(
                    ToolUpdate(tool.source_id, np.eye(4), ToolStatus.OUT_OF_VIEW, self.frame_number, timestamp)
                )
                continue

            transform = self._track_tool(tool, det, frame)
            if transform is not None:
                updates.append(
                    ToolUpdate(tool.source_id, transform, ToolStatus.OK, self.frame_number, timestamp)
                )

        self.logger.debug(
            "frame=%d dets=%d updates=%d", self.frame_number, len(detections), len(updates)
        )
        self.frame_number += 1
        return updates

    def _track_tool(self, tool: TrackedTool, det: Detection, frame: Frame) -> Optional[np.ndarray]:
        pose = tool.pose_tracker.estimate_pose(det, self.K, self.dist, tool.marker_size_m)
        if pose is None:
            self.logger.error(
                "Pose estimation failed. Tool %s with marker %d, frame %d.",
                tool.source_id, det.marker_id, self.frame_number,
            )
            return None
        tool.rgb_marker_to_camera = rvec_tvec_to_matrix(pose.rvec, pose.tvec, scale=MM_PER_M)

        depth = None
        if self.config.has_depth and tool.needs_depth:
            depth = self._depth_transform(tool, det, frame.point_cloud)
            if depth is None:
                return None
            tool.depth_marker_to_camera = depth

        try:
            fused = fuse(tool.fusion_method, tool.rgb_marker_to_camera, depth)
        except FusionNotSupportedError as e:
            if tool.source_id not in self._unsupported_reported:
                self.logger.warning("%s; no update is reported for tool %s", e, tool.source_id)
                self._unsupported_reported.add(tool.source_id)
            return None

        if tool.fusion_method is FusionMethod.COMPONENT:
            tool.previous_marker_to_camera = fused
        return fused

    def _depth_transform(self, tool: TrackedTool, det: Detection, point_cloud) -> Optional[np.ndarray]:
        cfg = self.config
        samples = extract_region(point_cloud, det.corners, cfg.frame_width, cfg.depth_range_mm)
        plane = self.plane_fitter.fit(samples)
        if plane is None:
            self.logger.warning(
                "Unable to fit plane for tool %s (%d region samples), frame %d",
                tool.source_id, len(samples), self.frame_number,
            )
            return None

        x_guess = tool.rgb_marker_to_camera[:3, 0]
        T = compute_plane_transform(plane.normal, x_guess, plane.centroid, cfg.stable_angle_deg)
        if not is_rigid(T):
            self.logger.warning("Degenerate plane frame for tool %s, frame %d", tool.source_id, self.frame_number)
            return None
        return T
