from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

import numpy as np

from marker_pipeline.strategies.pose_tracker import MarkerPoseTracker

from .config import PoseConfig, ToolConfig
from .fusion import FusionMethod
from .transforms import MM_PER_M


class TrackingMode(str, Enum):
    SINGLE_MARKER = "SINGLE_MARKER"
    MARKER_MAP = "MARKER_MAP"  # configurable, not tracked yet


@dataclass
class TrackedTool:
    tool_id: str
    source_id: str
    fusion_method: FusionMethod
    tracking_mode: TrackingMode = TrackingMode.SINGLE_MARKER
    marker_id: Optional[int] = None
    marker_size_mm: Optional[float] = None
    marker_map_file: Optional[str] = None
    pose_tracker: MarkerPoseTracker = field(default_factory=MarkerPoseTracker)
    rgb_marker_to_camera: np.ndarray = field(default_factory=lambda: np.eye(4))
    depth_marker_to_camera: np.ndarray = field(default_factory=lambda: np.eye(4))
    # last fused result, only written by COMPONENT and KALMAN fusion
    previous_marker_to_camera: np.ndarray = field(default_factory=lambda: np.eye(4))

    @property
    def marker_size_m(self) -> float:
        return (self.marker_size_mm or 0.0) / MM_PER_M

    @property
    def needs_depth(self) -> bool:
        return self.fusion_method.requires_depth


def transform_name(tool_id: str, reference_frame: str) -> str:
    """Source id of a tool's transform, e.g. StylusToTracker."""
    return f"{tool_id}To{reference_frame}"


def tool_from_config(
    cfg: ToolConfig,
    reference_frame: str,
    pose_cfg: Optional[PoseConfig] = None,
) -> TrackedTool:
    """
    Raises:
        ValueError: the tool has no id, or neither a marker id and size nor a marker map
    """
    if not cfg.id:
        raise ValueError("tool id is missing")
    pose_cfg = pose_cfg or PoseConfig()
    method = FusionMethod.parse(cfg.data_fusion_method)
    source_id = transform_name(cfg.id, reference_frame)

    if cfg.marker_id is not None and cfg.marker_size_mm is not None:
        return TrackedTool(
            tool_id=cfg.id,
            source_id=source_id,
            fusion_method=method,
            tracking_mode=TrackingMode.SINGLE_MARKER,
            marker_id=int(cfg.marker_id),
            marker_size_mm=float(cfg.marker_size_mm),
            pose_tracker=MarkerPoseTracker(
                min_error_ratio=pose_cfg.min_error_ratio,
                max_reprojection_error_px=pose_cfg.max_reprojection_error_px,
            ),
        )
    if cfg.marker_map_file:
        return TrackedTool(
            tool_id=cfg.id,
            source_id=source_id,
            fusion_method=method,
            tracking_mode=TrackingMode.MARKER_MAP,
            marker_map_file=cfg.marker_map_file,
        )
    raise ValueError(f"tool '{cfg.id}' needs marker_id and marker_size_mm, or marker_map_file")


def tools_from_config(
    tool_cfgs: list[ToolConfig],
    reference_frame: str,
    pose_cfg: Optional[PoseConfig] = None,
    logger: Optional[logging.Logger] = None,
) -> list[TrackedTool]:
    """Build all well-formed tools; malformed entries are logged and skipped."""
    logger = logger or logging.getLogger(__name__)
    tools = []
    for cfg in tool_cfgs:
        try:
            tools.append(tool_from_config(cfg, reference_frame, pose_cfg))
        except ValueError as e:
            logger.error("Failed to initialize tracked tool: %s", e)
    return tools
