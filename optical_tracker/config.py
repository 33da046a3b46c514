from __future__ import annotations

import json
from dataclasses import dataclass, asdict, field
from pathlib import Path
from typing import Any, Optional

INPUT_TYPES = ("RGB_ONLY", "RGB_AND_DEPTH")
FUSION_METHODS = ("RGB_ONLY", "DEPTH_ONLY", "COMPONENT", "KALMAN")


class ConfigurationError(ValueError):
    """Tracker configuration that cannot be set up."""


@dataclass
class PlaneFitConfig:
    method: str = "least_squares"  # "least_squares" or "ransac"
    min_points: int = 3
    # RANSAC only
    max_distance_from_plane: float = 0.5
    desired_probability: float = 0.90
    max_iterations: int = 200
    seed: Optional[int] = None

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class PoseConfig:
    min_error_ratio: float = 4.0
    max_reprojection_error_px: float = 5.0

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ToolConfig:
    id: Optional[str] = None
    marker_id: Optional[int] = None
    marker_size_mm: Optional[float] = None
    marker_map_file: Optional[str] = None
    data_fusion_method: str = "RGB_ONLY"

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class TrackerConfig:
    device_id: str = "OpticalMarkerTracker"
    camera_calibration_file: str = "calib/camera.yml"
    marker_dictionary: str = "ARUCO_MIP_36h12"
    input_type: str = "RGB_ONLY"  # "RGB_ONLY", "RGB_AND_DEPTH"
    tool_reference_frame: str = "Tracker"
    frame_width: int = 640  # row length of a flat point cloud
    depth_range_mm: tuple[float, float] = (50.0, 2000.0)  # exclusive band
    stable_angle_deg: float = 10.0
    plane_fit: PlaneFitConfig = field(default_factory=PlaneFitConfig)
    pose: PoseConfig = field(default_factory=PoseConfig)
    tools: list[ToolConfig] = field(default_factory=list)
    # session / replay
    source_dir: Optional[str] = None
    session_root: str = "data/sessions"
    fps: int = 30
    duration_sec: Optional[float] = None
    max_frames: Optional[int] = None
    save_annotated: bool = False
    log_level: str = "INFO"

    @property
    def has_depth(self) -> bool:
        return self.input_type.upper() == "RGB_AND_DEPTH"

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)

    def apply_overrides(self, **kwargs: Any) -> "TrackerConfig":
        for key, value in kwargs.items():
            if value is not None and hasattr(self, key):
                setattr(self, key, value)
        return self

    def validate(self) -> "TrackerConfig":
        """Raise ConfigurationError for settings the tracker cannot run with."""
        self.input_type = str(self.input_type).upper()
        if self.input_type not in INPUT_TYPES:
            raise ConfigurationError(
                f"Unknown input_type {self.input_type!r}; expected one of {INPUT_TYPES}"
            )
        near, far = self.depth_range_mm
        if not near < far:
            raise ConfigurationError(f"depth_range_mm must be (near, far) with near < far, got {self.depth_range_mm}")
        if self.frame_width <= 0:
            raise ConfigurationError("frame_width must be positive")
        if self.plane_fit.method not in ("least_squares", "ransac"):
            raise ConfigurationError(f"Unknown plane_fit.method {self.plane_fit.method!r}")

        for tool in self.tools:
            method = str(tool.data_fusion_method).upper()
            if method == "COMPONENTS":
                method = "COMPONENT"
            if method not in FUSION_METHODS:
                raise ConfigurationError(
                    f"Tracked tool '{tool.id}' has unknown data_fusion_method "
                    f"{tool.data_fusion_method!r}; expected one of {FUSION_METHODS}"
                )
            tool.data_fusion_method = method
            if method != "RGB_ONLY" and not self.has_depth:
                raise ConfigurationError(
                    f"Tracked tool '{tool.id}' is requesting '{method}' data fusion but depth "
                    "data is not provided to the tracker. Provide depth data and set "
                    "input_type='RGB_AND_DEPTH' or use data_fusion_method='RGB_ONLY'."
                )
        return self


def _get(raw: dict[str, Any], *keys: str, default: Any = None) -> Any:
    # snake_case keys first, then the attribute names of the XML device config
    for key in keys:
        if key in raw:
            return raw[key]
    return default


def _load_yaml(path: Path) -> dict[str, Any]:
    try:
        import yaml  # type: ignore
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError(
            "YAML config requested but PyYAML is not installed. "
            "Install with: pip install pyyaml"
        ) from exc
    with path.open("r", encoding="utf-8") as fp:
        data = yaml.safe_load(fp) or {}
    if not isinstance(data, dict):
        raise ValueError("YAML config root must be a mapping")
    return data


def _load_tool(raw: dict[str, Any]) -> ToolConfig:
    tool = ToolConfig()
    tool_id = _get(raw, "id", "Id")
    tool.id = str(tool_id) if tool_id is not None else None
    marker_id = _get(raw, "marker_id", "MarkerId")
    tool.marker_id = int(marker_id) if marker_id is not None else None
    size = _get(raw, "marker_size_mm", "MarkerSizeMm")
    tool.marker_size_mm = float(size) if size is not None else None
    map_file = _get(raw, "marker_map_file", "MarkerMapFile")
    tool.marker_map_file = str(map_file) if map_file is not None else None
    tool.data_fusion_method = str(
        _get(raw, "data_fusion_method", "DataFusionMethod", default=tool.data_fusion_method)
    ).upper()
    return tool


def config_from_dict(raw: dict[str, Any]) -> TrackerConfig:
    cfg = TrackerConfig()
    cfg.device_id = str(_get(raw, "device_id", "Id", default=cfg.device_id))
    cfg.camera_calibration_file = str(
        _get(raw, "camera_calibration_file", "CameraCalibrationFile", default=cfg.camera_calibration_file)
    )
    cfg.marker_dictionary = str(_get(raw, "marker_dictionary", "MarkerDictionary", default=cfg.marker_dictionary))
    cfg.input_type = str(_get(raw, "input_type", "InputType", default=cfg.input_type)).upper()
    cfg.tool_reference_frame = str(
        _get(raw, "tool_reference_frame", "ToolReferenceFrame", default=cfg.tool_reference_frame)
    )
    cfg.frame_width = int(raw.get("frame_width", cfg.frame_width))
    depth_range = raw.get("depth_range_mm", cfg.depth_range_mm)
    if not isinstance(depth_range, (list, tuple)) or len(depth_range) != 2:
        raise ConfigurationError("depth_range_mm must be a [near, far] pair")
    cfg.depth_range_mm = (float(depth_range[0]), float(depth_range[1]))
    cfg.stable_angle_deg = float(raw.get("stable_angle_deg", cfg.stable_angle_deg))

    pf_raw = raw.get("plane_fit")
    if pf_raw is not None and isinstance(pf_raw, dict):
        pf = PlaneFitConfig()
        pf.method = str(pf_raw.get("method", pf.method)).lower()
        pf.min_points = int(pf_raw.get("min_points", pf.min_points))
        pf.max_distance_from_plane = float(pf_raw.get("max_distance_from_plane", pf.max_distance_from_plane))
        pf.desired_probability = float(pf_raw.get("desired_probability", pf.desired_probability))
        pf.max_iterations = int(pf_raw.get("max_iterations", pf.max_iterations))
        pf.seed = pf_raw.get("seed", pf.seed)
        if pf.seed is not None:
            pf.seed = int(pf.seed)
        cfg.plane_fit = pf

    pose_raw = raw.get("pose")
    if pose_raw is not None and isinstance(pose_raw, dict):
        pose = PoseConfig()
        pose.min_error_ratio = float(pose_raw.get("min_error_ratio", pose.min_error_ratio))
        pose.max_reprojection_error_px = float(
            pose_raw.get("max_reprojection_error_px", pose.max_reprojection_error_px)
        )
        cfg.pose = pose

    tools_raw = _get(raw, "tools", "DataSources", default=[]) or []
    if not isinstance(tools_raw, list):
        raise ConfigurationError("tools must be a list of tool mappings")
    cfg.tools = [_load_tool(t) for t in tools_raw if isinstance(t, dict)]

    cfg.source_dir = raw.get("source_dir", cfg.source_dir)
    cfg.session_root = str(raw.get("session_root", cfg.session_root))
    cfg.fps = int(raw.get("fps", cfg.fps))
    cfg.duration_sec = raw.get("duration_sec", cfg.duration_sec)
    if cfg.duration_sec is not None:
        cfg.duration_sec = float(cfg.duration_sec)
    cfg.max_frames = raw.get("max_frames", cfg.max_frames)
    if cfg.max_frames is not None:
        cfg.max_frames = int(cfg.max_frames)
    cfg.save_annotated = bool(raw.get("save_annotated", cfg.save_annotated))
    cfg.log_level = str(raw.get("log_level", cfg.log_level)).upper()
    return cfg


def load_config(path: str | Path) -> TrackerConfig:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Config not found: {p}")

    if p.suffix.lower() in {".yaml", ".yml"}:
        raw = _load_yaml(p)
    else:
        with p.open("r", encoding="utf-8") as fp:
            raw = json.load(fp)

    if not isinstance(raw, dict):
        raise ValueError("Config root must be a JSON/YAML object")

    return config_from_dict(raw)
