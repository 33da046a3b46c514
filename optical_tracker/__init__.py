"""Optical marker tool tracking with RGB and depth plane fusion."""

from .config import ConfigurationError, TrackerConfig, ToolConfig
from .fusion import FusionMethod
from .tracker import OpticalMarkerTracker
from .worker import TrackerWorker

__all__ = [
    "ConfigurationError",
    "FusionMethod",
    "OpticalMarkerTracker",
    "ToolConfig",
    "TrackerConfig",
    "TrackerWorker",
]
