import time
from abc import ABC, abstractmethod
from pathlib import Path

import cv2
import numpy as np

from marker_pipeline.mp_types import Frame

IMAGE_SUFFIXES = {".png", ".jpg", ".jpeg", ".bmp"}


class BaseCapture(ABC):
    @abstractmethod
    def start(self) -> None: ...

    @abstractmethod
    def next_frame(self) -> Frame | None: ...

    @abstractmethod
    def stop(self) -> None: ...

    @property
    def finished(self) -> bool:
        """True once the source can deliver no more frames."""
        return False


class FolderCapture(BaseCapture):
    """
    Replays a recorded session directory.

    Layout: images/<stem>.png|jpg for video, clouds/<stem>.npy for the
    aligned point cloud ((H*W,3) or (H,W,3), millimeters). A frame whose
    cloud is missing is delivered without one.
    """

    def __init__(self, source_dir: str, fps: int = 30, with_depth: bool = False):
        self.source_dir = Path(source_dir)
        self.fps = fps
        self.with_depth = with_depth
        self.idx = 0
        self._paths: list[Path] = []
        self._last = 0.0

    def start(self) -> None:
        image_dir = self.source_dir / "images"
        if not image_dir.is_dir():
            raise FileNotFoundError(f"No images directory in session: {self.source_dir}")
        self._paths = sorted(p for p in image_dir.iterdir() if p.suffix.lower() in IMAGE_SUFFIXES)
        self.idx = 0
        self._last = time.time()

    @property
    def finished(self) -> bool:
        return self.idx >= len(self._paths)

    def next_frame(self) -> Frame | None:
        if self.finished:
            return None
        now = time.time()
        if self.fps > 0:
            wait = max(0.0, (1.0 / self.fps) - (now - self._last))
            if wait > 0:
                time.sleep(wait)
        self._last = time.time()

        path = self._paths[self.idx]
        self.idx += 1
        img = cv2.imread(str(path))
        if img is None:
            return None
        cloud = None
        if self.with_depth:
            cloud_path = self.source_dir / "clouds" / f"{path.stem}.npy"
            if cloud_path.exists():
                cloud = np.load(cloud_path)
        ts = time.strftime("%Y-%m-%dT%H:%M:%S")
        return Frame(self.idx, ts, img, cloud)

    def stop(self) -> None:
        self._paths = []
        self.idx = 0
