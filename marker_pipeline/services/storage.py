import json
import time
from pathlib import Path

import cv2


class SessionStorage:
    """
    Directory of one tracking session:

        <root>/<name>_<YYYYmmdd_HHMMSS>/
            config.json          resolved tracker configuration
            transforms.csv       written by the CSV output
            logs/session.log
            annotated/f000123_tools.jpg
    """

    def __init__(self, root, name: str = "session"):
        self.root = Path(root)
        self.name = name
        self.session_dir: Path | None = None
        self.last_path = None

    @property
    def annotated_dir(self) -> Path:
        return self.session_dir / "annotated"

    @property
    def logs_dir(self) -> Path:
        return self.session_dir / "logs"

    @property
    def log_path(self) -> Path:
        return self.logs_dir / "session.log"

    def begin(self) -> str:
        stamp = time.strftime("%Y%m%d_%H%M%S")
        self.session_dir = self.root / f"{self.name}_{stamp}"
        for d in (self.annotated_dir, self.logs_dir):
            d.mkdir(parents=True, exist_ok=True)
        return str(self.session_dir)

    def save_annotated(self, idx: int, image) -> str:
        """Save a copy of the frame with marker outlines and tool axes drawn."""
        path = self.annotated_dir / f"f{idx:06d}_tools.jpg"
        if not cv2.imwrite(str(path), image):
            raise OSError(f"Failed to write annotated frame: {path}")
        self.last_path = str(path)
        return self.last_path

    def write_manifest(self, meta: dict) -> Path:
        path = self.session_dir / "config.json"
        path.write_text(json.dumps(meta, indent=2, default=str), encoding="utf-8")
        return path
