from __future__ import annotations

import logging
import time
import threading
from dataclasses import dataclass
from typing import Optional

import cv2
import numpy as np

from marker_pipeline.mp_types import Frame, ToolStatus, ToolUpdate
from marker_pipeline.services.csv_writer import CsvWriter
from marker_pipeline.services.storage import SessionStorage

from .capture import BaseCapture, FolderCapture
from .config import ConfigurationError, TrackerConfig
from .logging_utils import add_file_handler, setup_logger
from .output import CsvOutput, OutputSink
from .tracker import OpticalMarkerTracker
from .transforms import MM_PER_M, matrix_to_rvec_tvec


@dataclass
class SessionSummary:
    session_path: str
    frames_processed: int
    frames_skipped: int
    csv_path: str
    log_path: str
    avg_fps: float
    errors: int


class TrackerWorker:
    def __init__(
        self,
        config: TrackerConfig,
        logger=None,
        outputs: Optional[list[OutputSink]] = None,
        capture: Optional[BaseCapture] = None,
        tracker: Optional[OpticalMarkerTracker] = None,
    ):
        self.config = config
        self.logger = logger or setup_logger(config.device_id, config.log_level)
        self.outputs = outputs if outputs is not None else [CsvOutput()]
        self.capture = capture
        self.tracker = tracker or OpticalMarkerTracker(config, logger=self.logger)
        self._stop_event = threading.Event()

    def stop(self) -> None:
        self._stop_event.set()

    def _build_capture(self) -> BaseCapture:
        if self.capture is not None:
            return self.capture
        if not self.config.source_dir:
            raise ConfigurationError("source_dir is required to replay a recorded session")
        return FolderCapture(self.config.source_dir, self.config.fps, with_depth=self.config.has_depth)

    def _annotate(self, f: Frame, updates: list[ToolUpdate]):
        draw = f.image.copy()
        dets = self.tracker.last_detections
        ids = np.array([d.marker_id for d in dets], dtype=np.int32).reshape(-1, 1)
        corners = [np.asarray(d.corners, dtype=np.float32).reshape(1, 4, 2) for d in dets]
        try:
            cv2.aruco.drawDetectedMarkers(draw, corners, ids)
        except cv2.error as e:
            self.logger.debug("drawDetectedMarkers failed: %s", e)

        sizes = {t.source_id: t.marker_size_m for t in self.tracker.tools}
        for u in updates:
            if u.status is not ToolStatus.OK:
                continue
            rvec, tvec = matrix_to_rvec_tvec(u.transform, scale=1.0 / MM_PER_M)
            try:
                cv2.drawFrameAxes(
                    draw,
                    self.tracker.K,
                    self.tracker.dist,
                    rvec,
                    tvec,
                    max(0.01, sizes.get(u.source_id, 0.0) * 0.5),
                )
            except cv2.error as e:
                self.logger.debug("drawFrameAxes failed for %s: %s", u.source_id, e)
        return draw

    def _should_stop(self, cap: BaseCapture, frames: int, started: float) -> bool:
        cfg = self.config
        if self._stop_event.is_set() or cap.finished:
            return True
        if cfg.duration_sec and time.time() - started >= cfg.duration_sec:
            return True
        return bool(cfg.max_frames) and frames >= cfg.max_frames

    def _publish(self, updates: list[ToolUpdate]) -> int:
        """Hand updates to every sink; returns the number of failed writes."""
        if self.logger.isEnabledFor(logging.DEBUG):
            for u in updates:
                self.logger.debug("update %s", CsvWriter.to_csv_line(u))
        failed = 0
        for sink in self.outputs:
            for u in updates:
                try:
                    sink.write_update(u)
                except Exception as e:
                    failed += 1
                    self.logger.warning("Output %s failed for %s: %s", type(sink).__name__, u.source_id, e)
        return failed

    def _close_outputs(self) -> None:
        for sink in self.outputs:
            try:
                sink.close()
            except Exception as e:
                self.logger.warning("Failed to close output %s: %s", type(sink).__name__, e)

    def run(self) -> SessionSummary:
        if not self.tracker.connected:
            self.tracker.connect()
        cap = self._build_capture()

        storage = SessionStorage(self.config.session_root, name=f"{self.config.device_id}_session")
        session_path = storage.begin()
        storage.write_manifest(self.config.as_dict())
        file_handler = add_file_handler(self.logger, self.config.device_id, str(storage.log_path))
        self.logger.info("session started: %s", session_path)
        self.logger.info("config: %s", self.config.as_dict())

        processed = skipped = errors = 0
        started = time.time()
        try:
            for sink in self.outputs:
                sink.open(storage.session_dir)
            cap.start()
            while not self._should_stop(cap, processed, started):
                frame = cap.next_frame()
                if frame is None:
                    errors += 1
                    continue

                frame_number = self.tracker.frame_number
                updates = self.tracker.update(frame)
                if self.tracker.frame_number == frame_number:
                    skipped += 1
                    continue

                errors += self._publish(updates)
                if self.config.save_annotated and self.tracker.last_detections:
                    try:
                        storage.save_annotated(frame.idx, self._annotate(frame, updates))
                    except OSError as e:
                        errors += 1
                        self.logger.warning("%s", e)

                self.logger.info(
                    "frame=%d dets=%d tools_ok=%d/%d",
                    frame_number,
                    len(self.tracker.last_detections),
                    sum(u.status is ToolStatus.OK for u in updates),
                    len(self.tracker.tools),
                )
                processed += 1

            summary = SessionSummary(
                session_path=str(session_path),
                frames_processed=processed,
                frames_skipped=skipped,
                csv_path=str(storage.session_dir / "transforms.csv"),
                log_path=str(storage.log_path),
                avg_fps=processed / max(1e-6, time.time() - started),
                errors=errors,
            )
            self.logger.info(
                "summary frames=%d skipped=%d avg_fps=%.2f errors=%d",
                summary.frames_processed, summary.frames_skipped, summary.avg_fps, summary.errors,
            )
        finally:
            cap.stop()
            self._close_outputs()
            self.logger.removeHandler(file_handler)
            file_handler.close()
        return summary
