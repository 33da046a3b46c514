from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from marker_pipeline.mp_types import ToolUpdate
from marker_pipeline.services.csv_writer import CsvWriter


class OutputSink(ABC):
    """Receives the timestamped transform of every tool, frame by frame."""

    @abstractmethod
    def open(self, session_dir: Path) -> None: ...

    @abstractmethod
    def write_update(self, update: ToolUpdate) -> None: ...

    @abstractmethod
    def close(self) -> None: ...


class CsvOutput(OutputSink):
    def __init__(self, filename: str = "transforms.csv"):
        self.filename = filename
        self._writer: Optional[CsvWriter] = None

    def open(self, session_dir: Path) -> None:
        path = session_dir / self.filename
        self._writer = CsvWriter(str(path))
        self._writer.open()

    def write_update(self, update: ToolUpdate) -> None:
        if self._writer is None:
            return
        self._writer.append(update)

    def close(self) -> None:
        if self._writer is not None:
            self._writer.close()
            self._writer = None


class HistoryOutput(OutputSink):
    """Keeps the latest update and the full history per source id in memory."""

    def __init__(self):
        self.history: dict[str, list[ToolUpdate]] = {}

    def open(self, session_dir: Path) -> None:
        self.history.clear()

    def write_update(self, update: ToolUpdate) -> None:
        self.history.setdefault(update.source_id, []).append(update)

    def latest(self, source_id: str) -> Optional[ToolUpdate]:
        updates = self.history.get(source_id)
        return updates[-1] if updates else None

    def close(self) -> None:
        return None


class NullOutput(OutputSink):
    def open(self, session_dir: Path) -> None:
        return None

    def write_update(self, update: ToolUpdate) -> None:
        return None

    def close(self) -> None:
        return None
