import csv
import io

import numpy as np

from ..mp_types import ToolUpdate


class CsvWriter:
    """Tool transforms, one row per ToolUpdate."""

    # upper 3x4 block of the 4x4 transform, row-major, translation in mm
    MATRIX_COLUMNS = [
        "r00", "r01", "r02", "tx",
        "r10", "r11", "r12", "ty",
        "r20", "r21", "r22", "tz",
    ]
    HEADER = ["recorded_at", "frame_number", "source_id", "status", *MATRIX_COLUMNS]

    def __init__(self, csv_path: str):
        self.csv_path = csv_path
        self._fh = None
        self._writer = None

    @property
    def is_open(self) -> bool:
        return self._fh is not None

    def open(self):
        self._fh = open(self.csv_path, "w", newline="", encoding="utf-8")
        self._writer = csv.writer(self._fh)
        self._writer.writerow(self.HEADER)

    @classmethod
    def row(cls, update: ToolUpdate) -> list:
        block = np.asarray(update.transform, dtype=np.float64)[:3, :4].reshape(-1).tolist()
        return [
            f"{update.timestamp:.6f}",
            update.frame_number,
            update.source_id,
            update.status.value,
            *block,
        ]

    def append(self, update: ToolUpdate):
        if self._writer is None:
            raise RuntimeError(f"CsvWriter for {self.csv_path} is not open")
        self._writer.writerow(self.row(update))

    @classmethod
    def to_csv_line(cls, update: ToolUpdate) -> str:
        buf = io.StringIO()
        csv.writer(buf).writerow(cls.row(update))
        return buf.getvalue().strip()

    def close(self):
        if self._fh is not None:
            self._fh.close()
            self._fh = None
            self._writer = None
