from __future__ import annotations

import csv
import math
from typing import IO, List, Optional

from .regions import Point

HEADER = ["pLx", "pLy", "pRx", "pRy", "PupilDistance", "cLx", "cLy", "cRx", "cRy", "CornerDistance"]


def _dist(a: Point, b: Point) -> float:
    return math.hypot(float(a[0]) - float(b[0]), float(a[1]) - float(b[1]))


class PupilLogWriter:
    """Per-frame CSV export of pupil (and optional corner) pairs.

    Pupil columns are always written; corner columns are zeros when no corner
    pair is given so every row keeps the same shape.
    """

    def __init__(self, path: Optional[str] = None, stream: Optional[IO[str]] = None) -> None:
        self.path = path
        self._own = False
        if stream is None and path:
            stream = open(path, "w", newline="", encoding="utf-8")
            self._own = True
        self._f = stream
        self._w = csv.writer(self._f) if self._f is not None else None
        self.rows = 0
        if self._w is not None:
            self._w.writerow(HEADER)

    @property
    def enabled(self) -> bool:
        return self._w is not None

    def write_frame(self, pupil_left: Point, pupil_right: Point, corner_left: Optional[Point] = None, corner_right: Optional[Point] = None) -> None:
        if self._w is None:
            return
        row: List[str] = [
            f"{pupil_left[0]:.1f}", f"{pupil_left[1]:.1f}",
            f"{pupil_right[0]:.1f}", f"{pupil_right[1]:.1f}",
            f"{_dist(pupil_left, pupil_right):.2f}",
        ]
        if corner_left is not None and corner_right is not None:
            row += [
                f"{corner_left[0]:.1f}", f"{corner_left[1]:.1f}",
                f"{corner_right[0]:.1f}", f"{corner_right[1]:.1f}",
                f"{_dist(corner_left, corner_right):.2f}",
            ]
        else:
            row += ["0.0", "0.0", "0.0", "0.0", "0.00"]
        self._w.writerow(row)
        self.rows += 1

    def flush(self) -> None:
        if self._f is not None:
            self._f.flush()

    def close(self) -> None:
        if self._f is not None and self._own:
            self._f.close()
        self._f = None
        self._w = None
