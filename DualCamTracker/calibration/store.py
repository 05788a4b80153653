"""
Calibration samples and their plain-text persistence.

File format: one sample per line, ``<int distance>;<float separation>``, no
header. Loading is tolerant: parsing stops at the first malformed line and
keeps what was read so far.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterator, List, Tuple

log = logging.getLogger(__name__)

_LINE = re.compile(r"^\s*([+-]?\d+)\s*;\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)\s*$")


class EmptyStoreError(IndexError):
    """Raised when undoing with no samples stored."""


@dataclass(frozen=True)
class CalibrationSample:
    distance: int       # known distance (unit chosen by the user, mm on the setup screen)
    separation: float   # measured pupil separation in px


class CalibrationStore:
    def __init__(self) -> None:
        self._samples: List[CalibrationSample] = []

    def __len__(self) -> int:
        return len(self._samples)

    def __iter__(self) -> Iterator[CalibrationSample]:
        return iter(tuple(self._samples))

    def add(self, sample: CalibrationSample) -> None:
        self._samples.append(sample)

    def undo_last(self) -> CalibrationSample:
        if not self._samples:
            raise EmptyStoreError("no calibration samples to undo")
        return self._samples.pop()

    def clear(self) -> None:
        self._samples.clear()

    def snapshot(self) -> Tuple[CalibrationSample, ...]:
        return tuple(self._samples)

    def distances(self) -> List[int]:
        return [s.distance for s in self._samples]

    def separations(self) -> List[float]:
        return [s.separation for s in self._samples]

    # Persistence -------------------------------------------------------
    def load(self, path: str) -> int:
        """Replace contents from ``path``; returns the number of samples read.

        An unreadable path leaves the store empty and does not raise. Bytes that
        are not UTF-8 make their line malformed, so loading stops there.
        """
        self.clear()
        try:
            with open(path, "r", encoding="utf-8", errors="replace") as f:
                for lineno, line in enumerate(f, start=1):
                    if not line.strip():
                        continue
                    m = _LINE.match(line)
                    if m is None:
                        log.warning("%s:%d: malformed calibration line, stopping", path, lineno)
                        break
                    self._samples.append(CalibrationSample(int(m.group(1)), float(m.group(2))))
        except OSError as e:
            log.info("no calibration loaded from %s: %s", path, e)
            self.clear()
            return 0
        return len(self._samples)

    def save(self, path: str) -> None:
        """Write every sample in insertion order. Raises OSError if ``path`` is not writable."""
        with open(path, "w", encoding="utf-8") as f:
            for s in self._samples:
                f.write(f"{int(s.distance)};{float(s.separation):.32f}\n")
