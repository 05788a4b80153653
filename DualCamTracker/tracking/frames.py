"""
Frame source over OpenCV VideoCapture.

- Accepts a camera index ("0", "1", or an int) or a path to a recorded video
- read_next() stores the frame and returns False on end-of-stream
- Graceful shutdown via close() / context manager
"""
from __future__ import annotations

import logging
import time
from typing import Optional, Union

try:
    import cv2  # type: ignore
except Exception:  # pragma: no cover
    cv2 = None

log = logging.getLogger(__name__)


class FrameReader:
    def __init__(self, source: Union[int, str], target_fps: Optional[int] = None) -> None:
        self.source = source
        self.target_fps = int(target_fps) if target_fps else None
        self._frame_interval = (1.0 / float(self.target_fps)) if self.target_fps else 0.0
        self._last_time = 0.0
        self.cap = None
        self.frame = None

    @classmethod
    def from_arg(cls, arg: str, target_fps: Optional[int] = None) -> "FrameReader":
        """Digits select a camera index, anything else is treated as a file path."""
        text = str(arg).strip()
        source: Union[int, str] = int(text) if text.isdigit() else text
        return cls(source, target_fps=target_fps)

    @property
    def is_camera(self) -> bool:
        return isinstance(self.source, int)

    def open(self) -> None:
        if cv2 is None:
            raise RuntimeError("OpenCV (cv2) is not installed.")
        cap = cv2.VideoCapture(self.source)
        if cap is None or not cap.isOpened():
            if cap is not None:
                cap.release()
            raise RuntimeError(f"Cannot open frame source: {self.source!r}")
        self.cap = cap
        self._last_time = time.perf_counter()
        log.info("opened frame source %r", self.source)

    def read_next(self) -> bool:
        if self.cap is None:
            self.frame = None
            return False
        if self._frame_interval > 0.0:
            remaining = self._frame_interval - (time.perf_counter() - self._last_time)
            if remaining > 0:
                time.sleep(remaining)
            self._last_time = time.perf_counter()
        ok, frame = self.cap.read()
        if not ok or frame is None:
            self.frame = None
            return False
        self.frame = frame
        return True

    def close(self) -> None:
        if self.cap is not None:
            try:
                self.cap.release()
            finally:
                self.cap = None

    @property
    def is_open(self) -> bool:
        return bool(self.cap is not None and getattr(self.cap, "isOpened", lambda: False)())

    def __enter__(self) -> "FrameReader":
        if self.cap is None:
            self.open()
        return self

    def __exit__(self, *exc) -> None:
        self.close()
