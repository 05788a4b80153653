"""
Eye-corner landmarks around a detected pupil (optional, diagnostics only).
"""
from __future__ import annotations

from typing import Optional

try:
    import cv2  # type: ignore
except Exception:  # pragma: no cover
    cv2 = None

import numpy as np  # type: ignore

from .detection import to_gray
from .regions import NOT_FOUND, Point


class CornerLocator:
    """Pick the strongest corner feature nearest the outer edge of a sub-box.

    ``find`` is pure: the same sub-image always gives the same answer and no
    state is kept between calls. ``is_left_eye`` is part of the call shape for
    locators that mirror per eye; the feature search here is symmetric.
    """

    def __init__(self, max_corners: int = 12, quality_level: float = 0.05, min_distance: float = 2.0) -> None:
        self.max_corners = max(1, int(max_corners))
        self.quality_level = float(quality_level)
        self.min_distance = float(min_distance)

    def find(self, sub_image, is_left_eye: bool, is_right_side: bool) -> Point:
        if sub_image is None:
            return NOT_FOUND
        gray = to_gray(sub_image)
        if gray.size == 0 or gray.shape[0] < 3 or gray.shape[1] < 3:
            return NOT_FOUND
        if cv2 is None:
            raise RuntimeError("OpenCV (cv2) is not installed.")
        pts: Optional[np.ndarray] = cv2.goodFeaturesToTrack(
            gray.astype(np.uint8),
            maxCorners=self.max_corners,
            qualityLevel=self.quality_level,
            minDistance=self.min_distance,
        )
        if pts is None or len(pts) == 0:
            return NOT_FOUND
        pts = pts.reshape(-1, 2)
        # The corner of interest lies on the side of the box away from the pupil
        idx = int(np.argmax(pts[:, 0])) if is_right_side else int(np.argmin(pts[:, 0]))
        x, y = pts[idx]
        return float(x), float(y)
