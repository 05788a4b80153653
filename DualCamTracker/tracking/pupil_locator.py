from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np  # type: ignore

from .corners import CornerLocator
from .detection import PupilDetector
from .regions import NOT_FOUND, EyeRegion, Point, is_not_found, offset
from .smoothing import PositionFilter

log = logging.getLogger(__name__)


@dataclass
class CornerPair:
    left: Point
    right: Point


class PupilLocator:
    """Detect, apply the not-found policy, smooth, and map to image coordinates.

    Usage:
      locator = PupilLocator(GradientDetector(), PositionFilter())
      p = locator.locate(frame, EyeRegion(x, y, w, h, EyeSide.LEFT))

    ``locate`` never raises; it returns ``NOT_FOUND`` when nothing usable is
    available. With ``corner_locator`` set, eye corners are searched left and
    right of the pupil and kept in ``last_corners`` for logging only.
    """

    def __init__(
        self,
        detector: PupilDetector,
        position_filter: Optional[PositionFilter] = None,
        corner_locator: Optional[CornerLocator] = None,
        *,
        enable_temporal_fallback: bool = True,
    ) -> None:
        self.detector = detector
        self.filter = position_filter if position_filter is not None else PositionFilter(enable_fallback=enable_temporal_fallback)
        self.corner_locator = corner_locator
        self.enable_temporal_fallback = bool(enable_temporal_fallback)
        self.last_corners: Optional[CornerPair] = None

    def reset(self) -> None:
        self.filter.reset()
        self.last_corners = None

    def locate(self, image, region: EyeRegion) -> Point:
        self.last_corners = None
        if region.is_empty:
            return NOT_FOUND
        side = region.side
        raw = self.detector.detect(image, region)
        if is_not_found(raw):
            if not self.enable_temporal_fallback:
                return NOT_FOUND
            # Reuse last point if no pupil found (eg. eyelid closed)
            raw = self.filter.previous_point(side)
        pupil = self.filter.smooth(side, raw)
        if is_not_found(pupil):
            return NOT_FOUND
        if self.corner_locator is not None:
            self.last_corners = self._find_corners(image, region, pupil)
        return offset(pupil, region.top_left)

    def _find_corners(self, image, region: EyeRegion, pupil: Point) -> CornerPair:
        # Tiled eye region around the pupil (*):
        #  .-----------.
        #  |___________|
        #  |      |    |
        #  | L    *  R |
        #  |______|____|
        #  |           |
        #  '-----------'
        split = int(round(min(max(pupil[0], 0.0), float(region.width))))
        top = int(region.y + region.height // 4)
        box_h = max(0, int(region.height // 2))
        left_box = EyeRegion(region.x, top, split, box_h, region.side)
        right_box = EyeRegion(region.x + split, top, region.width - split, box_h, region.side)
        arr = np.asarray(image)
        left = self._corner_in(arr, left_box, region.is_left, False)
        right = self._corner_in(arr, right_box, region.is_left, True)
        log.debug("corners %s: left=(%.1f, %.1f) right=(%.1f, %.1f)", region.side.value, left[0], left[1], right[0], right[1])
        return CornerPair(left, right)

    def _corner_in(self, arr, box: EyeRegion, is_left_eye: bool, is_right_side: bool) -> Point:
        if box.is_empty or self.corner_locator is None:
            return NOT_FOUND
        c = self.corner_locator.find(box.crop(arr), is_left_eye, is_right_side)
        if is_not_found(c):
            return NOT_FOUND
        return offset(c, box.top_left)
