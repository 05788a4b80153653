from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from DualCamTracker.calibration.model import ModelNotReadyError
from DualCamTracker.calibration.session import CalibrationSession, SessionState
from DualCamTracker.calibration.store import CalibrationSample

from .frames import FrameReader
from .log_writer import PupilLogWriter
from .pupil_locator import PupilLocator
from .regions import EyeRegion, EyeSide, Point, is_not_found

log = logging.getLogger(__name__)

# Physical gap between the two camera sensors in px at working distance (36.47 mm)
BASELINE_OFFSET_PX = 930

Crop = Tuple[int, int, int, int]


def default_crop(width: int, height: int) -> Crop:
    """Central crop used when the eye region is not configured."""
    return int(width / 6), int(height / 10), int(width / 1.5), int(height / 1.5)


def pupil_separation(left: Point, right: Point, camera_width: int, baseline_offset_px: float = BASELINE_OFFSET_PX) -> float:
    return (float(camera_width) - float(left[0])) + float(baseline_offset_px) + float(right[0])


@dataclass
class TrackerOutput:
    left_pupil: Optional[Point]
    right_pupil: Optional[Point]
    separation: Optional[float]
    distance: Optional[float]
    state: SessionState
    captured: Optional[CalibrationSample] = None
    frames: Tuple[Optional[object], Optional[object]] = (None, None)

    @property
    def has_estimate(self) -> bool:
        return self.distance is not None


class DistanceTracker:
    """Per-tick orchestration for the two-camera distance estimate.

    Camera 0 images the left eye, camera 1 the right eye. Each tick locates
    both pupils, combines them into a pixel separation and either feeds the
    calibration session (on capture) or asks it for a distance.
    """

    def __init__(
        self,
        session: CalibrationSession,
        left_locator: PupilLocator,
        right_locator: PupilLocator,
        *,
        camera_width: Optional[int] = None,
        baseline_offset_px: float = BASELINE_OFFSET_PX,
        crop: Optional[Crop] = None,
        log_writer: Optional[PupilLogWriter] = None,
        parallel: bool = False,
    ) -> None:
        self.session = session
        self.left_locator = left_locator
        self.right_locator = right_locator
        self.camera_width = int(camera_width) if camera_width else None
        self.baseline_offset_px = float(baseline_offset_px)
        self.crop = crop
        self.log_writer = log_writer
        self._pool: Optional[ThreadPoolExecutor] = ThreadPoolExecutor(max_workers=2) if parallel else None

    def close(self) -> None:
        if self._pool is not None:
            self._pool.shutdown(wait=True)
            self._pool = None

    def region_for(self, frame, side: EyeSide) -> EyeRegion:
        h, w = frame.shape[:2]
        x, y, cw, ch = self.crop if self.crop is not None else default_crop(w, h)
        # Keep the crop inside the frame
        x = max(0, min(int(x), w)); y = max(0, min(int(y), h))
        cw = max(0, min(int(cw), w - x)); ch = max(0, min(int(ch), h - y))
        return EyeRegion(x, y, cw, ch, side)

    def _locate(self, locator: PupilLocator, frame, side: EyeSide) -> Optional[Point]:
        if frame is None:
            return None
        return locator.locate(frame, self.region_for(frame, side))

    def process_tick(self, left_frame, right_frame, capture: bool = False) -> TrackerOutput:
        if self._pool is not None:
            fl = self._pool.submit(self._locate, self.left_locator, left_frame, EyeSide.LEFT)
            fr = self._pool.submit(self._locate, self.right_locator, right_frame, EyeSide.RIGHT)
            left, right = fl.result(), fr.result()
        else:
            left = self._locate(self.left_locator, left_frame, EyeSide.LEFT)
            right = self._locate(self.right_locator, right_frame, EyeSide.RIGHT)

        state = self.session.state
        out = TrackerOutput(left, right, None, None, state, frames=(left_frame, right_frame))
        if left is None or right is None:
            return out
        width = self.camera_width or int(left_frame.shape[1])
        self._write_log(left, right, width)
        if is_not_found(left) or is_not_found(right):
            return out

        out.separation = pupil_separation(left, right, width, self.baseline_offset_px)
        if state is SessionState.COLLECTING:
            if capture:
                out.captured = self.session.measure(out.separation)
        else:
            try:
                out.distance = self.session.evaluate(out.separation)
            except ModelNotReadyError as e:
                log.debug("no estimate: %s", e)
        return out

    def _write_log(self, left: Point, right: Point, width: int) -> None:
        if self.log_writer is None or not self.log_writer.enabled:
            return
        # Right camera points are shifted into one combined coordinate system
        shift = float(width) + self.baseline_offset_px
        right_c = (right[0] + shift, right[1])
        cl = self.left_locator.last_corners
        cr = self.right_locator.last_corners
        if cl is not None and cr is not None:
            self.log_writer.write_frame(left, right_c, cl.left, (cr.right[0] + shift, cr.right[1]))
        else:
            self.log_writer.write_frame(left, right_c)

    def run(
        self,
        left_reader: FrameReader,
        right_reader: FrameReader,
        on_tick: Optional[Callable[[TrackerOutput], bool]] = None,
        capture: Optional[Callable[[], bool]] = None,
    ) -> int:
        """Tick until both readers hit end-of-stream or ``on_tick`` returns False.

        Returns the number of ticks processed.
        """
        ticks = 0
        while True:
            ok_l = left_reader.read_next()
            ok_r = right_reader.read_next()
            if not ok_l and not ok_r:
                break
            out = self.process_tick(
                left_reader.frame if ok_l else None,
                right_reader.frame if ok_r else None,
                capture=bool(capture()) if capture is not None else False,
            )
            ticks += 1
            if on_tick is not None and on_tick(out) is False:
                break
        log.info("tracking stopped after %d tick(s)", ticks)
        return ticks
