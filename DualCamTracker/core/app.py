from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import List, Optional

try:
    import cv2  # type: ignore
except Exception:
    cv2 = None

import numpy as np  # type: ignore

from DualCamTracker.analysis.plots import save_graphs
from DualCamTracker.calibration.session import CalibrationSession, SessionState
from DualCamTracker.control.keys import Command, apply_command, command_for_key
from DualCamTracker.core.settings import SettingsManager
from DualCamTracker.tracking.corners import CornerLocator
from DualCamTracker.tracking.detection import make_detector
from DualCamTracker.tracking.frames import FrameReader
from DualCamTracker.tracking.log_writer import PupilLogWriter
from DualCamTracker.tracking.pipeline import DistanceTracker, TrackerOutput
from DualCamTracker.tracking.pupil_locator import PupilLocator
from DualCamTracker.tracking.smoothing import PositionFilter

log = logging.getLogger("DualCamTracker")

WINDOW_DISTANCE = "Distance"
WINDOW_CAMS = ("Cam 0", "Cam 1")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Dual camera pupil tracking and viewing distance estimation")
    p.add_argument("--path", default=None, help="Recording directory; videos are read from PATH/1/FILE and PATH/0/FILE")
    p.add_argument("--file", default=None, help="Recording file name inside PATH/1 and PATH/0")
    p.add_argument("--settings", default=None, help="Settings JSON (default: DualCamTracker/settings.json)")
    p.add_argument("--calibration", default=None, help="Calibration file to load and save")
    p.add_argument("--log", default=None, help="Write per-frame pupil CSV to this path")
    p.add_argument("--backend", choices=("gradient", "edge"), default=None, help="Pupil detection backend")
    p.add_argument("--corners", action="store_true", help="Enable eye-corner detection")
    p.add_argument("--no-fallback", action="store_true", help="Disable last-known-position fallback for missed detections")
    p.add_argument("--headless", action="store_true", help="No windows; print estimates to the log")
    p.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    return p


def frame_sources(path: Optional[str], file: Optional[str], settings: SettingsManager) -> List[str]:
    if path and file:
        return [os.path.join(path, "1", file), os.path.join(path, "0", file)]
    return [str(i) for i in settings.camera_indices()]


def build_tracker(settings: SettingsManager, session: CalibrationSession, log_writer: Optional[PupilLogWriter] = None) -> DistanceTracker:
    fallback = settings.enable_temporal_fallback()
    pf = PositionFilter(
        enable_fallback=fallback,
        process_noise=settings.process_noise(),
        measurement_noise=settings.measurement_noise(),
    )
    corners = CornerLocator() if settings.enable_corner_detection() else None
    # Each camera gets its own detector; the filter is shared and keyed by side
    left = PupilLocator(make_detector(settings.detection_backend()), pf, corners, enable_temporal_fallback=fallback)
    right = PupilLocator(make_detector(settings.detection_backend()), pf, corners, enable_temporal_fallback=fallback)
    return DistanceTracker(
        session,
        left,
        right,
        baseline_offset_px=settings.baseline_offset_px(),
        log_writer=log_writer,
        parallel=settings.parallel(),
    )


def _status_frame(out: TrackerOutput, session: CalibrationSession):
    frame = out.frames[0] if out.frames[0] is not None else out.frames[1]
    h, w = (frame.shape[:2] if frame is not None else (480, 640))
    status = np.zeros((h, w), dtype=np.uint8)
    if out.state is SessionState.COLLECTING:
        text = f"Focus on {session.target_distance / 10:.0f} cm ({session.sample_count})"
    elif out.has_estimate:
        text = f"{out.distance / 10:.1f} cm"
    else:
        text = "no estimate"
    cv2.putText(status, text, (10, h - 10), cv2.FONT_HERSHEY_PLAIN, 2.0, 255)
    return status


def _show(out: TrackerOutput, session: CalibrationSession) -> None:
    for name, frame, pupil in zip(WINDOW_CAMS, out.frames, (out.left_pupil, out.right_pupil)):
        if frame is None:
            continue
        if pupil is not None:
            cv2.circle(frame, (int(pupil[0]), int(pupil[1])), 3, (0, 0, 255))
        cv2.imshow(name, frame)
    cv2.imshow(WINDOW_DISTANCE, _status_frame(out, session))


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if cv2 is None:
        log.error("OpenCV (cv2) is not installed. Please install dependencies.")
        return 1

    settings = SettingsManager(args.settings)
    if args.backend:
        settings.set_detection_backend(args.backend)
    if args.corners:
        settings.set_enable_corner_detection(True)
    if args.no_fallback:
        settings.set_enable_temporal_fallback(False)
    if args.calibration:
        settings.set_calibration_path(args.calibration)

    session = CalibrationSession.open(
        settings.calibration_path(),
        target_distance=settings.default_target_distance(),
        method=settings.model_method(),
        ridge_alpha=settings.ridge_alpha(),
        extrapolation_margin=settings.extrapolation_margin(),
    )
    log.info("session starts %s", session.state.value)

    log_path = args.log
    if log_path is None and args.path and args.file:
        log_path = os.path.join(args.path, f"{args.file}.pupilpos.csv")
    writer = PupilLogWriter(log_path) if log_path else None

    fps = None if (args.path and args.file) else settings.camera_fps()
    readers = [FrameReader.from_arg(src, target_fps=fps) for src in frame_sources(args.path, args.file, settings)]
    tracker = build_tracker(settings, session, writer)

    def on_tick(out: TrackerOutput) -> bool:
        if writer is not None:
            writer.flush()
        if args.headless:
            if out.has_estimate:
                log.info("distance %.1f (separation %.1f px)", out.distance, out.separation)
            return True
        _show(out, session)
        key = cv2.waitKey(30 if out.state is SessionState.COLLECTING else 10)
        event = command_for_key(key, out.state)
        if event is None:
            return True
        if event.command is Command.QUIT:
            return False
        if event.command is Command.CAPTURE:
            if out.separation is None:
                log.warning("capture skipped: pupils not found in both cameras")
            else:
                session.measure(out.separation)
            return True
        if event.command is Command.GRAPH:
            model = session.model
            if model is not None:
                for path in save_graphs(model, session.samples()):
                    log.info("wrote %s", path)
            return True
        apply_command(event, session)
        return True

    try:
        for r in readers:
            r.open()
        tracker.run(readers[0], readers[1], on_tick=on_tick)
    except RuntimeError as e:
        log.error("%s", e)
        return 1
    finally:
        tracker.close()
        for r in readers:
            r.close()
        if writer is not None:
            writer.close()
        if not args.headless:
            cv2.destroyAllWindows()
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
