import io

import numpy as np
import pytest

from DualCamTracker.calibration.session import CalibrationSession, SessionState
from DualCamTracker.tracking.log_writer import HEADER, PupilLogWriter
from DualCamTracker.tracking.pipeline import DistanceTracker, default_crop, pupil_separation
from DualCamTracker.tracking.pupil_locator import PupilLocator
from DualCamTracker.tracking.regions import NOT_FOUND
from DualCamTracker.tracking.smoothing import PositionFilter

W, H = 120, 60
CROP = default_crop(W, H)  # (20, 6, 80, 40)


class FixedDetector:
    def __init__(self, point):
        self.point = point

    def detect(self, image, region):
        return self.point


class FixedCorners:
    """Always reports a corner at (2, 3) inside the searched box."""

    def find(self, sub_image, is_left_eye, is_right_side):
        return (2.0, 3.0)


class FakeReader:
    def __init__(self, n):
        self.n = n
        self.frame = None

    def read_next(self):
        if self.n <= 0:
            self.frame = None
            return False
        self.n -= 1
        self.frame = np.zeros((H, W), np.uint8)
        return True


def frame():
    return np.zeros((H, W), np.uint8)


def make_tracker(session, left=(10.0, 5.0), right=(30.0, 5.0), corners=None, **kw):
    pf = PositionFilter()
    return DistanceTracker(
        session,
        PupilLocator(FixedDetector(left), pf, corners),
        PupilLocator(FixedDetector(right), pf, corners),
        baseline_offset_px=100,
        **kw,
    )


def test_default_crop():
    assert CROP == (20, 6, 80, 40)


def test_pupil_separation():
    assert pupil_separation((100.0, 3.0), (40.0, 8.0), 640, 930) == 640 - 100 + 930 + 40


def test_collecting_without_capture_gives_no_estimate():
    session = CalibrationSession()
    out = make_tracker(session).process_tick(frame(), frame())
    # pupils translated by the crop offset
    assert out.left_pupil == (30.0, 11.0)
    assert out.right_pupil == (50.0, 11.0)
    assert out.separation == (W - 30.0) + 100 + 50.0
    assert out.distance is None
    assert out.captured is None
    assert session.sample_count == 0


def test_capture_feeds_session():
    session = CalibrationSession(target_distance=400)
    out = make_tracker(session).process_tick(frame(), frame(), capture=True)
    assert out.captured is not None
    assert out.captured.distance == 400
    assert out.captured.separation == out.separation
    assert session.sample_count == 1


def test_finalized_session_produces_estimate():
    session = CalibrationSession()
    for d, s in [(50, 100.0), (80, 60.0), (150, 30.0)]:
        session.measure(s, d)
    session.confirm(persist=False)
    tracker = make_tracker(session, left=(100.0, 5.0), right=(10.0, 5.0), camera_width=130, crop=(0, 0, W, H))
    out = tracker.process_tick(frame(), frame())
    # (130 - 100) + 100 + 10 = 140 px, beyond the sampled range: clamped, still a number
    assert out.state is SessionState.FINALIZED
    assert out.separation == 140.0
    assert out.distance == pytest.approx(session.evaluate(140.0))
    assert out.has_estimate


def test_finalized_with_unready_model_reports_no_estimate():
    session = CalibrationSession()
    session.confirm(persist=False)
    out = make_tracker(session).process_tick(frame(), frame())
    assert out.separation is not None
    assert out.distance is None
    assert not out.has_estimate


def test_missing_frame_skips_distance():
    session = CalibrationSession()
    out = make_tracker(session).process_tick(frame(), None, capture=True)
    assert out.left_pupil is not None
    assert out.right_pupil is None
    assert out.separation is None
    assert session.sample_count == 0


def test_lost_pupil_skips_distance():
    session = CalibrationSession()
    tracker = make_tracker(session, right=NOT_FOUND)
    out = tracker.process_tick(frame(), frame(), capture=True)
    assert out.right_pupil == NOT_FOUND
    assert out.separation is None
    assert session.sample_count == 0


def test_parallel_matches_sequential():
    seq = make_tracker(CalibrationSession()).process_tick(frame(), frame())
    tracker = make_tracker(CalibrationSession(), parallel=True)
    try:
        par = tracker.process_tick(frame(), frame())
    finally:
        tracker.close()
    assert (par.left_pupil, par.right_pupil, par.separation) == (seq.left_pupil, seq.right_pupil, seq.separation)


def test_run_until_both_streams_end():
    seen = []
    tracker = make_tracker(CalibrationSession())
    ticks = tracker.run(FakeReader(3), FakeReader(5), on_tick=lambda out: seen.append(out) or True)
    assert ticks == 5
    assert [o.separation is not None for o in seen] == [True, True, True, False, False]


def test_run_stops_when_callback_says_so():
    tracker = make_tracker(CalibrationSession())
    assert tracker.run(FakeReader(10), FakeReader(10), on_tick=lambda out: False) == 1


def test_run_with_capture_callback():
    session = CalibrationSession()
    make_tracker(session).run(FakeReader(4), FakeReader(4), capture=lambda: True)
    assert session.sample_count == 4


def test_log_rows_written_per_tracked_frame():
    buf = io.StringIO()
    writer = PupilLogWriter(stream=buf)
    tracker = make_tracker(CalibrationSession(), log_writer=writer)
    tracker.run(FakeReader(2), FakeReader(3))
    lines = buf.getvalue().strip().splitlines()
    assert lines[0] == ",".join(HEADER)
    assert len(lines) == 3
    row = lines[1].split(",")
    assert len(row) == 10
    # right pupil shifted by camera width + baseline
    assert row[2] == f"{50.0 + W + 100:.1f}"
    assert row[5:] == ["0.0", "0.0", "0.0", "0.0", "0.00"]


def test_log_rows_carry_outer_corners_in_combined_coordinates():
    buf = io.StringIO()
    writer = PupilLogWriter(stream=buf)
    tracker = make_tracker(CalibrationSession(), corners=FixedCorners(), log_writer=writer)
    tracker.process_tick(frame(), frame())
    writer.flush()
    row = buf.getvalue().strip().splitlines()[1].split(",")
    # Corner boxes start a quarter of the crop height down (6 + 40 // 4 = 16).
    # Left camera: left box starts at the crop x (20).
    # Right camera: right box starts at the pupil (20 + 30), then shifts by W + 100.
    assert row[:5] == ["30.0", "11.0", "270.0", "11.0", "240.00"]
    assert row[5:] == ["22.0", "19.0", "272.0", "19.0", "250.00"]
