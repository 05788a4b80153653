import numpy as np
import pytest

from DualCamTracker.tracking.corners import CornerLocator
from DualCamTracker.tracking.pupil_locator import PupilLocator
from DualCamTracker.tracking.regions import NOT_FOUND, EyeRegion, EyeSide
from DualCamTracker.tracking.smoothing import PositionFilter


class FakeDetector:
    def __init__(self, points):
        self.points = list(points)
        self.calls = 0

    def detect(self, image, region):
        self.calls += 1
        return self.points.pop(0)


class FakeCorners:
    def __init__(self):
        self.calls = []

    def find(self, sub_image, is_left_eye, is_right_side):
        self.calls.append((sub_image.shape, is_left_eye, is_right_side))
        return (1.0, 2.0)


IMG = np.zeros((120, 160), dtype=np.uint8)
REGION = EyeRegion(20, 30, 80, 40, EyeSide.LEFT)


def test_zero_area_region_skips_detection():
    det = FakeDetector([(10.0, 10.0)])
    loc = PupilLocator(det)
    assert loc.locate(IMG, EyeRegion(5, 5, 0, 10, EyeSide.LEFT)) == NOT_FOUND
    assert loc.locate(IMG, EyeRegion(5, 5, 10, 0, EyeSide.RIGHT)) == NOT_FOUND
    assert det.calls == 0


def test_found_point_is_translated_to_image_coordinates():
    loc = PupilLocator(FakeDetector([(12.0, 8.0)]))
    assert loc.locate(IMG, REGION) == (32.0, 38.0)


def test_not_found_with_fallback_reuses_previous_point():
    loc = PupilLocator(FakeDetector([(12.0, 8.0), (0.3, 0.1)]), enable_temporal_fallback=True)
    first = loc.locate(IMG, REGION)
    second = loc.locate(IMG, REGION)
    assert second == first


def test_not_found_with_fallback_and_no_history_is_sentinel():
    loc = PupilLocator(FakeDetector([(0.0, 0.0)]), enable_temporal_fallback=True)
    assert loc.locate(IMG, REGION) == NOT_FOUND


def test_not_found_without_fallback_is_sentinel():
    loc = PupilLocator(FakeDetector([(12.0, 8.0), (0.4, 0.4)]), enable_temporal_fallback=False)
    loc.locate(IMG, REGION)
    assert loc.locate(IMG, REGION) == NOT_FOUND


def test_point_near_origin_on_one_axis_is_a_detection():
    loc = PupilLocator(FakeDetector([(0.2, 9.0)]))
    assert loc.locate(IMG, REGION) == pytest.approx((20.2, 39.0))


def test_sides_keep_separate_state():
    pf = PositionFilter()
    left = PupilLocator(FakeDetector([(10.0, 10.0), (0.0, 0.0)]), pf)
    right = PupilLocator(FakeDetector([(60.0, 20.0)]), pf)
    left.locate(IMG, REGION)
    right.locate(IMG, REGION.with_side(EyeSide.RIGHT))
    assert left.locate(IMG, REGION) == (30.0, 40.0)


def test_corners_are_reported_but_do_not_change_pupil():
    corners = FakeCorners()
    loc = PupilLocator(FakeDetector([(30.0, 20.0)]), corner_locator=corners)
    p = loc.locate(IMG, REGION)
    assert p == (50.0, 50.0)
    assert len(corners.calls) == 2
    # both sub-boxes span the middle half of the region height
    (lshape, _, lright), (rshape, _, rright) = corners.calls
    assert lshape == (20, 30) and lright is False
    assert rshape == (20, 50) and rright is True
    assert loc.last_corners.left == (21.0, 42.0)
    assert loc.last_corners.right == (51.0, 42.0)


def test_no_corners_without_locator():
    loc = PupilLocator(FakeDetector([(30.0, 20.0)]))
    loc.locate(IMG, REGION)
    assert loc.last_corners is None


def test_corner_locator_finds_outer_corner():
    img = np.full((40, 60), 200, dtype=np.uint8)
    img[10:30, 10:50] = 40
    cl = CornerLocator()
    rx, _ = cl.find(img, True, True)
    lx, _ = cl.find(img, True, False)
    assert lx < 20 and rx > 40


def test_corner_locator_blank_image_is_sentinel():
    cl = CornerLocator()
    assert cl.find(np.full((20, 20), 128, dtype=np.uint8), True, False) == NOT_FOUND
    assert cl.find(np.zeros((0, 0), dtype=np.uint8), True, False) == NOT_FOUND
