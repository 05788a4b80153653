from DualCamTracker.tracking.regions import NOT_FOUND, EyeSide
from DualCamTracker.tracking.smoothing import KalmanSmoother, PositionFilter


def test_first_sample_initializes_state():
    k = KalmanSmoother()
    assert k.apply_float((12.0, 7.5)) == (12.0, 7.5)


def test_repeated_observation_converges():
    pf = PositionFilter()
    pf.smooth(EyeSide.LEFT, (10.0, 10.0))
    out = None
    for _ in range(200):
        out = pf.smooth(EyeSide.LEFT, (50.0, 30.0))
    assert abs(out[0] - 50.0) < 0.01
    assert abs(out[1] - 30.0) < 0.01


def test_update_moves_toward_observation_without_overshoot():
    pf = PositionFilter()
    pf.smooth(EyeSide.RIGHT, (10.0, 10.0))
    x, y = pf.smooth(EyeSide.RIGHT, (20.0, 10.0))
    assert 10.0 < x < 20.0
    assert y == 10.0


def test_missing_detection_carries_forward_without_update():
    pf = PositionFilter(enable_fallback=True)
    pf.smooth(EyeSide.LEFT, (40.0, 20.0))
    last = pf.smooth(EyeSide.LEFT, (44.0, 22.0))
    assert pf.smooth(EyeSide.LEFT, NOT_FOUND) == last
    assert pf.smooth(EyeSide.LEFT, (0.2, 0.4)) == last
    assert pf.previous_point(EyeSide.LEFT) == last


def test_missing_detection_before_any_fix_is_sentinel():
    pf = PositionFilter(enable_fallback=True)
    assert pf.smooth(EyeSide.RIGHT, NOT_FOUND) == NOT_FOUND


def test_without_fallback_missing_detection_drifts_to_origin():
    pf = PositionFilter(enable_fallback=False)
    pf.smooth(EyeSide.LEFT, (40.0, 20.0))
    x, y = pf.smooth(EyeSide.LEFT, NOT_FOUND)
    assert 0.0 < x < 40.0
    assert 0.0 < y < 20.0


def test_sides_are_independent_and_reset():
    pf = PositionFilter()
    pf.smooth(EyeSide.LEFT, (5.0, 5.0))
    pf.smooth(EyeSide.RIGHT, (90.0, 60.0))
    assert pf.previous_point(EyeSide.LEFT) == (5.0, 5.0)
    assert pf.previous_point(EyeSide.RIGHT) == (90.0, 60.0)
    pf.reset()
    assert pf.previous_point(EyeSide.LEFT) == NOT_FOUND
    assert pf.previous_point(EyeSide.RIGHT) == NOT_FOUND
