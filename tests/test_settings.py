import json

from DualCamTracker.core.app import build_parser, build_tracker, frame_sources
from DualCamTracker.core.settings import SettingsManager
from DualCamTracker.calibration.session import CalibrationSession
from DualCamTracker.tracking.detection import EdgeDetector, GradientDetector


def test_defaults_when_file_missing(tmp_path):
    s = SettingsManager(str(tmp_path / "settings.json"))
    assert s.enable_corner_detection() is False
    assert s.enable_temporal_fallback() is True
    assert s.detection_backend() == "gradient"
    assert s.baseline_offset_px() == 930
    assert s.calibration_path() == "dualcam_calib.txt"
    assert s.camera_indices() == [1, 0]


def test_partial_file_merges_with_defaults(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"tracking": {"detection_backend": "edge"}, "dualcam": {"baseline_offset_px": 800}}))
    s = SettingsManager(str(path))
    assert s.detection_backend() == "edge"
    assert s.enable_temporal_fallback() is True
    assert s.baseline_offset_px() == 800.0


def test_env_override_and_save(tmp_path, monkeypatch):
    path = tmp_path / "custom.json"
    monkeypatch.setenv("DUALCAM_SETTINGS", str(path))
    s = SettingsManager()
    assert s.path == str(path)
    s.set_enable_corner_detection(True)
    s.save()
    assert SettingsManager().enable_corner_detection() is True


def test_build_tracker_from_settings(tmp_path):
    s = SettingsManager(str(tmp_path / "settings.json"))
    s.set_detection_backend("edge")
    s.set_enable_corner_detection(True)
    tracker = build_tracker(s, CalibrationSession())
    assert isinstance(tracker.left_locator.detector, EdgeDetector)
    assert tracker.left_locator.corner_locator is not None
    assert tracker.left_locator.filter is tracker.right_locator.filter
    assert tracker.baseline_offset_px == 930.0

    s.set_detection_backend("gradient")
    s.set_enable_temporal_fallback(False)
    tracker = build_tracker(s, CalibrationSession())
    assert isinstance(tracker.right_locator.detector, GradientDetector)
    assert tracker.right_locator.enable_temporal_fallback is False


def test_frame_sources(tmp_path):
    s = SettingsManager(str(tmp_path / "settings.json"))
    assert frame_sources(None, None, s) == ["1", "0"]
    srcs = frame_sources("/rec", "clip.mp4", s)
    assert srcs[0].endswith("1/clip.mp4") and srcs[1].endswith("0/clip.mp4")


def test_cli_flags():
    args = build_parser().parse_args(["--backend", "edge", "--corners", "--no-fallback", "--headless"])
    assert args.backend == "edge" and args.corners and args.no_fallback and args.headless
