"""
Settings manager for DualCamTracker.

Loads/saves JSON settings from DualCamTracker/settings.json (override the path
with DUALCAM_SETTINGS) and exposes typed helpers. Missing keys fall back to
the defaults below.
"""
from __future__ import annotations

import copy
import json
import os
from typing import Any, Dict, List, Optional

DEFAULTS: Dict[str, Any] = {
    "tracking": {
        "enable_corner_detection": False,
        "enable_temporal_fallback": True,
        "detection_backend": "gradient",
        "parallel": False,
    },
    "filter": {"process_noise": 0.05, "measurement_noise": 1.0},
    "dualcam": {
        "baseline_offset_px": 930,
        "calibration_path": "dualcam_calib.txt",
        "default_target_distance": 500,
    },
    "model": {"method": "auto", "ridge_alpha": 1e-3, "extrapolation_margin": 0.25},
    # Left eye camera first, right eye camera second
    "camera": {"indices": [1, 0], "fps": 30},
}


class SettingsManager:
    def __init__(self, path: Optional[str] = None) -> None:
        if path is None:
            path = (os.environ.get("DUALCAM_SETTINGS", "") or "").strip() or None
        if path is None:
            here = os.path.dirname(os.path.abspath(__file__))
            path = os.path.join(os.path.dirname(here), "settings.json")
        self.path = path
        self.data: Dict[str, Any] = {}
        self.load()

    def load(self) -> None:
        self.data = copy.deepcopy(DEFAULTS)
        if not os.path.exists(self.path):
            return
        with open(self.path, "r", encoding="utf-8") as f:
            stored = json.load(f)
        for section, values in stored.items():
            if isinstance(values, dict) and isinstance(self.data.get(section), dict):
                self.data[section].update(values)
            else:
                self.data[section] = values

    def save(self) -> None:
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(self.data, f, indent=2)

    def _get(self, section: str, key: str) -> Any:
        return self.data.get(section, {}).get(key, DEFAULTS[section][key])

    def _set(self, section: str, key: str, value: Any) -> None:
        self.data.setdefault(section, {})[key] = value

    # Tracking ----------------------------------------------------------
    def enable_corner_detection(self) -> bool:
        return bool(self._get("tracking", "enable_corner_detection"))

    def set_enable_corner_detection(self, on: bool) -> None:
        self._set("tracking", "enable_corner_detection", bool(on))

    def enable_temporal_fallback(self) -> bool:
        return bool(self._get("tracking", "enable_temporal_fallback"))

    def set_enable_temporal_fallback(self, on: bool) -> None:
        self._set("tracking", "enable_temporal_fallback", bool(on))

    def detection_backend(self) -> str:
        return str(self._get("tracking", "detection_backend")).strip().lower()

    def set_detection_backend(self, name: str) -> None:
        self._set("tracking", "detection_backend", str(name).strip().lower())

    def parallel(self) -> bool:
        return bool(self._get("tracking", "parallel"))

    # Filter ------------------------------------------------------------
    def process_noise(self) -> float:
        return float(self._get("filter", "process_noise"))

    def measurement_noise(self) -> float:
        return float(self._get("filter", "measurement_noise"))

    # Dual camera -------------------------------------------------------
    def baseline_offset_px(self) -> float:
        return float(self._get("dualcam", "baseline_offset_px"))

    def calibration_path(self) -> str:
        return str(self._get("dualcam", "calibration_path"))

    def set_calibration_path(self, path: str) -> None:
        self._set("dualcam", "calibration_path", str(path))

    def default_target_distance(self) -> int:
        return int(self._get("dualcam", "default_target_distance"))

    # Model -------------------------------------------------------------
    def model_method(self) -> str:
        return str(self._get("model", "method"))

    def ridge_alpha(self) -> float:
        return float(self._get("model", "ridge_alpha"))

    def extrapolation_margin(self) -> float:
        return float(self._get("model", "extrapolation_margin"))

    # Camera ------------------------------------------------------------
    def camera_indices(self) -> List[int]:
        arr = self._get("camera", "indices")
        try:
            return [int(arr[0]), int(arr[1])]
        except Exception:
            return list(DEFAULTS["camera"]["indices"])

    def camera_fps(self) -> int:
        return int(self._get("camera", "fps"))
