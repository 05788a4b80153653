"""Calibration session state machine.

COLLECTING --measure/undo--> COLLECTING
COLLECTING --confirm-------> FINALIZED
any        --reset---------> COLLECTING
any        --reload(path)--> FINALIZED
"""
from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Optional

from .model import EXTRAPOLATION_MARGIN, RIDGE_ALPHA, DistanceModel, ModelNotReadyError, fit
from .store import CalibrationSample, CalibrationStore, EmptyStoreError

log = logging.getLogger(__name__)

DEFAULT_TARGET_DISTANCE = 500


class IllegalStateError(RuntimeError):
    """Raised when a session event is not valid in the current state."""


class SessionState(Enum):
    COLLECTING = "collecting"
    FINALIZED = "finalized"


class CalibrationSession:
    def __init__(
        self,
        calibration_path: Optional[str] = None,
        *,
        target_distance: int = DEFAULT_TARGET_DISTANCE,
        method: str = "auto",
        ridge_alpha: float = RIDGE_ALPHA,
        extrapolation_margin: float = EXTRAPOLATION_MARGIN,
    ) -> None:
        self._lock = threading.RLock()
        self.calibration_path = calibration_path
        self.method = method
        self.ridge_alpha = float(ridge_alpha)
        self.extrapolation_margin = float(extrapolation_margin)
        self.target_distance = int(target_distance)
        self._store = CalibrationStore()
        self._model: Optional[DistanceModel] = None
        self._state = SessionState.COLLECTING

    @classmethod
    def open(cls, calibration_path: str, **kwargs) -> "CalibrationSession":
        """Start from a persisted calibration if one loads, else start collecting."""
        session = cls(calibration_path, **kwargs)
        session.reload(calibration_path)
        return session

    # Read-only view ----------------------------------------------------
    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._state

    @property
    def model(self) -> Optional[DistanceModel]:
        with self._lock:
            return self._model

    @property
    def sample_count(self) -> int:
        with self._lock:
            return len(self._store)

    def samples(self):
        with self._lock:
            return self._store.snapshot()

    # Events ------------------------------------------------------------
    def select_target_digit(self, digit: int) -> int:
        """Digit keys pick the next capture distance as ``digit * 100``."""
        d = int(digit)
        if not 0 <= d <= 9:
            raise ValueError("digit must be 0-9")
        with self._lock:
            self.target_distance = d * 100
            return self.target_distance

    def measure(self, separation: float, distance: Optional[int] = None) -> CalibrationSample:
        with self._lock:
            self._require(SessionState.COLLECTING, "measure")
            sample = CalibrationSample(int(self.target_distance if distance is None else distance), float(separation))
            self._store.add(sample)
            log.info("sample %d: %d <- %.2f px", len(self._store), sample.distance, sample.separation)
            return sample

    def undo(self) -> CalibrationSample:
        with self._lock:
            self._require(SessionState.COLLECTING, "undo")
            try:
                return self._store.undo_last()
            except EmptyStoreError:
                log.info("undo ignored: no samples collected")
                raise

    def confirm(self, persist: bool = True) -> DistanceModel:
        with self._lock:
            self._require(SessionState.COLLECTING, "confirm")
            return self._finalize_locked(persist=persist)

    def reset(self) -> None:
        with self._lock:
            self._store.clear()
            self._model = None
            self._state = SessionState.COLLECTING
            log.info("calibration reset")

    def reload(self, path: Optional[str] = None) -> Optional[DistanceModel]:
        """Replace the samples from a file, fit and finalize.

        When nothing could be loaded the session falls back to COLLECTING with
        an empty store and None is returned.
        """
        with self._lock:
            src = path or self.calibration_path
            if not src:
                raise ValueError("no calibration path given")
            n = self._store.load(src)
            log.info("loaded %d calibration sample(s) from %s", n, src)
            if n == 0:
                self._model = None
                self._state = SessionState.COLLECTING
                return None
            return self._finalize_locked(persist=False)

    def evaluate(self, separation: float) -> float:
        with self._lock:
            model = self._model
        if model is None:
            raise ModelNotReadyError("calibration is not finalized")
        return model.evaluate(separation)

    # Internals ---------------------------------------------------------
    def _require(self, state: SessionState, action: str) -> None:
        if self._state is not state:
            raise IllegalStateError(f"cannot {action} while {self._state.value}")

    def _finalize_locked(self, persist: bool) -> DistanceModel:
        model = fit(
            self._store.snapshot(),
            method=self.method,
            ridge_alpha=self.ridge_alpha,
            extrapolation_margin=self.extrapolation_margin,
        )
        self._model = model
        self._state = SessionState.FINALIZED
        log.info("calibration finalized: %s", model.equation())
        if persist and self.calibration_path:
            try:
                self._store.save(self.calibration_path)
            except OSError as e:
                log.warning("failed to save calibration to %s: %s", self.calibration_path, e)
        return model
