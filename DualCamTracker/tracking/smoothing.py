from __future__ import annotations

from typing import Dict, Optional, Tuple

from .regions import NOT_FOUND, EyeSide, Point, is_not_found


# Default filter constants
PROCESS_NOISE = 0.05
MEASUREMENT_NOISE = 1.0


class KalmanSmoother:
    """Constant-position Kalman estimator for 2D points (one scalar filter per axis).

    Parameters:
    - process_noise: how much the true position may wander per update; higher = less lag
    - measurement_noise: expected detector jitter; higher = more smoothing

    The first sample initializes the state. With a constant input the estimate
    converges geometrically to that input.
    """

    def __init__(self, process_noise: float = PROCESS_NOISE, measurement_noise: float = MEASUREMENT_NOISE) -> None:
        self.q = max(1e-9, float(process_noise))
        self.r = max(1e-9, float(measurement_noise))
        self._x: Optional[Tuple[float, float]] = None
        self._p: Tuple[float, float] = (self.r, self.r)

    def reset(self) -> None:
        self._x = None
        self._p = (self.r, self.r)

    @property
    def state(self) -> Optional[Tuple[float, float]]:
        return self._x

    def apply_float(self, xy: Tuple[float, float]) -> Tuple[float, float]:
        x0 = float(xy[0]); y0 = float(xy[1])
        if self._x is None:
            self._x = (x0, y0)
            self._p = (self.r, self.r)
            return (x0, y0)
        sx, sy = self._x
        px, py = self._p
        # Predict (position assumed constant, uncertainty grows)
        px += self.q
        py += self.q
        # Correct
        kx = px / (px + self.r)
        ky = py / (py + self.r)
        sx = sx + kx * (x0 - sx)
        sy = sy + ky * (y0 - sy)
        self._x = (sx, sy)
        self._p = ((1.0 - kx) * px, (1.0 - ky) * py)
        return (sx, sy)


class PositionFilter:
    """Per-eye smoothing with last-known-value fallback.

    Holds one ``KalmanSmoother`` per side. ``smooth`` never raises and always
    returns a point.
    """

    def __init__(
        self,
        *,
        enable_fallback: bool = True,
        process_noise: float = PROCESS_NOISE,
        measurement_noise: float = MEASUREMENT_NOISE,
    ) -> None:
        self.enable_fallback = bool(enable_fallback)
        self._filters: Dict[EyeSide, KalmanSmoother] = {
            EyeSide.LEFT: KalmanSmoother(process_noise, measurement_noise),
            EyeSide.RIGHT: KalmanSmoother(process_noise, measurement_noise),
        }
        self._last: Dict[EyeSide, Point] = {EyeSide.LEFT: NOT_FOUND, EyeSide.RIGHT: NOT_FOUND}

    def reset(self) -> None:
        for side, f in self._filters.items():
            f.reset()
            self._last[side] = NOT_FOUND

    def previous_point(self, side: EyeSide) -> Point:
        return self._last[side]

    def smooth(self, side: EyeSide, raw: Point) -> Point:
        if self.enable_fallback and is_not_found(raw):
            # Carry forward, state untouched
            return self._last[side]
        out = self._filters[side].apply_float(raw)
        self._last[side] = out
        return out
