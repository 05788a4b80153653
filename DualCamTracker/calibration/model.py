"""Distance model: pupil separation (px) -> known distance.

Parallax grows as the viewer gets closer, so distance is regressed on the
inverse separation ``u = 1/s`` with a scikit-learn pipeline
(StandardScaler -> PolynomialFeatures -> Ridge).

Method:
  - 'poly1' : straight line in u (monotonic whenever the samples are)
  - 'poly2' : quadratic in u
  - 'auto'  : poly2 if it is strictly decreasing in s across the band
              evaluate() serves (see clamp_range_for), else poly1

``evaluate`` clamps its input into the sampled interval widened by
``extrapolation_margin`` so estimates far outside the calibration stay bounded.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np  # type: ignore

try:
    from sklearn.linear_model import Ridge  # type: ignore
    from sklearn.pipeline import Pipeline as SKPipeline  # type: ignore
    from sklearn.preprocessing import PolynomialFeatures, StandardScaler  # type: ignore
except Exception:  # pragma: no cover
    Ridge = None  # type: ignore
    SKPipeline = None  # type: ignore
    PolynomialFeatures = None  # type: ignore
    StandardScaler = None  # type: ignore

from .store import CalibrationSample

log = logging.getLogger(__name__)

METHODS = ("auto", "poly1", "poly2")
RIDGE_ALPHA = 1e-3
EXTRAPOLATION_MARGIN = 0.25
_MONOTONIC_GRID = 200


class ModelNotReadyError(RuntimeError):
    """Raised when evaluating a model that has not been fitted."""


@dataclass(frozen=True)
class DistanceModel:
    estimator: Optional[object] = None
    degree: int = 0
    sample_range: Tuple[float, float] = (0.0, 0.0)
    sample_count: int = 0
    rmse: float = float("nan")
    extrapolation_margin: float = EXTRAPOLATION_MARGIN

    @property
    def is_ready(self) -> bool:
        return self.estimator is not None

    def clamp_range(self) -> Tuple[float, float]:
        return clamp_range_for(*self.sample_range, self.extrapolation_margin)

    def evaluate(self, separation: float) -> float:
        if not self.is_ready:
            raise ModelNotReadyError("distance model is not fitted; finalize calibration first")
        return float(self._predict(np.array([float(separation)]))[0])

    def evaluate_many(self, separations: Sequence[float]) -> np.ndarray:
        if not self.is_ready:
            raise ModelNotReadyError("distance model is not fitted; finalize calibration first")
        return self._predict(np.asarray(separations, dtype=float))

    def _predict(self, s: np.ndarray) -> np.ndarray:
        lo, hi = self.clamp_range()
        s = np.clip(s, lo, hi)
        return np.asarray(self.estimator.predict((1.0 / s).reshape(-1, 1)), dtype=float)  # type: ignore[union-attr]

    # Diagnostic curves -------------------------------------------------
    def function_curve(self, lo: float, hi: float, step: float = 1.0) -> Tuple[np.ndarray, np.ndarray]:
        """Sample f(separation) -> distance over [lo, hi]."""
        xs = _grid(lo, hi, step)
        return xs, self.evaluate_many(xs)

    def uncertainty_curve(self, lo: float, hi: float, step: float = 1.0) -> Tuple[np.ndarray, np.ndarray]:
        """Distance change caused by a one pixel change in separation, over [lo, hi]."""
        xs = _grid(lo, hi, step)
        ys = np.abs(self.evaluate_many(xs + 1.0) - self.evaluate_many(xs))
        return xs, ys

    def equation(self) -> str:
        if not self.is_ready:
            return "d(s) = <not fitted>"
        coefs = _coefficients_in_u(self.estimator)
        terms = []
        for k, c in enumerate(coefs):
            if k == 0:
                terms.append(f"{c:.4f}")
            elif k == 1:
                terms.append(f"{c:+.4f}/s")
            else:
                terms.append(f"{c:+.4f}/s^{k}")
        return "d(s) = " + " ".join(terms) + f"   (n={self.sample_count}, rmse={self.rmse:.2f})"


def clamp_range_for(lo: float, hi: float, margin: float = EXTRAPOLATION_MARGIN) -> Tuple[float, float]:
    """Separations that evaluate() accepts before clamping, for samples in [lo, hi]."""
    pad = max(1.0, margin * (hi - lo))
    return max(lo - pad, 0.5 * lo), hi + pad


def _grid(lo: float, hi: float, step: float) -> np.ndarray:
    lo = float(lo); hi = float(hi)
    step = abs(float(step)) or 1.0
    if hi < lo:
        lo, hi = hi, lo
    lo = max(lo, 1e-6)
    n = int(math.floor((hi - lo) / step)) + 1
    return lo + step * np.arange(max(1, n), dtype=float)


def _coefficients_in_u(estimator) -> np.ndarray:
    """Expand the scaled polynomial back into plain powers of u = 1/s."""
    scaler = estimator.named_steps["scaler"]
    ridge = estimator.named_steps["ridge"]
    mean = float(scaler.mean_[0])
    scale = float(scaler.scale_[0]) or 1.0
    in_z = np.concatenate([[float(ridge.intercept_)], np.ravel(ridge.coef_)])
    z_of_u = [-mean / scale, 1.0 / scale]
    out = np.zeros(len(in_z), dtype=float)
    for k, c in enumerate(in_z):
        term = np.polynomial.polynomial.polypow(z_of_u, k)
        out[: len(term)] += float(c) * term
    return out


def _build(degree: int, alpha: float):
    if SKPipeline is None or PolynomialFeatures is None or Ridge is None or StandardScaler is None:
        raise RuntimeError("scikit-learn is required for distance calibration")
    return SKPipeline([
        ("scaler", StandardScaler()),
        ("poly", PolynomialFeatures(degree=degree, include_bias=False)),
        ("ridge", Ridge(alpha=alpha, random_state=42)),
    ])


def _is_decreasing(estimator, lo: float, hi: float) -> bool:
    """True when d(s) falls strictly across [lo, hi].

    Checked on the derivative in u = 1/s, which must stay positive; for the
    degrees used here it is at most linear in u, so the grid endpoints decide.
    """
    u = 1.0 / np.linspace(lo, hi, _MONOTONIC_GRID)
    deriv = np.polynomial.polynomial.polyder(_coefficients_in_u(estimator))
    slope = np.polynomial.polynomial.polyval(u, deriv) if len(deriv) else np.zeros_like(u)
    return bool(np.all(slope > 0.0))


def fit(
    samples: Sequence[CalibrationSample],
    method: str = "auto",
    ridge_alpha: float = RIDGE_ALPHA,
    extrapolation_margin: float = EXTRAPOLATION_MARGIN,
) -> DistanceModel:
    """Fit a model from a snapshot of samples.

    Samples with a non-positive separation are ignored. Fewer than two
    distinct separations give a model that is not ready.
    """
    if method not in METHODS:
        raise ValueError(f"unknown fit method: {method!r}")
    usable = [s for s in samples if float(s.separation) > 0.0]
    if len(usable) < len(samples):
        log.warning("ignoring %d sample(s) with non-positive separation", len(samples) - len(usable))
    seps = np.array([float(s.separation) for s in usable], dtype=float)
    dists = np.array([float(s.distance) for s in usable], dtype=float)
    if len(np.unique(seps)) < 2:
        log.warning("need at least two distinct separations to fit, have %d", len(np.unique(seps)))
        return DistanceModel(sample_count=len(usable), extrapolation_margin=float(extrapolation_margin))

    X = (1.0 / seps).reshape(-1, 1)
    lo, hi = float(seps.min()), float(seps.max())
    band = clamp_range_for(lo, hi, float(extrapolation_margin))

    chosen = None
    degree = 1
    if method in ("poly2", "auto") and len(np.unique(seps)) >= 3:
        cand = _build(2, ridge_alpha)
        cand.fit(X, dists)
        if method == "poly2" or _is_decreasing(cand, *band):
            chosen, degree = cand, 2
    if chosen is None:
        chosen = _build(1, ridge_alpha)
        chosen.fit(X, dists)
        degree = 1
        if not _is_decreasing(chosen, *band):
            log.warning("calibration samples do not show distance falling as separation grows")

    err = np.asarray(chosen.predict(X), dtype=float) - dists
    rmse = math.sqrt(float(np.mean(err * err)))
    return DistanceModel(
        estimator=chosen,
        degree=degree,
        sample_range=(lo, hi),
        sample_count=len(usable),
        rmse=rmse,
        extrapolation_margin=float(extrapolation_margin),
    )


def evaluate(model: DistanceModel, separation: float) -> float:
    return model.evaluate(separation)
