from __future__ import annotations

import csv
from typing import List, Optional, Sequence, Tuple

import numpy as np  # type: ignore
import matplotlib
matplotlib.use("Agg")  # headless-safe backend
import matplotlib.pyplot as plt  # type: ignore

from DualCamTracker.calibration.model import DistanceModel
from DualCamTracker.calibration.store import CalibrationSample

GRAPH_PADDING_PX = 10.0


def graph_range(samples: Sequence[CalibrationSample], padding: float = GRAPH_PADDING_PX) -> Optional[Tuple[float, float]]:
    """Separation range to plot: sampled min/max widened by ``padding`` px."""
    if not samples:
        return None
    seps = [float(s.separation) for s in samples]
    return min(seps) - padding, max(seps) + padding


def plot_range(model: DistanceModel, samples: Sequence[CalibrationSample]) -> Optional[Tuple[float, float]]:
    """graph_range() cut to the separations the model answers without clamping."""
    rng = graph_range(samples)
    if rng is None or not model.is_ready:
        return None
    clo, chi = model.clamp_range()
    lo, hi = max(rng[0], clo), min(rng[1], chi)
    return (lo, hi) if hi > lo else None


def fig_estimation_function(model: DistanceModel, lo: float, hi: float, measured: Sequence[CalibrationSample] = ()):
    fig, ax = plt.subplots(figsize=(6, 4))
    ax.set_title("Distance estimation f(x)")
    xs, ys = model.function_curve(lo, hi)
    ax.plot(xs, ys, c="steelblue", label="f(x)")
    if measured:
        m = np.array([(s.separation, s.distance) for s in measured], dtype=float)
        ax.scatter(m[:, 0], m[:, 1], c="red", label="Measured")
    ax.set_xlabel("Pupil separation (px)")
    ax.set_ylabel("Distance")
    ax.legend(loc="best")
    ax.grid(True, alpha=0.3)
    fig.tight_layout()
    return fig


def fig_uncertainty(model: DistanceModel, lo: float, hi: float):
    fig, ax = plt.subplots(figsize=(6, 4))
    ax.set_title("Uncertainty for 1px")
    xs, ys = model.uncertainty_curve(lo, hi)
    ax.plot(xs, ys, c="orange")
    ax.set_xlabel("Pupil separation (px)")
    ax.set_ylabel("Distance change per px")
    ax.grid(True, alpha=0.3)
    fig.tight_layout()
    return fig


def write_curve_csv(path: str, xs: Sequence[float], ys: Sequence[float], header: Tuple[str, str] = ("separation", "value")) -> None:
    with open(path, "w", newline="", encoding="utf-8") as f:
        w = csv.writer(f)
        w.writerow(list(header))
        for x, y in zip(xs, ys):
            w.writerow([f"{float(x):.3f}", f"{float(y):.6f}"])


def save_graphs(model: DistanceModel, samples: Sequence[CalibrationSample], out_prefix: str = "graph") -> List[str]:
    """Write both diagnostic graphs plus the uncertainty CSV; returns written paths."""
    rng = plot_range(model, samples)
    if rng is None:
        return []
    lo, hi = rng
    # uncertainty looks one pixel ahead, so stop a pixel early to stay unclamped
    u_hi = max(lo, min(hi, model.clamp_range()[1] - 1.0))
    written: List[str] = []
    fig = fig_estimation_function(model, lo, hi, samples)
    path = f"{out_prefix}_estimation_function.jpg"
    fig.savefig(path)
    plt.close(fig)
    written.append(path)
    fig = fig_uncertainty(model, lo, u_hi)
    path = f"{out_prefix}_uncertainty.jpg"
    fig.savefig(path)
    plt.close(fig)
    written.append(path)
    xs, ys = model.uncertainty_curve(lo, u_hi)
    path = f"{out_prefix}_uncertainty.csv"
    write_curve_csv(path, xs, ys, header=("separation", "uncertainty"))
    written.append(path)
    return written
