"""
Pixel-level pupil detectors.

Responsibilities:
- Take a full image plus an eye region and return the pupil centre in
  region-local coordinates
- Signal "not found" with a point whose coordinates are both below 0.5

Two backends are available and chosen at runtime:
- GradientDetector: means-of-gradients eye-centre search (Timm & Barth)
- EdgeDetector: Canny edges + ellipse fit on the darkest closed contour

No smoothing or fallback happens here; see PupilLocator.
"""
from __future__ import annotations

from enum import Enum
from typing import Optional, Protocol

try:
    import cv2  # type: ignore
except Exception:  # pragma: no cover
    cv2 = None

import numpy as np  # type: ignore

from .regions import NOT_FOUND, EyeRegion, Point


# Gradient algorithm parameters
FAST_EYE_WIDTH = 50
WEIGHT_BLUR_SIZE = 5
ENABLE_WEIGHT = True
WEIGHT_DIVISOR = 1.0
GRADIENT_THRESHOLD = 50.0


class PupilDetector(Protocol):
    def detect(self, image, region: EyeRegion) -> Point:
        ...


class DetectionBackend(Enum):
    GRADIENT = "gradient"
    EDGE = "edge"

    @classmethod
    def parse(cls, value: "str | DetectionBackend") -> "DetectionBackend":
        if isinstance(value, DetectionBackend):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"unknown detection backend: {value!r}") from None


def _require_cv2() -> None:
    if cv2 is None:
        raise RuntimeError("OpenCV (cv2) is not installed.")


def to_gray(image) -> np.ndarray:
    arr = np.asarray(image)
    if arr.ndim == 3:
        _require_cv2()
        if arr.shape[2] == 4:
            return cv2.cvtColor(arr, cv2.COLOR_BGRA2GRAY)
        return cv2.cvtColor(arr, cv2.COLOR_BGR2GRAY)
    return arr


def _sub_image(image, region: EyeRegion) -> Optional[np.ndarray]:
    if region.is_empty or image is None:
        return None
    sub = to_gray(region.crop(np.asarray(image)))
    if sub.size == 0 or sub.shape[0] < 3 or sub.shape[1] < 3:
        return None
    return sub


class GradientDetector:
    """Eye centre as the point most gradient vectors point away from.

    The eye image is scaled to ``fast_width`` columns; gradients whose
    magnitude is below a dynamic threshold are discarded and each candidate
    centre is scored by the mean squared dot product between its displacement
    to every gradient pixel and that pixel's normalized gradient, weighted by
    darkness at the candidate.
    """

    def __init__(
        self,
        fast_width: int = FAST_EYE_WIDTH,
        gradient_threshold: float = GRADIENT_THRESHOLD,
        enable_weight: bool = ENABLE_WEIGHT,
        weight_divisor: float = WEIGHT_DIVISOR,
    ) -> None:
        self.fast_width = max(8, int(fast_width))
        self.gradient_threshold = float(gradient_threshold)
        self.enable_weight = bool(enable_weight)
        self.weight_divisor = float(weight_divisor) or 1.0

    def detect(self, image, region: EyeRegion) -> Point:
        sub = _sub_image(image, region)
        if sub is None:
            return NOT_FOUND
        _require_cv2()
        h, w = sub.shape[:2]
        scale = float(self.fast_width) / float(w)
        small_h = max(3, int(round(h * scale)))
        eye = cv2.resize(sub, (self.fast_width, small_h), interpolation=cv2.INTER_AREA).astype(np.float64)

        gx = np.gradient(eye, axis=1)
        gy = np.gradient(eye, axis=0)
        mags = np.sqrt(gx * gx + gy * gy)
        thresh = self._dynamic_threshold(mags)
        keep = mags >= thresh
        keep &= mags > 0.0
        if not np.any(keep):
            return NOT_FOUND
        ys, xs = np.nonzero(keep)
        gxn = gx[keep] / mags[keep]
        gyn = gy[keep] / mags[keep]

        if self.enable_weight:
            blurred = cv2.GaussianBlur(eye, (WEIGHT_BLUR_SIZE, WEIGHT_BLUR_SIZE), 0, 0)
            weight = (255.0 - blurred) / self.weight_divisor
        else:
            weight = np.ones_like(eye)

        rows, cols = eye.shape
        cy, cx = np.mgrid[0:rows, 0:cols]
        cx = cx.reshape(-1, 1).astype(np.float64)
        cy = cy.reshape(-1, 1).astype(np.float64)
        dx = xs[None, :] - cx
        dy = ys[None, :] - cy
        norm = np.sqrt(dx * dx + dy * dy)
        norm[norm == 0.0] = np.inf
        dots = (dx * gxn[None, :] + dy * gyn[None, :]) / norm
        np.maximum(dots, 0.0, out=dots)
        score = (dots * dots).sum(axis=1) * weight.reshape(-1)
        score /= float(len(xs))

        best = int(np.argmax(score))
        if score[best] <= 0.0:
            return NOT_FOUND
        by, bx = divmod(best, cols)
        return float(bx) / scale, float(by) * (float(h) / float(rows))

    def _dynamic_threshold(self, mags: np.ndarray) -> float:
        mean = float(mags.mean())
        std = float(mags.std())
        return self.gradient_threshold * std / np.sqrt(mags.size) + mean


class EdgeDetector:
    """Pupil centre from the darkest ellipse found among edge contours."""

    def __init__(self, blur_size: int = 5, canny_low: float = 30.0, canny_high: float = 90.0, min_points: int = 5, min_axis_px: float = 2.0) -> None:
        self.blur_size = int(blur_size) | 1
        self.canny_low = float(canny_low)
        self.canny_high = float(canny_high)
        self.min_points = max(5, int(min_points))
        self.min_axis_px = float(min_axis_px)

    def detect(self, image, region: EyeRegion) -> Point:
        sub = _sub_image(image, region)
        if sub is None:
            return NOT_FOUND
        _require_cv2()
        gray = sub.astype(np.uint8)
        blurred = cv2.GaussianBlur(gray, (self.blur_size, self.blur_size), 0)
        edges = cv2.Canny(blurred, self.canny_low, self.canny_high)
        # Close small gaps so the pupil boundary yields one contour
        kernel = cv2.getStructuringElement(cv2.MORPH_ELLIPSE, (3, 3))
        edges = cv2.morphologyEx(edges, cv2.MORPH_CLOSE, kernel, iterations=1)
        contours, _ = cv2.findContours(edges, cv2.RETR_LIST, cv2.CHAIN_APPROX_NONE)
        if not contours:
            return NOT_FOUND

        h, w = gray.shape[:2]
        best_center: Optional[Point] = None
        best_darkness = -1.0
        for contour in contours:
            if len(contour) < self.min_points:
                continue
            (ex, ey), (ma, mi), angle = cv2.fitEllipse(contour)
            if min(ma, mi) < self.min_axis_px or max(ma, mi) > 1.2 * max(w, h):
                continue
            if not (0.0 <= ex < w and 0.0 <= ey < h):
                continue
            aspect = min(ma, mi) / max(ma, mi)
            if aspect < 0.4:
                continue
            mask = np.zeros(gray.shape, dtype=np.uint8)
            cv2.ellipse(mask, ((ex, ey), (ma * 0.8, mi * 0.8), angle), 255, -1)
            if not np.any(mask):
                continue
            darkness = 255.0 - float(cv2.mean(blurred, mask=mask)[0])
            if darkness > best_darkness:
                best_darkness = darkness
                best_center = (float(ex), float(ey))
        if best_center is None:
            return NOT_FOUND
        return best_center


def make_detector(backend: "str | DetectionBackend") -> PupilDetector:
    kind = DetectionBackend.parse(backend)
    if kind is DetectionBackend.EDGE:
        return EdgeDetector()
    return GradientDetector()
