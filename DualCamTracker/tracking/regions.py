"""
Shared geometry for the pupil pipeline.

A point is a plain ``(x, y)`` float tuple. ``NOT_FOUND`` (0, 0) means "no
detection"; detectors signal failure with both coordinates below 0.5.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Tuple

Point = Tuple[float, float]

NOT_FOUND: Point = (0.0, 0.0)
NOT_FOUND_THRESHOLD = 0.5


def is_not_found(p: Point) -> bool:
    return float(p[0]) < NOT_FOUND_THRESHOLD and float(p[1]) < NOT_FOUND_THRESHOLD


class EyeSide(Enum):
    LEFT = "left"
    RIGHT = "right"


@dataclass(frozen=True)
class EyeRegion:
    x: int
    y: int
    width: int
    height: int
    side: EyeSide = EyeSide.LEFT

    @property
    def area(self) -> int:
        return max(0, int(self.width)) * max(0, int(self.height))

    @property
    def is_empty(self) -> bool:
        return self.area == 0

    @property
    def is_left(self) -> bool:
        return self.side is EyeSide.LEFT

    @property
    def top_left(self) -> Point:
        return float(self.x), float(self.y)

    def crop(self, image):
        """Return the sub-image bounded by this region (numpy view)."""
        return image[int(self.y): int(self.y) + int(self.height), int(self.x): int(self.x) + int(self.width)]

    def with_side(self, side: EyeSide) -> "EyeRegion":
        return EyeRegion(self.x, self.y, self.width, self.height, side)


def offset(p: Point, by: Point) -> Point:
    return float(p[0]) + float(by[0]), float(p[1]) + float(by[1])
