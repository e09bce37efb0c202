"""
Planar geometry helpers shared by the grouping and normalisation stages.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Tuple


@dataclass(frozen=True)
class Point:
    """A single pen sample. ``timestamp`` is in milliseconds."""

    x: float
    y: float
    timestamp: int = 0
    pressure: float = 0.5

    def as_tuple(self) -> Tuple[float, float]:
        return (self.x, self.y)


def distance(a: Tuple[float, float], b: Tuple[float, float]) -> float:
    """Euclidean distance between two ``(x, y)`` pairs."""
    return math.hypot(a[0] - b[0], a[1] - b[1])


def range_overlap(start1: float, end1: float, start2: float, end2: float) -> float:
    """
    Fraction of the shorter interval covered by the intersection.

    Returns 0 unless the intersection has positive length, so touching
    intervals and zero-length intervals never overlap.
    """
    overlap_start = max(start1, start2)
    overlap_end = min(end1, end2)
    if overlap_start >= overlap_end:
        return 0.0
    return (overlap_end - overlap_start) / min(end1 - start1, end2 - start2)


def round_half_up(value: float) -> int:
    """Round .5 upwards, unlike the banker's rounding of ``round``."""
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned box with inclusive bounds."""

    min_x: float
    max_x: float
    min_y: float
    max_y: float

    def __post_init__(self) -> None:
        if self.min_x > self.max_x or self.min_y > self.max_y:
            raise ValueError(
                f"invalid bounding box: x=[{self.min_x}, {self.max_x}] y=[{self.min_y}, {self.max_y}]"
            )

    @classmethod
    def from_points(cls, points: Iterable[Tuple[float, float]]) -> "BoundingBox":
        xs = []
        ys = []
        for x, y in points:
            xs.append(x)
            ys.append(y)
        if not xs:
            raise ValueError("cannot build a bounding box from no points")
        return cls(min(xs), max(xs), min(ys), max(ys))

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y

    @property
    def pixel_width(self) -> int:
        """Width in whole pixels, counting both edge pixels."""
        return int(math.floor(self.max_x) - math.floor(self.min_x)) + 1

    @property
    def pixel_height(self) -> int:
        return int(math.floor(self.max_y) - math.floor(self.min_y)) + 1

    @property
    def center(self) -> Tuple[float, float]:
        return ((self.min_x + self.max_x) / 2.0, (self.min_y + self.max_y) / 2.0)

    @property
    def aspect_ratio(self) -> float:
        """Width over height; a flat box is infinitely wide, a point is square."""
        if self.height == 0:
            return 1.0 if self.width == 0 else math.inf
        return self.width / self.height

    def union(self, other: "BoundingBox") -> "BoundingBox":
        return BoundingBox(
            min(self.min_x, other.min_x),
            max(self.max_x, other.max_x),
            min(self.min_y, other.min_y),
            max(self.max_y, other.max_y),
        )

    def horizontal_gap(self, other: "BoundingBox") -> float:
        """Empty space between the boxes along x (0 when they overlap)."""
        return max(0.0, max(self.min_x, other.min_x) - min(self.max_x, other.max_x))

    def vertical_gap(self, other: "BoundingBox") -> float:
        return max(0.0, max(self.min_y, other.min_y) - min(self.max_y, other.max_y))

    def gap_distance(self, other: "BoundingBox") -> float:
        """Shortest distance between the two boxes (0 when they touch)."""
        return math.hypot(self.horizontal_gap(other), self.vertical_gap(other))

    def contains(self, x: float, y: float) -> bool:
        return self.min_x <= x <= self.max_x and self.min_y <= y <= self.max_y


def union_all(boxes: Iterable[BoundingBox]) -> BoundingBox:
    merged = None
    for box in boxes:
        merged = box if merged is None else merged.union(box)
    if merged is None:
        raise ValueError("cannot merge an empty collection of boxes")
    return merged
