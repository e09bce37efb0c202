"""
Ink primitives: pen strokes and raster pixel components.

Both shape kinds expose the same read-only surface used by the connectivity
scorer and the segmenter: a bounding box, ``width``/``height``, a start and
end point, a horizontal centre and a start time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import cached_property
from typing import FrozenSet, Iterable, Sequence, Tuple

from .geometry import BoundingBox, Point, distance

Pixel = Tuple[int, int]


@dataclass(frozen=True)
class Stroke:
    """One pen-down to pen-up gesture."""

    points: Tuple[Point, ...]

    discrete = False

    def __post_init__(self) -> None:
        if not self.points:
            raise ValueError("a stroke needs at least one point")
        object.__setattr__(self, "points", tuple(self.points))

    @classmethod
    def from_xy(cls, coords: Iterable[Sequence[float]], start_time: int = 0, interval_ms: int = 16) -> "Stroke":
        """Build a stroke from bare ``(x, y)`` pairs with evenly spaced timestamps."""
        points = tuple(
            Point(float(xy[0]), float(xy[1]), start_time + index * interval_ms)
            for index, xy in enumerate(coords)
        )
        return cls(points)

    @cached_property
    def bbox(self) -> BoundingBox:
        return BoundingBox.from_points(p.as_tuple() for p in self.points)

    @property
    def width(self) -> float:
        return self.bbox.width

    @property
    def height(self) -> float:
        return self.bbox.height

    @property
    def start_point(self) -> Tuple[float, float]:
        return self.points[0].as_tuple()

    @property
    def end_point(self) -> Tuple[float, float]:
        return self.points[-1].as_tuple()

    @property
    def start_time(self) -> int:
        return self.points[0].timestamp

    @property
    def duration(self) -> int:
        return self.points[-1].timestamp - self.points[0].timestamp

    @property
    def center_x(self) -> float:
        return self.bbox.center[0]

    @property
    def center_y(self) -> float:
        return self.bbox.center[1]

    @property
    def direction(self) -> Tuple[float, float]:
        return (self.end_point[0] - self.start_point[0], self.end_point[1] - self.start_point[1])

    @cached_property
    def length(self) -> float:
        """Total path length along the polyline."""
        return sum(
            distance(a.as_tuple(), b.as_tuple()) for a, b in zip(self.points, self.points[1:])
        )

    def __len__(self) -> int:
        return len(self.points)


@dataclass(frozen=True)
class PixelComponent:
    """
    An 8-connected set of foreground pixels.

    ``pixels`` keeps raster scan order (row by row, left to right); the first
    and last entries double as the component's start and end points.
    """

    pixels: Tuple[Pixel, ...]
    pixel_set: FrozenSet[Pixel] = field(init=False, repr=False, compare=False)

    discrete = True

    def __post_init__(self) -> None:
        if not self.pixels:
            raise ValueError("a pixel component needs at least one pixel")
        ordered = tuple(sorted({(int(x), int(y)) for x, y in self.pixels}, key=lambda p: (p[1], p[0])))
        object.__setattr__(self, "pixels", ordered)
        object.__setattr__(self, "pixel_set", frozenset(ordered))

    @cached_property
    def bbox(self) -> BoundingBox:
        return BoundingBox.from_points(self.pixels)

    @property
    def area(self) -> int:
        return len(self.pixels)

    @property
    def width(self) -> int:
        return self.bbox.pixel_width

    @property
    def height(self) -> int:
        return self.bbox.pixel_height

    @property
    def start_point(self) -> Tuple[float, float]:
        return (float(self.pixels[0][0]), float(self.pixels[0][1]))

    @property
    def end_point(self) -> Tuple[float, float]:
        return (float(self.pixels[-1][0]), float(self.pixels[-1][1]))

    @property
    def start_time(self) -> int:
        return 0

    @property
    def center_x(self) -> float:
        return self.bbox.center[0]

    @property
    def center_y(self) -> float:
        return self.bbox.center[1]

    @property
    def elongation(self) -> float:
        """Longer over shorter bounding-box side."""
        return max(self.width, self.height) / max(1, min(self.width, self.height))

    def __contains__(self, pixel: object) -> bool:
        return pixel in self.pixel_set

    def __len__(self) -> int:
        return len(self.pixels)

