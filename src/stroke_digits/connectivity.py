"""
Pairwise "same character" likelihood between two shapes.

A shape is a :class:`~stroke_digits.ink.Stroke` or a
:class:`~stroke_digits.ink.PixelComponent`; the score only relies on the
surface they share (bbox, width, height, endpoints, centre, start time).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Union

import numpy as np

from .config import ConnectivityConfig
from .geometry import distance, range_overlap
from .ink import PixelComponent, Stroke

Shape = Union[Stroke, PixelComponent]


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


@dataclass(frozen=True)
class ScoreBreakdown:
    proximity: float
    size: float
    spatial: float
    temporal: float
    separation: float
    total: float

    def as_dict(self) -> Dict[str, float]:
        return {
            "proximity": self.proximity,
            "size": self.size,
            "spatial": self.spatial,
            "temporal": self.temporal,
            "separation": self.separation,
            "total": self.total,
        }


class ConnectivityScorer:
    """Weighted blend of five geometric and temporal cues, clamped to [0, 1]."""

    def __init__(self, config: Optional[ConnectivityConfig] = None) -> None:
        self.config = config or ConnectivityConfig()

    def proximity(self, a: Shape, b: Shape) -> float:
        endpoint_gap = min(
            distance(a.end_point, b.start_point),
            distance(a.start_point, b.end_point),
            distance(a.end_point, b.end_point),
            distance(a.start_point, b.start_point),
        )
        nearest = min(endpoint_gap, a.bbox.gap_distance(b.bbox))
        return max(0.0, 1.0 - nearest / self.config.proximity_threshold)

    def size_similarity(self, a: Shape, b: Shape) -> float:
        size_a = max(a.width, a.height)
        size_b = max(b.width, b.height)
        larger = max(size_a, size_b)
        if larger == 0:
            return 1.0
        ratio = min(size_a, size_b) / larger
        cutoff = self.config.size_ratio_cutoff
        return 1.0 if ratio > cutoff else ratio / cutoff

    def spatial_relationship(self, a: Shape, b: Shape, canvas_width: float) -> float:
        box_a, box_b = a.bbox, b.bbox
        horizontal = range_overlap(box_a.min_x, box_a.max_x, box_b.min_x, box_b.max_x)
        vertical = range_overlap(box_a.min_y, box_a.max_y, box_b.min_y, box_b.max_y)
        penalty = 1.0
        if box_a.horizontal_gap(box_b) > canvas_width * self.config.gap_fraction:
            penalty = self.config.gap_penalty
        return max(horizontal, self.config.vertical_overlap_factor * vertical) * penalty

    def temporal_continuity(self, a: Shape, b: Shape) -> float:
        elapsed = abs(a.start_time - b.start_time)
        return max(0.0, 1.0 - elapsed / self.config.temporal_window_ms)

    def separation_likelihood(self, a: Shape, b: Shape, canvas_width: float) -> float:
        centre_gap = abs(a.center_x - b.center_x)
        average_width = (a.width + b.width) / 2.0
        if centre_gap > canvas_width * self.config.separation_distance_fraction and average_width > 0:
            if centre_gap / average_width > self.config.separation_ratio:
                return self.config.separation_score
        return 1.0

    def breakdown(self, a: Shape, b: Shape, canvas_width: float) -> ScoreBreakdown:
        cfg = self.config
        parts = (
            _clamp(self.proximity(a, b)),
            _clamp(self.size_similarity(a, b)),
            _clamp(self.spatial_relationship(a, b, canvas_width)),
            _clamp(self.temporal_continuity(a, b)),
            _clamp(self.separation_likelihood(a, b, canvas_width)),
        )
        total = sum(weight * part for weight, part in zip(cfg.weights, parts))
        return ScoreBreakdown(*parts, total=_clamp(total))

    def score(self, a: Shape, b: Shape, canvas_width: float) -> float:
        return self.breakdown(a, b, canvas_width).total

    def matrix(self, shapes: Sequence[Shape], canvas_width: float) -> np.ndarray:
        """Symmetric score matrix; the diagonal is left at zero."""
        count = len(shapes)
        scores = np.zeros((count, count), dtype=np.float64)
        for i in range(count):
            for j in range(i + 1, count):
                scores[i, j] = scores[j, i] = self.score(shapes[i], shapes[j], canvas_width)
        return scores
