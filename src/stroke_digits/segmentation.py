"""
Greedy grouping of strokes or pixel components into character groups.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .components import extract_components, remove_noise
from .config import ConnectivityConfig, SegmentationConfig
from .connectivity import ConnectivityScorer, Shape
from .geometry import BoundingBox, union_all
from .ink import PixelComponent, Stroke
from .logger import get_logger, log_execution_time

logger = get_logger(__name__)


@dataclass(frozen=True)
class CharacterGroup:
    """Shapes believed to form one glyph, in the order they were added."""

    shapes: Tuple[Shape, ...]
    bbox: BoundingBox
    indices: Tuple[int, ...]

    @classmethod
    def from_shapes(cls, shapes: Sequence[Shape], indices: Sequence[int]) -> "CharacterGroup":
        return cls(tuple(shapes), union_all(s.bbox for s in shapes), tuple(indices))

    @property
    def min_x(self) -> float:
        return self.bbox.min_x

    @property
    def is_raster(self) -> bool:
        return bool(self.shapes) and all(isinstance(s, PixelComponent) for s in self.shapes)

    @property
    def strokes(self) -> List[Stroke]:
        return [s for s in self.shapes if isinstance(s, Stroke)]

    def __len__(self) -> int:
        return len(self.shapes)


def _aspect_ratio(box: BoundingBox, discrete: bool) -> float:
    if discrete:
        return box.pixel_width / box.pixel_height
    return box.aspect_ratio


class Segmenter:
    """
    Grow groups shape by shape until no unvisited shape connects.

    A candidate joins an open group when its connectivity score against any
    member exceeds ``connectivity_threshold`` and the enlarged group still
    satisfies the size and aspect-ratio limits. The growth scan repeats until
    a full pass adds nothing, then the group is closed.
    """

    def __init__(
        self,
        config: Optional[SegmentationConfig] = None,
        connectivity: Optional[ConnectivityConfig] = None,
    ) -> None:
        self.config = config or SegmentationConfig()
        self.scorer = ConnectivityScorer(connectivity)

    def _max_members(self, shape: Shape) -> Optional[int]:
        if isinstance(shape, PixelComponent):
            return self.config.max_components_per_group
        return self.config.max_strokes_per_group

    def can_join(self, members: Sequence[Shape], candidate: Shape) -> bool:
        limit = self._max_members(candidate)
        if limit is not None and len(members) >= limit:
            return False
        if isinstance(candidate, PixelComponent) and candidate.area < self.config.min_component_area:
            return False
        merged = union_all([m.bbox for m in members] + [candidate.bbox])
        aspect = _aspect_ratio(merged, isinstance(candidate, PixelComponent))
        low, high = self.config.aspect_ratio_range
        return low <= aspect <= high

    @log_execution_time
    def segment(self, shapes: Sequence[Shape], canvas_width: Optional[float] = None) -> List[CharacterGroup]:
        if not shapes:
            return []
        width = float(canvas_width or self.config.default_canvas_width)
        scores = self.scorer.matrix(shapes, width)
        threshold = self.config.connectivity_threshold

        visited = [False] * len(shapes)
        groups: List[CharacterGroup] = []
        for seed in range(len(shapes)):
            if visited[seed]:
                continue
            visited[seed] = True
            indices = [seed]
            members: List[Shape] = [shapes[seed]]

            grew = True
            while grew:
                grew = False
                for candidate in range(len(shapes)):
                    if visited[candidate]:
                        continue
                    if not np.any(scores[indices, candidate] > threshold):
                        continue
                    if self.can_join(members, shapes[candidate]):
                        members.append(shapes[candidate])
                        indices.append(candidate)
                        visited[candidate] = True
                        grew = True

            groups.append(CharacterGroup.from_shapes(members, indices))

        groups.sort(key=lambda group: group.min_x)
        logger.debug(
            "Grouping complete: "
            + ", ".join(f"group{n + 1}({len(g)})" for n, g in enumerate(groups))
        )
        return groups

    def segment_strokes(self, strokes: Sequence[Stroke], canvas_width: Optional[float] = None) -> List[CharacterGroup]:
        return self.segment(list(strokes), canvas_width)

    def segment_raster(self, mask: np.ndarray, denoise: bool = True) -> List[CharacterGroup]:
        """Label 8-connected components of a boolean mask, then group them."""
        components = extract_components(mask, min_area=self.config.min_component_area)
        if denoise:
            components = remove_noise(components, self.config)
        return self.segment(components, canvas_width=float(np.asarray(mask).shape[1]))
