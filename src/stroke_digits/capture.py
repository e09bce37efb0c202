"""
Stroke capture session: the non-visual state behind a drawing surface.

A UI feeds pointer samples in with ``begin_stroke``/``add_point``/
``end_stroke``. Finished strokes that are too short to be intentional ink
are discarded; accepted strokes are stored and, when a scheduler is
attached, trigger a debounced recognition pass.
"""

from __future__ import annotations

import threading
from typing import Iterable, List, Optional

from .config import SegmentationConfig
from .geometry import Point
from .ink import Stroke
from .logger import get_logger
from .scheduler import RecognitionScheduler

logger = get_logger(__name__)


def is_intentional(stroke: Stroke, config: SegmentationConfig) -> bool:
    """Reject taps and jitter: too few samples or too short a path."""
    return len(stroke) >= config.min_stroke_points and stroke.length >= config.min_stroke_length


def filter_strokes(strokes: Iterable[Stroke], config: Optional[SegmentationConfig] = None) -> List[Stroke]:
    config = config or SegmentationConfig()
    return [stroke for stroke in strokes if is_intentional(stroke, config)]


class StrokeSession:
    def __init__(
        self,
        config: Optional[SegmentationConfig] = None,
        scheduler: Optional[RecognitionScheduler] = None,
    ) -> None:
        self.config = config or SegmentationConfig()
        self.scheduler = scheduler
        self._strokes: List[Stroke] = []
        self._current: Optional[List[Point]] = None
        self._lock = threading.Lock()

    @property
    def strokes(self) -> List[Stroke]:
        with self._lock:
            return list(self._strokes)

    @property
    def stroke_count(self) -> int:
        with self._lock:
            return len(self._strokes)

    @property
    def is_drawing(self) -> bool:
        return self._current is not None

    def begin_stroke(self, point: Point) -> None:
        if self._current is not None:
            logger.debug("Pen down while a stroke was open; closing it first")
            self.end_stroke()
        self._current = [point]

    def add_point(self, point: Point) -> None:
        if self._current is None:
            return
        self._current.append(point)

    def end_stroke(self) -> Optional[Stroke]:
        """Finish the open stroke. Returns it when accepted, else None."""
        points, self._current = self._current, None
        if not points:
            return None
        stroke = Stroke(tuple(points))
        if not is_intentional(stroke, self.config):
            logger.debug(
                f"Stroke discarded: {len(stroke)} points, length {stroke.length:.1f}px"
            )
            return None
        with self._lock:
            self._strokes.append(stroke)
            count = len(self._strokes)
        logger.debug(
            f"Stroke {count} completed: {len(stroke)} points, length {stroke.length:.0f}px, "
            f"size {stroke.width:.0f}x{stroke.height:.0f}"
        )
        if self.scheduler is not None:
            self.scheduler.notify_input()
        return stroke

    def cancel_stroke(self) -> None:
        self._current = None

    def undo(self) -> Optional[Stroke]:
        with self._lock:
            removed = self._strokes.pop() if self._strokes else None
        if removed is not None and self.scheduler is not None:
            self.scheduler.notify_input()
        return removed

    def clear(self) -> None:
        self._current = None
        with self._lock:
            self._strokes.clear()
        if self.scheduler is not None:
            self.scheduler.cancel()
