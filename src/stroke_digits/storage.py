"""
File formats: stroke recordings (JSON), drawing images and weight matrices.

Stroke files look like::

    {"canvas": {"width": 400, "height": 200},
     "strokes": [[[x, y, t, p], [x, y, t, p], ...], ...]}

Timestamp ``t`` and pressure ``p`` are optional per sample; missing
timestamps are spaced 16 ms apart and missing pressure defaults to 0.5.
"""

from __future__ import annotations

import json
import os
from typing import Any, Iterable, List, Optional, Sequence, Tuple

import numpy as np
from PIL import Image

from .components import binary_mask
from .errors import StrokeFormatError, WeightFileNotFoundError, WeightShapeMismatchError
from .geometry import Point
from .ink import Stroke

SAMPLE_INTERVAL_MS = 16
DEFAULT_PRESSURE = 0.5


def strokes_from_samples(samples: Iterable[Sequence[Sequence[float]]]) -> List[Stroke]:
    """Build strokes from nested ``[x, y(, t(, p))]`` sample lists."""
    strokes: List[Stroke] = []
    clock = 0
    for stroke_index, raw in enumerate(samples):
        points = []
        for sample in raw:
            if len(sample) < 2:
                raise StrokeFormatError(f"stroke {stroke_index}: sample {sample!r} needs at least x and y")
            x, y = float(sample[0]), float(sample[1])
            timestamp = int(sample[2]) if len(sample) > 2 else clock
            pressure = float(sample[3]) if len(sample) > 3 else DEFAULT_PRESSURE
            points.append(Point(x, y, timestamp, pressure))
            clock = timestamp + SAMPLE_INTERVAL_MS
        if not points:
            raise StrokeFormatError(f"stroke {stroke_index} has no samples")
        strokes.append(Stroke(tuple(points)))
    return strokes


def load_strokes(path: str) -> Tuple[List[Stroke], Tuple[float, float]]:
    """Read a stroke recording; returns the strokes and ``(width, height)``."""
    with open(path, "r", encoding="utf-8") as handle:
        try:
            data = json.load(handle)
        except json.JSONDecodeError as exc:
            raise StrokeFormatError(f"invalid JSON in {path}: {exc}") from exc
    if isinstance(data, list):
        data = {"strokes": data}
    if not isinstance(data, dict) or "strokes" not in data:
        raise StrokeFormatError(f"{path}: expected an object with a 'strokes' list")
    strokes = strokes_from_samples(data["strokes"])
    canvas = data.get("canvas") or {}
    if canvas:
        size = (float(canvas.get("width", 0)), float(canvas.get("height", 0)))
    elif strokes:
        size = (max(s.bbox.max_x for s in strokes) + 1, max(s.bbox.max_y for s in strokes) + 1)
    else:
        size = (0.0, 0.0)
    return strokes, size


def save_strokes(path: str, strokes: Sequence[Stroke], canvas_size: Tuple[float, float]) -> None:
    payload = {
        "canvas": {"width": canvas_size[0], "height": canvas_size[1]},
        "strokes": [[[p.x, p.y, p.timestamp, p.pressure] for p in stroke.points] for stroke in strokes],
    }
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)
    with open(path, "w", encoding="utf-8") as handle:
        json.dump(payload, handle)


def load_binary_image(path: str, alpha_threshold: int = 0, gray_threshold: int = 128) -> np.ndarray:
    """Foreground mask of an image file (alpha channel when present)."""
    with Image.open(path) as picture:
        if picture.mode in ("RGBA", "LA", "PA") or "transparency" in picture.info:
            array = np.asarray(picture.convert("RGBA"))
        else:
            array = np.asarray(picture.convert("L"))
    return binary_mask(array, alpha_threshold=alpha_threshold, gray_threshold=gray_threshold)


def load_weight_matrix(path: str, expected_shape: Tuple[int, int], name: Optional[str] = None) -> np.ndarray:
    """
    Read a dense matrix stored as nested JSON arrays and check its shape.

    Raises ``WeightFileNotFoundError`` when the file is missing and
    ``WeightShapeMismatchError`` when any dimension differs from
    ``expected_shape``.
    """
    name = name or os.path.basename(path)
    if not os.path.isfile(path):
        raise WeightFileNotFoundError(f"weight file not found: {path}")
    with open(path, "r", encoding="utf-8") as handle:
        data: Any = json.load(handle)

    rows, cols = expected_shape
    if not isinstance(data, list) or not all(isinstance(row, list) for row in data):
        raise WeightShapeMismatchError(name, expected_shape, (len(data) if isinstance(data, list) else 0, 0))
    if len(data) != rows:
        raise WeightShapeMismatchError(name, expected_shape, (len(data), len(data[0]) if data else 0))
    for row in data:
        if len(row) != cols:
            raise WeightShapeMismatchError(name, expected_shape, (len(data), len(row)))
    return np.asarray(data, dtype=np.float64)
