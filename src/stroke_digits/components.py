"""
Raster input: binary masks and 8-connected pixel components.
"""

from __future__ import annotations

from typing import Dict, List, Optional

import cv2
import numpy as np

from .config import SegmentationConfig
from .disjoint_set import DisjointSet
from .ink import PixelComponent
from .logger import get_logger

logger = get_logger(__name__)

# Neighbours already visited in a row-major scan; the other four are covered
# when those pixels are visited in turn.
_BACKWARD_NEIGHBOURS = ((-1, 0), (-1, -1), (0, -1), (1, -1))


def binary_mask(image: np.ndarray, alpha_threshold: int = 0, gray_threshold: int = 128) -> np.ndarray:
    """
    Foreground mask of a drawing.

    RGBA input uses the alpha channel (``alpha > alpha_threshold`` is ink),
    which is how a transparent drawing surface stores strokes. Grayscale and
    RGB input treat dark pixels (``gray < gray_threshold``) as ink. Boolean
    input is returned unchanged.
    """
    if image.dtype == bool:
        return image
    if image.ndim == 3 and image.shape[2] == 4:
        return image[:, :, 3] > alpha_threshold
    if image.ndim == 3:
        gray = cv2.cvtColor(image.astype(np.uint8), cv2.COLOR_RGB2GRAY)
    else:
        gray = image
    return gray < gray_threshold


def extract_components(binary: np.ndarray, min_area: int = 0) -> List[PixelComponent]:
    """
    Label 8-connected foreground regions with a disjoint set.

    Components come back in raster order of their first pixel; those with
    fewer than ``min_area`` pixels are dropped.
    """
    mask = np.asarray(binary, dtype=bool)
    if mask.ndim != 2:
        raise ValueError(f"expected a 2-D mask, got shape {mask.shape}")
    height, width = mask.shape
    if not mask.any():
        return []

    forest = DisjointSet(width * height)
    ys, xs = np.nonzero(mask)
    for y, x in zip(ys.tolist(), xs.tolist()):
        index = y * width + x
        for dx, dy in _BACKWARD_NEIGHBOURS:
            nx, ny = x + dx, y + dy
            if 0 <= nx < width and 0 <= ny < height and mask[ny, nx]:
                forest.union(index, ny * width + nx)

    members: Dict[int, List[tuple]] = {}
    for y, x in zip(ys.tolist(), xs.tolist()):
        members.setdefault(forest.find(y * width + x), []).append((x, y))

    components = [PixelComponent(tuple(pixels)) for pixels in members.values() if len(pixels) >= min_area]
    logger.debug(f"Labelled {len(members)} regions, kept {len(components)} with area >= {min_area}")
    return components


def remove_noise(components: List[PixelComponent], config: Optional[SegmentationConfig] = None) -> List[PixelComponent]:
    """Drop specks: too few pixels, a tiny bounding box or extreme elongation."""
    config = config or SegmentationConfig()
    kept = [
        component
        for component in components
        if component.area >= config.min_component_area
        and component.width >= config.min_component_size
        and component.height >= config.min_component_size
        and component.elongation <= config.max_component_elongation
    ]
    if len(kept) != len(components):
        logger.debug(f"Noise filter: {len(components)} -> {len(kept)} components")
    return kept


def render_components(components: List[PixelComponent], shape: tuple) -> np.ndarray:
    """Paint components back onto a boolean canvas of ``shape`` (rows, cols)."""
    canvas = np.zeros(shape, dtype=bool)
    for component in components:
        xs = np.fromiter((p[0] for p in component.pixels), dtype=np.int64, count=component.area)
        ys = np.fromiter((p[1] for p in component.pixels), dtype=np.int64, count=component.area)
        canvas[ys, xs] = True
    return canvas
