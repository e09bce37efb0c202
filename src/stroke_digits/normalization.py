"""
Turn a character group into an MNIST-style canonical image.

Steps: render the group's ink on a white canvas the size of its bounding
box, invert to ink intensity, clean up (blur + dilate for small glyphs,
plain threshold otherwise), fit the longer side into the inner box with
bilinear resampling, centre on the canonical canvas and standardise with the
MNIST mean and standard deviation.
"""

from __future__ import annotations

import base64
import io
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import cv2
import numpy as np
from PIL import Image

from .config import NormalizerConfig
from .constants import SMOOTHING_KERNEL
from .geometry import round_half_up
from .ink import PixelComponent, Stroke
from .logger import get_logger
from .pool import BufferPool
from .segmentation import CharacterGroup

logger = get_logger(__name__)

_KERNEL = np.asarray(SMOOTHING_KERNEL, dtype=np.float32)
_DILATE = np.ones((3, 3), dtype=np.uint8)


@dataclass(frozen=True)
class CanonicalImage:
    """
    ``data`` is the standardised image fed to external models; ``intensity``
    holds the same pixels before standardisation (ink 1, background 0).
    """

    data: np.ndarray
    intensity: np.ndarray
    source_size: Tuple[int, int]  # (width, height) of the rendered source
    scaled_size: Tuple[int, int]  # (width, height) after resizing
    degenerate: bool = False

    @property
    def shape(self) -> Tuple[int, int]:
        return self.data.shape

    def center_of_mass(self) -> Tuple[float, float]:
        """Intensity-weighted ``(x, y)`` centroid."""
        total = float(self.intensity.sum())
        if total == 0:
            h, w = self.intensity.shape
            return ((w - 1) / 2.0, (h - 1) / 2.0)
        ys, xs = np.indices(self.intensity.shape)
        return (float((xs * self.intensity).sum() / total), float((ys * self.intensity).sum() / total))


def smooth(image: np.ndarray) -> np.ndarray:
    """3x3 weighted blur; neighbours outside the image count as background."""
    return cv2.filter2D(
        image.astype(np.float32), -1, _KERNEL, borderType=cv2.BORDER_CONSTANT
    )


def dilate(image: np.ndarray) -> np.ndarray:
    """One pass of 3x3 max filtering over the in-bounds neighbourhood."""
    return cv2.dilate(
        image.astype(np.float32), _DILATE, iterations=1,
        borderType=cv2.BORDER_CONSTANT, borderValue=0,
    )


def bilinear_resize(image: np.ndarray, width: int, height: int) -> np.ndarray:
    """
    Corner-aligned bilinear resample: destination pixel ``d`` reads source
    position ``d * (src_len / dst_len)``, with neighbours clamped to the edge.
    """
    src_h, src_w = image.shape
    xs = np.arange(width, dtype=np.float64) * (src_w / width)
    ys = np.arange(height, dtype=np.float64) * (src_h / height)
    x1 = np.minimum(np.floor(xs).astype(np.int64), src_w - 1)
    y1 = np.minimum(np.floor(ys).astype(np.int64), src_h - 1)
    x2 = np.minimum(x1 + 1, src_w - 1)
    y2 = np.minimum(y1 + 1, src_h - 1)
    dx = (xs - x1)[np.newaxis, :]
    dy = (ys - y1)[:, np.newaxis]

    top_left = image[np.ix_(y1, x1)]
    top_right = image[np.ix_(y1, x2)]
    bottom_left = image[np.ix_(y2, x1)]
    bottom_right = image[np.ix_(y2, x2)]
    result = (
        top_left * (1 - dx) * (1 - dy)
        + top_right * dx * (1 - dy)
        + bottom_left * (1 - dx) * dy
        + bottom_right * dx * dy
    )
    return result.astype(np.float32)


def fit_size(src_width: int, src_height: int, inner: int) -> Tuple[int, int]:
    """Target ``(width, height)`` with the longer side mapped to ``inner``."""
    aspect = src_width / src_height
    if aspect > 1:
        width, height = inner, round_half_up(inner / aspect)
    else:
        width, height = round_half_up(inner * aspect), inner
    return max(1, width), max(1, height)


class ImageNormalizer:
    """Render and normalise character groups into canonical images."""

    def __init__(self, config: Optional[NormalizerConfig] = None, pool: Optional[BufferPool] = None) -> None:
        self.config = config or NormalizerConfig()
        self.pool = pool or BufferPool(self.config.pool_size)

    def render(self, group: CharacterGroup) -> np.ndarray:
        """Grayscale raster (ink 0, paper 255) covering the group's bounding box."""
        box = group.bbox
        origin_x = math.floor(box.min_x)
        origin_y = math.floor(box.min_y)
        canvas = np.full((box.pixel_height, box.pixel_width), 255, dtype=np.uint8)

        for shape in group.shapes:
            if isinstance(shape, PixelComponent):
                for x, y in shape.pixels:
                    canvas[y - origin_y, x - origin_x] = 0
            elif isinstance(shape, Stroke):
                self._draw_stroke(canvas, shape, origin_x, origin_y)
        return canvas

    def _draw_stroke(self, canvas: np.ndarray, stroke: Stroke, origin_x: int, origin_y: int) -> None:
        thickness = self.config.stroke_thickness
        pts = np.array(
            [[math.floor(p.x) - origin_x, math.floor(p.y) - origin_y] for p in stroke.points],
            dtype=np.int32,
        )
        if len(pts) == 1:
            cv2.circle(canvas, (int(pts[0][0]), int(pts[0][1])), max(0, thickness // 2), 0, -1)
            return
        cv2.polylines(canvas, [pts.reshape(-1, 1, 2)], False, 0, thickness, lineType=cv2.LINE_8)

    def to_intensity(self, gray: np.ndarray) -> np.ndarray:
        """Invert grayscale and apply the size-dependent clean-up."""
        intensity = (255.0 - gray.astype(np.float32)) / 255.0
        cfg = self.config
        if intensity.size < cfg.small_object_pixels:
            blurred = smooth(intensity)
            binary = (blurred > cfg.small_binarize_threshold).astype(np.float32)
            return dilate(binary)
        return (intensity > cfg.binarize_threshold).astype(np.float32)

    def normalize(self, group: CharacterGroup) -> CanonicalImage:
        degenerate = not group.shapes or group.bbox.width == 0 or group.bbox.height == 0
        if not group.shapes:
            logger.debug("Empty group, substituting a 1x1 blank source")
            source = np.zeros((1, 1), dtype=np.float32)
        else:
            if degenerate:
                logger.debug(
                    f"Degenerate group bbox {group.bbox.width}x{group.bbox.height}, "
                    f"rendering as {group.bbox.pixel_width}x{group.bbox.pixel_height} pixels"
                )
            source = self.to_intensity(self.render(group))
        return self.normalize_array(source, degenerate=degenerate)

    def normalize_array(self, source: np.ndarray, degenerate: bool = False) -> CanonicalImage:
        """Resize, centre and standardise an intensity raster (ink 1, paper 0)."""
        cfg = self.config
        if source.size == 0:
            source = np.zeros((1, 1), dtype=np.float32)
            degenerate = True
        src_h, src_w = source.shape
        width, height = fit_size(src_w, src_h, cfg.inner_size)
        scaled = bilinear_resize(source, width, height)

        size = cfg.canvas_size
        offset_x = (size - width) // 2
        offset_y = (size - height) // 2
        with self.pool.borrow((size, size)) as padded:
            padded[offset_y:offset_y + height, offset_x:offset_x + width] = scaled
            intensity = padded.copy()
        data = ((intensity - cfg.mean) / cfg.std).astype(np.float32)
        return CanonicalImage(
            data=data,
            intensity=intensity,
            source_size=(src_w, src_h),
            scaled_size=(width, height),
            degenerate=degenerate,
        )

    def normalize_all(self, groups: Sequence[CharacterGroup]) -> List[CanonicalImage]:
        return [self.normalize(group) for group in groups]


def to_data_url(image: CanonicalImage, scale: int = 8) -> str:
    """PNG data URL of the canonical image, black ink on white, upscaled."""
    pixels = np.clip(np.floor(image.intensity * 255.0 + 0.5), 0, 255).astype(np.uint8)
    picture = Image.fromarray(255 - pixels)
    h, w = pixels.shape
    picture = picture.resize((w * scale, h * scale), Image.Resampling.NEAREST)
    buffer = io.BytesIO()
    picture.save(buffer, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode("ascii")
