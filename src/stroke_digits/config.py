"""
Immutable configuration records for every stage of the recogniser.

Each record validates itself on construction and raises
``ConfigurationError`` for out-of-range values. ``PRESETS`` holds the two
tunings the recogniser ships with: ``default`` (loose grouping, up to four
strokes per digit) and ``strict`` (one stroke per digit, tight proximity).
"""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, field, fields, replace
from typing import Any, Dict, Optional, Tuple

from . import constants
from .errors import ConfigurationError


def _require(condition: bool, message: str) -> None:
    if not condition:
        raise ConfigurationError(message)


@dataclass(frozen=True)
class ConnectivityConfig:
    """Weights and thresholds of the pairwise connectivity score."""

    proximity_weight: float = 0.30
    size_weight: float = 0.10
    spatial_weight: float = 0.40
    temporal_weight: float = 0.15
    separation_weight: float = 0.05

    proximity_threshold: float = 15.0  # px
    size_ratio_cutoff: float = 0.6
    vertical_overlap_factor: float = 0.8
    gap_fraction: float = 0.1  # of canvas width
    gap_penalty: float = 0.3
    temporal_window_ms: float = 3000.0
    separation_distance_fraction: float = 0.15  # of canvas width
    separation_ratio: float = 2.0
    separation_score: float = 0.2

    def __post_init__(self) -> None:
        self.validate()

    @property
    def weights(self) -> Tuple[float, float, float, float, float]:
        return (
            self.proximity_weight,
            self.size_weight,
            self.spatial_weight,
            self.temporal_weight,
            self.separation_weight,
        )

    def validate(self) -> None:
        _require(all(w >= 0 for w in self.weights), "connectivity weights must be >= 0")
        _require(sum(self.weights) > 0, "at least one connectivity weight must be positive")
        _require(self.proximity_threshold > 0, "proximity_threshold must be > 0")
        _require(0.0 < self.size_ratio_cutoff <= 1.0, "size_ratio_cutoff must be within (0, 1]")
        _require(0.0 <= self.vertical_overlap_factor <= 1.0, "vertical_overlap_factor must be within [0, 1]")
        _require(0.0 <= self.gap_fraction <= 1.0, "gap_fraction must be within [0, 1]")
        _require(0.0 <= self.gap_penalty <= 1.0, "gap_penalty must be within [0, 1]")
        _require(self.temporal_window_ms > 0, "temporal_window_ms must be > 0")
        _require(
            0.0 <= self.separation_distance_fraction <= 1.0,
            "separation_distance_fraction must be within [0, 1]",
        )
        _require(self.separation_ratio > 0, "separation_ratio must be > 0")
        _require(0.0 <= self.separation_score <= 1.0, "separation_score must be within [0, 1]")


@dataclass(frozen=True)
class SegmentationConfig:
    """Grouping constraints applied while growing a character group."""

    connectivity_threshold: float = 0.6
    max_strokes_per_group: int = 4
    max_components_per_group: Optional[int] = None
    min_component_area: int = 5
    aspect_ratio_range: Tuple[float, float] = (0.3, 3.0)

    # Stroke capture filter: shorter or sparser strokes are treated as noise.
    min_stroke_points: int = 3
    min_stroke_length: float = 10.0

    # Raster component filter.
    min_component_size: int = 3
    max_component_elongation: float = 20.0

    default_canvas_width: float = 400.0

    def __post_init__(self) -> None:
        # JSON gives lists; keep the record hashable.
        object.__setattr__(self, "aspect_ratio_range", tuple(self.aspect_ratio_range))
        self.validate()

    def validate(self) -> None:
        _require(0.0 <= self.connectivity_threshold <= 1.0, "connectivity_threshold must be within [0, 1]")
        _require(self.max_strokes_per_group >= 1, "max_strokes_per_group must be >= 1")
        _require(
            self.max_components_per_group is None or self.max_components_per_group >= 1,
            "max_components_per_group must be >= 1 or None",
        )
        _require(self.min_component_area >= 0, "min_component_area must be >= 0")
        _require(len(self.aspect_ratio_range) == 2, "aspect_ratio_range must hold two values")
        low, high = self.aspect_ratio_range
        _require(0.0 < low <= high, "aspect_ratio_range must satisfy 0 < min <= max")
        _require(self.min_stroke_points >= 1, "min_stroke_points must be >= 1")
        _require(self.min_stroke_length >= 0, "min_stroke_length must be >= 0")
        _require(self.min_component_size >= 1, "min_component_size must be >= 1")
        _require(self.max_component_elongation >= 1, "max_component_elongation must be >= 1")
        _require(self.default_canvas_width > 0, "default_canvas_width must be > 0")


@dataclass(frozen=True)
class NormalizerConfig:
    """Canonical image geometry and pixel processing thresholds."""

    canvas_size: int = constants.CANONICAL_SIZE
    inner_size: int = constants.INNER_SIZE
    small_object_pixels: int = 400
    small_binarize_threshold: float = 0.2
    binarize_threshold: float = 0.5
    mean: float = constants.MNIST_MEAN
    std: float = constants.MNIST_STD
    stroke_thickness: int = 2
    pool_size: int = constants.BUFFER_POOL_SIZE

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        _require(self.canvas_size >= 1, "canvas_size must be >= 1")
        _require(1 <= self.inner_size <= self.canvas_size, "inner_size must be within [1, canvas_size]")
        _require(self.small_object_pixels >= 0, "small_object_pixels must be >= 0")
        _require(0.0 <= self.small_binarize_threshold < 1.0, "small_binarize_threshold must be within [0, 1)")
        _require(0.0 <= self.binarize_threshold < 1.0, "binarize_threshold must be within [0, 1)")
        _require(self.std > 0, "std must be > 0")
        _require(self.stroke_thickness >= 1, "stroke_thickness must be >= 1")
        _require(self.pool_size >= 1, "pool_size must be >= 1")


@dataclass(frozen=True)
class ClassifierConfig:
    """Which classifier to build and where its parameters live."""

    kind: str = "perceptron"  # perceptron | onnx | keras
    weights_dir: Optional[str] = None
    model_path: Optional[str] = None
    input_dim: int = constants.INPUT_DIM
    hidden_dim: int = constants.HIDDEN_DIM
    num_classes: int = constants.NUM_CLASSES
    input_mode: str = "intensity"  # intensity | standardized
    batch_inference: bool = True

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        _require(self.kind in ("perceptron", "onnx", "keras"), f"unknown classifier kind '{self.kind}'")
        _require(self.input_dim >= 1, "input_dim must be >= 1")
        _require(self.hidden_dim >= 1, "hidden_dim must be >= 1")
        _require(self.num_classes >= 1, "num_classes must be >= 1")
        _require(self.input_mode in ("intensity", "standardized"), f"unknown input_mode '{self.input_mode}'")


@dataclass(frozen=True)
class SchedulerConfig:
    """Debounce contract between stroke input and recognition passes."""

    delay_ms: int = 500
    policy: str = "queue"  # queue | drop
    min_interval_ms: int = 300

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        _require(self.delay_ms >= 0, "delay_ms must be >= 0")
        _require(self.policy in ("queue", "drop"), f"unknown scheduler policy '{self.policy}'")
        _require(self.min_interval_ms >= 0, "min_interval_ms must be >= 0")


@dataclass(frozen=True)
class RecognitionConfig:
    """Complete recogniser configuration."""

    connectivity: ConnectivityConfig = field(default_factory=ConnectivityConfig)
    segmentation: SegmentationConfig = field(default_factory=SegmentationConfig)
    normalizer: NormalizerConfig = field(default_factory=NormalizerConfig)
    classifier: ClassifierConfig = field(default_factory=ClassifierConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    low_confidence_threshold: float = constants.LOW_CONFIDENCE_THRESHOLD
    failure_placeholder: str = ""
    include_diagnostics: bool = False

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        _require(
            0.0 <= self.low_confidence_threshold <= 1.0,
            "low_confidence_threshold must be within [0, 1]",
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


PRESETS: Dict[str, RecognitionConfig] = {
    "default": RecognitionConfig(),
    "strict": RecognitionConfig(
        connectivity=ConnectivityConfig(proximity_threshold=5.0),
        segmentation=SegmentationConfig(
            connectivity_threshold=0.2,
            max_strokes_per_group=1,
            aspect_ratio_range=(0.5, 2.5),
            min_stroke_length=8.0,
        ),
    ),
}

_SECTIONS = {
    "connectivity": ConnectivityConfig,
    "segmentation": SegmentationConfig,
    "normalizer": NormalizerConfig,
    "classifier": ClassifierConfig,
    "scheduler": SchedulerConfig,
}


def get_preset(name: str) -> RecognitionConfig:
    try:
        return PRESETS[name]
    except KeyError:
        raise ConfigurationError(
            f"unknown preset '{name}'. Available: {sorted(PRESETS)}"
        ) from None


def _override(record: Any, values: Dict[str, Any], section: str) -> Any:
    known = {f.name for f in fields(record)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise ConfigurationError(f"unknown keys in '{section}': {unknown}")
    return replace(record, **values)


def config_from_dict(data: Dict[str, Any], base: Optional[RecognitionConfig] = None) -> RecognitionConfig:
    """Overlay a nested dict (as found in a JSON config file) onto ``base``."""
    config = base or PRESETS["default"]
    data = dict(data)
    if "preset" in data:
        config = get_preset(str(data.pop("preset")))

    updates: Dict[str, Any] = {}
    for key, value in data.items():
        if key in _SECTIONS:
            if not isinstance(value, dict):
                raise ConfigurationError(f"section '{key}' must be an object")
            updates[key] = _override(getattr(config, key), value, key)
        else:
            updates[key] = value
    return _override(config, updates, "recognition")


def load_config(path: str, base: Optional[RecognitionConfig] = None) -> RecognitionConfig:
    """Load a JSON configuration file."""
    if not os.path.exists(path):
        raise ConfigurationError(f"config file not found: {path}")
    with open(path, "r", encoding="utf-8") as handle:
        try:
            data = json.load(handle)
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"invalid JSON in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path}: top-level value must be an object")
    return config_from_dict(data, base)
