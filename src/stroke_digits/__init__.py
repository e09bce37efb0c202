"""
Stroke Digit Recognition

Recognises a handwritten multi-digit number from pen strokes (or a binary
drawing), splitting the ink into characters, normalising each to a 28x28
image and classifying it with a pluggable digit classifier.
"""

__version__ = "1.0.0"

from .aggregation import AggregateResult, RecognitionResult, ResultAggregator
from .classifiers import (
    CallableBackend,
    DigitClassifier,
    ExternalModelClassifier,
    KerasBackend,
    OnnxBackend,
    PerceptronClassifier,
    build_classifier,
)
from .capture import StrokeSession
from .config import RecognitionConfig, get_preset, load_config
from .connectivity import ConnectivityScorer
from .disjoint_set import DisjointSet
from .errors import RecognitionError
from .geometry import BoundingBox, Point
from .ink import PixelComponent, Stroke
from .normalization import CanonicalImage, ImageNormalizer
from .pipeline import RecognitionPipeline
from .scheduler import RecognitionScheduler
from .segmentation import CharacterGroup, Segmenter

__all__ = [
    "AggregateResult",
    "BoundingBox",
    "CallableBackend",
    "CanonicalImage",
    "CharacterGroup",
    "ConnectivityScorer",
    "DigitClassifier",
    "DisjointSet",
    "ExternalModelClassifier",
    "ImageNormalizer",
    "KerasBackend",
    "OnnxBackend",
    "PerceptronClassifier",
    "PixelComponent",
    "Point",
    "RecognitionConfig",
    "RecognitionError",
    "RecognitionPipeline",
    "RecognitionResult",
    "RecognitionScheduler",
    "ResultAggregator",
    "Segmenter",
    "Stroke",
    "StrokeSession",
    "build_classifier",
    "get_preset",
    "load_config",
]
