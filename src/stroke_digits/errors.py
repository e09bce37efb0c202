"""
Exception hierarchy for the stroke digit recogniser.

Errors raised while loading a classifier are fatal to the caller of ``load``.
Errors raised while classifying a single character group are caught by the
pipeline and turned into a failed per-group result.
"""

from __future__ import annotations


class RecognitionError(Exception):
    """Base class for every error raised by this package."""


class ModelNotReadyError(RecognitionError):
    """Inference was requested before the classifier finished loading."""


class WeightShapeMismatchError(RecognitionError, ValueError):
    """A weight matrix does not have the dimensions the network expects."""

    def __init__(self, name: str, expected: tuple, actual: tuple) -> None:
        self.name = name
        self.expected = tuple(expected)
        self.actual = tuple(actual)
        super().__init__(
            f"{name}: expected shape {self.expected[0]}x{self.expected[1]}, "
            f"got {'x'.join(str(dim) for dim in self.actual)}"
        )


class WeightFileNotFoundError(RecognitionError, FileNotFoundError):
    """A weight file could not be located."""


class InferenceBackendError(RecognitionError):
    """The external inference engine failed or returned malformed output."""


class IndexOutOfRangeError(RecognitionError, IndexError):
    """An element index passed to the disjoint-set structure is invalid."""


class ConfigurationError(RecognitionError, ValueError):
    """A configuration value is outside its allowed range."""


class StrokeFormatError(RecognitionError, ValueError):
    """Serialized stroke data could not be parsed."""
