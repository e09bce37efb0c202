"""
Softmax confidence scoring for raw classifier outputs.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np

from .constants import FAILED_DIGIT, LOW_CONFIDENCE_THRESHOLD, NUM_CLASSES


def softmax(raw: np.ndarray) -> np.ndarray:
    """Numerically stable softmax over the last axis."""
    values = np.asarray(raw, dtype=np.float64)
    shifted = np.exp(values - values.max(axis=-1, keepdims=True))
    return shifted / shifted.sum(axis=-1, keepdims=True)


@dataclass(frozen=True)
class ScoredPrediction:
    predicted_digit: int
    confidence: float
    probabilities: np.ndarray
    is_low_confidence: bool
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.predicted_digit == FAILED_DIGIT


class ConfidenceScorer:
    """Pick the most probable digit; ties resolve to the lowest index."""

    def __init__(self, low_confidence_threshold: float = LOW_CONFIDENCE_THRESHOLD) -> None:
        self.low_confidence_threshold = low_confidence_threshold

    def score(self, raw: np.ndarray) -> ScoredPrediction:
        if not np.all(np.isfinite(raw)):
            return self.failed("classifier returned non-finite scores")
        probabilities = softmax(raw)
        digit = int(np.argmax(probabilities))  # first occurrence of the max
        confidence = float(probabilities[digit])
        return ScoredPrediction(
            predicted_digit=digit,
            confidence=confidence,
            probabilities=probabilities,
            is_low_confidence=confidence < self.low_confidence_threshold,
        )

    def failed(self, message: str) -> ScoredPrediction:
        return ScoredPrediction(
            predicted_digit=FAILED_DIGIT,
            confidence=0.0,
            probabilities=np.zeros(NUM_CLASSES, dtype=np.float64),
            is_low_confidence=True,
            error=message,
        )
