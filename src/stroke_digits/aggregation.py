"""
Per-group results and their left-to-right combination into a digit string.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from .confidence import ScoredPrediction
from .constants import FAILED_DIGIT, LOW_CONFIDENCE_THRESHOLD
from .segmentation import CharacterGroup


@dataclass(frozen=True)
class RecognitionResult:
    group: CharacterGroup
    predicted_digit: int
    confidence: float
    probabilities: np.ndarray
    is_low_confidence: bool
    error: Optional[str] = None
    image_data_url: Optional[str] = None

    @classmethod
    def from_prediction(
        cls, group: CharacterGroup, prediction: ScoredPrediction, image_data_url: Optional[str] = None
    ) -> "RecognitionResult":
        return cls(
            group=group,
            predicted_digit=prediction.predicted_digit,
            confidence=prediction.confidence,
            probabilities=prediction.probabilities,
            is_low_confidence=prediction.is_low_confidence,
            error=prediction.error,
            image_data_url=image_data_url,
        )

    @property
    def is_valid(self) -> bool:
        return 0 <= self.predicted_digit <= 9

    @property
    def failed(self) -> bool:
        return self.predicted_digit == FAILED_DIGIT

    def to_dict(self) -> Dict[str, Any]:
        box = self.group.bbox
        payload: Dict[str, Any] = {
            "digit": self.predicted_digit,
            "confidence": round(self.confidence, 6),
            "probabilities": [round(float(p), 6) for p in self.probabilities],
            "is_low_confidence": self.is_low_confidence,
            "bbox": [box.min_x, box.min_y, box.max_x, box.max_y],
            "shape_indices": list(self.group.indices),
        }
        if self.error:
            payload["error"] = self.error
        if self.image_data_url:
            payload["image"] = self.image_data_url
        return payload


@dataclass(frozen=True)
class AggregateResult:
    text: str = ""
    average_confidence: float = 0.0
    low_confidence_count: int = 0
    failure_count: int = 0
    per_group: List[RecognitionResult] = field(default_factory=list)
    processing_time_ms: float = 0.0

    @property
    def is_empty(self) -> bool:
        return not self.per_group

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "average_confidence": round(self.average_confidence, 6),
            "low_confidence_count": self.low_confidence_count,
            "failure_count": self.failure_count,
            "processing_time_ms": round(self.processing_time_ms, 3),
            "groups": [result.to_dict() for result in self.per_group],
        }


class ResultAggregator:
    """
    Order results by the left edge of their group and join the digits.

    Failed groups (digit -1) are left out of the text and the average, and
    are counted in ``failure_count`` rather than ``low_confidence_count``.
    A non-empty ``failure_placeholder`` is written into the text in place of
    each failed group.
    """

    def __init__(
        self,
        low_confidence_threshold: float = LOW_CONFIDENCE_THRESHOLD,
        failure_placeholder: str = "",
    ) -> None:
        self.low_confidence_threshold = low_confidence_threshold
        self.failure_placeholder = failure_placeholder

    def aggregate(self, results: Sequence[RecognitionResult], processing_time_ms: float = 0.0) -> AggregateResult:
        ordered = sorted(results, key=lambda result: result.group.min_x)
        if not ordered:
            return AggregateResult(processing_time_ms=processing_time_ms)

        valid = [result for result in ordered if result.is_valid]
        pieces = []
        for result in ordered:
            if result.is_valid:
                pieces.append(str(result.predicted_digit))
            elif self.failure_placeholder:
                pieces.append(self.failure_placeholder)

        confidences = [result.confidence for result in valid]
        average = float(np.mean(confidences)) if confidences else 0.0
        low = sum(1 for c in confidences if c < self.low_confidence_threshold)
        return AggregateResult(
            text="".join(pieces),
            average_confidence=average,
            low_confidence_count=low,
            failure_count=len(ordered) - len(valid),
            per_group=ordered,
            processing_time_ms=processing_time_ms,
        )
