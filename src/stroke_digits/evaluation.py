"""
Accuracy measurement over labelled stroke samples.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Sequence, Tuple

import matplotlib.pyplot as plt
import numpy as np
import seaborn as sns
from sklearn.metrics import accuracy_score, classification_report, confusion_matrix
from tqdm import tqdm

from .constants import DIGIT_LABELS
from .ink import Stroke
from .logger import get_logger
from .pipeline import RecognitionPipeline

logger = get_logger(__name__)

Sample = Tuple[Sequence[Stroke], float, str]


@dataclass
class EvaluationReport:
    samples: int = 0
    exact_matches: int = 0
    segmentation_errors: int = 0
    digit_accuracy: float = 0.0
    confusion: np.ndarray = field(default_factory=lambda: np.zeros((10, 10), dtype=np.int64))
    report: str = ""
    mean_confidence: float = 0.0
    mean_time_ms: float = 0.0
    predictions: List[str] = field(default_factory=list)

    @property
    def exact_match_rate(self) -> float:
        return self.exact_matches / self.samples if self.samples else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "samples": self.samples,
            "exact_match_rate": self.exact_match_rate,
            "segmentation_errors": self.segmentation_errors,
            "digit_accuracy": self.digit_accuracy,
            "mean_confidence": self.mean_confidence,
            "mean_time_ms": self.mean_time_ms,
            "confusion_matrix": self.confusion.tolist(),
        }


def evaluate_samples(
    pipeline: RecognitionPipeline,
    samples: Iterable[Sample],
    progress: bool = True,
) -> EvaluationReport:
    """
    Run the pipeline on each ``(strokes, canvas_width, expected_text)``.

    Digit-level metrics only count samples whose predicted length matches the
    expected length; the rest are tallied as segmentation errors.
    """
    samples = list(samples)
    result = EvaluationReport(samples=len(samples))
    y_true: List[int] = []
    y_pred: List[int] = []
    confidences: List[float] = []
    times: List[float] = []

    for strokes, canvas_width, expected in tqdm(samples, desc="Evaluating", disable=not progress):
        aggregate = pipeline.recognize_strokes(strokes, canvas_width)
        result.predictions.append(aggregate.text)
        times.append(aggregate.processing_time_ms)
        if aggregate.per_group:
            confidences.append(aggregate.average_confidence)
        if aggregate.text == expected:
            result.exact_matches += 1
        digits = [r.predicted_digit for r in aggregate.per_group]
        if len(digits) != len(expected):
            result.segmentation_errors += 1
            continue
        y_true.extend(int(ch) for ch in expected)
        y_pred.extend(digits)

    if y_true:
        labels = list(range(10))
        result.digit_accuracy = float(accuracy_score(y_true, y_pred))
        result.confusion = confusion_matrix(y_true, y_pred, labels=labels)
        result.report = classification_report(
            y_true, y_pred, labels=labels, target_names=DIGIT_LABELS, zero_division=0
        )
    result.mean_confidence = float(np.mean(confidences)) if confidences else 0.0
    result.mean_time_ms = float(np.mean(times)) if times else 0.0
    logger.info(
        f"Evaluated {result.samples} samples: exact {result.exact_match_rate:.3f}, "
        f"digit accuracy {result.digit_accuracy:.3f}, segmentation errors {result.segmentation_errors}"
    )
    return result


def plot_confusion_matrix(report: EvaluationReport, title: str = "Digit confusion", return_fig: bool = False):
    """Heatmap of the confusion matrix."""
    fig, ax = plt.subplots(figsize=(6, 5))
    sns.heatmap(report.confusion, annot=True, fmt="d", cmap="Blues", ax=ax,
                xticklabels=DIGIT_LABELS, yticklabels=DIGIT_LABELS)
    ax.set_title(f"{title}\nAccuracy: {report.digit_accuracy:.4f}")
    ax.set_xlabel("Predicted")
    ax.set_ylabel("Actual")
    fig.tight_layout()
    if return_fig:
        return fig
    plt.show()
    return None
