"""
End-to-end recognition: segment, normalise, classify, score and aggregate.
"""

from __future__ import annotations

import threading
import time
from concurrent.futures import Future
from typing import List, Optional, Sequence

import numpy as np

from .aggregation import AggregateResult, RecognitionResult, ResultAggregator
from .classifiers import DigitClassifier, build_classifier
from .confidence import ConfidenceScorer, ScoredPrediction
from .config import RecognitionConfig
from .errors import ModelNotReadyError, RecognitionError
from .ink import Stroke
from .logger import get_logger
from .normalization import CanonicalImage, ImageNormalizer, to_data_url
from .segmentation import CharacterGroup, Segmenter

logger = get_logger(__name__)


class RecognitionPipeline:
    """
    Recognise handwritten digits from strokes or a binary raster.

    Passes are serialised with a lock: a second caller waits for the pass in
    flight to finish. Failures while classifying one group (classifier not
    loaded, backend error) only mark that group as failed.
    """

    def __init__(
        self,
        config: Optional[RecognitionConfig] = None,
        classifier: Optional[DigitClassifier] = None,
    ) -> None:
        self.config = config or RecognitionConfig()
        self.segmenter = Segmenter(self.config.segmentation, self.config.connectivity)
        self.normalizer = ImageNormalizer(self.config.normalizer)
        self.classifier = classifier if classifier is not None else build_classifier(self.config.classifier)
        self.scorer = ConfidenceScorer(self.config.low_confidence_threshold)
        self.aggregator = ResultAggregator(
            self.config.low_confidence_threshold, self.config.failure_placeholder
        )
        self._pass_lock = threading.Lock()

    # -- model lifecycle -------------------------------------------------
    def load(self) -> "RecognitionPipeline":
        self.classifier.load()
        return self

    def load_async(self) -> Future:
        return self.classifier.load_async()

    @property
    def is_ready(self) -> bool:
        return self.classifier.is_ready

    # -- entry points ----------------------------------------------------
    def recognize_strokes(self, strokes: Sequence[Stroke], canvas_width: Optional[float] = None) -> AggregateResult:
        start = time.perf_counter()
        with self._pass_lock:
            groups = self.segmenter.segment_strokes(strokes, canvas_width)
            return self._run(groups, start)

    def recognize_raster(self, mask: np.ndarray) -> AggregateResult:
        start = time.perf_counter()
        with self._pass_lock:
            groups = self.segmenter.segment_raster(mask)
            return self._run(groups, start)

    def recognize_groups(self, groups: Sequence[CharacterGroup]) -> AggregateResult:
        start = time.perf_counter()
        with self._pass_lock:
            return self._run(list(groups), start)

    # -- internals -------------------------------------------------------
    def _run(self, groups: List[CharacterGroup], start: float) -> AggregateResult:
        if not groups:
            logger.debug("No ink to recognise")
            return self.aggregator.aggregate([], self._elapsed(start))

        images = self.normalizer.normalize_all(groups)
        predictions = self._classify(images)

        results = []
        for group, image, prediction in zip(groups, images, predictions):
            url = to_data_url(image) if self.config.include_diagnostics else None
            results.append(RecognitionResult.from_prediction(group, prediction, url))

        aggregate = self.aggregator.aggregate(results, self._elapsed(start))
        logger.info(
            f"Recognition complete: '{aggregate.text}' ({len(groups)} groups, "
            f"avg confidence {aggregate.average_confidence:.3f}, "
            f"{aggregate.failure_count} failed, {aggregate.processing_time_ms:.1f} ms)"
        )
        return aggregate

    def _classify(self, images: List[CanonicalImage]) -> List[ScoredPrediction]:
        if self.config.classifier.batch_inference and len(images) > 1:
            try:
                scores = self.classifier.infer_batch(images)
                return [self.scorer.score(row) for row in scores]
            except ModelNotReadyError as exc:
                logger.warning(f"Classifier not ready: {exc}")
                return [self.scorer.failed(str(exc)) for _ in images]
            except RecognitionError as exc:
                logger.warning(f"Batched inference failed ({exc}); retrying group by group")
        return [self._classify_one(index, image) for index, image in enumerate(images)]

    def _classify_one(self, index: int, image: CanonicalImage) -> ScoredPrediction:
        try:
            return self.scorer.score(self.classifier.infer(image))
        except RecognitionError as exc:
            logger.warning(f"Group {index} failed: {exc}")
            return self.scorer.failed(str(exc))

    @staticmethod
    def _elapsed(start: float) -> float:
        return (time.perf_counter() - start) * 1000.0
