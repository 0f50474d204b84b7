"""Classification service: serialized access to one classifier plus label lookup."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING

from wastelens.ml.image_classifier import Classifier, top_prediction

if TYPE_CHECKING:
    from wastelens.config import Settings
    from wastelens.ml.labels import ClassLabelMap
    from wastelens.ml.model_host import ModelHost
    from wastelens.ml.preprocessing import RawImage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClassificationResult:
    """Top-1 label together with the full score vector."""

    label: str
    index: int
    confidence: float
    scores: tuple[float, ...]


class ClassificationService:
    """Wraps a Classifier so that calls from several threads run one at a time."""

    def __init__(self, classifier: Classifier, labels: ClassLabelMap) -> None:
        self._classifier = classifier
        self._labels = labels
        self._lock = threading.Lock()

        num_classes = classifier.num_classes
        if num_classes != len(labels):
            logger.warning(
                "Model declares %d classes but %d labels are configured",
                num_classes,
                len(labels),
            )

    @classmethod
    def from_host(cls, host: ModelHost, settings: Settings, labels: ClassLabelMap) -> ClassificationService:
        """Acquire the configured model from ``host`` and bind a classifier to it."""
        handle = host.acquire(settings.model_name)
        classifier = Classifier(handle, input_size=settings.input_size, quantized=settings.quantized)
        return cls(classifier, labels)

    @property
    def labels(self) -> ClassLabelMap:
        return self._labels

    @property
    def classifier(self) -> Classifier:
        return self._classifier

    def classify(self, image: RawImage) -> ClassificationResult:
        """Classify ``image`` and resolve the top-1 label."""
        with self._lock:
            scores = self._classifier.classify(image)
        prediction = top_prediction(scores)
        label = self._labels.label_for(prediction.index)
        logger.info("Top-1 class: %s (%d), confidence: %.4f", label, prediction.index, prediction.confidence)
        return ClassificationResult(
            label=label,
            index=prediction.index,
            confidence=prediction.confidence,
            scores=tuple(float(score) for score in scores),
        )
