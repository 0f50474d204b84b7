"""Waste image classifier: image in, per-class scores out."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

from wastelens.ml.errors import InferenceError
from wastelens.ml.preprocessing import prepare_tensor

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import NDArray

    from wastelens.ml.preprocessing import RawImage
    from wastelens.ml.runtime import InferenceHandle

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Prediction:
    """Top-1 class of a score vector."""

    index: int
    confidence: float


def top_prediction(scores: Sequence[float] | NDArray[np.float32]) -> Prediction:
    """Return the first highest-scoring class.

    Ties resolve to the lowest index. An empty vector yields index -1 with
    confidence 0.0.
    """
    best_index = -1
    best_score = 0.0
    for index, score in enumerate(scores):
        if best_index == -1 or score > best_score:
            best_index, best_score = index, float(score)
    return Prediction(index=best_index, confidence=best_score)


class Classifier:
    """Turns one image into one score vector using a bound inference handle."""

    def __init__(self, handle: InferenceHandle, input_size: int = 224, quantized: bool = False) -> None:
        if isinstance(input_size, bool) or not isinstance(input_size, int) or input_size <= 0:
            raise ValueError(f"input_size must be a positive integer, got {input_size!r}")
        self._handle = handle
        self._input_size = input_size
        self._quantized = quantized

    @property
    def input_size(self) -> int:
        return self._input_size

    @property
    def quantized(self) -> bool:
        return self._quantized

    @property
    def num_classes(self) -> int:
        """Output width declared by the bound model."""
        return self._handle.signature.num_classes

    def classify(self, image: RawImage) -> NDArray[np.float32]:
        """Classify an image.

        Args:
            image: Pillow image in any mode, or HxW / HxWx3 / HxWx4 uint8 array.

        Returns:
            1-D float32 array with one score per class, in model output order.

        Raises:
            InferenceError: If the handle is released, the model's input or
                output shape does not fit, or the runtime fails.
        """
        signature = self._handle.signature
        num_classes = signature.num_classes

        tensor = prepare_tensor(
            image,
            self._input_size,
            quantized=self._quantized,
            channels_first=signature.channels_first,
        )
        signature.check_input(tensor.shape)

        output = self._handle.run(tensor)
        if output.size != num_classes:
            raise InferenceError(f"Model returned {output.size} scores, expected {num_classes}")
        scores = output.reshape(num_classes)
        logger.debug("Scores: %s", scores.tolist())
        return scores
