"""Class index to label mapping for the waste classifier."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

# Index order of the bundled model's output layer.
DEFAULT_WASTE_LABELS: tuple[str, ...] = (
    "battery",
    "biological",
    "cardboard",
    "clothes",
    "glass",
    "metal",
    "paper",
    "plastic",
    "shoes",
    "trash",
)


@dataclass(frozen=True)
class ClassLabelMap:
    """Immutable mapping from class index to human-readable label."""

    labels: tuple[str, ...] = DEFAULT_WASTE_LABELS

    @classmethod
    def from_labels(cls, labels: Iterable[str]) -> ClassLabelMap:
        """Build a map from labels listed in class-index order."""
        items = tuple(labels)
        if len(set(items)) != len(items):
            raise ValueError("Class labels must be unique")
        return cls(labels=items)

    def label_for(self, index: int) -> str:
        """Return the label for ``index``.

        Indices outside the map (including the ``-1`` of an empty prediction)
        resolve to ``"unknown"`` so a model with more outputs than configured
        labels still renders.
        """
        if 0 <= index < len(self.labels):
            return self.labels[index]
        return "unknown"

    def __len__(self) -> int:
        return len(self.labels)

    def __iter__(self) -> Iterator[str]:
        return iter(self.labels)
