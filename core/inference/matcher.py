"""Nearest-neighbour matching of face descriptors against enrolled students.

Descriptors come from the external recognition capability; this module only
compares them. A match is accepted when the nearest enrolled descriptor is
closer than the detection threshold (lower threshold = stricter).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional

import numpy as np


UNKNOWN_LABEL = 'unknown'
DEFAULT_THRESHOLD = 0.6


class DescriptorError(ValueError):
    """Raised when a face descriptor is empty or not numeric."""


def to_descriptor(values: Any) -> np.ndarray:
    """Coerce a list of numbers into a flat float64 vector."""
    if isinstance(values, (str, bytes)):
        raise DescriptorError('Face descriptor must be a list of numbers')
    try:
        vector = np.asarray(values, dtype=np.float64).reshape(-1)
    except (TypeError, ValueError) as exc:
        raise DescriptorError('Face descriptor must be a list of numbers') from exc
    if vector.size == 0:
        raise DescriptorError('Face descriptor is empty')
    if not np.all(np.isfinite(vector)):
        raise DescriptorError('Face descriptor contains non-finite values')
    return vector


def descriptor_to_blob(values: Any) -> bytes:
    return to_descriptor(values).tobytes()


def blob_to_descriptor(blob: Optional[bytes]) -> Optional[np.ndarray]:
    if not blob:
        return None
    return np.frombuffer(blob, dtype=np.float64)


@dataclass(frozen=True)
class MatchResult:
    label: str
    distance: float
    threshold: float

    @property
    def accepted(self) -> bool:
        return self.label != UNKNOWN_LABEL and self.distance < self.threshold

    @property
    def confidence(self) -> float:
        return 1.0 - self.distance


class FaceMatcher:
    """Matches a descriptor against labelled reference descriptors."""

    def __init__(self, labeled_descriptors: Mapping[str, Any], threshold: float = DEFAULT_THRESHOLD):
        self.threshold = float(threshold)
        labels: List[str] = []
        vectors: List[np.ndarray] = []
        dims = None
        for label, descriptors in labeled_descriptors.items():
            for vector in self._iter_vectors(descriptors):
                if dims is None:
                    dims = vector.size
                if vector.size != dims:
                    raise DescriptorError(
                        f"Descriptor for {label} has {vector.size} values, expected {dims}"
                    )
                labels.append(label)
                vectors.append(vector)
        self._labels = labels
        self._matrix = np.vstack(vectors) if vectors else None

    @staticmethod
    def _iter_vectors(descriptors: Any) -> Iterable[np.ndarray]:
        array = np.asarray(descriptors, dtype=np.float64)
        if array.ndim == 1:
            yield to_descriptor(array)
        else:
            for row in array:
                yield to_descriptor(row)

    @property
    def labels(self) -> List[str]:
        return sorted(set(self._labels))

    def is_empty(self) -> bool:
        return self._matrix is None

    def find_best_match(self, descriptor: Any) -> MatchResult:
        """Closest label by Euclidean distance; ``unknown`` past the threshold."""
        if self._matrix is None:
            return MatchResult(UNKNOWN_LABEL, float('inf'), self.threshold)
        vector = to_descriptor(descriptor)
        if vector.size != self._matrix.shape[1]:
            raise DescriptorError(
                f"Descriptor has {vector.size} values, expected {self._matrix.shape[1]}"
            )
        distances = np.linalg.norm(self._matrix - vector, axis=1)
        best = int(np.argmin(distances))
        distance = float(distances[best])
        label = self._labels[best] if distance < self.threshold else UNKNOWN_LABEL
        return MatchResult(label, distance, self.threshold)
