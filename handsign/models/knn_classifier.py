"""
KNNSignClassifier: online, user-trainable nearest-neighbour classifier.

Stores labelled 126-float feature vectors and answers queries with a
distance-weighted k-nearest-neighbour vote:

    1. Distances from the query to every stored example
    2. The k nearest examples (all examples tied with the k-th are kept)
       vote with weight 1 / (distance + eps)
    3. A label's confidence is its share of the total vote weight
    4. The top label is returned only if its confidence > threshold

Ties between labels at the same top score go to the label that was
first inserted into the dataset.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

import numpy as np

from handsign.core.errors import FeatureVectorError, MalformedPersistedModelError, UnknownLabelError
from handsign.core.types import FEATURE_DIM, PredictionResult
from handsign.modules.persistence.codec import deserialize_dataset, serialize_dataset

logger = logging.getLogger(__name__)

_WEIGHT_EPS = 1e-6
_TIE_EPS = 1e-9
METRICS = ("euclidean", "cosine")


@dataclass
class KNNClassifierConfig:
    """Nearest-neighbour classifier configuration."""
    k: int = 3
    confidence_threshold: float = 0.8
    metric: str = "euclidean"
    # None keeps every example (unbounded growth)
    max_examples_per_label: Optional[int] = None

    def __post_init__(self):
        if self.max_examples_per_label is not None and self.max_examples_per_label < 1:
            logger.warning("max_examples_per_label must be at least 1, got %r; keeping every example",
                           self.max_examples_per_label)
            self.max_examples_per_label = None

    @classmethod
    def from_dict(cls, config: dict) -> "KNNClassifierConfig":
        """Create config from dictionary."""
        config = config or {}
        metric = config.get("metric", "euclidean")
        if metric not in METRICS:
            logger.warning("Unknown metric %r, using euclidean", metric)
            metric = "euclidean"
        cap = config.get("max_examples_per_label")
        return cls(
            k=max(1, int(config.get("k", 3))),
            confidence_threshold=float(config.get("confidence_threshold", 0.8)),
            metric=metric,
            max_examples_per_label=int(cap) if cap is not None else None,
        )


class KNNSignClassifier:
    """Nearest-neighbour classifier over a closed label set.

    Usage::

        clf = KNNSignClassifier(KNNClassifierConfig(), labels=DEFAULT_LABELS)
        clf.add_example(vector, "Hello")
        result = clf.predict(vector)   # PredictionResult or None
    """

    def __init__(self, config: Optional[KNNClassifierConfig] = None,
                 labels: Optional[Iterable[str]] = None):
        self._config = config or KNNClassifierConfig()
        self._labels = tuple(labels) if labels is not None else None

        # label -> list of (126,) float32 vectors, in label insertion order
        self._dataset: "OrderedDict[str, List[np.ndarray]]" = OrderedDict()

        # Stacked (N, 126) matrix + owner index, rebuilt lazily after mutation
        self._matrix = None
        self._owners = None
        self._norms = None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def config(self) -> KNNClassifierConfig:
        return self._config

    @property
    def labels(self):
        """Configured closed label set (None = any label accepted)."""
        return self._labels

    @property
    def num_classes(self) -> int:
        return len(self._dataset)

    @property
    def total_examples(self) -> int:
        return sum(len(v) for v in self._dataset.values())

    # ------------------------------------------------------------------
    # Training
    # ------------------------------------------------------------------

    def add_example(self, vector, label: str):
        """Append one example under ``label``."""
        self._check_label(label)
        vector = self._as_vector(vector)

        examples = self._dataset.setdefault(label, [])
        examples.append(vector.copy())

        cap = self._config.max_examples_per_label
        if cap is not None and len(examples) > cap:
            del examples[0:len(examples) - cap]

        self._invalidate()

    def get_example_counts(self) -> Dict[str, int]:
        """Stored examples per label (labels without examples are absent)."""
        return OrderedDict((label, len(v)) for label, v in self._dataset.items())

    def clear(self):
        """Drop every stored example."""
        self._dataset.clear()
        self._invalidate()

    def clear_label(self, label: str) -> int:
        """Drop all examples of one label. Returns how many were removed."""
        removed = len(self._dataset.pop(label, []))
        if removed:
            self._invalidate()
        return removed

    # ------------------------------------------------------------------
    # Prediction
    # ------------------------------------------------------------------

    def predict(self, vector) -> Optional[PredictionResult]:
        """Classify one feature vector.

        Returns:
            PredictionResult when the top label's confidence exceeds the
            threshold, otherwise None (also None with no training data).
        """
        scores = self.score(vector)
        if not scores:
            return None

        # max() keeps the first maximum, i.e. the earliest inserted label
        best_label = max(scores, key=scores.get)
        confidence = scores[best_label]

        if confidence > self._config.confidence_threshold:
            return PredictionResult(best_label, confidence, scores=scores)

        logger.debug("Low confidence %.3f for %s (threshold %.2f)",
                     confidence, best_label, self._config.confidence_threshold)
        return None

    def score(self, vector) -> Dict[str, float]:
        """Per-label vote share for ``vector``; empty dict with no data."""
        if self.total_examples == 0:
            return {}

        vector = self._as_vector(vector)
        matrix, owners = self._stacked()
        distances = self._distances(vector, matrix)

        k = min(self._config.k, len(distances))
        kth = np.partition(distances, k - 1)[k - 1]
        neighbours = distances <= kth + _TIE_EPS

        weights = 1.0 / (distances[neighbours] + _WEIGHT_EPS)
        votes = np.bincount(owners[neighbours], weights=weights,
                            minlength=len(self._dataset))
        total = votes.sum()

        return OrderedDict(
            (label, float(votes[i] / total))
            for i, label in enumerate(self._dataset)
        )

    def _distances(self, vector: np.ndarray, matrix: np.ndarray) -> np.ndarray:
        if self._config.metric == "cosine":
            query_norm = float(np.linalg.norm(vector))
            denom = self._norms * query_norm
            sims = np.divide(matrix @ vector, denom,
                             out=np.zeros(len(matrix), dtype=np.float64),
                             where=denom > 0)
            return np.clip(1.0 - sims, 0.0, 2.0)
        diff = matrix - vector
        return np.sqrt(np.einsum("ij,ij->i", diff, diff, dtype=np.float64))

    # ------------------------------------------------------------------
    # Dataset access & persistence
    # ------------------------------------------------------------------

    def get_dataset(self) -> "OrderedDict[str, np.ndarray]":
        """Copy of the dataset as ``{label: (n, 126) array}``."""
        return OrderedDict(
            (label, np.stack(examples).astype(np.float32))
            for label, examples in self._dataset.items() if examples
        )

    def set_dataset(self, dataset: Dict[str, np.ndarray]):
        """Replace the whole dataset. Validates before touching state."""
        staged = OrderedDict()
        for label, examples in dataset.items():
            self._check_label(label)
            examples = np.asarray(examples, dtype=np.float32)
            if examples.ndim != 2 or examples.shape[1] != FEATURE_DIM:
                raise FeatureVectorError(
                    "Label %r: expected (n, %d) examples, got %s"
                    % (label, FEATURE_DIM, examples.shape))
            if len(examples):
                staged[label] = [row.copy() for row in examples]

        self._dataset = staged
        self._invalidate()

    def save(self) -> str:
        """Serialize the dataset to a blob string."""
        return serialize_dataset(self.get_dataset())

    def load(self, blob: Optional[str]) -> int:
        """Replace the dataset with one read from ``blob``.

        An empty blob is ignored. On any error the current dataset is left
        untouched.

        Returns:
            Number of examples loaded

        Raises:
            MalformedPersistedModelError: blob cannot be decoded, or names a
                label outside the configured label set.
        """
        if not blob:
            return 0

        dataset = deserialize_dataset(blob)
        if self._labels is not None:
            unknown = [label for label in dataset if label not in self._labels]
            if unknown:
                raise MalformedPersistedModelError(
                    "Model blob contains unknown labels: %s" % ", ".join(map(repr, unknown)))

        self.set_dataset(dataset)
        loaded = self.total_examples
        logger.info("Loaded %d examples across %d labels", loaded, self.num_classes)
        return loaded

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check_label(self, label: str):
        if self._labels is not None and label not in self._labels:
            raise UnknownLabelError("Unknown label: %r" % (label,))

    @staticmethod
    def _as_vector(vector) -> np.ndarray:
        try:
            arr = np.asarray(vector, dtype=np.float32)
        except (TypeError, ValueError) as e:
            raise FeatureVectorError("Feature vector is not numeric: %s" % e)
        if arr.shape != (FEATURE_DIM,):
            raise FeatureVectorError(
                "Expected (%d,) feature vector, got %s" % (FEATURE_DIM, arr.shape))
        if not np.all(np.isfinite(arr)):
            raise FeatureVectorError("Feature vector contains non-finite values")
        return arr

    def _invalidate(self):
        self._matrix = None
        self._owners = None
        self._norms = None

    def _stacked(self):
        if self._matrix is None:
            rows, owners = [], []
            for idx, examples in enumerate(self._dataset.values()):
                rows.extend(examples)
                owners.extend([idx] * len(examples))
            self._matrix = np.stack(rows).astype(np.float64)
            self._owners = np.asarray(owners, dtype=np.intp)
            self._norms = np.linalg.norm(self._matrix, axis=1)
        return self._matrix, self._owners
