"""
Model blob codec.

A blob is a JSON object mapping each label to a flat list of floats whose
length is a multiple of 126; every 126-run is one stored example. Key
order is the label insertion order. The same text is used for local
storage and for file export/import.
"""

import json
import logging
import math
from collections import OrderedDict
from numbers import Real
from typing import Dict, Optional

import numpy as np

from handsign.core.errors import MalformedPersistedModelError
from handsign.core.types import FEATURE_DIM

logger = logging.getLogger(__name__)


def serialize_dataset(dataset: Dict[str, np.ndarray]) -> str:
    """Encode ``{label: (n, 126) array}`` to a blob string."""
    payload = OrderedDict()
    for label, examples in dataset.items():
        examples = np.asarray(examples, dtype=np.float32).reshape(-1)
        if examples.size % FEATURE_DIM:
            raise ValueError("Label %r holds %d values, not a multiple of %d"
                             % (label, examples.size, FEATURE_DIM))
        payload[label] = examples.tolist()
    return json.dumps(payload, separators=(",", ":"))


def deserialize_dataset(blob: Optional[str]) -> "OrderedDict[str, np.ndarray]":
    """Decode a blob into ``{label: (n, 126) float32 array}``.

    Raises:
        MalformedPersistedModelError: invalid JSON, wrong shape, non-numeric
            entries, or a run length not divisible by 126.
    """
    if not blob:
        return OrderedDict()

    try:
        payload = json.loads(blob, object_pairs_hook=OrderedDict)
    except (TypeError, ValueError) as e:
        raise MalformedPersistedModelError("Model blob is not valid JSON: %s" % e)

    if not isinstance(payload, dict):
        raise MalformedPersistedModelError(
            "Model blob must be an object of label -> numbers, got %s"
            % type(payload).__name__)

    dataset = OrderedDict()
    for label, values in payload.items():
        if not isinstance(values, list):
            raise MalformedPersistedModelError(
                "Label %r must map to a list, got %s" % (label, type(values).__name__))
        if len(values) % FEATURE_DIM:
            raise MalformedPersistedModelError(
                "Label %r holds %d values, not a multiple of %d"
                % (label, len(values), FEATURE_DIM))
        for v in values:
            if isinstance(v, bool) or not isinstance(v, Real) or not math.isfinite(v):
                raise MalformedPersistedModelError(
                    "Label %r contains a non-numeric value: %r" % (label, v))
        if not values:
            logger.debug("Dropping label %r with no examples", label)
            continue
        dataset[label] = np.asarray(values, dtype=np.float32).reshape(-1, FEATURE_DIM)
    return dataset
