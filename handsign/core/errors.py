"""
Exception hierarchy for the recognition engine.

"Nothing detected" outcomes (empty dataset, low confidence) are not
errors and never raise; they surface as ``None`` from ``predict()``.
"""


class HandSignError(Exception):
    """Base class for all engine errors."""


class MalformedPersistedModelError(HandSignError, ValueError):
    """A persisted model blob cannot be turned back into a dataset."""


class UnknownLabelError(HandSignError, ValueError):
    """A label outside the configured closed label set."""


class InvalidObservationError(HandSignError, ValueError):
    """A frame's hand observations cannot be encoded."""


class FeatureVectorError(HandSignError, ValueError):
    """A feature vector is not exactly 126 finite floats."""
