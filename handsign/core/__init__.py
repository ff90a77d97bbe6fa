"""Core engine: types, errors, events and the frame loop."""
from .errors import (
    HandSignError,
    MalformedPersistedModelError,
    UnknownLabelError,
    InvalidObservationError,
    FeatureVectorError,
)
from .events import EventBus, Events
from .types import (
    FEATURE_DIM,
    DEFAULT_LABELS,
    EngineMode,
    Handedness,
    HandObservation,
    LandmarkPoint,
    PredictionResult,
    TrainingSnapshot,
    TrainingState,
)

__all__ = [
    "HandSignError",
    "MalformedPersistedModelError",
    "UnknownLabelError",
    "InvalidObservationError",
    "FeatureVectorError",
    "EventBus",
    "Events",
    "FEATURE_DIM",
    "DEFAULT_LABELS",
    "EngineMode",
    "Handedness",
    "HandObservation",
    "LandmarkPoint",
    "PredictionResult",
    "TrainingSnapshot",
    "TrainingState",
]
