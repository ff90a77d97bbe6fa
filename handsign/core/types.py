"""
Shared domain types for the hand-sign recognition engine.

Centralizes enums, data classes, and constants used across modules
to eliminate circular imports and ensure type consistency.
"""

import time
from enum import Enum
from typing import Optional, Dict, List, NamedTuple, Sequence

import numpy as np

from handsign.core.errors import InvalidObservationError


# =============================================================================
# Feature Geometry
# =============================================================================

NUM_LANDMARKS = 21
COORDS_PER_LANDMARK = 3
HAND_FEATURE_DIM = NUM_LANDMARKS * COORDS_PER_LANDMARK   # 63
FEATURE_DIM = 2 * HAND_FEATURE_DIM                       # 126
WRIST = 0

DEFAULT_LABELS = (
    "Hello",
    "Welcome",
    "Yes",
    "No",
    "Thank You",
    "Sorry",
    "To",
    "Our",
    "Team",
)


# =============================================================================
# Enums
# =============================================================================

class Handedness(Enum):
    """Which hand an observation belongs to; selects its feature slot."""
    LEFT = "Left"
    RIGHT = "Right"

    @classmethod
    def from_string(cls, name: str) -> 'Handedness':
        """Convert "Left"/"Right" (any case) to Handedness."""
        if isinstance(name, cls):
            return name
        for member in cls:
            if isinstance(name, str) and name.strip().lower() == member.value.lower():
                return member
        raise InvalidObservationError("Unknown handedness: %r" % (name,))

    @property
    def slot_offset(self) -> int:
        return 0 if self is Handedness.LEFT else HAND_FEATURE_DIM


class TrainingState(Enum):
    """Training session states."""
    IDLE = "idle"
    COUNTDOWN = "countdown"
    CAPTURING = "capturing"


class EngineMode(Enum):
    """Mutually exclusive operating modes of the recognition engine."""
    TRAINING = "training"
    PREDICTING = "predicting"


# =============================================================================
# Observations
# =============================================================================

class LandmarkPoint(NamedTuple):
    """A single hand joint in camera-normalized coordinates."""
    x: float
    y: float
    z: float


class HandObservation:
    """One tracked hand: 21 landmarks plus its handedness tag."""

    __slots__ = ("landmarks", "handedness")

    def __init__(self, landmarks, handedness):
        self.landmarks = self._as_array(landmarks)
        self.handedness = Handedness.from_string(handedness)

    @staticmethod
    def _as_array(landmarks) -> np.ndarray:
        points = []
        try:
            for lm in landmarks:
                if isinstance(lm, dict):
                    lm = (lm.get("x"), lm.get("y"), lm.get("z", 0.0))
                elif hasattr(lm, "x") and hasattr(lm, "y"):
                    lm = (lm.x, lm.y, getattr(lm, "z", 0.0))
                points.append(lm)
            arr = np.asarray(points, dtype=np.float32)
        except (TypeError, ValueError) as e:
            raise InvalidObservationError("Landmarks are not numeric: %s" % e)
        if arr.shape != (NUM_LANDMARKS, COORDS_PER_LANDMARK):
            raise InvalidObservationError(
                "Expected (21, 3) landmarks, got %s" % str(arr.shape))
        if not np.all(np.isfinite(arr)):
            raise InvalidObservationError("Landmarks contain non-finite values")
        return arr

    @classmethod
    def from_dict(cls, d: dict) -> 'HandObservation':
        """Build from ``{"handedness": "Left", "landmarks": [[x, y, z], ...]}``."""
        if not isinstance(d, dict):
            raise InvalidObservationError("Hand entry must be an object")
        return cls(d.get("landmarks") or [], d.get("handedness"))

    def to_points(self) -> List[LandmarkPoint]:
        return [LandmarkPoint(float(x), float(y), float(z)) for x, y, z in self.landmarks]

    def translated(self, offset: Sequence[float]) -> 'HandObservation':
        """Copy of this observation shifted by a constant 3D offset."""
        return HandObservation(self.landmarks + np.asarray(offset, dtype=np.float32),
                               self.handedness)

    def __repr__(self):
        return "HandObservation(%s, wrist=%s)" % (
            self.handedness.value, np.round(self.landmarks[WRIST], 3).tolist())


# =============================================================================
# Results
# =============================================================================

class PredictionResult:
    """Container for classifier output that passed the confidence gate."""

    __slots__ = ("label", "confidence", "scores", "timestamp")

    def __init__(self, label: str, confidence: float, scores: Optional[Dict[str, float]] = None):
        self.label = label
        self.confidence = confidence
        self.scores = scores or {}
        self.timestamp = time.time()

    def __repr__(self):
        return f"PredictionResult({self.label}, conf={self.confidence:.2f})"

    def as_event(self) -> dict:
        return {"label": self.label, "confidence": self.confidence}


class TrainingSnapshot(NamedTuple):
    """Immutable view of the training session for overlays and tests."""
    state: TrainingState
    active_label: Optional[str]
    remaining_ticks: int


class FrameResult:
    """Result of a single engine iteration."""

    __slots__ = (
        "frame_id", "hand_count", "mode", "training_state",
        "example_added", "prediction", "skipped", "skip_reason",
        "latency_ms", "timestamp",
    )

    def __init__(self, frame_id: int, mode: EngineMode):
        self.frame_id = frame_id
        self.hand_count = 0
        self.mode = mode
        self.training_state = TrainingState.IDLE
        self.example_added = False
        self.prediction: Optional[PredictionResult] = None
        self.skipped = False
        self.skip_reason: Optional[str] = None
        self.latency_ms = 0.0
        self.timestamp = time.time()

    def skip(self, reason: str) -> 'FrameResult':
        self.skipped = True
        self.skip_reason = reason
        return self
