"""
Feature extraction: per-frame hand observations → 126-float vector.

Feature layout (126 dimensions):
    [0:63]    Left hand, 21 landmarks × (x, y, z) relative to its wrist
    [63:126]  Right hand, same encoding

A missing hand leaves its slot zero-filled. Coordinates are translated
so the wrist sits at the origin but are NOT scaled, so distance to the
camera still changes the magnitude of the vector. The subtraction is done
in float32, so translating a hand gives an identical vector only when the
offsets are exactly representable; other translations agree to within
float32 rounding.
"""

import logging
from typing import Iterable, Optional

import numpy as np

from handsign.core.errors import InvalidObservationError
from handsign.core.types import (
    COORDS_PER_LANDMARK, FEATURE_DIM, HAND_FEATURE_DIM, NUM_LANDMARKS, WRIST,
    HandObservation,
)

logger = logging.getLogger(__name__)

MAX_HANDS = 2


class LandmarkFeatureExtractor:
    """Converts 0..2 hand observations to a fixed-size feature vector."""

    def __init__(self):
        self._feature_dim = FEATURE_DIM

    @property
    def feature_dim(self):
        return self._feature_dim

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def extract(self, observations: Optional[Iterable[HandObservation]]) -> np.ndarray:
        """Encode one frame's hands.

        Args:
            observations: zero, one or two HandObservation objects (or
                          dicts accepted by ``HandObservation.from_dict``).

        Returns:
            np.ndarray of shape (126,), dtype float32

        Raises:
            InvalidObservationError: more than two hands or a malformed hand.
        """
        hands = [self._coerce(obs) for obs in (observations or [])]
        if len(hands) > MAX_HANDS:
            raise InvalidObservationError(
                "Expected at most %d hands, got %d" % (MAX_HANDS, len(hands)))

        features = np.zeros(self._feature_dim, dtype=np.float32)
        seen = set()
        for hand in hands:
            if hand.handedness in seen:
                # Tracker reported the same handedness twice: last one wins
                logger.debug("Duplicate %s hand in frame, overwriting slot",
                             hand.handedness.value)
            seen.add(hand.handedness)
            offset = hand.handedness.slot_offset
            features[offset:offset + HAND_FEATURE_DIM] = self.extract_hand(hand.landmarks)

        # Finite landmarks can still overflow float32 once made wrist-relative
        if not np.all(np.isfinite(features)):
            raise InvalidObservationError("Wrist-relative coordinates overflow float32")
        return features

    def extract_hand(self, landmarks) -> np.ndarray:
        """Wrist-relative (21, 3) landmarks flattened to (63,)."""
        landmarks = np.asarray(landmarks, dtype=np.float32)
        if landmarks.shape != (NUM_LANDMARKS, COORDS_PER_LANDMARK):
            raise InvalidObservationError(
                "Expected (21, 3) landmarks, got %s" % str(landmarks.shape))
        with np.errstate(over="ignore"):
            return (landmarks - landmarks[WRIST]).reshape(-1)

    def extract_batch(self, frames) -> np.ndarray:
        """Encode several frames at once → (N, 126)."""
        out = np.zeros((len(frames), self._feature_dim), dtype=np.float32)
        for i, frame in enumerate(frames):
            out[i] = self.extract(frame)
        return out

    @staticmethod
    def _coerce(obs) -> HandObservation:
        if isinstance(obs, HandObservation):
            return obs
        return HandObservation.from_dict(obs)
