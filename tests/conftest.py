"""
Shared fixtures: a controllable clock and synthetic hand observations.
"""

import numpy as np
import pytest

from handsign.core.events import EventBus
from handsign.core.types import FEATURE_DIM, HandObservation
from handsign.models.knn_classifier import KNNClassifierConfig, KNNSignClassifier

LABELS = ("Hello", "Welcome", "Yes", "No", "Thank You", "Sorry", "To", "Our", "Team")


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def create_mock_hand(handedness: str = "Right", wrist=(0.5, 0.625, 0.0),
                     spread: float = 1.0) -> HandObservation:
    """Build a 21-landmark hand around ``wrist``.

    Offsets sit on a 1/64 grid so translations by dyadic offsets are exact
    in float32.
    """
    wrist = np.asarray(wrist, dtype=np.float32)
    points = [wrist]
    for i in range(1, 21):
        finger, joint = divmod(i - 1, 4)
        offset = np.array([
            (finger - 2) / 32.0,
            -(joint + 1) / 16.0,
            ((i % 3) - 1) / 64.0,
        ], dtype=np.float32) * spread
        points.append(wrist + offset)
    return HandObservation(np.stack(points), handedness)


def cluster(center, n, scale=0.01, seed=0):
    """``n`` vectors scattered around ``center``."""
    rng = np.random.default_rng(seed)
    center = np.asarray(center, dtype=np.float32)
    return [center + rng.normal(0, scale, FEATURE_DIM).astype(np.float32) for _ in range(n)]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def make_hand():
    return create_mock_hand


@pytest.fixture
def classifier():
    """Classifier over the default closed label set."""
    return KNNSignClassifier(KNNClassifierConfig(), labels=LABELS)


@pytest.fixture
def vector_a():
    return np.linspace(-0.5, 0.5, FEATURE_DIM).astype(np.float32)


@pytest.fixture
def vector_b(vector_a):
    return -vector_a


@pytest.fixture
def make_cluster():
    return cluster
