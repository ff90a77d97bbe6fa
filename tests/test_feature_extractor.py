"""
Tests for Landmark Feature Extraction
=====================================
"""

import numpy as np
import pytest

from handsign.core.errors import InvalidObservationError
from handsign.core.types import FEATURE_DIM, HAND_FEATURE_DIM, Handedness, HandObservation
from handsign.models.feature_extractor import LandmarkFeatureExtractor


@pytest.fixture
def extractor():
    return LandmarkFeatureExtractor()


class TestSlots:
    """Hand placement inside the 126-wide vector."""

    def test_no_hands_is_all_zeros(self, extractor):
        vec = extractor.extract([])
        assert vec.shape == (FEATURE_DIM,)
        assert vec.dtype == np.float32
        assert not vec.any()

    def test_none_is_all_zeros(self, extractor):
        assert not extractor.extract(None).any()

    def test_right_only_fills_second_slot(self, extractor, make_hand):
        vec = extractor.extract([make_hand("Right")])
        assert not vec[:HAND_FEATURE_DIM].any()
        assert vec[HAND_FEATURE_DIM:].any()

    def test_left_only_fills_first_slot(self, extractor, make_hand):
        vec = extractor.extract([make_hand("Left")])
        assert vec[:HAND_FEATURE_DIM].any()
        assert not vec[HAND_FEATURE_DIM:].any()

    def test_left_and_right_mirror(self, extractor, make_hand):
        left = extractor.extract([make_hand("Left")])
        right = extractor.extract([make_hand("Right")])
        np.testing.assert_array_equal(left[:HAND_FEATURE_DIM], right[HAND_FEATURE_DIM:])

    def test_both_hands_independent_of_order(self, extractor, make_hand):
        left = make_hand("Left", wrist=(0.25, 0.5, 0.0))
        right = make_hand("Right", wrist=(0.75, 0.5, 0.0), spread=0.5)
        np.testing.assert_array_equal(extractor.extract([left, right]),
                                      extractor.extract([right, left]))

    def test_duplicate_handedness_last_wins(self, extractor, make_hand):
        first = make_hand("Right", spread=1.0)
        second = make_hand("Right", spread=0.5)
        vec = extractor.extract([first, second])

        expected = extractor.extract([second])
        np.testing.assert_array_equal(vec, expected)
        assert not vec[:HAND_FEATURE_DIM].any()


class TestWristRelative:
    """Translation invariance and the absence of scale normalization."""

    def test_wrist_is_origin(self, extractor, make_hand):
        vec = extractor.extract([make_hand("Left")])
        np.testing.assert_array_equal(vec[0:3], [0.0, 0.0, 0.0])

    def test_translation_gives_identical_vector(self, extractor, make_hand):
        hand = make_hand("Right")
        moved = hand.translated((0.125, -0.25, 0.5))
        np.testing.assert_array_equal(extractor.extract([hand]), extractor.extract([moved]))

    def test_arbitrary_translation_is_close(self, extractor, make_hand):
        hand = make_hand("Left")
        moved = hand.translated((0.0137, -0.2211, 0.093))
        np.testing.assert_allclose(extractor.extract([hand]), extractor.extract([moved]),
                                   atol=1e-6)

    def test_scale_changes_magnitude(self, extractor, make_hand):
        near = extractor.extract([make_hand("Right", spread=1.0)])
        far = extractor.extract([make_hand("Right", spread=0.5)])
        assert np.linalg.norm(far) == pytest.approx(np.linalg.norm(near) / 2, rel=1e-5)


class TestValidation:
    """Malformed observations."""

    def test_overflow_rejected(self, extractor):
        points = [[3e38, 0.0, 0.0]] * 21
        points[0] = [-3e38, 0.0, 0.0]
        with pytest.raises(InvalidObservationError):
            extractor.extract([HandObservation(points, "Left")])

    def test_three_hands_rejected(self, extractor, make_hand):
        with pytest.raises(InvalidObservationError):
            extractor.extract([make_hand("Left"), make_hand("Right"), make_hand("Left")])

    def test_wrong_landmark_count_rejected(self):
        with pytest.raises(InvalidObservationError):
            HandObservation([[0.0, 0.0, 0.0]] * 20, "Left")

    def test_non_finite_rejected(self):
        points = [[0.1, 0.2, 0.0]] * 21
        points[5] = [float("nan"), 0.2, 0.0]
        with pytest.raises(InvalidObservationError):
            HandObservation(points, "Right")

    def test_unknown_handedness_rejected(self):
        with pytest.raises(InvalidObservationError):
            HandObservation([[0.0, 0.0, 0.0]] * 21, "Middle")

    def test_accepts_dict_observations(self, extractor, make_hand):
        hand = make_hand("Left")
        as_dict = {
            "handedness": "left",
            "landmarks": [{"x": float(x), "y": float(y), "z": float(z)}
                          for x, y, z in hand.landmarks],
        }
        np.testing.assert_array_equal(extractor.extract([as_dict]), extractor.extract([hand]))

    def test_batch(self, extractor, make_hand):
        batch = extractor.extract_batch([[], [make_hand("Left")], [make_hand("Right")]])
        assert batch.shape == (3, FEATURE_DIM)
        assert not batch[0].any()


class TestHandedness:

    @pytest.mark.parametrize("name,expected", [
        ("Left", Handedness.LEFT),
        ("RIGHT", Handedness.RIGHT),
        (" right ", Handedness.RIGHT),
    ])
    def test_from_string(self, name, expected):
        assert Handedness.from_string(name) is expected

    def test_slot_offsets(self):
        assert Handedness.LEFT.slot_offset == 0
        assert Handedness.RIGHT.slot_offset == HAND_FEATURE_DIM
