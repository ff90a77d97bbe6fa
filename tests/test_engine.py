"""
Tests for the Per-Frame Recognition Engine
==========================================
"""

import pytest

from handsign.core.engine import SignRecognitionEngine
from handsign.core.errors import MalformedPersistedModelError, UnknownLabelError
from handsign.core.events import Events
from handsign.core.types import EngineMode, TrainingState
from handsign.models.feature_extractor import LandmarkFeatureExtractor
from handsign.modules.persistence.store import LocalModelStore
from handsign.modules.training.session_controller import TrainingSessionController
from handsign.modules.utils.config import Config

from conftest import LABELS


@pytest.fixture
def engine(classifier, clock, bus):
    controller = TrainingSessionController(
        {"countdown_start": 3, "tick_seconds": 1.0, "capture_seconds": 3.0},
        sink=classifier.add_example, labels=LABELS, clock=clock, event_bus=bus)
    return SignRecognitionEngine(classifier, controller=controller, event_bus=bus)


def _collect(bus, event_name):
    seen = []
    bus.subscribe(event_name, lambda **kw: seen.append(kw))
    return seen


def _train(engine, clock, label, hand, frames=6):
    """Run one full session, feeding ``hand`` every half second."""
    assert engine.start_training_session(label)
    clock.advance(3.0)
    for _ in range(frames):
        engine.process_frame([hand])
        clock.advance(0.5)
    clock.advance(3.0)
    engine.process_frame([hand])
    assert engine.controller.is_idle


class TestPrediction:

    def test_starts_predicting(self, engine):
        assert engine.mode is EngineMode.PREDICTING

    def test_untrained_engine_detects_nothing(self, engine, bus, make_hand):
        detections = _collect(bus, Events.SIGN_DETECTED)
        result = engine.process_frame([make_hand("Right")])
        assert result.prediction is None
        assert not result.skipped
        assert detections == []

    def test_one_event_per_matching_frame(self, engine, bus, clock, make_hand):
        hand = make_hand("Right")
        _train(engine, clock, "Hello", hand)
        engine.set_mode(EngineMode.PREDICTING)

        detections = _collect(bus, Events.SIGN_DETECTED)
        for _ in range(4):
            engine.process_frame([hand])

        assert len(detections) == 4
        assert all(d["label"] == "Hello" for d in detections)
        assert all(d["confidence"] > 0.8 for d in detections)

    def test_on_detection_listener(self, engine, clock, make_hand):
        hand = make_hand("Left")
        _train(engine, clock, "Yes", hand)
        engine.set_mode(EngineMode.PREDICTING)

        labels = []
        engine.on_detection(lambda label, confidence, **_: labels.append(label))
        result = engine.process_frame([hand.translated((0.125, 0.0, 0.0))])
        assert labels == ["Yes"]
        assert result.prediction.label == "Yes"

    def test_raising_listener_does_not_break_loop(self, engine, bus, clock, make_hand):
        hand = make_hand("Right")
        _train(engine, clock, "Team", hand)
        engine.set_mode(EngineMode.PREDICTING)

        def broken(**_):
            raise RuntimeError("caption overlay crashed")

        good = []
        engine.on_detection(broken, priority=10)
        engine.on_detection(lambda label, **_: good.append(label))

        engine.process_frame([hand])
        engine.process_frame([hand])
        assert good == ["Team", "Team"]


class TestTraining:

    def test_start_switches_to_training(self, engine, bus):
        modes = _collect(bus, Events.MODE_CHANGED)
        assert engine.start_training_session("Hello")
        assert engine.mode is EngineMode.TRAINING
        assert modes == [{"previous": EngineMode.PREDICTING, "mode": EngineMode.TRAINING}]

    def test_only_capture_frames_are_stored(self, engine, bus, clock, make_hand):
        added = _collect(bus, Events.EXAMPLE_ADDED)
        hand = make_hand("Right")

        engine.start_training_session("Hello")
        for _ in range(3):
            assert not engine.process_frame([hand]).example_added
            clock.advance(1.0)

        results = []
        for _ in range(6):
            results.append(engine.process_frame([hand]))
            clock.advance(0.5)
        engine.process_frame([hand])

        assert all(r.example_added for r in results)
        assert engine.get_example_counts()["Hello"] == 6
        assert [a["count"] for a in added] == [1, 2, 3, 4, 5, 6]
        assert engine.captured_counts == {"Hello": 6}

    def test_no_detections_while_training(self, engine, bus, clock, make_hand):
        hand = make_hand("Right")
        _train(engine, clock, "Hello", hand)
        assert engine.mode is EngineMode.TRAINING

        detections = _collect(bus, Events.SIGN_DETECTED)
        engine.process_frame([hand])
        engine.start_training_session("Yes")
        clock.advance(3.5)
        engine.process_frame([hand])
        assert detections == []

    def test_predicting_refused_during_session(self, engine, clock):
        engine.start_training_session("Sorry")
        assert not engine.set_mode(EngineMode.PREDICTING)
        assert engine.mode is EngineMode.TRAINING

        clock.advance(10.0)
        assert engine.set_mode(EngineMode.PREDICTING)
        assert engine.mode is EngineMode.PREDICTING

    def test_unknown_label_leaves_mode(self, engine):
        with pytest.raises(UnknownLabelError):
            engine.start_training_session("Goodbye")
        assert engine.mode is EngineMode.PREDICTING

    def test_restart_is_noop(self, engine, clock):
        engine.start_training_session("Hello")
        clock.advance(1.0)
        before = engine.training_snapshot()
        assert not engine.start_training_session("Yes")
        assert engine.training_snapshot() == before

    def test_cancel(self, engine):
        engine.start_training_session("Hello")
        assert engine.cancel_training_session()
        assert engine.training_snapshot().state is TrainingState.IDLE

    def test_counts_include_every_label(self, engine, clock, make_hand):
        _train(engine, clock, "Our", make_hand("Left"), frames=2)
        counts = engine.get_example_counts()
        assert list(counts) == list(LABELS)
        assert counts["Our"] == 2
        assert counts["Hello"] == 0


class TestSkippedFrames:

    def test_empty_frame_skipped(self, engine, bus):
        skipped = _collect(bus, Events.FRAME_SKIPPED)
        result = engine.process_frame([], frame_id=7)
        assert result.skipped
        assert result.hand_count == 0
        assert skipped == [{"frame_id": 7, "reason": "no hands"}]

    def test_empty_frame_not_stored_while_capturing(self, engine, classifier, clock):
        engine.start_training_session("Hello")
        clock.advance(3.0)
        engine.process_frame([])
        assert classifier.total_examples == 0

    @pytest.mark.parametrize("frame", [
        [{"handedness": "Left", "landmarks": [[0.0, 0.0, 0.0]] * 5}],
        [{"handedness": "Sideways", "landmarks": [[0.0, 0.0, 0.0]] * 21}],
        42,
    ])
    def test_malformed_frame_skipped(self, engine, bus, frame):
        skipped = _collect(bus, Events.FRAME_SKIPPED)
        result = engine.process_frame(frame)
        assert result.skipped
        assert result.skip_reason.startswith("malformed")
        assert len(skipped) == 1

    @pytest.mark.parametrize("mode", [EngineMode.PREDICTING, EngineMode.TRAINING])
    def test_overflowing_coordinates_skipped(self, engine, classifier, clock, make_hand, mode):
        classifier.add_example(LandmarkFeatureExtractor().extract([make_hand("Right")]), "Hello")
        if mode is EngineMode.TRAINING:
            engine.start_training_session("Yes")
            clock.advance(3.0)

        landmarks = [[3e38, 0.5, 0.0]] * 21
        landmarks[0] = [-3e38, 0.5, 0.0]
        result = engine.process_frame([{"handedness": "Right", "landmarks": landmarks}])

        assert result.skipped
        assert result.skip_reason.startswith("malformed")
        assert classifier.get_example_counts() == {"Hello": 1}
        assert not engine.process_frame([make_hand("Right")]).skipped

    def test_three_hands_skipped(self, engine, make_hand):
        result = engine.process_frame([make_hand("Left"), make_hand("Right"), make_hand("Left")])
        assert result.skipped

    def test_loop_continues_after_bad_frame(self, engine, make_hand):
        engine.process_frame(42)
        assert not engine.process_frame([make_hand("Left")]).skipped
        assert engine.performance.skipped_count == 1
        assert engine.performance.frame_count == 2

    def test_dict_observations_accepted(self, engine, make_hand):
        hand = make_hand("Right")
        frame = [{"handedness": "Right", "landmarks": hand.landmarks.tolist()}]
        result = engine.process_frame(frame)
        assert not result.skipped
        assert result.hand_count == 1


class TestLifecycle:

    def test_dispose(self, engine, bus, make_hand):
        disposed = _collect(bus, Events.ENGINE_DISPOSED)
        engine.start_training_session("Hello")
        engine.dispose()

        assert engine.disposed
        assert engine.training_snapshot().state is TrainingState.IDLE
        assert len(disposed) == 1
        assert bus.listener_count == 0
        assert engine.process_frame([make_hand("Left")]).skip_reason == "disposed"

    def test_dispose_twice(self, engine):
        engine.dispose()
        engine.dispose()
        assert engine.disposed

    def test_context_manager(self, engine):
        with engine as e:
            assert e is engine
        assert engine.disposed

    def test_model_commands_need_store(self, engine):
        with pytest.raises(RuntimeError):
            engine.save_model()

    def test_stats(self, engine, make_hand):
        engine.process_frame([make_hand("Left")])
        stats = engine.stats
        assert stats["frames"] == 1
        assert stats["mode"] == "predicting"
        assert stats["training_state"] == "idle"


class TestFromConfig:

    @pytest.fixture
    def config(self, tmp_path):
        return Config({
            "persistence": {"storage_dir": str(tmp_path / "store")},
            "training": {"countdown_start": 1, "tick_seconds": 1.0, "capture_seconds": 1.0},
        })

    def test_save_and_autoload(self, config, clock, make_hand):
        hand = make_hand("Right")
        with SignRecognitionEngine.from_config(config, clock=clock) as engine:
            engine.start_training_session("Welcome")
            clock.advance(1.0)
            engine.process_frame([hand])
            clock.advance(2.0)
            engine.set_mode(EngineMode.PREDICTING)
            assert engine.save_model() == 1

        with SignRecognitionEngine.from_config(config, clock=clock) as engine:
            assert engine.get_example_counts()["Welcome"] == 1
            assert engine.process_frame([hand]).prediction.label == "Welcome"

    def test_corrupt_store_raises_on_autoload(self, config, clock):
        LocalModelStore(config.storage_dir).write("{corrupt")

        with pytest.raises(MalformedPersistedModelError):
            SignRecognitionEngine.from_config(config, clock=clock)

        engine = SignRecognitionEngine.from_config(config, clock=clock, autoload=False)
        engine.clear_model()
        assert SignRecognitionEngine.from_config(config, clock=clock).classifier.total_examples == 0

    def test_export_import(self, config, clock, make_hand, tmp_path):
        engine = SignRecognitionEngine.from_config(config, clock=clock)
        engine.classifier.add_example(LandmarkFeatureExtractor().extract([make_hand("Left")]), "Yes")
        export_path = str(tmp_path / "model.json")
        assert engine.export_model(export_path) == 1

        loaded = []
        other = SignRecognitionEngine.from_config(config, clock=clock)
        other.event_bus.subscribe(Events.MODEL_LOADED, lambda examples, **_: loaded.append(examples))
        assert other.import_model(export_path) == 1
        assert loaded == [1]
