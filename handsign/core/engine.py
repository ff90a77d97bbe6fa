"""
Per-frame recognition engine.

Routes each delivered frame through:

    HandObservations -> LandmarkFeatureExtractor -> FeatureVector
        TRAINING mode:   -> TrainingSessionController -> classifier.add_example
        PREDICTING mode: -> KNNSignClassifier.predict -> "sign_detected" event

Mode is a single EngineMode owned here, so training capture and
prediction can never run at the same time. All state is read from this
instance on every frame; nothing is captured at subscription time.

Detections are not debounced: the same sign on consecutive frames fires
one event per frame, and consumers apply their own hold-time logic.
"""

import time
import logging
from collections import OrderedDict
from typing import Callable, Optional

from handsign.core.errors import InvalidObservationError, UnknownLabelError
from handsign.core.events import EventBus, Events
from handsign.core.types import EngineMode, FrameResult, TrainingState
from handsign.models.feature_extractor import LandmarkFeatureExtractor
from handsign.models.knn_classifier import KNNClassifierConfig, KNNSignClassifier
from handsign.modules.persistence.store import LocalModelStore, ModelStore
from handsign.modules.training.session_controller import TrainingSessionController
from handsign.modules.utils.performance_monitor import PerformanceMonitor

logger = logging.getLogger(__name__)


class SignRecognitionEngine:
    """Owns the extractor, classifier, training controller and event bus
    for one meeting session.

    Usage::

        engine = SignRecognitionEngine.from_config(Config.load())
        engine.on_detection(lambda label, confidence, **_: show_caption(label))
        for hands in frame_source:
            engine.process_frame(hands)
        engine.dispose()
    """

    def __init__(
        self,
        classifier: KNNSignClassifier,
        controller: TrainingSessionController = None,
        extractor: LandmarkFeatureExtractor = None,
        event_bus: EventBus = None,
        performance_monitor: PerformanceMonitor = None,
        model_store: ModelStore = None,
        labels=None,
        config: dict = None,
    ):
        config = config or {}
        self._classifier = classifier
        self._bus = event_bus or EventBus()
        self._extractor = extractor or LandmarkFeatureExtractor()
        self._controller = controller or TrainingSessionController(
            sink=classifier.add_example, labels=classifier.labels, event_bus=self._bus)
        self._perf = performance_monitor or PerformanceMonitor()
        self._store = model_store
        self._labels = tuple(labels) if labels is not None else classifier.labels

        self._skip_empty_frames = config.get("skip_empty_frames", True)
        try:
            self._mode = EngineMode(config.get("initial_mode", EngineMode.PREDICTING.value))
        except ValueError:
            logger.warning("Unknown initial_mode %r, starting in predicting mode",
                           config.get("initial_mode"))
            self._mode = EngineMode.PREDICTING

        # Per-label examples captured by this engine, for progress display
        self._captured_counts = OrderedDict()
        self._frame_count = 0
        self._detection_count = 0
        self._disposed = False

    @classmethod
    def from_config(cls, config, clock: Callable[[], float] = time.monotonic,
                    with_store: bool = True, autoload: bool = None) -> "SignRecognitionEngine":
        """Build a fully wired engine from a Config instance.

        ``autoload`` overrides ``persistence.autoload`` when given.
        """
        labels = config.labels
        bus = EventBus()
        classifier = KNNSignClassifier(KNNClassifierConfig.from_dict(config.classifier),
                                       labels=labels)
        controller = TrainingSessionController(
            config.training, sink=classifier.add_example, labels=labels,
            clock=clock, event_bus=bus)
        perf = PerformanceMonitor(
            window_size=config.get("performance.metrics_window", 100),
            frame_budget_ms=config.get("performance.frame_budget_ms", 100),
        )

        store = None
        if with_store:
            store = ModelStore(classifier, LocalModelStore(
                config.storage_dir, config.get("persistence.storage_key", "isl_model")))

        engine = cls(classifier, controller=controller, event_bus=bus,
                     performance_monitor=perf, model_store=store, labels=labels,
                     config=config.engine)

        if autoload is None:
            autoload = config.get("persistence.autoload", True)
        if store is not None and autoload:
            engine.restore_model()

        logger.info("SignRecognitionEngine initialized (%d labels, mode=%s)",
                    len(labels), engine.mode.value)
        return engine

    # ------------------------------------------------------------------
    # Mode & training commands
    # ------------------------------------------------------------------

    @property
    def mode(self) -> EngineMode:
        return self._mode

    def set_mode(self, mode: EngineMode) -> bool:
        """Switch between TRAINING and PREDICTING.

        Switching to PREDICTING is refused while a training session is
        counting down or capturing.

        Returns:
            True if the engine is now in ``mode``
        """
        mode = EngineMode(mode)
        if mode is self._mode:
            return True
        if mode is EngineMode.PREDICTING and not self._controller.is_idle:
            logger.warning("Cannot switch to predicting during a %s session",
                           self._controller.state.value)
            return False

        previous = self._mode
        self._mode = mode
        logger.info("Engine mode: %s -> %s", previous.value, mode.value)
        self._bus.emit(Events.MODE_CHANGED, previous=previous, mode=mode)
        return True

    def start_training_session(self, label: str) -> bool:
        """Enter TRAINING mode and arm a session for ``label``.

        A no-op (returns False) while another session is running.
        """
        if self._labels is not None and label not in self._labels:
            raise UnknownLabelError("Unknown label: %r" % (label,))
        if not self._controller.is_idle:
            return self._controller.start_session(label)
        self.set_mode(EngineMode.TRAINING)
        return self._controller.start_session(label)

    def cancel_training_session(self) -> bool:
        return self._controller.cancel_session()

    # ------------------------------------------------------------------
    # Frame loop
    # ------------------------------------------------------------------

    def process_frame(self, observations, frame_id: Optional[int] = None) -> FrameResult:
        """Process one frame's 0..2 hand observations.

        Never raises for a malformed or empty frame: the frame is skipped,
        a ``frame_skipped`` event is published and the loop carries on.
        """
        self._frame_count += 1
        frame_id = self._frame_count if frame_id is None else frame_id
        result = FrameResult(frame_id, self._mode)
        start = time.perf_counter()

        try:
            self._process(observations, result)
        finally:
            result.training_state = self._controller.state
            result.latency_ms = (time.perf_counter() - start) * 1000
            self._perf.frame_complete(result.latency_ms)

        return result

    def _process(self, observations, result: FrameResult):
        if self._disposed:
            result.skip("disposed")
            return

        # Transitions due since the last frame happen before routing
        training_state = self._controller.poll()

        try:
            with self._perf.measure("extract"):
                observations = list(observations or [])
                vector = self._extractor.extract(observations)
        except (InvalidObservationError, TypeError) as e:
            logger.debug("Skipping frame %s: %s", result.frame_id, e)
            self._skip(result, "malformed: %s" % e)
            return

        result.hand_count = len(observations)
        if result.hand_count == 0 and self._skip_empty_frames:
            self._skip(result, "no hands")
            return

        if self._mode is EngineMode.TRAINING:
            if training_state is TrainingState.CAPTURING:
                label = self._controller.active_label
                with self._perf.measure("train"):
                    added = self._controller.submit(vector)
                if added:
                    count = self._captured_counts.get(label, 0) + 1
                    self._captured_counts[label] = count
                    result.example_added = True
                    self._bus.emit(Events.EXAMPLE_ADDED, label=label, count=count)
            return

        if not self._controller.is_idle:
            # PREDICTING with a live session should be unreachable via set_mode
            return

        with self._perf.measure("predict"):
            prediction = self._classifier.predict(vector)
        if prediction is not None:
            result.prediction = prediction
            self._detection_count += 1
            self._bus.emit(Events.SIGN_DETECTED, **prediction.as_event())

    def _skip(self, result: FrameResult, reason: str):
        result.skip(reason)
        self._perf.record_skip()
        self._bus.emit(Events.FRAME_SKIPPED, frame_id=result.frame_id, reason=reason)

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def on_detection(self, callback: Callable, priority: int = 0):
        """Register a detection listener; called with label= and confidence=."""
        self._bus.subscribe(Events.SIGN_DETECTED, callback, priority)

    def on_training_state(self, callback: Callable, priority: int = 0):
        self._bus.subscribe(Events.TRAINING_STATE_CHANGED, callback, priority)

    # ------------------------------------------------------------------
    # Read access for UI collaborators
    # ------------------------------------------------------------------

    def training_snapshot(self):
        return self._controller.snapshot()

    def get_example_counts(self) -> "OrderedDict[str, int]":
        """Stored examples per label; configured labels with none show 0."""
        counts = self._classifier.get_example_counts()
        if self._labels is None:
            return OrderedDict(counts)
        ordered = OrderedDict((label, counts.get(label, 0)) for label in self._labels)
        return ordered

    @property
    def captured_counts(self) -> dict:
        """Examples captured through this engine since construction."""
        return dict(self._captured_counts)

    @property
    def classifier(self) -> KNNSignClassifier:
        return self._classifier

    @property
    def controller(self) -> TrainingSessionController:
        return self._controller

    @property
    def event_bus(self) -> EventBus:
        return self._bus

    @property
    def performance(self) -> PerformanceMonitor:
        return self._perf

    @property
    def stats(self) -> dict:
        return {
            "frames": self._frame_count,
            "detections": self._detection_count,
            "examples": self._classifier.total_examples,
            "mode": self._mode.value,
            "training_state": self._controller.state.value,
            "performance": self._perf.get_report(),
        }

    # ------------------------------------------------------------------
    # Model commands (user triggered)
    # ------------------------------------------------------------------

    def _require_store(self) -> ModelStore:
        if self._store is None:
            raise RuntimeError("Engine was built without a model store")
        return self._store

    def save_model(self) -> int:
        saved = self._require_store().save()
        self._bus.emit(Events.MODEL_SAVED, examples=saved)
        return saved

    def restore_model(self) -> int:
        loaded = self._require_store().restore()
        if loaded:
            self._bus.emit(Events.MODEL_LOADED, examples=loaded)
        return loaded

    def export_model(self, path: str) -> int:
        return self._require_store().export_to(path)

    def import_model(self, path: str) -> int:
        loaded = self._require_store().import_from(path)
        self._bus.emit(Events.MODEL_LOADED, examples=loaded)
        return loaded

    def clear_model(self):
        """Forget every example, including the locally stored copy."""
        if self._store is not None:
            self._store.clear()
        else:
            self._classifier.clear()
        self._captured_counts.clear()
        self._bus.emit(Events.MODEL_CLEARED)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def dispose(self):
        """End of session: cancel any training session and drop listeners."""
        if self._disposed:
            return
        self._controller.cancel_session()
        self._bus.emit(Events.ENGINE_DISPOSED, stats=self.stats)
        self._bus.clear()
        self._disposed = True
        logger.info("SignRecognitionEngine disposed after %d frames", self._frame_count)
        self._perf.log_summary()

    @property
    def disposed(self) -> bool:
        return self._disposed

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.dispose()
        return False
