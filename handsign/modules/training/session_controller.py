"""
Hands-free training session state machine.

    IDLE --start_session(label)--> COUNTDOWN --ticks reach 0--> CAPTURING
      ^                                                            |
      +------------------- capture duration elapsed ---------------+

The controller is clock-driven rather than timer-driven: every poll or
state read compares the injected monotonic clock against the phase
deadlines and applies any transitions that are due, in order. This keeps
all state changes on the caller's thread (one writer, one reader).
"""

import math
import time
import logging
from typing import Callable, Iterable, Optional

from handsign.core.errors import UnknownLabelError
from handsign.core.events import Events
from handsign.core.types import TrainingSnapshot, TrainingState

logger = logging.getLogger(__name__)


class TrainingSessionController:
    """Gates which frames become training examples.

    Usage::

        controller = TrainingSessionController(config, sink=classifier.add_example)
        controller.start_session("Hello")
        ...
        controller.submit(vector)   # per frame; stored only while CAPTURING
    """

    def __init__(self, config: dict = None, sink: Callable = None,
                 labels: Optional[Iterable[str]] = None,
                 clock: Callable[[], float] = time.monotonic,
                 event_bus=None):
        config = config or {}
        self._countdown_start = max(0, int(config.get("countdown_start", 3)))
        self._tick_seconds = float(config.get("tick_seconds", 1.0))
        self._capture_seconds = float(config.get("capture_seconds", 3.0))

        self._sink = sink
        self._labels = tuple(labels) if labels is not None else None
        self._clock = clock
        self._bus = event_bus

        # Session state
        self._state = TrainingState.IDLE
        self._active_label: Optional[str] = None
        self._remaining_ticks = 0
        self._phase_start = 0.0
        self._captured = 0
        self._sessions_completed = 0

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def start_session(self, label: str) -> bool:
        """Arm a session for ``label``.

        Only accepted from IDLE; while a session is running the call is a
        no-op and the running session is left exactly as it was.

        Returns:
            True if a new session was armed
        """
        if self._labels is not None and label not in self._labels:
            raise UnknownLabelError("Unknown label: %r" % (label,))

        self.poll()
        if self._state is not TrainingState.IDLE:
            logger.debug("Ignoring start_session(%r): session for %r is %s",
                         label, self._active_label, self._state.value)
            return False

        self._active_label = label
        self._captured = 0
        self._phase_start = self._clock()
        self._remaining_ticks = self._countdown_start
        self._set_state(TrainingState.COUNTDOWN)
        logger.info("Training session armed for '%s' (%d tick countdown)",
                    label, self._countdown_start)

        # A zero-length countdown goes straight to capturing
        self.poll()
        return True

    def cancel_session(self) -> bool:
        """Abort a running session and return to IDLE.

        Returns:
            True if a session was running
        """
        self.poll()
        if self._state is TrainingState.IDLE:
            return False
        logger.info("Training session for '%s' cancelled during %s",
                    self._active_label, self._state.value)
        self._finish()
        return True

    def submit(self, vector) -> bool:
        """Offer one feature vector; stored under the armed label only
        while CAPTURING.

        Returns:
            True if the vector was forwarded to the sink
        """
        self.poll()
        if self._state is not TrainingState.CAPTURING:
            return False
        if self._sink is not None:
            self._sink(vector, self._active_label)
        self._captured += 1
        return True

    # ------------------------------------------------------------------
    # Clock
    # ------------------------------------------------------------------

    def poll(self) -> TrainingState:
        """Apply every transition that is due at the current clock time."""
        now = self._clock()

        if self._state is TrainingState.COUNTDOWN:
            countdown_end = self._phase_start + self._countdown_start * self._tick_seconds
            if now >= countdown_end:
                self._remaining_ticks = 0
                self._phase_start = countdown_end
                self._set_state(TrainingState.CAPTURING)
                logger.info("Capturing '%s' for %.1fs", self._active_label, self._capture_seconds)
            else:
                elapsed_ticks = int(math.floor((now - self._phase_start) / self._tick_seconds))
                remaining = self._countdown_start - elapsed_ticks
                if remaining != self._remaining_ticks:
                    self._remaining_ticks = remaining
                    self._emit(Events.COUNTDOWN_TICK, label=self._active_label,
                               remaining=remaining)

        if self._state is TrainingState.CAPTURING:
            if now >= self._phase_start + self._capture_seconds:
                logger.info("Training session for '%s' complete: %d examples",
                            self._active_label, self._captured)
                self._sessions_completed += 1
                self._finish()

        return self._state

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def state(self) -> TrainingState:
        return self.poll()

    @property
    def active_label(self) -> Optional[str]:
        self.poll()
        return self._active_label

    @property
    def remaining_ticks(self) -> int:
        self.poll()
        return self._remaining_ticks

    @property
    def is_idle(self) -> bool:
        return self.poll() is TrainingState.IDLE

    @property
    def is_capturing(self) -> bool:
        return self.poll() is TrainingState.CAPTURING

    @property
    def captured(self) -> int:
        """Examples stored by the current (or last) session."""
        return self._captured

    @property
    def sessions_completed(self) -> int:
        return self._sessions_completed

    def snapshot(self) -> TrainingSnapshot:
        self.poll()
        return TrainingSnapshot(self._state, self._active_label, self._remaining_ticks)

    def capture_seconds_left(self) -> float:
        """Remaining capture time, 0 outside CAPTURING."""
        if self.poll() is not TrainingState.CAPTURING:
            return 0.0
        return max(0.0, self._phase_start + self._capture_seconds - self._clock())

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _finish(self):
        label = self._active_label
        self._active_label = None
        self._remaining_ticks = 0
        self._set_state(TrainingState.IDLE, label)

    def _set_state(self, state: TrainingState, label: Optional[str] = None):
        previous = self._state
        self._state = state
        self._emit(Events.TRAINING_STATE_CHANGED, previous=previous, state=state,
                   label=label or self._active_label, remaining=self._remaining_ticks)

    def _emit(self, event_name: str, **kwargs):
        if self._bus is not None:
            self._bus.emit(event_name, **kwargs)
