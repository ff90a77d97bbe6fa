"""
Event bus between the engine and its UI collaborators.

Captions, avatar triggers and the training overlay listen for engine
events rather than being called from the frame loop, so a slow or broken
consumer never changes what the engine does with a frame.

Usage:
    bus = EventBus()
    bus.subscribe(Events.SIGN_DETECTED, show_caption)
    bus.emit(Events.SIGN_DETECTED, label="Hello", confidence=0.92)
"""

import time
import logging
import threading
from collections import defaultdict, deque
from typing import Callable, List, NamedTuple, Tuple

logger = logging.getLogger(__name__)


class EventRecord(NamedTuple):
    """One emitted event, kept for diagnostics (payload keys only)."""
    event: str
    time: float
    data_keys: Tuple[str, ...]


def _name(callback: Callable) -> str:
    return getattr(callback, "__qualname__", None) or repr(callback)


class EventBus:
    """Synchronous publish/subscribe with priority ordering.

    Each engine constructs and owns its bus; there is no shared global
    instance. Listeners run on the emitting thread, highest priority
    first, and in subscription order within one priority.
    """

    def __init__(self, max_history: int = 100):
        self._listeners = defaultdict(list)  # event -> [(priority, callback)]
        self._lock = threading.Lock()
        self._history = deque(maxlen=max_history)
        self._enabled = True

    def subscribe(self, event_name: str, callback: Callable, priority: int = 0) -> Callable:
        """Register ``callback`` for ``event_name``.

        The callback receives the emitted payload as keyword arguments.
        Returns the callback so the method also works as a decorator.
        """
        with self._lock:
            listeners = self._listeners[event_name]
            listeners.append((priority, callback))
            listeners.sort(key=lambda entry: -entry[0])
        logger.debug("'%s' <- %s (priority %d)", event_name, _name(callback), priority)
        return callback

    def unsubscribe(self, event_name: str, callback: Callable) -> bool:
        """Remove ``callback`` from ``event_name``. Returns whether it was registered."""
        with self._lock:
            before = self._listeners.get(event_name, [])
            after = [(p, cb) for p, cb in before if cb is not callback]
            if after:
                self._listeners[event_name] = after
            else:
                self._listeners.pop(event_name, None)
        return len(after) != len(before)

    def emit(self, event_name: str, **payload) -> int:
        """Deliver ``payload`` to every listener of ``event_name``.

        A listener that raises is logged and skipped; the remaining
        listeners still run and the exception does not reach the emitter.

        Returns:
            Number of listeners that completed without raising
        """
        if not self._enabled:
            return 0

        with self._lock:
            listeners: List[Tuple[int, Callable]] = list(self._listeners.get(event_name, ()))

        self._history.append(EventRecord(event_name, time.time(), tuple(payload)))

        delivered = 0
        for _, callback in listeners:
            try:
                callback(**payload)
            except Exception:
                logger.exception("Listener %s failed on '%s'", _name(callback), event_name)
                continue
            delivered += 1
        return delivered

    def clear(self, event_name: str = None):
        """Drop the listeners of one event, or of every event."""
        with self._lock:
            if event_name is None:
                self._listeners.clear()
            else:
                self._listeners.pop(event_name, None)

    def disable(self):
        """Stop delivering events; emit() becomes a no-op."""
        self._enabled = False

    @property
    def registered_events(self) -> list:
        with self._lock:
            return [name for name, listeners in self._listeners.items() if listeners]

    @property
    def listener_count(self) -> int:
        with self._lock:
            return sum(len(listeners) for listeners in self._listeners.values())

    def get_history(self, last_n: int = 10) -> List[EventRecord]:
        """Most recent emitted events, oldest first."""
        return list(self._history)[-last_n:]


class Events:
    """Names of the events the engine publishes."""

    # Frame loop
    FRAME_SKIPPED = "frame_skipped"        # frame_id, reason
    SIGN_DETECTED = "sign_detected"        # label, confidence

    # Training
    TRAINING_STATE_CHANGED = "training_state_changed"  # previous, state, label, remaining
    COUNTDOWN_TICK = "countdown_tick"      # label, remaining
    EXAMPLE_ADDED = "example_added"        # label, count

    # Model
    MODEL_SAVED = "model_saved"            # examples
    MODEL_LOADED = "model_loaded"          # examples
    MODEL_CLEARED = "model_cleared"

    # Lifecycle
    MODE_CHANGED = "mode_changed"          # previous, mode
    ENGINE_DISPOSED = "engine_disposed"    # stats
