"""
Logging setup, a sign/training event log and a timing decorator.
"""

import os
import logging
import logging.handlers
import time
from collections import deque
from functools import wraps

CONSOLE_FORMAT = "%(asctime)s  %(levelname)-5s  %(message)s"
FILE_FORMAT = "%(asctime)s [%(levelname)-7s] %(name)-30s | %(message)s"
DATE_FORMAT = "%H:%M:%S"


def _level(level) -> int:
    if isinstance(level, int):
        return level
    return getattr(logging, str(level).upper(), logging.INFO)


def setup_logging(level="INFO", log_file=None, max_size_mb=10, backup_count=3):
    """Route all loggers to the console and, optionally, a rotating file.

    Replaces any handlers already on the root logger. The file handler
    always records DEBUG so a log file keeps per-frame detail even when
    the console is quieter.
    """
    level = _level(level)
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt=DATE_FORMAT))
    root.addHandler(console)

    if log_file:
        directory = os.path.dirname(log_file)
        if directory:
            os.makedirs(directory, exist_ok=True)
        rotating = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=int(max_size_mb * 1024 * 1024),
            backupCount=backup_count,
            encoding="utf-8",
        )
        rotating.setLevel(logging.DEBUG)
        rotating.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
        root.addHandler(rotating)

    return root


class SignEventLogger:
    """Keeps and logs recent detections and captured training examples.

    Its ``on_*`` methods have EventBus listener signatures::

        bus.subscribe(Events.SIGN_DETECTED, sign_log.on_sign_detected)
    """

    def __init__(self, max_history: int = 500):
        self.logger = logging.getLogger("sign_events")
        self._history = deque(maxlen=max_history)

    def on_sign_detected(self, label, confidence, **_):
        self._history.append({
            "timestamp": time.time(),
            "kind": "detection",
            "label": label,
            "confidence": confidence,
        })
        self.logger.info("Sign: %-12s | Confidence: %.2f", label, confidence)

    def on_example_added(self, label, count, **_):
        self._history.append({
            "timestamp": time.time(),
            "kind": "example",
            "label": label,
            "count": count,
        })
        self.logger.debug("Example: %-12s | Captured: %d", label, count)

    def get_history(self, last_n=None):
        """Recorded entries, oldest first; only the last ``last_n`` if given."""
        history = list(self._history)
        return history[-last_n:] if last_n else history

    @property
    def total_detections(self):
        """Detections still held in the bounded history."""
        return sum(1 for entry in self._history if entry["kind"] == "detection")


def log_timing(func):
    """Log how long each call of ``func`` took, at DEBUG on its module's logger."""
    func_logger = logging.getLogger(func.__module__)

    @wraps(func)
    def wrapper(*args, **kwargs):
        start = time.perf_counter()
        try:
            return func(*args, **kwargs)
        finally:
            func_logger.debug("%s took %.2fms", func.__qualname__,
                              (time.perf_counter() - start) * 1000)

    return wrapper
