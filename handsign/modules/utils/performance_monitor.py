"""
Per-frame latency tracking against the inter-frame budget.
Rolling windows per stage; over-budget frames are counted and logged.
"""

import time
import logging
from collections import deque
from contextlib import contextmanager

logger = logging.getLogger(__name__)

STAGES = ("extract", "train", "predict", "total")


class PerformanceMonitor:
    """Tracks FPS, per-stage latency and frame-budget overruns."""

    def __init__(self, window_size=100, frame_budget_ms=100.0):
        self._window_size = window_size
        self._frame_budget_ms = float(frame_budget_ms)

        self._frame_times = deque(maxlen=window_size)
        self._last_frame_time = None

        self._stage_times = {name: deque(maxlen=window_size) for name in STAGES}

        self._frame_count = 0
        self._over_budget = 0
        self._skipped = 0
        self._start_time = time.time()

    @contextmanager
    def measure(self, stage_name: str):
        """Context manager to measure a stage's duration."""
        start = time.perf_counter()
        try:
            yield
        finally:
            elapsed_ms = (time.perf_counter() - start) * 1000
            if stage_name not in self._stage_times:
                self._stage_times[stage_name] = deque(maxlen=self._window_size)
            self._stage_times[stage_name].append(elapsed_ms)

    def frame_complete(self, latency_ms: float):
        """Call once per processed frame with its total latency."""
        self._stage_times["total"].append(latency_ms)
        now = time.perf_counter()
        if self._last_frame_time is not None:
            self._frame_times.append(now - self._last_frame_time)
        self._last_frame_time = now
        self._frame_count += 1

        if latency_ms > self._frame_budget_ms:
            self._over_budget += 1
            logger.warning("Frame took %.1fms (budget %.0fms)", latency_ms, self._frame_budget_ms)

    def record_skip(self):
        """Record a frame skipped as malformed or empty."""
        self._skipped += 1

    @property
    def fps(self) -> float:
        """Current frames per second (rolling average)."""
        if len(self._frame_times) < 2:
            return 0.0
        avg_interval = sum(self._frame_times) / len(self._frame_times)
        return 1.0 / avg_interval if avg_interval > 0 else 0.0

    @property
    def frame_count(self) -> int:
        return self._frame_count

    @property
    def over_budget_count(self) -> int:
        return self._over_budget

    @property
    def skipped_count(self) -> int:
        return self._skipped

    def get_stage_latency(self, stage_name: str) -> float:
        """Average latency for a stage in ms."""
        times = self._stage_times.get(stage_name)
        if not times:
            return 0.0
        return sum(times) / len(times)

    def get_report(self) -> dict:
        """Summary of frame rate and stage latencies."""
        return {
            "fps": round(self.fps, 1),
            "total_frames": self._frame_count,
            "skipped_frames": self._skipped,
            "over_budget_frames": self._over_budget,
            "uptime_seconds": round(time.time() - self._start_time, 1),
            "latencies_ms": {k: round(self.get_stage_latency(k), 2) for k in self._stage_times},
        }

    def log_summary(self):
        """One INFO line with frame counts and mean stage latencies."""
        report = self.get_report()
        stages = ", ".join("%s %.2fms" % (name, ms) for name, ms in report["latencies_ms"].items() if ms)
        logger.info("%d frames (%d skipped, %d over budget), %.1f fps; %s",
                    report["total_frames"], report["skipped_frames"],
                    report["over_budget_frames"], report["fps"], stages or "no timings")

    def reset(self):
        """Reset all metrics."""
        self._frame_times.clear()
        self._last_frame_time = None
        for times in self._stage_times.values():
            times.clear()
        self._frame_count = 0
        self._over_budget = 0
        self._skipped = 0
        self._start_time = time.time()
