"""Utility modules."""
from .config import Config
from .logger import setup_logging, SignEventLogger, log_timing
from .performance_monitor import PerformanceMonitor

__all__ = ["Config", "setup_logging", "SignEventLogger", "log_timing", "PerformanceMonitor"]
