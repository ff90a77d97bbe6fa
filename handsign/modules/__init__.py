"""Supporting modules: training, persistence and utilities."""
