"""
Engine configuration: a YAML file deep-merged over built-in defaults.

    - Schema validation for critical config fields
    - Invalid values are reported and replaced by their defaults
    - Explicit instances (no process-wide singleton)
"""

import os
import copy
import yaml
import logging

from handsign.core.types import DEFAULT_LABELS

logger = logging.getLogger(__name__)

_BASE_DIR = os.path.dirname(os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))
_CONFIG_DIR = os.path.join(_BASE_DIR, "config")
CONFIG_ENV_VAR = "HANDSIGN_CONFIG"

DEFAULTS = {
    "labels": list(DEFAULT_LABELS),
    "classifier": {
        "k": 3,
        "confidence_threshold": 0.8,
        "metric": "euclidean",
        "max_examples_per_label": None,
    },
    "training": {
        "countdown_start": 3,
        "tick_seconds": 1.0,
        "capture_seconds": 3.0,
    },
    "engine": {
        "initial_mode": "predicting",
        "skip_empty_frames": True,
    },
    "persistence": {
        "storage_dir": "~/.handsign",
        "storage_key": "isl_model",
        "autoload": True,
    },
    "logging": {
        "level": "INFO",
        "file": None,
        "max_size_mb": 10,
        "backup_count": 3,
    },
    "performance": {
        "metrics_window": 100,
        "frame_budget_ms": 100,
    },
}

# Schema: sections and their expected types
_CONFIG_SCHEMA = {
    "classifier": {
        "k": int,
        "confidence_threshold": float,
        "metric": str,
    },
    "training": {
        "countdown_start": int,
        "tick_seconds": float,
        "capture_seconds": float,
    },
    "engine": {
        "initial_mode": str,
        "skip_empty_frames": bool,
    },
    "persistence": {
        "storage_dir": str,
        "storage_key": str,
        "autoload": bool,
    },
    "logging": {
        "level": str,
    },
    "performance": {
        "metrics_window": int,
        "frame_budget_ms": float,
    },
}


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base dict."""
    merged = base.copy()
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _type_ok(value, expected_type) -> bool:
    if expected_type is float:
        # Allow int where float is expected
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if expected_type is int:
        return isinstance(value, int) and not isinstance(value, bool)
    return isinstance(value, expected_type)


class Config:
    """Configuration for one engine instance."""

    def __init__(self, data: dict = None):
        self._data = _deep_merge(copy.deepcopy(DEFAULTS), data or {})
        self._path = None
        self._validate()

    @classmethod
    def load(cls, config_path=None) -> "Config":
        """Load configuration from a YAML file.

        Resolution order: explicit path, $HANDSIGN_CONFIG, config/config.yaml.
        A missing file logs a warning and yields the defaults.
        """
        config_path = (config_path
                       or os.environ.get(CONFIG_ENV_VAR)
                       or os.path.join(_CONFIG_DIR, "config.yaml"))

        try:
            with open(config_path, "r") as f:
                data = yaml.safe_load(f) or {}
            logger.info("Loaded config from %s", config_path)
        except FileNotFoundError:
            logger.warning("Config file not found: %s, using defaults", config_path)
            data = {}

        if not isinstance(data, dict):
            logger.warning("Config root should be a mapping, got %s; using defaults",
                           type(data).__name__)
            data = {}

        config = cls(data)
        config._path = config_path
        return config

    def _validate(self):
        """Validate fields against schema; bad values fall back to defaults."""
        warnings = []

        labels = self._data.get("labels")
        if (not isinstance(labels, list) or not labels
                or not all(isinstance(lb, str) and lb for lb in labels)):
            warnings.append("labels: expected a non-empty list of strings, got %r" % (labels,))
            self._data["labels"] = list(DEFAULTS["labels"])
        elif len(set(labels)) != len(labels):
            warnings.append("labels: duplicates removed")
            self._data["labels"] = list(dict.fromkeys(labels))

        for section_name, fields in _CONFIG_SCHEMA.items():
            section = self._data.get(section_name)
            if not isinstance(section, dict):
                warnings.append(f"Section '{section_name}' should be a dict, got {type(section).__name__}")
                self._data[section_name] = copy.deepcopy(DEFAULTS[section_name])
                continue
            for field_name, expected_type in fields.items():
                if field_name not in section:
                    continue
                value = section[field_name]
                if not _type_ok(value, expected_type):
                    warnings.append(
                        f"{section_name}.{field_name}: expected {expected_type.__name__}, "
                        f"got {type(value).__name__} ({value!r})"
                    )
                    section[field_name] = DEFAULTS[section_name][field_name]

        if warnings:
            for w in warnings:
                logger.warning("Config validation: %s", w)
        else:
            logger.debug("Config validation passed")

    def get(self, key_path: str, default=None):
        """Get nested config value using dot notation: 'classifier.k'."""
        keys = key_path.split(".")
        value = self._data
        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default
        return value

    def get_section(self, section: str) -> dict:
        """Get an entire config section."""
        return self._data.get(section, {})

    @property
    def path(self):
        return self._path

    @property
    def labels(self) -> tuple:
        return tuple(self._data["labels"])

    @property
    def classifier(self) -> dict:
        return self._data.get("classifier", {})

    @property
    def training(self) -> dict:
        return self._data.get("training", {})

    @property
    def engine(self) -> dict:
        return self._data.get("engine", {})

    @property
    def persistence(self) -> dict:
        return self._data.get("persistence", {})

    @property
    def log_settings(self) -> dict:
        return self._data.get("logging", {})

    @property
    def performance(self) -> dict:
        return self._data.get("performance", {})

    @property
    def storage_dir(self) -> str:
        return os.path.expanduser(self.get("persistence.storage_dir", "~/.handsign"))

    @property
    def base_dir(self) -> str:
        return _BASE_DIR
