"""Shared utilities for VermiLinks services."""

from .models import Reading, ReadingSource, UNKNOWN_DEVICE
from .config import ConfigError, load_yaml_config, resolve_config_path
from .mqtt import MQTTConfig
from .logging import setup_logging

__all__ = [
    "Reading",
    "ReadingSource",
    "UNKNOWN_DEVICE",
    "ConfigError",
    "load_yaml_config",
    "resolve_config_path",
    "MQTTConfig",
    "setup_logging",
]
