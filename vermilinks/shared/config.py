"""Configuration file lookup and loading."""

import os
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import yaml

CONFIG_PATH_ENV = "VERMILINKS_CONFIG"
ENVIRONMENT_ENV = "VERMILINKS_ENV"
DEFAULT_ENVIRONMENT = "vermilinks"

# repo_root/config/, with the package installed from repo_root
DEFAULT_CONFIG_DIR = Path(__file__).resolve().parents[2] / "config"


class ConfigError(ValueError):
    """Raised when a configuration file holds invalid values."""


def get_environment() -> str:
    """Deployment name that selects config/config-<env>.yaml."""
    return os.getenv(ENVIRONMENT_ENV, DEFAULT_ENVIRONMENT)


def resolve_config_path(config_path: Optional[Union[str, Path]] = None) -> Tuple[Path, bool]:
    """Pick the configuration file to read.

    An explicit path wins, then VERMILINKS_CONFIG, then config-<env>.yaml in
    the repository's config directory.

    Returns:
        The path, and whether it was asked for explicitly. A missing explicit
        file is an error; a missing default file just means defaults.
    """
    if config_path is None:
        config_path = os.environ.get(CONFIG_PATH_ENV)
    if config_path:
        return Path(config_path), True
    return DEFAULT_CONFIG_DIR / f"config-{get_environment()}.yaml", False


def load_yaml_config(config_path: Union[str, Path]) -> Dict[str, Any]:
    """Read a YAML mapping from disk.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        ConfigError: If the file is not valid YAML or not a mapping.
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, "r") as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Config file {path} is not valid YAML: {e}")

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return data


def get_log_level(config: Dict[str, Any]) -> str:
    """Extract the log level from a config mapping.

    Args:
        config: Configuration dictionary.

    Returns:
        Upper-cased level name, INFO when unset.
    """
    return str(config.get("log_level", "INFO")).upper()
