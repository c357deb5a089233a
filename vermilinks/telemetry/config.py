"""Configuration for the telemetry sync service."""

import logging
import os
from dataclasses import dataclass, field, replace
from typing import Optional

from dotenv import load_dotenv

from vermilinks.shared.config import ConfigError, get_log_level, load_yaml_config, resolve_config_path
from vermilinks.shared.mqtt import MQTTConfig

logger = logging.getLogger(__name__)

MIN_INTERVAL_MS = 1500
DEFAULT_INTERVAL_MS = 5000
DEFAULT_MAX_INTERVAL_MS = 60000
MAX_DEFAULT_CACHE_TTL_MS = 4000

CHANNEL_KINDS = ("socketio", "mqtt", "none")


@dataclass(frozen=True)
class PollingPolicy:
    """Polling settings for one subscription, all intervals in milliseconds.

    Out-of-range values are clamped rather than rejected: the interval has a
    floor of 1500 ms and the ceiling never drops below the interval.
    """
    interval_ms: int = DEFAULT_INTERVAL_MS
    max_interval_ms: int = DEFAULT_MAX_INTERVAL_MS
    cache_ttl_ms: Optional[int] = None  # None derives it from interval_ms
    device_id: Optional[str] = None
    immediate: bool = True

    def __post_init__(self):
        interval = max(MIN_INTERVAL_MS, int(self.interval_ms))
        max_interval = max(interval, int(self.max_interval_ms))
        if self.cache_ttl_ms is None:
            cache_ttl = min(int(interval * 0.6), MAX_DEFAULT_CACHE_TTL_MS)
        else:
            cache_ttl = max(0, int(self.cache_ttl_ms))

        object.__setattr__(self, "interval_ms", interval)
        object.__setattr__(self, "max_interval_ms", max_interval)
        object.__setattr__(self, "cache_ttl_ms", cache_ttl)
        object.__setattr__(self, "device_id", self.device_id or None)

    @classmethod
    def from_dict(cls, data: dict) -> "PollingPolicy":
        """Create policy from dictionary.

        Raises:
            ConfigError: If an interval is not a number.
        """
        try:
            return cls(
                interval_ms=data.get("interval_ms", DEFAULT_INTERVAL_MS),
                max_interval_ms=data.get("max_interval_ms", DEFAULT_MAX_INTERVAL_MS),
                cache_ttl_ms=data.get("cache_ttl_ms"),
                device_id=data.get("device_id"),
                immediate=data.get("immediate", True),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid polling settings: {e}")


@dataclass
class APIConfig:
    """Snapshot endpoint configuration."""
    base_url: str = "http://localhost:5000/api"
    timeout: float = 10.0  # seconds
    history_limit: int = 336
    seed_history: bool = True

    @classmethod
    def from_dict(cls, data: dict) -> "APIConfig":
        """Create config from dictionary."""
        return cls(
            base_url=data.get("base_url", "http://localhost:5000/api"),
            timeout=data.get("timeout", 10.0),
            history_limit=data.get("history_limit", 336),
            seed_history=data.get("seed_history", True),
        )


@dataclass
class ChannelConfig:
    """Push channel configuration."""
    kind: str = "socketio"
    url: str = "http://localhost:5000"
    reconnect_delay: float = 5.0  # seconds
    connect_timeout: float = 20.0  # seconds
    mqtt: MQTTConfig = field(default_factory=MQTTConfig)

    @classmethod
    def from_dict(cls, data: dict) -> "ChannelConfig":
        """Create config from dictionary."""
        kind = str(data.get("kind", "socketio")).lower()
        if kind not in CHANNEL_KINDS:
            raise ConfigError(
                f"Unknown channel kind '{kind}', expected one of {', '.join(CHANNEL_KINDS)}"
            )
        return cls(
            kind=kind,
            url=data.get("url", "http://localhost:5000"),
            reconnect_delay=data.get("reconnect_delay", 5.0),
            connect_timeout=data.get("connect_timeout", 20.0),
            mqtt=MQTTConfig.from_dict(data.get("mqtt", {})),
        )


@dataclass
class Config:
    """Main configuration container."""
    api: APIConfig = field(default_factory=APIConfig)
    channel: ChannelConfig = field(default_factory=ChannelConfig)
    polling: PollingPolicy = field(default_factory=PollingPolicy)
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, data: dict) -> "Config":
        """Create config from dictionary."""
        return cls(
            api=APIConfig.from_dict(data.get("api", {})),
            channel=ChannelConfig.from_dict(data.get("channel", {})),
            polling=PollingPolicy.from_dict(data.get("polling", {})),
            log_level=get_log_level(data),
        )


def load_config(config_path: Optional[str] = None) -> Config:
    """Load configuration from YAML file and environment variables.

    Args:
        config_path: Path to YAML config file. If not provided, looks for
                    VERMILINKS_CONFIG, then config/config-{env}.yaml. When no
                    file exists the defaults are used.

    Returns:
        Config with environment overrides applied.

    Raises:
        FileNotFoundError: If an explicitly requested file is missing.
        ConfigError: If the file holds invalid values.
    """
    load_dotenv()

    path, explicit = resolve_config_path(config_path)

    if path.exists():
        config = Config.from_dict(load_yaml_config(path))
    elif explicit:
        raise FileNotFoundError(f"Configuration file not found: {path}")
    else:
        logger.info(f"No config file at {path}, using defaults")
        config = Config()

    if api_url := os.environ.get("VERMILINKS_API_URL"):
        config.api.base_url = api_url
    if channel_url := os.environ.get("VERMILINKS_CHANNEL_URL"):
        config.channel.url = channel_url
    if device_id := os.environ.get("VERMILINKS_DEVICE_ID"):
        config.polling = replace(config.polling, device_id=device_id)
    if mqtt_broker := os.environ.get("MQTT_BROKER"):
        config.channel.mqtt.broker = mqtt_broker
    if log_level := os.environ.get("LOG_LEVEL"):
        config.log_level = log_level.upper()

    return config
