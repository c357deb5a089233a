"""MQTT configuration and utilities."""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

logger = logging.getLogger(__name__)


@dataclass
class MQTTConfig:
    """MQTT broker configuration."""
    broker: str = "localhost"
    port: int = 1883
    client_id: str = "vermilinks-dashboard"
    keepalive: int = 60
    qos: int = 1
    topic_prefix: str = "vermilinks"
    username: Optional[str] = None
    password: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "MQTTConfig":
        """Create config from dictionary."""
        return cls(
            broker=data.get("broker", "localhost"),
            port=data.get("port", 1883),
            client_id=data.get("client_id", "vermilinks-dashboard"),
            keepalive=data.get("keepalive", 60),
            qos=data.get("qos", 1),
            topic_prefix=data.get("topic_prefix", "vermilinks"),
            username=data.get("username"),
            password=data.get("password"),
        )


def parse_event_payload(payload: Union[bytes, str]) -> Optional[Dict[str, Any]]:
    """Parse a JSON event payload from an MQTT message.

    Args:
        payload: Raw message payload.

    Returns:
        Decoded dictionary, an empty dictionary for an empty payload,
        or None if the payload is not a JSON object.
    """
    if isinstance(payload, bytes):
        try:
            payload = payload.decode("utf-8")
        except UnicodeDecodeError:
            logger.warning("Could not decode MQTT payload as UTF-8")
            return None

    if not payload.strip():
        return {}

    try:
        data = json.loads(payload)
    except (json.JSONDecodeError, ValueError):
        logger.warning(f"Could not parse MQTT payload: {payload}")
        return None

    if not isinstance(data, dict):
        logger.warning(f"Ignoring non-object MQTT payload: {payload}")
        return None
    return data
