"""Core data models for sensor readings."""

from dataclasses import dataclass, fields
from enum import Enum
from typing import Optional

UNKNOWN_DEVICE = "unknown-device"


class ReadingSource(Enum):
    """Payload shape a reading was normalized from."""
    SNAPSHOT = "snapshot"    # REST /sensors/latest envelope
    TELEMETRY = "telemetry"  # telemetry:update push event
    LEGACY = "legacy"        # sensor:update push event with nested sensors


@dataclass(frozen=True)
class Reading:
    """Represents a single sensor sample from one device.

    Numeric fields are None when the device did not report them. A reading
    with no numeric fields at all is still valid (device reported, no sensors
    attached).
    """
    device_id: str = UNKNOWN_DEVICE
    timestamp: Optional[str] = None

    temperature: Optional[float] = None
    humidity: Optional[float] = None
    moisture: Optional[float] = None
    ph: Optional[float] = None
    ec: Optional[float] = None
    nitrogen: Optional[float] = None
    phosphorus: Optional[float] = None
    potassium: Optional[float] = None
    water_level: Optional[float] = None
    float_state: Optional[float] = None
    battery_level: Optional[float] = None
    signal_strength: Optional[float] = None

    # Trust signals carried over from the source payload
    device_online: Optional[bool] = None
    device_status: Optional[str] = None
    is_stale: Optional[bool] = None

    source: ReadingSource = ReadingSource.TELEMETRY

    def has_measurements(self) -> bool:
        """Check if any numeric sensor field is set."""
        return any(getattr(self, name) is not None for name in NUMERIC_FIELDS)

    def as_dict(self) -> dict:
        """Convert to a plain dictionary, skipping absent fields."""
        data = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            data[f.name] = value.value if isinstance(value, Enum) else value
        return data


NUMERIC_FIELDS = (
    "temperature",
    "humidity",
    "moisture",
    "ph",
    "ec",
    "nitrogen",
    "phosphorus",
    "potassium",
    "water_level",
    "float_state",
    "battery_level",
    "signal_strength",
)
