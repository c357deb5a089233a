"""
Reading normalizer.

Turns the payload shapes the backend emits (REST snapshot envelope,
telemetry:update event, legacy sensor:update event) into one canonical
Reading. Pure and total: malformed input degrades to a minimal Reading.
"""

import math
import re
from datetime import datetime, timedelta, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Mapping, Optional, Sequence

from vermilinks.shared.models import Reading, ReadingSource, UNKNOWN_DEVICE

DEVICE_ID_KEYS = ("deviceId", "device_id", "device")
TIMESTAMP_KEYS = ("timestamp", "updated_at", "updatedAt", "receivedAt", "ts")
SNAPSHOT_MARKERS = ("soil_moisture", "updated_at", "float_state")

# Reading field -> accepted payload keys, in priority order
FIELD_ALIASES = {
    "temperature": ("temperature",),
    "humidity": ("humidity",),
    "moisture": ("moisture", "soil_moisture"),
    "ph": ("ph",),
    "ec": ("ec",),
    "nitrogen": ("nitrogen", "n"),
    "phosphorus": ("phosphorus", "p"),
    "potassium": ("potassium", "k"),
    "water_level": ("waterLevel", "water_level", "float_distance"),
    "float_state": ("floatSensor", "float_state"),
    "battery_level": ("batteryLevel", "battery_level", "battery"),
    "signal_strength": ("signalStrength", "signal_strength", "rssi"),
}

ONLINE_KEYS = ("deviceOnline", "device_online", "online")
STATUS_KEYS = ("deviceStatus", "device_status", "status")
STALE_KEYS = ("isStale", "is_stale", "stale")

# Epoch values above this are taken as milliseconds
_EPOCH_MS_THRESHOLD = 1e11

# ISO-8601 and the looser forms JavaScript Date accepts: slash dates, space
# separator, any fraction length, offsets with or without a colon
_DATE_TEXT = re.compile(
    r"^(\d{4})[-/](\d{1,2})[-/](\d{1,2})"
    r"(?:[T ](\d{1,2}):(\d{2})(?::(\d{2})(?:[.,](\d+))?)?)?"
    r"\s*(Z|[+-]\d{2}:?\d{2})?$",
    re.IGNORECASE,
)


def detect_source(raw: Any) -> ReadingSource:
    """Resolve which payload shape a raw value is."""
    if isinstance(raw, Mapping):
        if "device" in raw and isinstance(raw.get("sensors"), Mapping):
            return ReadingSource.LEGACY
        if any(key in raw for key in SNAPSHOT_MARKERS):
            return ReadingSource.SNAPSHOT
    return ReadingSource.TELEMETRY


def normalize(
    raw: Any,
    kind: Optional[ReadingSource] = None,
    default_device_id: Optional[str] = None,
) -> Reading:
    """Convert a raw payload into a Reading.

    Args:
        raw: Decoded payload of any shape. Non-mappings yield a minimal reading.
        kind: Payload shape, detected from the payload when omitted.
        default_device_id: Device id to use when the payload carries none.

    Returns:
        A Reading whose device_id is never empty.
    """
    if isinstance(raw, Reading):
        return raw

    if kind is None:
        kind = detect_source(raw)

    if not isinstance(raw, Mapping):
        return Reading(
            device_id=_resolve_device_id({}, default_device_id),
            source=kind,
        )

    # Legacy events nest measurements under "sensors"
    measurements: Mapping[str, Any] = raw
    if kind is ReadingSource.LEGACY and isinstance(raw.get("sensors"), Mapping):
        measurements = raw["sensors"]

    values = {
        name: to_float(_first(measurements, keys))
        for name, keys in FIELD_ALIASES.items()
    }

    return Reading(
        device_id=_resolve_device_id(raw, default_device_id),
        timestamp=normalize_timestamp(_first(raw, TIMESTAMP_KEYS)),
        device_online=_first_of_type(raw, ONLINE_KEYS, bool),
        device_status=_first_of_type(raw, STATUS_KEYS, str),
        is_stale=_first_of_type(raw, STALE_KEYS, bool),
        source=kind,
        **values,
    )


def normalize_timestamp(value: Any) -> Optional[str]:
    """Rewrite a timestamp to ISO-8601 UTC, or pass it through unchanged.

    Unparseable values are returned verbatim as strings so they keep their
    "unknown age"; the current time is never substituted.
    """
    if value is None:
        return None
    parsed = parse_datetime(value)
    if parsed is None:
        return value if isinstance(value, str) else str(value)
    return to_iso(parsed)


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse a date representation into an aware UTC datetime.

    Accepts datetime objects, ISO-8601 and RFC-2822 strings, and epoch
    numbers (seconds, or milliseconds for large values). Naive values are
    taken as UTC.
    """
    try:
        if isinstance(value, datetime):
            parsed = value
        elif isinstance(value, bool):
            return None
        elif isinstance(value, (int, float)):
            if not math.isfinite(value):
                return None
            seconds = value / 1000.0 if abs(value) > _EPOCH_MS_THRESHOLD else float(value)
            parsed = datetime.fromtimestamp(seconds, tz=timezone.utc)
        elif isinstance(value, str):
            parsed = _parse_datetime_text(value.strip())
            if parsed is None:
                return None
        else:
            return None

        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def timestamp_millis(timestamp: Optional[str]) -> Optional[float]:
    """Epoch milliseconds for a normalized timestamp, None if unknown."""
    if timestamp is None:
        return None
    parsed = parse_datetime(timestamp)
    if parsed is None:
        return None
    return parsed.timestamp() * 1000.0


def to_iso(value: datetime) -> str:
    """Format an aware datetime as ISO-8601 UTC with millisecond precision."""
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def to_float(value: Any) -> Optional[float]:
    """Coerce a payload value to a finite float, None if not numeric."""
    if value is None or isinstance(value, bool):
        return None
    try:
        if isinstance(value, (int, float)):
            number = float(value)
        elif isinstance(value, str):
            number = float(value.strip())
        else:
            return None
    except (ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None


def _parse_datetime_text(text: str) -> Optional[datetime]:
    if not text:
        return None
    match = _DATE_TEXT.match(text)
    if match:
        return _datetime_from_match(match)
    try:
        return parsedate_to_datetime(text)
    except (TypeError, ValueError, IndexError):
        return None


def _resolve_device_id(raw: Mapping[str, Any], default_device_id: Optional[str]) -> str:
    for key in DEVICE_ID_KEYS:
        value = raw.get(key)
        if value is None or (isinstance(value, (Mapping, Sequence)) and not isinstance(value, str)):
            continue
        text = str(value).strip()
        if text:
            return text
    if default_device_id:
        return default_device_id
    return UNKNOWN_DEVICE


def _first(raw: Mapping[str, Any], keys) -> Any:
    for key in keys:
        value = raw.get(key)
        if value is not None:
            return value
    return None


def _first_of_type(raw: Mapping[str, Any], keys, expected: type) -> Any:
    for key in keys:
        value = raw.get(key)
        if isinstance(value, expected):
            return value
    return None


def _datetime_from_match(match: re.Match) -> datetime:
    year, month, day, hour, minute, second, fraction, offset = match.groups()
    # Fractions beyond microseconds are truncated
    microsecond = int(fraction[:6].ljust(6, "0")) if fraction else 0

    tz = None
    if offset and offset.upper() != "Z":
        sign = -1 if offset[0] == "-" else 1
        digits = offset[1:].replace(":", "")
        tz = timezone(sign * timedelta(hours=int(digits[:2]), minutes=int(digits[2:])))
    elif offset:
        tz = timezone.utc

    # Out-of-range fields raise ValueError, handled by parse_datetime
    return datetime(
        int(year), int(month), int(day),
        int(hour or 0), int(minute or 0), int(second or 0),
        microsecond, tzinfo=tz,
    )
