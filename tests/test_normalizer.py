"""Tests for payload normalization."""

from datetime import datetime, timezone

import pytest

from vermilinks.shared.models import Reading, ReadingSource, UNKNOWN_DEVICE
from vermilinks.telemetry.normalizer import (
    detect_source,
    normalize,
    normalize_timestamp,
    to_float,
)


def test_snapshot_envelope(snapshot_payload):
    reading = normalize(snapshot_payload, default_device_id="esp32-a")

    assert reading.source is ReadingSource.SNAPSHOT
    assert reading.device_id == "esp32-a"
    assert reading.timestamp == "2024-01-01T00:00:00.000Z"
    assert reading.temperature == 24.1
    assert reading.moisture == 48.5
    assert reading.float_state == 1.0
    assert reading.ph is None
    assert reading.battery_level is None


def test_telemetry_event_fields():
    reading = normalize({
        "deviceId": "A",
        "timestamp": "2024-03-05T10:15:00+02:00",
        "temperature": "21.5",
        "waterLevel": 12,
        "batteryLevel": 88,
        "signalStrength": -67,
        "deviceOnline": True,
    })

    assert reading.source is ReadingSource.TELEMETRY
    assert reading.device_id == "A"
    assert reading.timestamp == "2024-03-05T08:15:00.000Z"
    assert reading.temperature == 21.5
    assert reading.water_level == 12.0
    assert reading.battery_level == 88.0
    assert reading.signal_strength == -67.0
    assert reading.device_online is True


def test_legacy_event_reads_nested_sensors():
    raw = {
        "device": "vermilinks-esp32-a",
        "timestamp": 1704067200,
        "sensors": {"temperature": 19.0, "float_distance": 7, "battery": 90, "rssi": -60},
    }

    assert detect_source(raw) is ReadingSource.LEGACY
    reading = normalize(raw)
    assert reading.device_id == "vermilinks-esp32-a"
    assert reading.timestamp == "2024-01-01T00:00:00.000Z"
    assert reading.water_level == 7.0
    assert reading.battery_level == 90.0
    assert reading.signal_strength == -60.0


@pytest.mark.parametrize("raw", [None, [], 42, "garbage", {}, {"deviceId": ""}, {"deviceId": "   "}])
def test_device_id_never_empty(raw):
    reading = normalize(raw)
    assert reading.device_id == UNKNOWN_DEVICE


def test_device_id_alias_and_numeric_id():
    assert normalize({"device_id": 17}).device_id == "17"


def test_absent_numbers_stay_absent():
    reading = normalize({"deviceId": "A", "temperature": None, "humidity": "n/a", "ph": True})

    assert reading.temperature is None
    assert reading.humidity is None
    assert reading.ph is None
    assert not reading.has_measurements()


def test_zero_is_kept():
    assert normalize({"temperature": 0}).temperature == 0.0


@pytest.mark.parametrize("value", ["not a date", "2024-13-45T99:99:99Z", "yesterday"])
def test_unparseable_timestamp_passes_through(value):
    reading = normalize({"deviceId": "A", "timestamp": value})
    assert reading.timestamp == value


def test_missing_timestamp_is_not_invented():
    assert normalize({"deviceId": "A", "temperature": 20}).timestamp is None


def test_timestamp_formats():
    assert normalize_timestamp("2024-01-01T00:00:00Z") == "2024-01-01T00:00:00.000Z"
    assert normalize_timestamp("2024-01-01T00:00:00") == "2024-01-01T00:00:00.000Z"
    assert normalize_timestamp("2024-01-01T00:00:00.5Z") == "2024-01-01T00:00:00.500Z"
    assert normalize_timestamp("2024/01/01 00:00:00") == "2024-01-01T00:00:00.000Z"
    assert normalize_timestamp("Mon, 01 Jan 2024 00:00:00 GMT") == "2024-01-01T00:00:00.000Z"
    assert normalize_timestamp(1704067200000) == "2024-01-01T00:00:00.000Z"
    assert normalize_timestamp(datetime(2024, 1, 1, tzinfo=timezone.utc)) == "2024-01-01T00:00:00.000Z"
    assert normalize_timestamp(float("nan")) == "nan"


@pytest.mark.parametrize(
    "value, expected",
    [
        ("2024-01-01T00:00:00.5Z", "2024-01-01T00:00:00.500Z"),
        ("2024-01-01T00:00:00.123456789Z", "2024-01-01T00:00:00.123Z"),
        ("2024/01/01 00:00:00", "2024-01-01T00:00:00.000Z"),
        ("2024-01-01 00:00", "2024-01-01T00:00:00.000Z"),
        ("2024-01-01", "2024-01-01T00:00:00.000Z"),
        ("2024-01-01T02:00:00+0200", "2024-01-01T00:00:00.000Z"),
        ("2023-12-31T19:00:00-05:00", "2024-01-01T00:00:00.000Z"),
        ("2024-01-01t00:00:00z", "2024-01-01T00:00:00.000Z"),
    ],
)
def test_loose_timestamp_text(value, expected):
    assert normalize_timestamp(value) == expected


def test_to_float():
    assert to_float("3.5") == 3.5
    assert to_float(" 7 ") == 7.0
    assert to_float("inf") is None
    assert to_float(False) is None
    assert to_float([1]) is None


def test_trust_signals_only_take_expected_types():
    reading = normalize({"deviceId": "A", "online": "yes", "status": "Online", "stale": 0})

    assert reading.device_online is None
    assert reading.device_status == "Online"
    assert reading.is_stale is None


def test_reading_passes_through_unchanged():
    reading = Reading(device_id="A", temperature=1.0)
    assert normalize(reading) is reading
