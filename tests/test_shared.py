"""Tests for shared models and helpers."""

import logging

from vermilinks.shared.logging import setup_logging
from vermilinks.shared.models import Reading, ReadingSource
from vermilinks.shared.mqtt import MQTTConfig, parse_event_payload


def test_reading_as_dict_skips_absent_fields():
    reading = Reading(device_id="A", temperature=0.0, source=ReadingSource.SNAPSHOT)

    assert reading.as_dict() == {"device_id": "A", "temperature": 0.0, "source": "snapshot"}
    assert reading.has_measurements()


def test_parse_event_payload():
    assert parse_event_payload(b'{"online": true}') == {"online": True}
    assert parse_event_payload("  ") == {}
    assert parse_event_payload(b"[1, 2]") is None
    assert parse_event_payload(b"{broken") is None
    assert parse_event_payload(b"\xff\xfe") is None


def test_mqtt_config_from_dict():
    config = MQTTConfig.from_dict({"broker": "mqtt.local", "username": "dash"})

    assert config.broker == "mqtt.local"
    assert config.port == 1883
    assert config.topic_prefix == "vermilinks"
    assert config.username == "dash"
    assert config.password is None


def test_setup_logging_quiets_transport_loggers():
    setup_logging("debug", quiet_loggers=["noisy"])

    assert logging.getLogger("socketio").level == logging.WARNING
    assert logging.getLogger("noisy").level == logging.WARNING
