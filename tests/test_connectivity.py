"""Tests for connectivity evaluation."""

import pytest

from vermilinks.shared.models import Reading
from vermilinks.telemetry.connectivity import evaluate_signals, is_live


@pytest.mark.parametrize(
    "online, status, stale, expected",
    [
        (True, "offline", True, True),
        (False, "online", False, False),
        (None, "ONLINE", True, True),
        (None, "offline", False, False),
        (None, "", False, False),
        (None, None, False, True),
        (None, None, True, False),
        (None, None, None, False),
    ],
)
def test_first_matching_rule_wins(online, status, stale, expected):
    reading = Reading(device_id="A", device_online=online, device_status=status, is_stale=stale)
    assert is_live(reading) is expected


def test_non_boolean_signals_are_ignored():
    assert evaluate_signals(online="true", status=None, stale="false") is False
    assert evaluate_signals(online=1, status="online") is True


def test_no_signal_defaults_to_not_live():
    assert is_live(Reading(device_id="A", temperature=24.1)) is False
