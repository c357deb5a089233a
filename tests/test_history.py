"""Tests for history merging."""

from datetime import datetime, timedelta, timezone

from vermilinks.shared.models import Reading
from vermilinks.telemetry.history import HISTORY_LIMIT, merge
from vermilinks.telemetry.normalizer import to_iso

BASE = datetime(2024, 1, 1, tzinfo=timezone.utc)


def reading_at(minutes: int, device_id: str = "A", **kwargs) -> Reading:
    return Reading(device_id=device_id, timestamp=to_iso(BASE + timedelta(minutes=minutes)), **kwargs)


def test_sorted_ascending_across_batches():
    existing = [reading_at(10), reading_at(0)]
    incoming = [reading_at(5), reading_at(15)]

    merged = merge(existing, incoming)

    assert [r.timestamp for r in merged] == sorted(r.timestamp for r in merged)
    assert len(merged) == 4


def test_truncates_to_most_recent():
    existing = [reading_at(i * 5) for i in range(300)]
    incoming = [reading_at(i * 5) for i in range(300, 400)]

    merged = merge(existing, incoming)

    assert len(merged) == HISTORY_LIMIT
    assert merged[0].timestamp == reading_at(64 * 5).timestamp
    assert merged[-1].timestamp == reading_at(399 * 5).timestamp


def test_unparseable_timestamps_sort_first():
    odd = Reading(device_id="A", timestamp="not a date")
    missing = Reading(device_id="A")

    merged = merge([reading_at(1)], [odd, missing])

    assert merged[:2] == (odd, missing)
    assert merged[-1].timestamp == reading_at(1).timestamp


def test_drops_empty_entries():
    merged = merge([None, reading_at(1)], [None])
    assert merged == (reading_at(1),)


def test_keeps_repeated_timestamps():
    first = reading_at(3, temperature=20.0)
    second = reading_at(3, temperature=21.0)

    merged = merge([first], [second])

    assert merged == (first, second)


def test_inputs_are_not_modified():
    existing = [reading_at(2), reading_at(1)]
    merge(existing, [reading_at(0)])
    assert [r.timestamp for r in existing] == [reading_at(2).timestamp, reading_at(1).timestamp]


def test_small_limit():
    merged = merge([reading_at(i) for i in range(10)], [], limit=3)
    assert [r.timestamp for r in merged] == [reading_at(i).timestamp for i in (7, 8, 9)]
    assert merge([reading_at(1)], [], limit=0) == ()
