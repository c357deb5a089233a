"""Bounded, timestamp-ordered reading history."""

import math
from typing import Iterable, Optional, Tuple

from vermilinks.shared.models import Reading
from .normalizer import timestamp_millis

# One reading every 5 minutes for 28 hours
HISTORY_LIMIT = 336


def merge(
    existing: Optional[Iterable[Optional[Reading]]],
    incoming: Optional[Iterable[Optional[Reading]]],
    limit: int = HISTORY_LIMIT,
) -> Tuple[Reading, ...]:
    """Merge two batches of readings into one ordered, bounded series.

    Empty entries are dropped and the rest sorted ascending by timestamp,
    with unknown timestamps first. Only the most recent ``limit`` entries are
    kept. Repeated timestamps are kept as distinct samples.

    Args:
        existing: Readings already held.
        incoming: Newly arrived readings.
        limit: Maximum number of readings to keep.

    Returns:
        A new tuple; the inputs are never modified.
    """
    combined = [r for r in (*(existing or ()), *(incoming or ())) if r]
    # sorted() is stable, so equal timestamps keep arrival order
    combined = sorted(combined, key=_sort_key)
    if limit <= 0:
        return ()
    return tuple(combined[-limit:])


def _sort_key(reading: Reading) -> float:
    millis = timestamp_millis(reading.timestamp)
    return -math.inf if millis is None else millis
