"""Connectivity evaluation from a reading's trust signals."""

from typing import Any, Optional

from vermilinks.shared.models import Reading


def evaluate_signals(
    online: Optional[Any] = None,
    status: Optional[Any] = None,
    stale: Optional[Any] = None,
) -> bool:
    """Decide whether the signals describe a live, reporting device.

    First matching rule wins:
        1. an explicit online flag (bool) is returned as-is
        2. a textual status is live only when it equals "online"
        3. a staleness flag (bool) is live when not stale
        4. no usable signal is never live

    Args:
        online: Explicit online flag.
        status: Textual device status, compared case-insensitively.
        stale: Staleness flag.

    Returns:
        True if the device should be treated as connected.
    """
    if isinstance(online, bool):
        return online
    if isinstance(status, str):
        return status.lower() == "online"
    if isinstance(stale, bool):
        return stale is False
    return False


def is_live(reading: Reading) -> bool:
    """Check whether a reading comes from a live, reporting device."""
    return evaluate_signals(reading.device_online, reading.device_status, reading.is_stale)
