"""Synchronization state shared by the poller and the realtime bridge."""

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Iterable, List, Optional, Tuple

from vermilinks.shared.models import Reading
from .history import HISTORY_LIMIT, merge

logger = logging.getLogger(__name__)


class PollStatus(Enum):
    """Polling controller states."""
    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class SynchronizationState:
    """Snapshot of what the dashboard should show.

    Instances are immutable; every change produces a new one, so a consumer
    holding a reference never sees a half-applied update.
    """
    latest: Optional[Reading] = None
    history: Tuple[Reading, ...] = ()
    connected: bool = False
    last_updated: Optional[datetime] = None
    last_error: Optional[str] = None
    status: PollStatus = PollStatus.IDLE
    is_polling: bool = False
    transport_up: bool = False  # presentation hint only


StateListener = Callable[[SynchronizationState], None]


class SyncStore:
    """Owns one SynchronizationState and applies writes to it.

    After close() every write is dropped silently, so results arriving after
    the owning view went away cannot resurrect it.
    """

    def __init__(self, history_limit: int = HISTORY_LIMIT):
        self.history_limit = history_limit
        self._state = SynchronizationState()
        self._listeners: List[StateListener] = []
        self._alive = True

    @property
    def state(self) -> SynchronizationState:
        return self._state

    @property
    def alive(self) -> bool:
        return self._alive

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a listener called with each new state.

        Returns:
            Function that removes the listener. Safe to call more than once.
        """
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def close(self):
        """Stop accepting writes and drop all listeners."""
        self._alive = False
        self._listeners.clear()

    # Writes

    def apply_reading(self, reading: Reading, connected: bool, now: Optional[datetime] = None):
        """Make a reading the latest one and fold it into history."""
        self._commit(
            latest=reading,
            history=merge(self._state.history, [reading], self.history_limit),
            connected=connected,
            last_updated=now or _utcnow(),
            last_error=None,
        )

    def restore_cached(self, reading: Reading, connected: bool, fetched_at: datetime):
        """Show a cached reading again without adding it to history twice."""
        self._commit(
            latest=reading,
            connected=connected,
            last_updated=fetched_at,
            last_error=None,
        )

    def extend_history(self, readings: Iterable[Reading]):
        self._commit(history=merge(self._state.history, readings, self.history_limit))

    def clear_latest(self):
        """Device exists but nothing is reporting."""
        self._commit(latest=None, connected=False, last_updated=None, last_error=None)

    def record_error(self, message: str):
        self._commit(last_error=message)

    def set_connected(self, connected: bool):
        self._commit(connected=connected)

    def set_status(self, status: PollStatus):
        self._commit(status=status)

    def set_polling(self, is_polling: bool):
        self._commit(is_polling=is_polling)

    def set_transport_up(self, transport_up: bool):
        self._commit(transport_up=transport_up)

    def _commit(self, **changes):
        if not self._alive:
            logger.debug(f"Dropping state update after close: {sorted(changes)}")
            return

        new_state = replace(self._state, **changes)
        if new_state == self._state:
            return
        self._state = new_state

        for listener in list(self._listeners):
            try:
                listener(new_state)
            except Exception as e:
                logger.error(f"State listener {listener!r} failed: {e}")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)
