"""
Polling controller.

Periodically fetches the sensor snapshot, serves a short-lived cache to avoid
redundant requests, and doubles its interval under repeated failure.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from vermilinks.shared.models import Reading, ReadingSource
from .api_client import DEFAULT_ERROR_MESSAGE, SnapshotError
from .config import PollingPolicy
from .connectivity import is_live
from .normalizer import normalize
from .state import PollStatus, SyncStore

logger = logging.getLogger(__name__)

SnapshotFetcher = Callable[[Optional[str]], Awaitable[Optional[Any]]]


@dataclass(frozen=True)
class CachedSnapshot:
    """Last successful snapshot and when it was fetched."""
    reading: Reading
    fetched_at: float  # clock() seconds
    received_at: datetime


class PollingController:
    """Timer-driven snapshot polling for one subscription.

    At most one timer is pending at any time: every re-arm cancels the
    previous handle before installing the new one.
    """

    def __init__(
        self,
        fetch_snapshot: SnapshotFetcher,
        store: SyncStore,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the controller.

        Args:
            fetch_snapshot: Coroutine function taking a device id and returning
                            the raw snapshot payload, or None for no reading.
            store: State the results are written to.
            clock: Monotonic clock in seconds, used for cache age.
        """
        self._fetch_snapshot = fetch_snapshot
        self._store = store
        self._clock = clock

        self.policy = PollingPolicy()
        self.status = PollStatus.IDLE
        self.backoff_ms = self.policy.interval_ms
        self.next_delay_ms: Optional[int] = None

        self._cache: Optional[CachedSnapshot] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._tick_task: Optional[asyncio.Task] = None
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    @property
    def has_pending_timer(self) -> bool:
        return self._timer is not None

    def start(self, policy: PollingPolicy) -> Callable[[], None]:
        """Begin polling with the given policy.

        Must be called from within a running event loop.

        Returns:
            Unsubscribe function; safe to call more than once.
        """
        self.stop()

        self.policy = policy
        self.backoff_ms = policy.interval_ms
        self._cache = None
        self._active = True

        logger.info(
            f"Polling started (device={policy.device_id or 'default'}, "
            f"interval={policy.interval_ms}ms, max={policy.max_interval_ms}ms, "
            f"cache_ttl={policy.cache_ttl_ms}ms)"
        )

        if policy.immediate:
            self._tick_task = asyncio.get_running_loop().create_task(self.refresh(force=True))
        else:
            self._arm(policy.interval_ms)

        return self.stop

    def stop(self):
        """Cancel the pending timer and any timer-started poll.

        A fetch still in flight is abandoned, so the state no longer shows
        a poll in progress.
        """
        was_active, self._active = self._active, False
        self._cancel_timer()
        if was_active:
            logger.info("Polling stopped")
            self._store.set_polling(False)
            if self.status is PollStatus.LOADING:
                self._set_status(PollStatus.IDLE)

        task, self._tick_task = self._tick_task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def refresh(self, force: bool = False):
        """Fetch a snapshot now, or serve the cache if it is still fresh.

        Args:
            force: Skip the cache, reset the backoff and cancel the pending
                   timer before fetching.
        """
        if not self._active:
            return

        if force:
            self._cancel_timer()
            self.backoff_ms = self.policy.interval_ms
        elif self._serve_cache():
            return

        await self._poll(force)

    def _serve_cache(self) -> bool:
        cache = self._cache
        if cache is None:
            return False
        age_ms = (self._clock() - cache.fetched_at) * 1000.0
        if age_ms > self.policy.cache_ttl_ms:
            return False

        logger.debug(f"Serving cached snapshot ({age_ms:.0f}ms old)")
        self._set_status(PollStatus.SUCCESS)
        self._store.restore_cached(cache.reading, is_live(cache.reading), cache.received_at)
        self._arm(self.policy.interval_ms)
        return True

    async def _poll(self, force: bool):
        # A background tick after a success keeps showing success
        if force or self.status is not PollStatus.SUCCESS:
            self._set_status(PollStatus.LOADING)
        self._store.set_polling(True)

        device_id = self.policy.device_id
        try:
            payload = await self._fetch_snapshot(device_id)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if self._active:
                self._on_failure(e)
        else:
            if self._active:
                self._on_success(payload)
        finally:
            if self._active:
                self._store.set_polling(False)
                self._arm(self.backoff_ms)

    def _on_success(self, payload: Optional[Any]):
        reading = self._to_reading(payload)
        self.backoff_ms = self.policy.interval_ms

        if reading is None:
            logger.debug("Snapshot empty, no sensors reporting")
            self._cache = None
            self._set_status(PollStatus.IDLE)
            self._store.clear_latest()
            return

        received_at = datetime.now(timezone.utc)
        self._cache = CachedSnapshot(reading, self._clock(), received_at)
        self._set_status(PollStatus.SUCCESS)
        self._store.apply_reading(reading, is_live(reading), received_at)
        logger.debug(f"Snapshot from {reading.device_id} at {reading.timestamp}")

    def _on_failure(self, error: Exception):
        message = describe_error(error)
        previous = self.backoff_ms
        self.backoff_ms = max(
            self.policy.interval_ms,
            min(previous * 2, self.policy.max_interval_ms),
        )
        logger.warning(f"Snapshot fetch failed: {message} (retry in {self.backoff_ms}ms)")
        self._set_status(PollStatus.ERROR)
        self._store.record_error(message)

    def _to_reading(self, payload: Optional[Any]) -> Optional[Reading]:
        # A snapshot always describes one device
        if isinstance(payload, list):
            payload = payload[0] if payload else None
        if not payload:
            return None
        return normalize(payload, ReadingSource.SNAPSHOT, default_device_id=self.policy.device_id)

    def _set_status(self, status: PollStatus):
        self.status = status
        self._store.set_status(status)

    def _arm(self, delay_ms: int):
        self._cancel_timer()
        if not self._active:
            return
        self.next_delay_ms = delay_ms
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(delay_ms / 1000.0, self._on_timer)

    def _cancel_timer(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self):
        self._timer = None
        if not self._active:
            return
        self._tick_task = asyncio.get_running_loop().create_task(self.refresh(force=False))


def describe_error(error: Exception) -> str:
    """User-facing message for a failed fetch."""
    if isinstance(error, SnapshotError) and error.message:
        return error.message
    return str(error) or DEFAULT_ERROR_MESSAGE
