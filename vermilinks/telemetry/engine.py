"""Telemetry sync engine: one poller, one realtime bridge, one state."""

import asyncio
import logging
import time
from typing import Callable, Optional

from vermilinks.shared.models import ReadingSource
from .api_client import SnapshotClient, SnapshotError
from .bridge import RealtimeEventBridge
from .channel import ChannelTransport
from .config import PollingPolicy
from .history import HISTORY_LIMIT
from .normalizer import normalize
from .poller import PollingController
from .state import StateListener, SynchronizationState, SyncStore

logger = logging.getLogger(__name__)


class TelemetrySync:
    """Keeps one dashboard view's sensor state in sync.

    Each instance owns its state; two engines watching the same device share
    nothing. Consumers read ``state`` (or subscribe to it) and may call
    ``refresh()``; nothing else.
    """

    def __init__(
        self,
        policy: PollingPolicy,
        client: SnapshotClient,
        transport: Optional[ChannelTransport] = None,
        on_alert: Optional[Callable[[], None]] = None,
        history_limit: int = HISTORY_LIMIT,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.policy = policy
        self.client = client
        self.transport = transport
        self.on_alert = on_alert
        self.history_limit = history_limit

        self.store = SyncStore(history_limit)
        self.poller = PollingController(client.fetch_latest, self.store, clock=clock)
        self.bridge: Optional[RealtimeEventBridge] = None

        self._unsubscribe_poller: Optional[Callable[[], None]] = None
        self._connect_task: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def state(self) -> SynchronizationState:
        return self.store.state

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Call ``listener`` with every new state. Returns an unsubscribe function."""
        return self.store.subscribe(listener)

    async def start(self, seed_history: bool = False):
        """Seed history, attach the push channel and begin polling.

        Args:
            seed_history: Load recent stored readings before polling starts.
        """
        if self._closed:
            raise RuntimeError("TelemetrySync is closed")

        if seed_history:
            await self.load_history()

        if self.transport is not None and self.bridge is None:
            self.bridge = RealtimeEventBridge(
                self.transport,
                self.store,
                device_id=self.policy.device_id,
                on_alert=self.on_alert,
            )
            self._connect_task = asyncio.get_running_loop().create_task(self.transport.connect())

        self._unsubscribe_poller = self.poller.start(self.policy)

    async def load_history(self):
        """Merge the most recent stored readings into history."""
        try:
            rows = await self.client.fetch_history(self.policy.device_id, self.history_limit)
        except SnapshotError as e:
            logger.warning(f"Could not load reading history: {e.message}")
            return

        readings = [
            normalize(row, ReadingSource.TELEMETRY, default_device_id=self.policy.device_id)
            for row in rows
        ]
        self.store.extend_history(readings)
        logger.info(f"Loaded {len(readings)} historical readings")

    async def refresh(self, force: bool = True):
        """Fetch a fresh snapshot now."""
        await self.poller.refresh(force=force)

    async def close(self):
        """Stop polling, detach from the channel and discard the state.

        Safe to call more than once.
        """
        if self._closed:
            return
        self._closed = True

        if self._unsubscribe_poller is not None:
            self._unsubscribe_poller()
            self._unsubscribe_poller = None
        self.poller.stop()

        if self.bridge is not None:
            self.bridge.close()

        task, self._connect_task = self._connect_task, None
        if task is not None and not task.done():
            task.cancel()
        if self.transport is not None:
            try:
                await self.transport.disconnect()
            except Exception as e:
                logger.warning(f"Push channel disconnect failed: {e}")

        self.store.close()
