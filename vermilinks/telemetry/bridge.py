"""Realtime event bridge from the push channel into the sync state."""

import logging
from typing import Any, Callable, List, Mapping, Optional, Tuple

from vermilinks.shared.models import ReadingSource
from .channel import (
    EVENT_ALERT,
    EVENT_CONNECT,
    EVENT_DEVICE_STATUS,
    EVENT_DISCONNECT,
    EVENT_ROOM_JOIN,
    EVENT_TELEMETRY,
    ChannelTransport,
    EventHandler,
)
from .connectivity import is_live
from .normalizer import detect_source, normalize
from .state import SyncStore

logger = logging.getLogger(__name__)

# Older event names still emitted by some backends
TELEMETRY_EVENTS = (EVENT_TELEMETRY, "sensor_update", "sensor:update")
STATUS_EVENTS = (EVENT_DEVICE_STATUS, "device_status")


class RealtimeEventBridge:
    """Feeds push channel events into a SyncStore.

    Telemetry from a device that is not live only marks the state
    disconnected; it is never shown or added to history.
    """

    def __init__(
        self,
        transport: ChannelTransport,
        store: SyncStore,
        device_id: Optional[str] = None,
        on_alert: Optional[Callable[[], None]] = None,
    ):
        """Initialize the bridge and register its handlers.

        Args:
            transport: Channel this bridge owns handlers on.
            store: State the events are written to.
            device_id: Only accept events for this device when set.
            on_alert: Called with no arguments for each alert signal.
        """
        self.transport = transport
        self.store = store
        self.device_id = device_id
        self.on_alert = on_alert
        self._subscriptions: List[Tuple[str, EventHandler]] = []
        self._closed = False

        self._listen(EVENT_CONNECT, self._on_connect)
        self._listen(EVENT_DISCONNECT, self._on_disconnect)
        for event in TELEMETRY_EVENTS:
            self._listen(event, self._on_telemetry)
        for event in STATUS_EVENTS:
            self._listen(event, self._on_device_status)
        self._listen(EVENT_ALERT, self._on_alert)

        if transport.connected:
            self._on_connect(None)

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self):
        """Unregister every handler. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        for event, handler in self._subscriptions:
            self.transport.off(event, handler)
        self._subscriptions.clear()

    def _listen(self, event: str, handler: EventHandler):
        self.transport.on(event, handler)
        self._subscriptions.append((event, handler))

    def _on_connect(self, _data: Any):
        if self._closed:
            return
        logger.info("Push channel connected")
        self.store.set_transport_up(True)
        if self.device_id:
            self.transport.emit(EVENT_ROOM_JOIN, {"room": f"device:{self.device_id}"})

    def _on_disconnect(self, _data: Any):
        if self._closed:
            return
        logger.info("Push channel disconnected")
        self.store.set_transport_up(False)

    def _on_telemetry(self, payload: Any):
        if self._closed:
            return
        # Some emitters batch samples; the first one is the newest
        if isinstance(payload, list):
            payload = payload[0] if payload else None
        if not isinstance(payload, Mapping):
            logger.debug(f"Ignoring telemetry payload of type {type(payload).__name__}")
            return

        if detect_source(payload) is not ReadingSource.LEGACY:
            payload_kind = ReadingSource.TELEMETRY
        else:
            payload_kind = ReadingSource.LEGACY
        reading = normalize(payload, payload_kind)

        if self.device_id and reading.device_id != self.device_id:
            return

        if not is_live(reading):
            logger.debug(f"Telemetry from {reading.device_id} while not live, not shown")
            self.store.set_connected(False)
            return

        self.store.apply_reading(reading, connected=True)

    def _on_device_status(self, payload: Any):
        if self._closed or not isinstance(payload, Mapping):
            return

        # Only the id and trust signals of a status payload matter
        status = normalize(payload, ReadingSource.TELEMETRY)
        if self.device_id and status.device_id != self.device_id:
            return

        connected = is_live(status)
        logger.debug(f"Device {status.device_id} status: {'online' if connected else 'offline'}")
        self.store.set_connected(connected)

    def _on_alert(self, _data: Any):
        if self._closed or self.on_alert is None:
            return
        try:
            self.on_alert()
        except Exception as e:
            logger.error(f"Alert callback failed: {e}")

