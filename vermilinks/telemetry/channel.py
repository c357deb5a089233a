"""
Push channel transports.

Each realtime bridge is handed its own transport instance; nothing here is
shared process-wide. Handlers always run on the event loop and receive one
argument, the decoded event payload (None for payload-less events).
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Set

import paho.mqtt.client as mqtt
import socketio
from socketio import exceptions as sio_exceptions
from paho.mqtt.enums import CallbackAPIVersion

from vermilinks.shared.mqtt import MQTTConfig, parse_event_payload

logger = logging.getLogger(__name__)

EVENT_CONNECT = "connect"
EVENT_DISCONNECT = "disconnect"
EVENT_TELEMETRY = "telemetry:update"
EVENT_DEVICE_STATUS = "device:status"
EVENT_ALERT = "alert:trigger"
EVENT_ROOM_JOIN = "room:join"

EventHandler = Callable[[Any], None]


class ChannelTransport(ABC):
    """Base class for push channel connections."""

    def __init__(self):
        self._handlers: Dict[str, List[EventHandler]] = {}

    def on(self, event: str, handler: EventHandler):
        """Register a handler for an inbound event."""
        handlers = self._handlers.setdefault(event, [])
        if handler not in handlers:
            handlers.append(handler)

    def off(self, event: str, handler: EventHandler):
        """Remove a handler. Unknown handlers are ignored."""
        handlers = self._handlers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    def handler_count(self, event: Optional[str] = None) -> int:
        if event is not None:
            return len(self._handlers.get(event, []))
        return sum(len(handlers) for handlers in self._handlers.values())

    def _dispatch(self, event: str, data: Any = None):
        for handler in list(self._handlers.get(event, [])):
            try:
                handler(data)
            except Exception as e:
                logger.error(f"Handler for '{event}' failed: {e}")

    @property
    @abstractmethod
    def connected(self) -> bool:
        """Whether the underlying connection is currently up."""
        pass

    @abstractmethod
    def emit(self, event: str, data: Any = None):
        """Send an outbound event without waiting for delivery."""
        pass

    @abstractmethod
    async def connect(self):
        """Open the connection, retrying until it succeeds or disconnect() is called."""
        pass

    @abstractmethod
    async def disconnect(self):
        """Close the connection and stop reconnecting."""
        pass


class SocketIOTransport(ChannelTransport):
    """Socket.IO push channel, reconnecting forever at a fixed delay."""

    def __init__(
        self,
        url: str,
        reconnect_delay: float = 5.0,
        connect_timeout: float = 20.0,
        client: Optional[socketio.AsyncClient] = None,
    ):
        super().__init__()
        self.url = url
        self.reconnect_delay = reconnect_delay
        self.connect_timeout = connect_timeout
        self._sio = client or socketio.AsyncClient(
            reconnection=True,
            reconnection_attempts=0,  # unbounded
            reconnection_delay=reconnect_delay,
            reconnection_delay_max=reconnect_delay,
            randomization_factor=0,
            logger=logger.getChild("socketio"),
            engineio_logger=logger.getChild("engineio"),
        )
        self._registered: Set[str] = set()
        self._pending: Set[asyncio.Task] = set()
        self._closing = False

    @property
    def connected(self) -> bool:
        return bool(self._sio.connected)

    def on(self, event: str, handler: EventHandler):
        super().on(event, handler)
        if event not in self._registered:
            self._registered.add(event)
            self._sio.on(event, handler=self._relay(event))

    def _relay(self, event: str) -> Callable[..., None]:
        def relay(*args):
            # connect passes nothing, disconnect may pass a reason
            data = args[0] if args and event != EVENT_DISCONNECT else None
            self._dispatch(event, data)

        return relay

    def emit(self, event: str, data: Any = None):
        if not self.connected:
            logger.debug(f"Not connected, dropping outbound '{event}'")
            return
        task = asyncio.get_running_loop().create_task(self._sio.emit(event, data))
        self._pending.add(task)
        task.add_done_callback(self._emit_done)

    def _emit_done(self, task: asyncio.Task):
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"Socket.IO emit failed: {task.exception()}")

    async def connect(self):
        self._closing = False
        while not self._closing:
            try:
                logger.info(f"Connecting to push channel at {self.url}")
                await self._sio.connect(
                    self.url,
                    transports=["websocket"],
                    wait_timeout=self.connect_timeout,
                )
                return
            except sio_exceptions.ConnectionError as e:
                logger.warning(
                    f"Push channel connection failed: {e} (retry in {self.reconnect_delay:.0f}s)"
                )
                await asyncio.sleep(self.reconnect_delay)

    async def disconnect(self):
        self._closing = True
        for task in list(self._pending):
            task.cancel()
        if self._sio.connected:
            await self._sio.disconnect()


class MQTTTransport(ChannelTransport):
    """Push channel over MQTT.

    Topics under the configured prefix map onto channel events:
        {prefix}/{device_id}/telemetry  -> telemetry:update
        {prefix}/{device_id}/status     -> device:status
        {prefix}/alerts                 -> alert:trigger

    A room:join of "device:<id>" narrows the subscription to that device.
    paho runs its network loop in a thread; every event is handed to the
    asyncio loop before any handler sees it.
    """

    def __init__(
        self,
        config: MQTTConfig,
        reconnect_delay: float = 5.0,
        client: Optional[mqtt.Client] = None,
    ):
        super().__init__()
        self.config = config
        self.reconnect_delay = reconnect_delay
        self.client = client or mqtt.Client(
            callback_api_version=CallbackAPIVersion.VERSION2,
            client_id=config.client_id,
        )
        if config.username:
            self.client.username_pw_set(config.username, config.password)
        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect
        self.client.on_message = self._on_message

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._devices: Set[str] = set()
        self._subscribed: Set[str] = set()
        self._connected = False
        self._started = False

    @property
    def connected(self) -> bool:
        return self._connected

    def topics(self) -> List[str]:
        """Topics to subscribe to for the joined devices."""
        prefix = self.config.topic_prefix
        if not self._devices:
            return [f"{prefix}/#"]
        topics = [f"{prefix}/alerts"]
        for device_id in sorted(self._devices):
            topics.append(f"{prefix}/{device_id}/telemetry")
            topics.append(f"{prefix}/{device_id}/status")
        return topics

    def emit(self, event: str, data: Any = None):
        if event != EVENT_ROOM_JOIN:
            logger.debug(f"MQTT channel ignores outbound '{event}'")
            return
        room = (data or {}).get("room", "") if isinstance(data, dict) else ""
        if not room.startswith("device:"):
            logger.warning(f"Unsupported room for MQTT channel: {room!r}")
            return

        self._devices.add(room[len("device:"):])
        if self._connected:
            self._subscribe()

    async def connect(self):
        self._loop = asyncio.get_running_loop()
        if self._started:
            return
        self._started = True
        self.client.reconnect_delay_set(
            min_delay=int(self.reconnect_delay),
            max_delay=int(self.reconnect_delay),
        )
        logger.info(f"Connecting to MQTT broker at {self.config.broker}:{self.config.port}")
        # loop_start retries the first connection itself
        self.client.connect_async(self.config.broker, self.config.port, keepalive=self.config.keepalive)
        self.client.loop_start()

    async def disconnect(self):
        if not self._started:
            return
        self._started = False
        self.client.disconnect()
        self.client.loop_stop()
        self._connected = False

    def _subscribe(self):
        # Overlapping filters would deliver each message once per match
        wanted = self.topics()
        for topic in sorted(self._subscribed - set(wanted)):
            self.client.unsubscribe(topic)
            self._subscribed.discard(topic)
            logger.debug(f"Unsubscribed from: {topic}")
        for topic in wanted:
            if topic in self._subscribed:
                continue
            self.client.subscribe(topic, qos=self.config.qos)
            self._subscribed.add(topic)
            logger.debug(f"Subscribed to: {topic}")

    # paho callbacks, called from the network thread

    def _on_connect(self, client, userdata, flags, reason_code, properties):
        if reason_code != 0:
            logger.error(f"Failed to connect to MQTT broker: {reason_code}")
            return
        logger.info(f"Connected to MQTT broker at {self.config.broker}:{self.config.port}")
        self._connected = True
        # A clean session starts with no subscriptions
        self._subscribed.clear()
        self._subscribe()
        self._hand_off(EVENT_CONNECT, None)

    def _on_disconnect(self, client, userdata, disconnect_flags, reason_code, properties):
        self._connected = False
        self._subscribed.clear()
        if reason_code != 0:
            logger.warning(f"Unexpected MQTT disconnection (reason={reason_code})")
        else:
            logger.info("Disconnected from MQTT broker")
        self._hand_off(EVENT_DISCONNECT, None)

    def _on_message(self, client, userdata, msg: mqtt.MQTTMessage):
        event = self.event_for_topic(msg.topic)
        if event is None:
            logger.debug(f"Ignoring topic: {msg.topic}")
            return

        data = parse_event_payload(msg.payload)
        if data is None:
            return

        device_id = self.device_for_topic(msg.topic)
        if device_id is not None:
            data.setdefault("deviceId", device_id)
        self._hand_off(event, data if event != EVENT_ALERT else None)

    def event_for_topic(self, topic: str) -> Optional[str]:
        segments = topic.split("/")
        prefix = self.config.topic_prefix.split("/")
        if segments[:len(prefix)] != prefix:
            return None
        rest = segments[len(prefix):]
        if rest == ["alerts"]:
            return EVENT_ALERT
        if len(rest) == 2 and rest[1] == "telemetry":
            return EVENT_TELEMETRY
        if len(rest) == 2 and rest[1] == "status":
            return EVENT_DEVICE_STATUS
        return None

    def device_for_topic(self, topic: str) -> Optional[str]:
        rest = topic.split("/")[len(self.config.topic_prefix.split("/")):]
        return rest[0] if len(rest) == 2 else None

    def _hand_off(self, event: str, data: Any):
        loop = self._loop
        if loop is None or loop.is_closed():
            logger.debug(f"No event loop, dropping '{event}'")
            return
        loop.call_soon_threadsafe(self._dispatch, event, data)
