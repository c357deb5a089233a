"""Telemetry sync service - runs the engine headless and logs what it sees."""

import asyncio
import logging
import signal
import sys
from typing import Optional

from .api_client import SnapshotClient
from .channel import ChannelTransport, MQTTTransport, SocketIOTransport
from .config import ChannelConfig, Config, load_config
from .engine import TelemetrySync
from .state import SynchronizationState

logger = logging.getLogger(__name__)


def build_transport(config: ChannelConfig) -> Optional[ChannelTransport]:
    """Create the push channel transport named by the config."""
    if config.kind == "socketio":
        return SocketIOTransport(
            config.url,
            reconnect_delay=config.reconnect_delay,
            connect_timeout=config.connect_timeout,
        )
    if config.kind == "mqtt":
        return MQTTTransport(config.mqtt, reconnect_delay=config.reconnect_delay)
    return None


class StateChangeLogger:
    """Logs the transitions a dashboard would render."""

    def __init__(self):
        self._previous = SynchronizationState()

    def __call__(self, state: SynchronizationState):
        previous, self._previous = self._previous, state

        if state.connected != previous.connected:
            logger.info(f"Device {'connected' if state.connected else 'disconnected'}")
        if state.transport_up != previous.transport_up:
            logger.info(f"Push channel {'up' if state.transport_up else 'down'}")
        if state.last_error and state.last_error != previous.last_error:
            logger.warning(f"Sync error: {state.last_error}")
        if state.latest is not None and state.latest is not previous.latest:
            values = ", ".join(
                f"{name}={value}"
                for name, value in state.latest.as_dict().items()
                if isinstance(value, float)
            )
            logger.info(
                f"Latest from {state.latest.device_id} at {state.latest.timestamp}: "
                f"{values or 'no sensors'} (history={len(state.history)})"
            )
        elif state.latest is None and previous.latest is not None:
            logger.info("No sensors currently reporting")


class TelemetrySyncService:
    """Main service that keeps one device's state in sync until stopped."""

    def __init__(self, config: Config):
        self.config = config
        self.engine: Optional[TelemetrySync] = None
        self._running = False

    def _setup_signal_handlers(self):
        """Set up signal handlers for graceful shutdown."""
        def signal_handler(signum, frame):
            signame = signal.Signals(signum).name
            logger.info(f"Received {signame}, shutting down...")
            self._running = False

        signal.signal(signal.SIGTERM, signal_handler)
        signal.signal(signal.SIGINT, signal_handler)

    async def run(self):
        """Run the sync service (blocking)."""
        self._setup_signal_handlers()
        self._running = True

        client = SnapshotClient(self.config.api.base_url, timeout=self.config.api.timeout)
        self.engine = TelemetrySync(
            self.config.polling,
            client,
            transport=build_transport(self.config.channel),
            on_alert=lambda: logger.info("Alert signal received"),
            history_limit=self.config.api.history_limit,
        )
        self.engine.subscribe(StateChangeLogger())

        try:
            await self.engine.start(seed_history=self.config.api.seed_history)
            logger.info("Telemetry sync is running. Press Ctrl+C to stop.")
            while self._running:
                await asyncio.sleep(1.0)
        except asyncio.CancelledError:
            pass
        finally:
            logger.info("Shutting down telemetry sync...")
            await self.engine.close()
            await client.close()
            logger.info("Telemetry sync stopped.")


def run_service(config_path: Optional[str] = None):
    """Run the telemetry sync service.

    Args:
        config_path: Optional path to config file.
    """
    from vermilinks.shared.logging import setup_logging

    config = load_config(config_path)
    setup_logging(config.log_level)

    logger.info("Starting telemetry sync...")
    service = TelemetrySyncService(config)

    try:
        asyncio.run(service.run())
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception as e:
        logger.error(f"Error: {e}")
        sys.exit(1)
