"""Telemetry sync engine - keeps dashboard sensor state current from polling and push."""

__version__ = "0.1.0"

from .api_client import SnapshotClient, SnapshotError
from .bridge import RealtimeEventBridge
from .channel import ChannelTransport, MQTTTransport, SocketIOTransport
from .config import PollingPolicy
from .connectivity import is_live
from .engine import TelemetrySync
from .history import merge
from .normalizer import normalize
from .poller import PollingController
from .state import PollStatus, SynchronizationState, SyncStore


def main():
    """Entry point for telemetry sync service."""
    from .service import run_service

    run_service()


__all__ = [
    "SnapshotClient",
    "SnapshotError",
    "RealtimeEventBridge",
    "ChannelTransport",
    "MQTTTransport",
    "SocketIOTransport",
    "PollingPolicy",
    "is_live",
    "TelemetrySync",
    "merge",
    "normalize",
    "PollingController",
    "PollStatus",
    "SynchronizationState",
    "SyncStore",
    "main",
]
