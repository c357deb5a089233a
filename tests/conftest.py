"""Pytest configuration and fixtures for telemetry sync tests."""

from typing import Any, List, Optional

import pytest

from vermilinks.telemetry.channel import ChannelTransport
from vermilinks.telemetry.state import SyncStore


class FakeFetcher:
    """Async snapshot fetcher returning queued results, then ``default``.

    Exceptions in the queue (or as the default) are raised instead.
    """

    def __init__(self, *results: Any, default: Any = None):
        self.results: List[Any] = list(results)
        self.default = default
        self.calls: List[Optional[str]] = []

    async def __call__(self, device_id: Optional[str] = None):
        self.calls.append(device_id)
        result = self.results.pop(0) if self.results else self.default
        if isinstance(result, BaseException):
            raise result
        return result


class FakeSnapshotClient:
    """Stands in for SnapshotClient in engine tests."""

    def __init__(self, fetcher: Optional[FakeFetcher] = None, history: Optional[list] = None):
        self.fetch_latest = fetcher or FakeFetcher()
        self.history = history or []
        self.history_error: Optional[Exception] = None
        self.history_calls: List[tuple] = []

    async def fetch_history(self, device_id: Optional[str] = None, limit: int = 336):
        self.history_calls.append((device_id, limit))
        if self.history_error is not None:
            raise self.history_error
        return list(self.history)


class FakeTransport(ChannelTransport):
    """In-memory push channel; ``fire`` delivers an inbound event."""

    def __init__(self, connected: bool = False):
        super().__init__()
        self._connected = connected
        self.emitted: List[tuple] = []
        self.connect_calls = 0
        self.disconnect_calls = 0

    @property
    def connected(self) -> bool:
        return self._connected

    def emit(self, event: str, data: Any = None):
        self.emitted.append((event, data))

    async def connect(self):
        self.connect_calls += 1
        self._connected = True
        self._dispatch("connect", None)

    async def disconnect(self):
        self.disconnect_calls += 1
        self._connected = False
        self._dispatch("disconnect", None)

    def fire(self, event: str, data: Any = None):
        self._dispatch(event, data)


class ManualClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def store() -> SyncStore:
    return SyncStore()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def snapshot_payload() -> dict:
    """Snapshot envelope as returned by /sensors/latest."""
    return {
        "temperature": 24.1,
        "humidity": 61.0,
        "soil_moisture": 48.5,
        "float_state": 1,
        "updated_at": "2024-01-01T00:00:00Z",
    }
