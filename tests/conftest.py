"""
Pytest configuration and fakes for ARI relay tests.
"""
import asyncio
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

from ari_relay.adapters.base import BusAdapter, Payload, QoS
from ari_relay.core.config import Settings
from ari_relay.core.errors import PublishError, ReadError
from ari_relay.relay import Relay
from ari_relay.sources.base import EventSource

# Queued into a FakeEventSource to make the next read fail like a closed socket
_CLOSED = object()


class FakeEventSource(EventSource):
    """
    Event source fed from a queue.

    `end()` simulates the server closing the connection; `close()` records
    the close frame and wakes a pending read.
    """

    def __init__(self, payloads: Tuple[Payload, ...] = ()):
        self._inbox: asyncio.Queue = asyncio.Queue()
        self.connected = False
        self.connect_error: Optional[Exception] = None
        self.close_frames: List[Tuple[int, str]] = []
        self.reads = 0
        self.reads_after_close = 0
        self.reconnects = 0
        self.feed(*payloads)

    def feed(self, *items: Any) -> None:
        """Queue payloads (or exceptions to raise from read_next)."""
        for item in items:
            self._inbox.put_nowait(item)

    def end(self) -> None:
        """Simulate the server dropping the connection."""
        self._inbox.put_nowait(_CLOSED)

    async def connect(self) -> None:
        if self.connect_error is not None:
            raise self.connect_error
        self.connected = True

    async def read_next(self) -> Payload:
        if self.close_frames and not self.connected:
            self.reads_after_close += 1
            raise ReadError("Event source connection closed")
        self.reads += 1
        item = await self._inbox.get()
        if item is _CLOSED:
            self.connected = False
            raise ReadError("Event source connection closed by server")
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self, reason: str = "") -> None:
        if not self.connected:
            return
        self.connected = False
        self.close_frames.append((1000, reason))
        self._inbox.put_nowait(_CLOSED)

    async def reconnect(self) -> None:
        self.reconnects += 1
        self.connected = True

    @property
    def is_connected(self) -> bool:
        return self.connected


class HangingCloseSource(FakeEventSource):
    """Event source whose close handshake never completes."""

    async def close(self, reason: str = "") -> None:
        self.close_frames.append((1000, reason))
        await asyncio.Event().wait()


class FakeBus(BusAdapter):
    """
    Bus adapter that records publishes.

    `fail(payload, times)` makes publishing that payload fail; `gate` blocks
    every publish until it is set.
    """

    def __init__(self):
        self.connected = False
        self.connect_error: Optional[Exception] = None
        self.disconnects = 0
        self.published: List[Tuple[str, Payload]] = []
        self.attempts: List[Payload] = []
        self.calls: List[Tuple[QoS, bool]] = []
        self.gate: Optional[asyncio.Event] = None
        self._failures: Dict[Payload, float] = {}

    def fail(self, payload: Payload, times: float = float("inf")) -> None:
        self._failures[payload] = times

    async def connect(self) -> None:
        if self.connect_error is not None:
            raise self.connect_error
        self.connected = True

    async def disconnect(self) -> None:
        self.disconnects += 1
        self.connected = False

    async def publish(
        self,
        topic: str,
        payload: Payload,
        qos: QoS = QoS.AT_MOST_ONCE,
        retain: bool = False,
    ) -> None:
        self.attempts.append(payload)
        self.calls.append((qos, retain))
        if self.gate is not None:
            await self.gate.wait()
        remaining = self._failures.get(payload, 0)
        if remaining > 0:
            self._failures[payload] = remaining - 1
            raise PublishError(f"broker rejected {payload}")
        self.published.append((topic, payload))

    @property
    def published_payloads(self) -> List[Payload]:
        return [payload for _, payload in self.published]

    @property
    def is_connected(self) -> bool:
        return self.connected


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll until predicate() is true."""
    async def poll():
        while not predicate():
            await asyncio.sleep(0.01)
    await asyncio.wait_for(poll(), timeout=timeout)


@pytest.fixture
def source():
    """Fake event source with no queued events."""
    return FakeEventSource()


@pytest.fixture
def bus():
    """Fake bus adapter."""
    return FakeBus()


@pytest.fixture
def make_relay(source, bus):
    """Build a relay with fast timings around the fake source and bus."""
    def factory(**kwargs) -> Relay:
        options = dict(
            source=source,
            bus=bus,
            queue_size=4,
            publish_max_retries=2,
            publish_retry_base_delay=0,
            publish_retry_max_delay=0,
            close_timeout=1.0,
            drain_timeout=2.0,
            reconnect_base_delay=0,
            reconnect_max_delay=0,
        )
        options.update(kwargs)
        return Relay(**options)
    return factory


@pytest.fixture
def relay_env(monkeypatch):
    """Set the required VOIP_* and BROKER_* environment variables."""
    values = {
        "VOIP_HOST": "pbx.local",
        "VOIP_USER": "asterisk",
        "VOIP_PASS": "secret",
        "VOIP_APP": "relay",
        "BROKER_HOST": "nats.local",
    }
    for key, value in values.items():
        monkeypatch.setenv(key, value)
    return values


@pytest.fixture
def settings():
    """Settings built without reading the environment's .env file."""
    return Settings(
        _env_file=None,
        voip_host="pbx.local",
        voip_user="asterisk",
        voip_pass="secret",
        voip_app="relay",
        broker_host="nats.local",
        bus_adapter="memory",
    )
