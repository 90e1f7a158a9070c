import asyncio
from typing import Any, List, Optional

import pytest

from ledcast.core.config import ChannelOption, DeviceOption
from ledcast.core.exceptions import PeerDisconnected
from ledcast.core.hub import BroadcastHub


class FakeTransport:
    """In-memory transport recording what a pump writes"""

    def __init__(self, block_send: bool = False, answer_pings: bool = True):
        self.sent: List[bytes] = []
        self.pings = 0
        self.closed = False
        self.answer_pings = answer_pings
        self.fail_send: Optional[Exception] = None
        self._send_gate = asyncio.Event()
        if not block_send:
            self._send_gate.set()
        self._inbound: asyncio.Queue = asyncio.Queue()

    async def send(self, data: bytes) -> None:
        if self.closed:
            raise PeerDisconnected("connection closed")
        await self._send_gate.wait()
        if self.fail_send is not None:
            raise self.fail_send
        self.sent.append(data)

    async def ping(self) -> Any:
        self.pings += 1
        waiter = asyncio.get_running_loop().create_future()
        if self.answer_pings:
            waiter.set_result(0.0)
        return waiter

    async def recv(self) -> Any:
        item = await self._inbound.get()
        if isinstance(item, Exception):
            raise item
        return item

    async def close(self) -> None:
        self.closed = True
        self._inbound.put_nowait(PeerDisconnected("connection closed"))

    def unblock(self) -> None:
        self._send_gate.set()

    def feed(self, message: Any) -> None:
        self._inbound.put_nowait(message)

    def disconnect(self) -> None:
        self._inbound.put_nowait(PeerDisconnected("peer went away"))


class RecordingHub:
    """Stands in for the broadcast hub when only the producer side matters"""

    def __init__(self):
        self.messages: List[bytes] = []
        self.on_broadcast = None

    def broadcast(self, message: bytes) -> None:
        if self.on_broadcast is not None:
            self.on_broadcast(message)
        self.messages.append(message)


class FakeClock:
    """Manually advanced clock; sleeping advances it"""

    def __init__(self, start: float = 100.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


async def wait_until(predicate, timeout: float = 2.0, interval: float = 0.005) -> None:
    """Poll until predicate() is true"""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(interval)


@pytest.fixture
def device_option():
    """Default device options for testing: one channel of 16 LEDs at 800kHz"""
    return DeviceOption(frequency=800_000, channels=[ChannelOption(led_count=16)])


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def recording_hub():
    return RecordingHub()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
async def hub():
    """Running broadcast hub"""
    hub = BroadcastHub()
    await hub.start()
    yield hub
    await hub.shutdown()
