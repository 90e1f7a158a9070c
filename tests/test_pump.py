"""Tests for the per-connection pump."""

import asyncio

import pytest

from conftest import FakeTransport, wait_until
from ledcast.core.config import NetworkConfig
from ledcast.core.exceptions import QueueOverflow
from ledcast.core.pump import ConnectionPump, PumpState


class SlowPingTransport(FakeTransport):
    """Transport whose pings never leave the socket"""

    async def ping(self):
        self.pings += 1
        await asyncio.Event().wait()


def make_pump(hub, transport, **kwargs):
    kwargs.setdefault("write_wait", 1.0)
    kwargs.setdefault("pong_wait", 10.0)
    kwargs.setdefault("ping_period", 9.0)
    return ConnectionPump(hub, transport, name="test-viewer", **kwargs)


async def stop(pump, task):
    pump.close_queue()
    await asyncio.wait_for(task, timeout=2.0)


class TestQueue:
    """Test the bounded outbound queue"""

    async def test_offer_until_full(self, hub, transport):
        """Test that a full queue raises instead of blocking"""
        pump = make_pump(hub, transport, queue_size=2)
        pump.offer(b"1")
        pump.offer(b"2")
        with pytest.raises(QueueOverflow):
            pump.offer(b"3")
        assert pump.pending == 2

    async def test_offer_after_close_is_ignored(self, hub, transport):
        """Test that a closed queue no longer accepts messages"""
        pump = make_pump(hub, transport)
        pump.close_queue()
        pump.offer(b"late")
        assert pump.queue_closed
        # Only the end marker is queued
        assert pump.pending == 1

    async def test_close_full_queue(self, hub, transport):
        """Test closing a saturated queue does not raise"""
        pump = make_pump(hub, transport, queue_size=1)
        pump.offer(b"1")
        pump.close_queue()
        assert pump.queue_closed


class TestWriter:
    """Test the writer loop"""

    async def test_coalesces_backlog(self, hub, transport):
        """Test K queued messages go out as one transmission in FIFO order"""
        pump = make_pump(hub, transport)
        for message in (b'{"n":1}', b'{"n":2}', b'{"n":3}'):
            pump.offer(message)

        task = asyncio.create_task(pump.run())
        await wait_until(lambda: transport.sent)

        assert transport.sent == [b'{"n":1}{"n":2}{"n":3}']
        assert pump.transmissions == 1
        assert pump.messages_sent == 3
        await stop(pump, task)

    async def test_single_messages_sent_separately(self, hub, transport):
        """Test messages arriving one at a time are not delayed"""
        pump = make_pump(hub, transport)
        task = asyncio.create_task(pump.run())

        pump.offer(b"a")
        await wait_until(lambda: len(transport.sent) == 1)
        pump.offer(b"b")
        await wait_until(lambda: len(transport.sent) == 2)

        assert transport.sent == [b"a", b"b"]
        await stop(pump, task)

    async def test_close_flushes_backlog(self, hub, transport):
        """Test closing the queue flushes pending messages, then closes"""
        pump = make_pump(hub, transport)
        pump.offer(b"a")
        pump.offer(b"b")
        pump.close_queue()

        await asyncio.wait_for(pump.run(), timeout=2.0)

        assert transport.sent == [b"ab"]
        assert transport.closed
        assert pump.state == PumpState.CLOSED

    async def test_write_deadline(self, hub):
        """Test a write that never completes tears the connection down"""
        transport = FakeTransport(block_send=True)
        pump = make_pump(hub, transport, write_wait=0.05)
        pump.offer(b"stuck")

        await asyncio.wait_for(pump.run(), timeout=2.0)

        assert transport.sent == []
        assert transport.closed
        assert pump.state == PumpState.CLOSED

    async def test_send_failure_closes(self, hub, transport):
        """Test a failing write ends the pump"""
        transport.fail_send = ConnectionResetError("reset by peer")
        pump = make_pump(hub, transport)
        pump.offer(b"x")

        await asyncio.wait_for(pump.run(), timeout=2.0)

        assert transport.closed
        assert pump.state == PumpState.CLOSED

    async def test_abort_interrupts_write(self, hub):
        """Test abort stops a writer blocked on a slow connection"""
        transport = FakeTransport(block_send=True)
        pump = make_pump(hub, transport, write_wait=10.0)
        pump.offer(b"stuck")
        task = asyncio.create_task(pump.run())
        await asyncio.sleep(0.05)

        pump.abort()
        await asyncio.wait_for(task, timeout=2.0)

        assert transport.closed
        assert pump.state == PumpState.CLOSED


class TestHeartbeat:
    """Test liveness pings and read deadlines"""

    async def test_pings_periodically(self, hub, transport):
        """Test pings keep going while the peer answers"""
        pump = make_pump(hub, transport, ping_period=0.05, pong_wait=0.5)
        task = asyncio.create_task(pump.run())

        await asyncio.sleep(0.3)

        assert transport.pings >= 3
        assert pump.state == PumpState.ACTIVE
        await stop(pump, task)

    async def test_pings_not_starved_by_traffic(self, hub, transport):
        """Test the ping ticker is not reset by outgoing frames"""
        pump = make_pump(hub, transport, ping_period=0.05, pong_wait=0.5)
        task = asyncio.create_task(pump.run())

        for _ in range(30):
            pump.offer(b"frame")
            await asyncio.sleep(0.01)

        assert transport.pings >= 2
        await stop(pump, task)

    async def test_missing_pong_closes(self, hub):
        """Test a silent peer is dropped after the pong wait"""
        transport = FakeTransport(answer_pings=False)
        pump = make_pump(hub, transport, ping_period=0.05, pong_wait=0.1)

        await asyncio.wait_for(pump.run(), timeout=2.0)

        assert transport.pings >= 1
        assert transport.closed
        assert pump.state == PumpState.CLOSED

    async def test_inbound_messages_keep_alive(self, hub):
        """Test any inbound message refreshes the read deadline"""
        transport = FakeTransport(answer_pings=False)
        pump = make_pump(hub, transport, ping_period=0.5, pong_wait=0.6)
        task = asyncio.create_task(pump.run())

        for _ in range(10):
            transport.feed("hello")
            await asyncio.sleep(0.1)

        assert pump.state == PumpState.ACTIVE
        await stop(pump, task)

    async def test_peer_disconnect(self, hub, transport):
        """Test the pump unregisters when the peer goes away"""
        pump = make_pump(hub, transport)
        task = asyncio.create_task(pump.run())
        await asyncio.sleep(0)
        await hub.drain()
        assert hub.is_registered(pump)

        transport.disconnect()
        await asyncio.wait_for(task, timeout=2.0)
        await hub.drain()

        assert not hub.is_registered(pump)
        assert pump.state == PumpState.CLOSED

    async def test_without_reader(self, hub):
        """Test read liveness can be disabled"""
        transport = FakeTransport(answer_pings=False)
        pump = make_pump(
            hub, transport, ping_period=0.05, pong_wait=0.1, read_liveness=False
        )
        task = asyncio.create_task(pump.run())

        await asyncio.sleep(0.3)

        assert pump.state == PumpState.ACTIVE
        await stop(pump, task)


class TestLifecycle:
    """Test registration and configuration"""

    async def test_registers_and_unregisters(self, hub, transport):
        """Test pump states across its lifetime"""
        pump = make_pump(hub, transport)
        assert pump.state == PumpState.REGISTERING

        task = asyncio.create_task(pump.run())
        await asyncio.sleep(0)
        await hub.drain()
        assert pump.state == PumpState.ACTIVE
        assert hub.is_registered(pump)

        hub.unregister(pump)
        await asyncio.wait_for(task, timeout=2.0)
        assert pump.state == PumpState.CLOSED
        assert transport.closed

    async def test_from_config(self, hub, transport):
        """Test pump settings come from the network config"""
        network = NetworkConfig(
            send_queue_size=8, write_wait_s=2.0, pong_wait_s=20.0, ping_period_s=5.0
        )
        pump = ConnectionPump.from_config(hub, transport, network, name="cfg")
        assert pump.name == "cfg"
        assert pump.write_wait == 2.0
        assert pump.pong_wait == 20.0
        assert pump.ping_period == 5.0
        for i in range(8):
            pump.offer(b"%d" % i)
        with pytest.raises(QueueOverflow):
            pump.offer(b"9")


class TestStopping:
    """Test the pump stops promptly whatever its tasks are waiting on"""

    async def test_disconnect_right_after_offer(self, hub, transport):
        """Test a peer leaving while a frame is queued ends the pump"""
        pump = make_pump(hub, transport, ping_period=0.05, pong_wait=0.5)
        pump.offer(b"frame")
        transport.disconnect()

        await asyncio.wait_for(pump.run(), timeout=1.0)
        await hub.drain()

        assert pump.state == PumpState.CLOSED
        assert transport.closed
        assert not hub.is_registered(pump)

    async def test_abort_after_first_write(self, hub):
        """Test abort ends a pump whose writer is stuck on the first frame"""
        transport = FakeTransport(block_send=True)
        pump = make_pump(hub, transport, write_wait=10.0)
        task = asyncio.create_task(pump.run())
        pump.offer(b"first")
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        pump.abort()
        await asyncio.wait_for(task, timeout=1.0)

        assert pump.state == PumpState.CLOSED
        assert transport.closed
        assert transport.sent == []

    async def test_no_pings_after_close(self, hub, transport):
        """Test the writer is gone once run() returns"""
        pump = make_pump(hub, transport, ping_period=0.02, pong_wait=0.5)
        task = asyncio.create_task(pump.run())
        await asyncio.sleep(0.05)
        transport.disconnect()
        await asyncio.wait_for(task, timeout=1.0)

        pings = transport.pings
        await asyncio.sleep(0.1)
        assert transport.pings == pings

    async def test_ping_deadline(self, hub):
        """Test a ping that cannot be written in time closes the pump"""
        transport = SlowPingTransport()
        pump = make_pump(hub, transport, write_wait=0.05, ping_period=0.05, pong_wait=1.0)

        await asyncio.wait_for(pump.run(), timeout=2.0)

        assert transport.pings == 1
        assert transport.closed
        assert pump.state == PumpState.CLOSED
