"""Tests for running the simulator server."""

import asyncio
import json
import time

import pytest
from websockets.asyncio.client import connect

from conftest import wait_until
from ledcast.core.config import NetworkConfig, ServerConfig
from ledcast.server import SimulatorServer


@pytest.fixture
def config():
    """Server bound to a free loopback port"""
    return ServerConfig(network=NetworkConfig(host="127.0.0.1", websocket_port=0))


class TestSimulatorServer:
    """Test server startup and shutdown"""

    async def test_viewer_receives_demo_frames(self, config):
        """Test a viewer gets frames rendered by the demo producer"""
        server = SimulatorServer(config, demo="rainbow", demo_fps=60, serve_http=False)
        await server.start()
        try:
            async with connect(server.viewers.url) as ws:
                message = await asyncio.wait_for(ws.recv(), timeout=2.0)
            frame = json.loads(message)
            assert frame["option"]["LedCount"] == 16
            assert any(frame["leds"])
        finally:
            await server.stop()

        assert not server.hub.is_running
        assert not server.device.initialized

    async def test_stop_keeps_loop_running(self, config):
        """Test waiting for the producer thread does not block other tasks"""
        server = SimulatorServer(config, demo="chase", demo_fps=60, serve_http=False)
        await server.start()

        producer_stop = server.producer.stop

        def slow_stop():
            time.sleep(0.2)
            producer_stop()

        server.producer.stop = slow_stop

        ticks = 0

        async def ticker():
            nonlocal ticks
            while True:
                ticks += 1
                await asyncio.sleep(0.01)

        task = asyncio.create_task(ticker())
        try:
            await server.stop()
        finally:
            task.cancel()

        assert ticks >= 5
        assert server.producer._thread is None

    async def test_run_until_cancelled(self, config):
        """Test cancelling run() shuts everything down"""
        server = SimulatorServer(config, serve_http=False)
        task = asyncio.create_task(server.run())
        await wait_until(lambda: server.device.initialized)
        assert server.hub.is_running

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert not server.hub.is_running
        assert not server.device.initialized
