"""Runs the broadcast hub, the viewer endpoint and the status API together."""

import asyncio
import logging
from typing import Optional

import uvicorn

from .api.app import init_app
from .api.websocket import ViewerServer
from .core.config import ServerConfig
from .core.device import WS2811Device
from .core.hub import BroadcastHub
from .demo import DemoProducer

logger = logging.getLogger(__name__)


class SimulatorServer:
    """Owns one device, its hub and the network endpoints"""

    def __init__(
        self,
        config: ServerConfig,
        demo: Optional[str] = None,
        demo_fps: float = 30.0,
        serve_http: bool = True,
    ):
        self.config = config
        self.hub = BroadcastHub()
        self.device = WS2811Device(config.device, self.hub)
        self.viewers = ViewerServer(self.hub, config.network)
        self.producer = (
            DemoProducer(self.device, demo, demo_fps) if demo else None
        )
        self.serve_http = serve_http
        self._http: Optional[uvicorn.Server] = None

    async def start(self) -> None:
        """Start hub and viewer endpoint, initialize the device"""
        await self.hub.start()
        await self.viewers.start()
        self.device.initialize()
        if self.producer is not None:
            self.producer.start()

    async def stop(self) -> None:
        """Stop producer, close viewers, shut the device down"""
        if self.producer is not None:
            await asyncio.to_thread(self.producer.stop)
        await self.hub.shutdown()
        await self.viewers.stop()
        self.device.shutdown()

    async def run(self) -> None:
        """Serve until cancelled or until the status API exits"""
        await self.start()
        try:
            if self.serve_http:
                app = init_app(self.device, self.hub, self.viewers.url)
                config = uvicorn.Config(
                    app,
                    host=self.config.network.host,
                    port=self.config.network.http_port,
                    log_level=logging.getLevelName(logging.getLogger().level).lower(),
                )
                self._http = uvicorn.Server(config)
                logger.info(f"Status API on port {self.config.network.http_port}")
                await self._http.serve()
            else:
                await asyncio.Future()
        finally:
            await self.stop()
