import asyncio
import logging
from http import HTTPStatus
from typing import Any, Awaitable, Optional
from urllib.parse import urlsplit

from websockets.asyncio.server import Server, ServerConnection, serve
from websockets.exceptions import ConnectionClosed
from websockets.http11 import Request, Response

from ..core.config import NetworkConfig, SystemDefaults
from ..core.exceptions import PeerDisconnected, TransportUpgradeFailed
from ..core.hub import BroadcastHub
from ..core.pump import ConnectionPump

logger = logging.getLogger(__name__)


class WebsocketsTransport:
    """Transport over a websockets server connection, frames go out as text"""

    def __init__(self, connection: ServerConnection):
        self.connection = connection

    @property
    def remote(self) -> str:
        address = self.connection.remote_address
        if not address:
            return "unknown"
        return f"{address[0]}:{address[1]}"

    async def send(self, data: bytes) -> None:
        try:
            await self.connection.send(data.decode("utf-8"))
        except ConnectionClosed as e:
            raise PeerDisconnected(f"connection closed: {e}")

    async def ping(self) -> Awaitable[Any]:
        try:
            return await self.connection.ping()
        except ConnectionClosed as e:
            raise PeerDisconnected(f"connection closed: {e}")

    async def recv(self) -> Any:
        try:
            return await self.connection.recv()
        except ConnectionClosed as e:
            raise PeerDisconnected(f"connection closed: {e}")

    async def close(self) -> None:
        await self.connection.close()


class ViewerServer:
    """WebSocket endpoint that browser simulators connect to"""

    def __init__(self, hub: BroadcastHub, network: Optional[NetworkConfig] = None):
        self.hub = hub
        self.network = network or NetworkConfig()
        self._server: Optional[Server] = None

    @property
    def port(self) -> int:
        """Port actually bound, useful when configured with port 0"""
        if self._server is None:
            return self.network.websocket_port
        return self._server.sockets[0].getsockname()[1]

    @property
    def url(self) -> str:
        host = self.network.host
        if host in ("0.0.0.0", ""):
            host = "localhost"
        return f"ws://{host}:{self.port}{self.network.websocket_path}"

    async def start(self) -> None:
        if self._server is not None:
            return
        # Keepalive is done by the connection pumps
        self._server = await serve(
            self._handle,
            self.network.host,
            self.network.websocket_port,
            ping_interval=None,
            max_size=SystemDefaults.MAX_MESSAGE_SIZE,
            process_request=self._process_request,
        )
        logger.info(f"Viewer endpoint: {self.url}")

    async def stop(self) -> None:
        if self._server is None:
            return
        self._server.close()
        try:
            await asyncio.wait_for(self._server.wait_closed(), self.network.write_wait_s)
        except asyncio.TimeoutError:
            logger.warning("Viewer connections did not close in time")
        self._server = None
        logger.info("Viewer endpoint closed")

    def _process_request(
        self, connection: ServerConnection, request: Request
    ) -> Optional[Response]:
        """Refuse the handshake for requests this endpoint does not serve"""
        try:
            self._accept(request)
        except TransportUpgradeFailed as e:
            remote = WebsocketsTransport(connection).remote
            logger.error(f"Can't upgrade connection from {remote}: {e}")
            return connection.respond(e.status, f"{e}\n")
        return None

    def _accept(self, request: Request) -> None:
        path = urlsplit(request.path).path
        if path != self.network.websocket_path:
            raise TransportUpgradeFailed(
                f"unknown endpoint {path}", HTTPStatus.NOT_FOUND
            )
        if not self.hub.is_running:
            raise TransportUpgradeFailed(
                "broadcast hub is not running", HTTPStatus.SERVICE_UNAVAILABLE
            )

    async def _handle(self, connection: ServerConnection) -> None:
        transport = WebsocketsTransport(connection)
        if not self.hub.is_running:
            # Hub stopped between handshake and handler
            await connection.close(code=1001, reason="server shutting down")
            return

        pump = ConnectionPump.from_config(
            self.hub, transport, self.network, name=f"viewer {transport.remote}"
        )
        await pump.run()
