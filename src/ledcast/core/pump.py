"""One pump per viewer connection: serialized writes, backlog coalescing and
liveness heartbeat."""

import asyncio
import logging
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, List, Optional, Protocol

from .config import NetworkConfig, SystemDefaults
from .exceptions import (
    CommunicationError,
    PeerDisconnected,
    QueueOverflow,
    ReadDeadlineExceeded,
    WriteDeadlineExceeded,
)

if TYPE_CHECKING:
    from .hub import BroadcastHub

logger = logging.getLogger(__name__)

# Marks the end of the outbound queue
_CLOSED = object()


class _Stopped(Exception):
    """Raised inside the pump tasks once the pump is stopping"""


class Transport(Protocol):
    """Duplex message channel of an upgraded viewer connection"""

    async def send(self, data: bytes) -> None:
        """Send one message"""

    async def ping(self) -> Awaitable[Any]:
        """Send a ping, return an awaitable resolved by the matching pong"""

    async def recv(self) -> Any:
        """Wait for the next inbound message"""

    async def close(self) -> None:
        """Run the close handshake and release the connection"""


class PumpState(Enum):
    """Connection pump states"""

    REGISTERING = "registering"
    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"


class ConnectionPump:
    """Middleman between one viewer connection and the broadcast hub.

    All writes to the connection happen in the writer task, so there is at
    most one writer at any time. The hub feeds the bounded outbound queue
    without ever waiting on it. Writer and reader are stopped through an
    event raced against each blocking call, not by cancelling their tasks.
    """

    def __init__(
        self,
        hub: "BroadcastHub",
        transport: Transport,
        name: Optional[str] = None,
        queue_size: int = SystemDefaults.SEND_QUEUE_SIZE,
        write_wait: float = SystemDefaults.WRITE_WAIT_S,
        pong_wait: float = SystemDefaults.PONG_WAIT_S,
        ping_period: float = SystemDefaults.PING_PERIOD_S,
        read_liveness: bool = True,
    ):
        self.hub = hub
        self.transport = transport
        self.name = name or f"viewer-{id(self):x}"
        self.write_wait = write_wait
        self.pong_wait = pong_wait
        self.ping_period = ping_period
        self.read_liveness = read_liveness

        self.state = PumpState.REGISTERING
        self.messages_sent = 0
        self.transmissions = 0
        self.pings_sent = 0

        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._queue_closed = False
        self._transport_closed = False
        self._stopping = asyncio.Event()
        self._writer: Optional[asyncio.Task] = None
        self._reader: Optional[asyncio.Task] = None
        self._last_seen = 0.0

    @classmethod
    def from_config(
        cls,
        hub: "BroadcastHub",
        transport: Transport,
        network: NetworkConfig,
        name: Optional[str] = None,
    ) -> "ConnectionPump":
        return cls(
            hub,
            transport,
            name=name,
            queue_size=network.send_queue_size,
            write_wait=network.write_wait_s,
            pong_wait=network.pong_wait_s,
            ping_period=network.ping_period_s,
            read_liveness=network.read_liveness,
        )

    @property
    def pending(self) -> int:
        """Number of queued outbound messages"""
        return self._queue.qsize()

    @property
    def queue_closed(self) -> bool:
        return self._queue_closed

    def offer(self, message: bytes) -> None:
        """Queue a message without waiting. Raises QueueOverflow when full."""
        if self._queue_closed:
            return
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            raise QueueOverflow(
                f"{self.name}: outbound queue full ({self._queue.maxsize} messages)"
            )

    def close_queue(self) -> None:
        """Stop accepting messages; the writer flushes the backlog and closes"""
        if self._queue_closed:
            return
        self._queue_closed = True
        try:
            self._queue.put_nowait(_CLOSED)
        except asyncio.QueueFull:
            # The writer notices the flag once the backlog is drained
            pass

    def abort(self) -> None:
        """Close the queue and stop writing at once"""
        self.close_queue()
        self._stopping.set()

    async def run(self) -> None:
        """Register with the hub and pump until the connection fails or closes"""
        loop = asyncio.get_running_loop()
        self._last_seen = loop.time()
        self.hub.register(self)
        self.state = PumpState.ACTIVE
        logger.info(f"{self.name} connected")

        self._writer = asyncio.create_task(self._write_loop(), name=f"{self.name}-writer")
        tasks: List[asyncio.Task] = [self._writer]
        if self.read_liveness:
            self._reader = asyncio.create_task(self._read_loop(), name=f"{self.name}-reader")
            tasks.append(self._reader)

        try:
            await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        finally:
            self.state = PumpState.CLOSING
            self._stopping.set()
            self.hub.unregister(self)
            await self._close_transport()
            await self._finish(tasks)
            self.state = PumpState.CLOSED
            logger.info(
                f"{self.name} disconnected after {self.messages_sent} messages "
                f"in {self.transmissions} writes"
            )

    async def _finish(self, tasks: List[asyncio.Task]) -> None:
        """Wait for writer and reader to return, within the write deadline"""
        done, pending = await asyncio.wait(tasks, timeout=self.write_wait)
        for task in pending:
            logger.warning(f"{self.name}: {task.get_name()} did not stop, cancelling")
            task.cancel()
        for task in done:
            if task.cancelled():
                continue
            error = task.exception()
            if isinstance(error, PeerDisconnected):
                logger.info(f"{self.name}: {error}")
            elif isinstance(error, CommunicationError):
                logger.warning(f"{self.name}: {error}")
            elif error is not None:
                logger.error(f"{self.name}: unexpected error: {error!r}")

    async def _write_loop(self) -> None:
        loop = asyncio.get_running_loop()
        next_ping = loop.time() + self.ping_period
        try:
            while not self._stopping.is_set():
                now = loop.time()
                if now >= next_ping:
                    await self._ping()
                    next_ping = now + self.ping_period
                    continue

                message = await self._next_message(next_ping - now)
                if message is None:
                    continue
                if message is _CLOSED:
                    logger.debug(f"{self.name}: hub closed the queue")
                    break
                if await self._send(message):
                    break
        except _Stopped:
            logger.debug(f"{self.name}: writer stopped")
            return
        await self._close_transport()

    async def _next_message(self, timeout: float) -> Any:
        """Next queued message, _CLOSED at the end, None if the timeout passed"""
        if not self._queue.empty():
            return self._queue.get_nowait()
        if self._queue_closed:
            return _CLOSED
        try:
            return await self._until(self._queue.get(), timeout)
        except asyncio.TimeoutError:
            return None

    async def _send(self, message: bytes) -> bool:
        """Write a message plus everything queued behind it as one unit.

        Returns True if the end-of-queue marker was among the drained messages.
        """
        parts = [message]
        closed = False
        for _ in range(self._queue.qsize()):
            queued = self._queue.get_nowait()
            if queued is _CLOSED:
                closed = True
                break
            parts.append(queued)

        await self._with_deadline(self.transport.send(b"".join(parts)), "message")
        self.messages_sent += len(parts)
        self.transmissions += 1
        if len(parts) > 1:
            logger.debug(f"{self.name}: coalesced {len(parts)} messages")
        return closed

    async def _ping(self) -> None:
        pong_waiter = await self._with_deadline(self.transport.ping(), "ping")
        self.pings_sent += 1
        asyncio.ensure_future(pong_waiter).add_done_callback(self._on_pong)

    def _on_pong(self, future: asyncio.Future) -> None:
        if future.cancelled() or future.exception() is not None:
            return
        self._last_seen = asyncio.get_running_loop().time()

    async def _read_loop(self) -> None:
        loop = asyncio.get_running_loop()
        try:
            while not self._stopping.is_set():
                timeout = self._last_seen + self.pong_wait - loop.time()
                if timeout <= 0:
                    raise ReadDeadlineExceeded(
                        f"{self.name}: no response within {self.pong_wait}s"
                    )
                try:
                    await self._until(self.transport.recv(), timeout)
                except asyncio.TimeoutError:
                    # A pong may have moved the deadline meanwhile
                    continue
                self._last_seen = loop.time()
        except _Stopped:
            return

    async def _with_deadline(self, aw: Awaitable[Any], what: str) -> Any:
        try:
            return await self._until(aw, self.write_wait)
        except asyncio.TimeoutError:
            raise WriteDeadlineExceeded(
                f"{self.name}: {what} not written within {self.write_wait}s"
            )

    async def _until(self, aw: Awaitable[Any], timeout: float) -> Any:
        """Await ``aw`` until it completes, ``timeout`` passes or the pump stops.

        Raises asyncio.TimeoutError on timeout and _Stopped once the pump is
        stopping. A result that arrived in time always wins.
        """
        if self._stopping.is_set():
            if asyncio.iscoroutine(aw):
                aw.close()
            raise _Stopped()
        task = asyncio.ensure_future(aw)
        stop = asyncio.ensure_future(self._stopping.wait())
        try:
            await asyncio.wait(
                {task, stop}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            stop.cancel()
            if not task.done():
                task.cancel()
        if task.done() and not task.cancelled():
            return task.result()
        if self._stopping.is_set():
            raise _Stopped()
        raise asyncio.TimeoutError()

    async def _close_transport(self) -> None:
        if self._transport_closed:
            return
        self._transport_closed = True
        try:
            await asyncio.wait_for(self.transport.close(), self.write_wait)
        except Exception as e:
            logger.debug(f"{self.name}: close notification failed: {e!r}")
