"""Broadcast hub: single owner of the set of live viewer connections."""

import asyncio
import logging
from enum import Enum
from typing import Any, Dict, Optional, Set, Tuple

from .exceptions import QueueOverflow
from .pump import ConnectionPump

logger = logging.getLogger(__name__)


class HubEvent(Enum):
    """Events handled by the coordination loop"""

    REGISTER = "register"
    UNREGISTER = "unregister"
    BROADCAST = "broadcast"
    SHUTDOWN = "shutdown"


class BroadcastHub:
    """Fans frames out to every registered connection pump.

    Registration, unregistration and broadcasts are posted as events and
    applied one at a time by a single coordination task, so the registry is
    never mutated while it is iterated. Posting is safe from any thread and
    never blocks.
    """

    def __init__(self):
        self._pumps: Set[ConnectionPump] = set()
        self._events: asyncio.Queue = asyncio.Queue()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._task: Optional[asyncio.Task] = None
        self._running = False

        self.frames_broadcast = 0
        self.dropped_pumps = 0

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def connection_count(self) -> int:
        return len(self._pumps)

    def is_registered(self, pump: ConnectionPump) -> bool:
        return pump in self._pumps

    async def start(self) -> None:
        """Start the coordination loop on the running event loop"""
        if self._running:
            return
        self._loop = asyncio.get_running_loop()
        self._running = True
        self._task = asyncio.create_task(self._run(), name="broadcast-hub")
        logger.info("Broadcast hub started")

    async def shutdown(self) -> None:
        """Close every pump queue and stop the coordination loop"""
        if not self._running:
            return
        self._post(HubEvent.SHUTDOWN)
        self._running = False
        if self._task is not None:
            await self._task
            self._task = None
        logger.info("Broadcast hub stopped")

    async def drain(self) -> None:
        """Wait until every event posted so far has been applied"""
        await self._events.join()

    def register(self, pump: ConnectionPump) -> None:
        self._post(HubEvent.REGISTER, pump)

    def unregister(self, pump: ConnectionPump) -> None:
        self._post(HubEvent.UNREGISTER, pump)

    def broadcast(self, message: bytes) -> None:
        """Hand a message to every viewer, fire-and-forget"""
        self._post(HubEvent.BROADCAST, message)

    def get_state(self) -> Dict[str, Any]:
        return {
            "running": self._running,
            "connections": self.connection_count,
            "frames_broadcast": self.frames_broadcast,
            "dropped_connections": self.dropped_pumps,
        }

    def _post(self, kind: HubEvent, payload: Any = None) -> None:
        loop = self._loop
        if not self._running or loop is None or loop.is_closed():
            logger.debug(f"Hub not running, dropping {kind.value} event")
            return

        event: Tuple[HubEvent, Any] = (kind, payload)
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is loop:
            self._events.put_nowait(event)
            return
        try:
            loop.call_soon_threadsafe(self._events.put_nowait, event)
        except RuntimeError:
            # Loop closed between the check and the call
            logger.debug(f"Event loop closed, dropping {kind.value} event")

    async def _run(self) -> None:
        while True:
            kind, payload = await self._events.get()
            try:
                if kind is HubEvent.REGISTER:
                    self._add(payload)
                elif kind is HubEvent.UNREGISTER:
                    self._remove(payload)
                elif kind is HubEvent.BROADCAST:
                    self._fan_out(payload)
                elif kind is HubEvent.SHUTDOWN:
                    self._close_all()
                    return
            except Exception as e:
                logger.error(f"Hub failed to handle {kind.value} event: {e!r}")
            finally:
                self._events.task_done()

    def _add(self, pump: ConnectionPump) -> None:
        self._pumps.add(pump)
        logger.info(f"Registered {pump.name}. Active connections: {len(self._pumps)}")

    def _remove(self, pump: ConnectionPump) -> None:
        if pump not in self._pumps:
            return
        self._pumps.discard(pump)
        pump.close_queue()
        logger.info(f"Unregistered {pump.name}. Active connections: {len(self._pumps)}")

    def _fan_out(self, message: bytes) -> None:
        self.frames_broadcast += 1
        for pump in list(self._pumps):
            try:
                pump.offer(message)
            except QueueOverflow as e:
                logger.warning(f"Dropping unresponsive viewer: {e}")
                self._pumps.discard(pump)
                self.dropped_pumps += 1
                pump.abort()

    def _close_all(self) -> None:
        # Pumps registered after the shutdown request are closed too
        while not self._events.empty():
            kind, payload = self._events.get_nowait()
            if kind is HubEvent.REGISTER:
                self._pumps.add(payload)
            self._events.task_done()

        for pump in self._pumps:
            pump.close_queue()
        logger.info(f"Closed {len(self._pumps)} viewer connections")
        self._pumps.clear()
