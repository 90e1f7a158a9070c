"""Emulated ws281x device.

Instead of driving RGB LEDs, the device sends the array of numbers
representing the LED colors to WebSocket viewers. It is meant to back web
simulators of ws2811 strips.
"""

import logging
import time
from typing import Any, Callable, Dict, Optional, Sequence

import numpy as np

from .config import DeviceOption
from .exceptions import AlreadyInitialized, NotInitialized
from .frame_buffer import FrameBuffer
from .hub import BroadcastHub
from .messages import FrameMessage
from .timing import PacingController, TimingConstraints

logger = logging.getLogger(__name__)


class WS2811Device:
    """Producer-facing facade over frame buffer, pacing and broadcast hub.

    The options are deep-copied at construction, so changing the caller's
    ``DeviceOption`` afterwards has no effect on the device.

    Only ``set_channel_sync`` and ``publish`` are ordered with respect to
    each other. ``set_channel`` writes immediately and may land while a
    frame is being serialized; viewers are best-effort and accept that.
    """

    def __init__(
        self,
        option: Optional[DeviceOption] = None,
        hub: Optional[BroadcastHub] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.option = (option or DeviceOption()).copy()
        self.option.validate()
        self.hub = hub
        self.buffer = FrameBuffer()
        self._clock = clock
        self._sleep = sleep
        self.pacing = self._make_pacing()
        self.initialized = False

    def _make_pacing(self) -> PacingController:
        constraints = TimingConstraints.from_option(self.option)
        return PacingController(constraints, clock=self._clock, sleep=self._sleep)

    def initialize(self, option: Optional[DeviceOption] = None) -> None:
        """Allocate the LED buffers. Must be called once before anything else."""
        if self.initialized:
            raise AlreadyInitialized("Device already initialized")
        if option is not None:
            option = option.copy()
            option.validate()
            self.option = option
            self.pacing = self._make_pacing()

        for channel in self.option.channels:
            if not channel.has_shifts():
                channel.apply_strip_type()
        self.buffer.initialize(self.option.channels)
        self.pacing.time_state.reset()
        self.initialized = True
        logger.info(
            f"Device initialized: {len(self.option.channels)} channel(s), "
            f"{self.option.frequency}Hz, min frame interval "
            f"{self.pacing.min_interval * 1000:.3f}ms"
        )

    def shutdown(self) -> None:
        """Shut the device down and free the LED buffers"""
        if not self.initialized:
            return
        self.initialized = False
        self.buffer.release()
        logger.info("Device shut down")

    def wait(self) -> None:
        """Block until the previous frame has finished rendering"""
        self.pacing.wait()

    def read_channel(self, channel: int) -> np.ndarray:
        """Live LED array of a channel.

        The array is shared with the device; do not keep it past the current
        frame.
        """
        self._check_initialized()
        return self.buffer.read(channel)

    def set_channel(self, channel: int, values: Sequence[int]) -> None:
        """Write LED colors without waiting for the current frame"""
        self._check_initialized()
        self.buffer.set_channel(channel, values)

    def set_channel_sync(self, channel: int, values: Sequence[int]) -> None:
        """Wait for the current frame to finish, then write LED colors"""
        self._check_initialized()
        self.pacing.wait()
        self.buffer.set_channel(channel, values)

    async def set_channel_sync_async(self, channel: int, values: Sequence[int]) -> None:
        self._check_initialized()
        await self.pacing.wait_async()
        self.buffer.set_channel(channel, values)

    def publish(self) -> None:
        """Send a complete frame of channel 0 to the viewers"""
        self._check_initialized()
        self.pacing.wait()
        self._hand_off()

    async def publish_async(self) -> None:
        self._check_initialized()
        await self.pacing.wait_async()
        self._hand_off()

    def frame_message(self) -> FrameMessage:
        return FrameMessage.build(self.option.channels[0], self.buffer.read(0))

    def _hand_off(self) -> None:
        payload = self.frame_message().encode()
        if self.hub is not None:
            self.hub.broadcast(payload)
        else:
            logger.debug("No hub attached, frame discarded")
        # The render window starts once the frame is handed over, not delivered
        self.pacing.mark_published()

    def _check_initialized(self) -> None:
        if not self.initialized:
            raise NotInitialized("Device is not initialized")

    def get_state(self) -> Dict[str, Any]:
        """Get current device state"""
        constraints = self.pacing.constraints
        return {
            "initialized": self.initialized,
            "frequency_hz": self.option.frequency,
            "data_time_ms": constraints.data_time_s * 1000,
            "min_frame_interval_ms": constraints.min_interval_s * 1000,
            "max_fps": constraints.max_fps,
            "channels": [
                {
                    "index": index,
                    "led_count": channel.led_count,
                    "strip_type": int(channel.strip_type),
                    "brightness": channel.brightness,
                }
                for index, channel in enumerate(self.option.channels)
            ],
            "timing": self.pacing.time_state.get_metrics(),
        }
