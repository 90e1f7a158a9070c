"""Per-channel LED color storage."""

import logging
from typing import List, Optional, Sequence

import numpy as np

from .config import ChannelOption, SystemDefaults
from .exceptions import (
    AlreadyInitialized,
    ChannelIndexOutOfRange,
    LengthExceeded,
    NotInitialized,
    ValidationError,
)

logger = logging.getLogger(__name__)


class FrameBuffer:
    """Current color of every LED, one uint32 array per channel.

    Colors are packed 32-bit words laid out according to the channel's
    shifts. The buffer is owned by the producer; ``read`` hands out the live
    array without copying.
    """

    def __init__(self):
        self._channels: Optional[List[np.ndarray]] = None

    @property
    def initialized(self) -> bool:
        return self._channels is not None

    @property
    def channel_count(self) -> int:
        return len(self._channels) if self._channels is not None else 0

    def initialize(self, channels: Sequence[ChannelOption]) -> None:
        """Allocate storage sized to each channel's LED count"""
        if self._channels is not None:
            raise AlreadyInitialized("Frame buffer already initialized")
        self._channels = [
            np.zeros(channel.led_count, dtype=np.uint32) for channel in channels
        ]
        logger.debug(
            f"Frame buffer allocated: {[len(c) for c in self._channels]} LEDs"
        )

    def release(self) -> None:
        """Drop all channel storage"""
        self._channels = None

    def capacity(self, channel: int) -> int:
        return len(self._get(channel))

    def read(self, channel: int) -> np.ndarray:
        """Return the live backing array of a channel"""
        return self._get(channel)

    def set_channel(self, channel: int, values: Sequence[int]) -> None:
        """Overwrite the first len(values) LEDs of a channel.

        LEDs past the end of ``values`` keep their previous color.
        """
        leds = self._get(channel)
        if len(values) > len(leds):
            raise LengthExceeded(
                f"Too many LEDs: {len(values)} values for channel {channel} "
                f"of {len(leds)} LEDs"
            )
        colors = self._to_colors(values)
        leds[: len(colors)] = colors

    def _get(self, channel: int) -> np.ndarray:
        if self._channels is None:
            raise NotInitialized("Frame buffer is not initialized")
        if not 0 <= channel < len(self._channels):
            raise ChannelIndexOutOfRange(
                f"Channel {channel} out of range (0-{len(self._channels) - 1})"
            )
        return self._channels[channel]

    @staticmethod
    def _to_colors(values: Sequence[int]) -> np.ndarray:
        try:
            colors = np.asarray(values)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"LED values must be integers: {e}")
        if colors.size == 0:
            colors = colors.astype(np.int64)
        elif not np.issubdtype(colors.dtype, np.integer):
            raise ValidationError(f"LED values must be integers, got {colors.dtype}")
        if colors.ndim != 1:
            raise ValidationError(f"Expected a flat list of colors, got shape {colors.shape}")
        if colors.size and (colors.min() < 0 or colors.max() > SystemDefaults.MAX_COLOR):
            raise ValidationError("LED values must be unsigned 32-bit colors")
        return colors.astype(np.uint32)
