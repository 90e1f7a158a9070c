"""Frame pacing for the emulated LED hardware."""

import asyncio
import math
import statistics
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, Optional

from .config import DeviceOption, SystemDefaults
from .exceptions import ClockError


@dataclass
class TimingConstraints:
    """Hardware timing constraints"""

    frequency_hz: int
    led_count: int
    data_time_s: float
    min_interval_s: float

    @classmethod
    def from_option(cls, option: DeviceOption) -> "TimingConstraints":
        """Compute timing for channel 0 of a device.

        The time needed to render a frame is
        (8 * 3 * led_count + 0.05) / frequency: 8 bits per color and 3
        colors per pixel, plus the reset time.
        """
        led_count = option.channels[0].led_count
        bits = SystemDefaults.BITS_PER_COLOR * SystemDefaults.COLORS_PER_PIXEL * led_count
        data_time_s = bits / option.frequency
        min_interval_s = (bits + SystemDefaults.RESET_TIME_S) / option.frequency
        if option.render_wait_time:
            min_interval_s = max(min_interval_s, option.render_wait_time / 1_000_000)
        return cls(
            frequency_hz=option.frequency,
            led_count=led_count,
            data_time_s=data_time_s,
            min_interval_s=min_interval_s,
        )

    @property
    def max_fps(self) -> float:
        return 1.0 / self.min_interval_s


@dataclass
class TimeState:
    """Publish statistics over the most recent frame intervals"""

    frame_count: int = 0
    last_publish: Optional[float] = None
    intervals_ms: Deque[float] = field(default_factory=lambda: deque(maxlen=60))

    def reset(self) -> None:
        """Forget every published frame"""
        self.frame_count = 0
        self.last_publish = None
        self.intervals_ms.clear()

    def update(self, now: float) -> None:
        """Record a frame published at ``now``"""
        if self.last_publish is not None:
            self.intervals_ms.append((now - self.last_publish) * 1000)
        self.last_publish = now
        self.frame_count += 1

    def get_metrics(self) -> Dict[str, float]:
        """Interval statistics; zeros until two frames were published"""
        intervals = self.intervals_ms
        mean = statistics.fmean(intervals) if intervals else 0.0
        return {
            "frame_count": self.frame_count,
            "mean_interval_ms": mean,
            "min_interval_ms": min(intervals, default=0.0),
            "max_interval_ms": max(intervals, default=0.0),
            "fps": 1000 / mean if mean > 0 else 0.0,
        }


class PacingController:
    """Keeps frames at least one hardware render time apart.

    Pacing is local to the producer: it emulates the time the data line is
    busy and never looks at the viewers.
    """

    def __init__(
        self,
        constraints: TimingConstraints,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.constraints = constraints
        self._clock = clock
        self._sleep = sleep
        self.last_publish = -math.inf
        self.time_state = TimeState()

    @property
    def min_interval(self) -> float:
        return self.constraints.min_interval_s

    def now(self) -> float:
        value = self._clock()
        if not math.isfinite(value):
            raise ClockError(f"Clock returned {value}")
        return value

    def remaining(self) -> float:
        """Seconds left before the next frame may go out, <= 0 if ready"""
        return self.last_publish + self.min_interval - self.now()

    def wait(self) -> None:
        """Block the calling thread until the render window is over"""
        remaining = self.remaining()
        if remaining > 0:
            self._sleep(remaining)

    async def wait_async(self) -> None:
        """Suspend the calling task until the render window is over"""
        remaining = self.remaining()
        if remaining > 0:
            await asyncio.sleep(remaining)

    def mark_published(self) -> None:
        """Start a new render window now"""
        now = self.now()
        self.last_publish = now
        self.time_state.update(now)
