"""Demo animations that drive the device like a real LED program would."""

import logging
import threading
import time
from typing import Callable, Dict, Optional

import numpy as np

from .core.device import WS2811Device
from .core.exceptions import LedcastError

logger = logging.getLogger(__name__)

Pattern = Callable[[float, int], np.ndarray]


def pack_colors(rgb: np.ndarray) -> np.ndarray:
    """Pack an (N, 3) uint8 RGB array into 0x00RRGGBB words"""
    rgb = rgb.astype(np.uint32)
    return (rgb[:, 0] << 16) | (rgb[:, 1] << 8) | rgb[:, 2]


def _hsv_to_rgb(h: np.ndarray, s: float, v: float) -> np.ndarray:
    """Convert HSV colors to RGB efficiently"""
    h = (h * 6.0) % 6.0
    i = h.astype(np.int32) % 6
    f = h - np.floor(h)

    p = np.full_like(h, v * (1.0 - s))
    q = v * (1.0 - s * f)
    t = v * (1.0 - s * (1.0 - f))
    vv = np.full_like(h, v)

    r = np.choose(i, [vv, q, p, p, t, vv])
    g = np.choose(i, [t, vv, vv, q, p, p])
    b = np.choose(i, [p, p, t, vv, vv, q])
    return (np.stack([r, g, b], axis=1) * 255).astype(np.uint8)


def rainbow(time_s: float, led_count: int, speed: float = 0.2, scale: float = 1.0) -> np.ndarray:
    """Moving rainbow across the strip"""
    t = (time_s * speed) % 1.0
    positions = np.linspace(0, 1, led_count, endpoint=False)
    hues = (positions * scale + t) % 1.0
    return pack_colors(_hsv_to_rgb(hues, 1.0, 1.0))


def chase(
    time_s: float,
    led_count: int,
    speed: float = 0.5,
    count: int = 3,
    width: float = 0.2,
    color: tuple = (255, 0, 0),
) -> np.ndarray:
    """Dots chasing each other along the strip"""
    t = (time_s * speed) % 1.0
    pos = (np.arange(led_count) / max(led_count, 1) + t) % 1.0
    segments = np.arange(count) / count
    # Circular distance of every LED to every dot
    dist = np.abs(pos[:, np.newaxis] - segments[np.newaxis, :])
    dist = np.minimum(dist, 1.0 - dist).min(axis=1)
    brightness = np.clip(1.0 - dist / (width / 2), 0.0, 1.0)
    rgb = brightness[:, np.newaxis] * np.asarray(color, dtype=np.float64)
    return pack_colors(rgb.astype(np.uint8))


PATTERNS: Dict[str, Pattern] = {
    "rainbow": rainbow,
    "chase": chase,
}


class DemoProducer:
    """Renders a pattern on channel 0 from a background thread"""

    def __init__(self, device: WS2811Device, pattern: str = "rainbow", fps: float = 30.0):
        if pattern not in PATTERNS:
            raise ValueError(f"Unknown pattern: {pattern}")
        self.device = device
        self.pattern = PATTERNS[pattern]
        self.pattern_name = pattern
        self.frame_time = 1.0 / fps if fps > 0 else 0.0
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread is not None:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="demo-producer", daemon=True)
        self._thread.start()
        logger.info(f"Demo producer started with pattern '{self.pattern_name}'")

    def stop(self) -> None:
        if self._thread is None:
            return
        self._stop.set()
        self._thread.join(timeout=2.0)
        self._thread = None
        logger.info("Demo producer stopped")

    def _run(self) -> None:
        led_count = self.device.option.channels[0].led_count
        start = time.monotonic()
        while not self._stop.is_set():
            try:
                frame = self.pattern(time.monotonic() - start, led_count)
                self.device.set_channel_sync(0, frame)
                self.device.publish()
            except LedcastError as e:
                logger.error(f"Demo producer stopped: {e}")
                return
            if self.frame_time:
                self._stop.wait(self.frame_time)
