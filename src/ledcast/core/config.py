from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path
from typing import Any, ClassVar, Dict, List, Optional, Union
import copy
import logging

import yaml

from .exceptions import ConfigurationError, ValidationError

logger = logging.getLogger(__name__)


@dataclass
class SystemDefaults:
    """Hardware and protocol constants for the emulated ws281x device"""

    # Hardware
    RPI_PWM_CHANNELS: ClassVar[int] = 2  # PWM channels on a Raspberry Pi
    TARGET_FREQ: ClassVar[int] = 800_000  # Usually 800kHz, can go as low as 400kHz
    MIN_FREQ: ClassVar[int] = 400_000
    BITS_PER_COLOR: ClassVar[int] = 8
    COLORS_PER_PIXEL: ClassVar[int] = 3
    RESET_TIME_S: ClassVar[float] = 0.05  # Added to the data time of each frame
    MAX_STRIP_LENGTH: ClassVar[int] = 10_000
    MAX_COLOR: ClassVar[int] = 0xFFFFFFFF

    # Default channel settings
    DEFAULT_LED_COUNT: ClassVar[int] = 16
    DEFAULT_BRIGHTNESS: ClassVar[int] = 64  # Safe value between 0 and 255
    GAMMA_TABLE_SIZE: ClassVar[int] = 256

    # Viewer connections
    SEND_QUEUE_SIZE: ClassVar[int] = 256
    WRITE_WAIT_S: ClassVar[float] = 10.0  # Time allowed to write a message
    PONG_WAIT_S: ClassVar[float] = 60.0  # Time allowed to read the next pong
    PING_PERIOD_S: ClassVar[float] = PONG_WAIT_S * 9 / 10  # Must be below PONG_WAIT_S

    # Network
    DEFAULT_HOST: ClassVar[str] = "0.0.0.0"
    DEFAULT_WS_PORT: ClassVar[int] = 8765
    DEFAULT_WS_PATH: ClassVar[str] = "/ws"
    DEFAULT_HTTP_PORT: ClassVar[int] = 8000
    MAX_MESSAGE_SIZE: ClassVar[int] = 1024  # Viewers only send control traffic


class StripType(IntEnum):
    """Strip color layouts, encoded as in the rpi_ws281x library.

    Each byte of the value is the bit shift of one color inside a 32-bit
    LED word, from the most significant byte: white, red, green, blue.
    """

    SK6812_STRIP_RGBW = 0x18100800
    SK6812_STRIP_RBGW = 0x18100008
    SK6812_STRIP_GRBW = 0x18081000
    SK6812_STRIP_GBRW = 0x18080010
    SK6812_STRIP_BRGW = 0x18001008
    SK6812_STRIP_BGRW = 0x18000810

    WS2811_STRIP_RGB = 0x00100800
    WS2811_STRIP_RBG = 0x00100008
    WS2811_STRIP_GRB = 0x00081000
    WS2811_STRIP_GBR = 0x00080010
    WS2811_STRIP_BRG = 0x00001008
    WS2811_STRIP_BGR = 0x00000810

    # Aliases
    WS2812_STRIP = 0x00081000
    SK6812_STRIP = 0x00081000
    SK6812W_STRIP = 0x18081000

    @property
    def shifts(self) -> Dict[str, int]:
        """Bit shift of each color component"""
        return {
            "w_shift": (self.value >> 24) & 0xFF,
            "r_shift": (self.value >> 16) & 0xFF,
            "g_shift": (self.value >> 8) & 0xFF,
            "b_shift": self.value & 0xFF,
        }


@dataclass
class ChannelOption:
    """Options of one LED output channel"""

    led_count: int = SystemDefaults.DEFAULT_LED_COUNT  # 0 if the channel is unused
    strip_type: int = StripType.WS2812_STRIP
    brightness: int = SystemDefaults.DEFAULT_BRIGHTNESS  # 0-255
    w_shift: int = 0
    r_shift: int = 0
    g_shift: int = 0
    b_shift: int = 0
    gamma: Optional[bytes] = None  # Gamma correction table

    def __post_init__(self):
        if self.gamma is not None and not isinstance(self.gamma, bytes):
            try:
                self.gamma = bytes(self.gamma)
            except (TypeError, ValueError) as e:
                raise ValidationError(f"Invalid gamma table: {e}")

    def validate(self) -> None:
        """Validate channel options"""
        if not 0 <= self.led_count <= SystemDefaults.MAX_STRIP_LENGTH:
            raise ValidationError(
                f"LED count must be between 0 and {SystemDefaults.MAX_STRIP_LENGTH}"
            )
        if not 0 <= self.strip_type <= 0xFFFFFFFF:
            raise ValidationError("Strip type must be an unsigned 32-bit value")
        if not 0 <= self.brightness <= 255:
            raise ValidationError("Brightness must be between 0 and 255")
        for name in ("w_shift", "r_shift", "g_shift", "b_shift"):
            if not 0 <= getattr(self, name) <= 24:
                raise ValidationError(f"{name} must be between 0 and 24")
        if (
            self.gamma is not None
            and len(self.gamma) != SystemDefaults.GAMMA_TABLE_SIZE
        ):
            raise ValidationError(
                f"Gamma table must have {SystemDefaults.GAMMA_TABLE_SIZE} entries"
            )

    def has_shifts(self) -> bool:
        """Check whether any color shift was set explicitly"""
        return any((self.w_shift, self.r_shift, self.g_shift, self.b_shift))

    def apply_strip_type(self) -> bool:
        """Derive the color shifts from the strip type.

        Unknown strip types are passed through to viewers unchanged and keep
        the shifts as configured. Returns True if the shifts were derived.
        """
        try:
            shifts = StripType(self.strip_type).shifts
        except ValueError:
            logger.debug(f"Unknown strip type {self.strip_type:#010x}, keeping shifts")
            return False
        for name, value in shifts.items():
            setattr(self, name, value)
        return True


@dataclass
class DeviceOption:
    """Options of the emulated ws281x device"""

    frequency: int = SystemDefaults.TARGET_FREQ
    render_wait_time: int = 0  # Minimum time in µs before the next render
    channels: List[ChannelOption] = field(
        default_factory=lambda: [ChannelOption()]
    )

    def validate(self) -> None:
        """Validate device options"""
        if self.frequency <= 0:
            raise ValidationError("Frequency must be positive")
        if self.frequency < SystemDefaults.MIN_FREQ:
            logger.warning(
                f"Frequency {self.frequency}Hz is below what ws281x strips accept "
                f"({SystemDefaults.MIN_FREQ}Hz)"
            )
        if self.render_wait_time < 0:
            raise ValidationError("Render wait time must not be negative")
        if not 1 <= len(self.channels) <= SystemDefaults.RPI_PWM_CHANNELS:
            raise ValidationError(
                f"Number of channels must be between 1 and {SystemDefaults.RPI_PWM_CHANNELS}"
            )
        for channel in self.channels:
            channel.validate()

    def copy(self) -> "DeviceOption":
        """Deep copy, so the caller keeps no reference into a running device"""
        return copy.deepcopy(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeviceOption":
        """Create device options from a plain dictionary"""
        data = dict(data)
        try:
            channels = [ChannelOption(**c) for c in data.pop("channels", [{}])]
            return cls(channels=channels, **data)
        except TypeError as e:
            raise ConfigurationError(f"Invalid device options: {e}")


@dataclass
class NetworkConfig:
    """Viewer and status server settings"""

    host: str = SystemDefaults.DEFAULT_HOST
    websocket_port: int = SystemDefaults.DEFAULT_WS_PORT
    websocket_path: str = SystemDefaults.DEFAULT_WS_PATH
    http_port: int = SystemDefaults.DEFAULT_HTTP_PORT
    send_queue_size: int = SystemDefaults.SEND_QUEUE_SIZE
    write_wait_s: float = SystemDefaults.WRITE_WAIT_S
    pong_wait_s: float = SystemDefaults.PONG_WAIT_S
    ping_period_s: float = SystemDefaults.PING_PERIOD_S
    read_liveness: bool = True  # Run a reader loop enforcing pong_wait_s

    def validate(self) -> None:
        """Validate network settings"""
        for name in ("websocket_port", "http_port"):
            port = getattr(self, name)
            if not 0 <= port <= 65535:
                raise ValidationError(f"{name} must be between 0 and 65535")
        if not self.websocket_path.startswith("/"):
            raise ValidationError("WebSocket path must start with '/'")
        if self.send_queue_size < 1:
            raise ValidationError("Send queue size must be at least 1")
        if self.write_wait_s <= 0 or self.pong_wait_s <= 0 or self.ping_period_s <= 0:
            raise ValidationError("Connection deadlines must be positive")
        if self.ping_period_s >= self.pong_wait_s:
            raise ValidationError("Ping period must be shorter than the pong wait")


@dataclass
class ServerConfig:
    """Main configuration"""

    device: DeviceOption = field(default_factory=DeviceOption)
    network: NetworkConfig = field(default_factory=NetworkConfig)

    def __post_init__(self):
        """Validate entire configuration"""
        try:
            self.device.validate()
            self.network.validate()
        except ValidationError as e:
            logger.error(f"Configuration validation failed: {e}")
            raise

    @classmethod
    def create_default(cls) -> "ServerConfig":
        """Create default configuration"""
        return cls()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ServerConfig":
        """Create configuration from a dictionary with device/network sections"""
        unknown = set(data) - {"device", "network"}
        if unknown:
            raise ConfigurationError(f"Unknown configuration sections: {sorted(unknown)}")
        device = DeviceOption.from_dict(data.get("device") or {})
        try:
            network = NetworkConfig(**(data.get("network") or {}))
        except TypeError as e:
            raise ConfigurationError(f"Invalid network settings: {e}")
        return cls(device=device, network=network)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "ServerConfig":
        """Load configuration from a YAML file"""
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to load configuration {path}: {e}")
        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration {path} must be a mapping")
        config = cls.from_dict(data)
        logger.info(f"Loaded configuration from {path}")
        return config
