"""Core components of the emulated LED device"""

from .config import (
    ChannelOption,
    DeviceOption,
    NetworkConfig,
    ServerConfig,
    StripType,
    SystemDefaults,
)
from .device import WS2811Device
from .exceptions import (
    AlreadyInitialized,
    ChannelIndexOutOfRange,
    ClockError,
    CommunicationError,
    ConfigurationError,
    DeviceError,
    LedcastError,
    LengthExceeded,
    NotInitialized,
    PeerDisconnected,
    QueueOverflow,
    ReadDeadlineExceeded,
    TransportUpgradeFailed,
    ValidationError,
    WriteDeadlineExceeded,
)
from .frame_buffer import FrameBuffer
from .hub import BroadcastHub
from .messages import FrameMessage, FrameOption
from .pump import ConnectionPump, PumpState, Transport
from .timing import PacingController, TimeState, TimingConstraints

__all__ = [
    # Configuration
    "ChannelOption",
    "DeviceOption",
    "NetworkConfig",
    "ServerConfig",
    "StripType",
    "SystemDefaults",
    # Device
    "WS2811Device",
    "FrameBuffer",
    "FrameMessage",
    "FrameOption",
    # Timing
    "PacingController",
    "TimeState",
    "TimingConstraints",
    # Broadcasting
    "BroadcastHub",
    "ConnectionPump",
    "PumpState",
    "Transport",
    # Exceptions
    "LedcastError",
    "ValidationError",
    "ConfigurationError",
    "DeviceError",
    "AlreadyInitialized",
    "NotInitialized",
    "LengthExceeded",
    "ChannelIndexOutOfRange",
    "ClockError",
    "CommunicationError",
    "TransportUpgradeFailed",
    "WriteDeadlineExceeded",
    "ReadDeadlineExceeded",
    "QueueOverflow",
    "PeerDisconnected",
]
