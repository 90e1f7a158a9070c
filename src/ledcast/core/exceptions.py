"""Exceptions for the ledcast system."""


class LedcastError(Exception):
    """Base exception for all ledcast errors."""

    pass


class ValidationError(LedcastError):
    """Input validation error."""

    pass


class ConfigurationError(LedcastError):
    """Configuration error."""

    pass


class DeviceError(LedcastError):
    """Error raised by the emulated LED device."""

    pass


class AlreadyInitialized(DeviceError):
    """Device or frame buffer initialized twice."""

    pass


class NotInitialized(DeviceError):
    """Device used before initialize() or after shutdown()."""

    pass


class LengthExceeded(DeviceError):
    """More LED values written than the channel can hold."""

    pass


class ChannelIndexOutOfRange(DeviceError):
    """Channel index does not name a configured channel."""

    pass


class ClockError(DeviceError):
    """Monotonic clock returned an unusable value. Fatal for the device."""

    pass


class CommunicationError(LedcastError):
    """Communication or network error, local to one viewer connection."""

    pass


class TransportUpgradeFailed(CommunicationError):
    """Incoming connection could not become a viewer session.

    ``status`` is the HTTP status the handshake is refused with.
    """

    def __init__(self, message: str, status: int = 400):
        super().__init__(message)
        self.status = status


class WriteDeadlineExceeded(CommunicationError):
    """A frame or ping write did not complete within the write deadline."""

    pass


class ReadDeadlineExceeded(CommunicationError):
    """Peer stayed silent for longer than the pong deadline."""

    pass


class QueueOverflow(CommunicationError):
    """Outbound queue of a connection is full."""

    pass


class PeerDisconnected(CommunicationError):
    """Viewer closed its connection."""

    pass
