"""Viewer WebSocket endpoint and HTTP status API"""

from .app import init_app
from .models import ChannelLeds, HealthResponse, StateResponse
from .websocket import ViewerServer, WebsocketsTransport

__all__ = [
    # Application
    "init_app",
    # Viewers
    "ViewerServer",
    "WebsocketsTransport",
    # Models
    "ChannelLeds",
    "HealthResponse",
    "StateResponse",
]
