import logging
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from ..core.device import WS2811Device
from ..core.exceptions import ChannelIndexOutOfRange, NotInitialized
from ..core.hub import BroadcastHub
from .models import ChannelLeds, HealthResponse, StateResponse

logger = logging.getLogger(__name__)


def init_app(
    device: WS2811Device,
    hub: BroadcastHub,
    viewer_url: Optional[str] = None,
) -> FastAPI:
    """Create the status API for a running device"""
    app = FastAPI(
        title="ledcast",
        description="State of the emulated ws281x device and its viewers",
        version="0.1.0",
    )

    # Simulators are usually served from another origin
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    app.state.device = device
    app.state.hub = hub
    app.state.viewer_url = viewer_url

    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        """Health check endpoint"""
        healthy = app.state.device.initialized and app.state.hub.is_running
        return HealthResponse(
            status="healthy" if healthy else "starting",
            device_initialized=app.state.device.initialized,
            hub_running=app.state.hub.is_running,
            connections=app.state.hub.connection_count,
        )

    @app.get("/api/state", response_model=StateResponse)
    async def get_state():
        """Device and broadcast statistics"""
        return StateResponse(
            device=app.state.device.get_state(),
            hub=app.state.hub.get_state(),
            viewer_url=app.state.viewer_url,
        )

    @app.get("/api/channels/{channel}", response_model=ChannelLeds)
    async def get_channel(channel: int):
        """Current LED colors of a channel"""
        try:
            leds = app.state.device.read_channel(channel)
        except NotInitialized as e:
            raise HTTPException(status_code=409, detail=str(e))
        except ChannelIndexOutOfRange as e:
            raise HTTPException(status_code=404, detail=str(e))
        return ChannelLeds.from_values(channel, leds.copy())

    return app


__all__ = ["init_app"]
