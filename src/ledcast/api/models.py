from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Health check response"""

    status: str
    device_initialized: bool
    hub_running: bool
    connections: int = Field(ge=0)


class ChannelInfo(BaseModel):
    """Static options of one channel"""

    index: int
    led_count: int
    strip_type: int
    brightness: int


class DeviceState(BaseModel):
    """Device section of the state response"""

    initialized: bool
    frequency_hz: int
    data_time_ms: float
    min_frame_interval_ms: float
    max_fps: float
    channels: List[ChannelInfo]
    timing: Dict[str, float]


class HubState(BaseModel):
    """Broadcast hub section of the state response"""

    running: bool
    connections: int
    frames_broadcast: int
    dropped_connections: int


class StateResponse(BaseModel):
    """Full system state"""

    device: DeviceState
    hub: HubState
    viewer_url: Optional[str] = None


class ChannelLeds(BaseModel):
    """Current LED colors of a channel"""

    channel: int
    led_count: int
    leds: List[int]

    @classmethod
    def from_values(cls, channel: int, values: Any) -> "ChannelLeds":
        leds = [int(v) for v in values]
        return cls(channel=channel, led_count=len(leds), leds=leds)
