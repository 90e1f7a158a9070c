"""Wire format of the frames pushed to viewers."""

from typing import List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from .config import ChannelOption


class FrameOption(BaseModel):
    """Channel options as browser simulators expect them"""

    model_config = ConfigDict(populate_by_name=True)

    led_count: int = Field(alias="LedCount")
    stripe_type: int = Field(alias="StripeType")
    brightness: int = Field(alias="Brightness")
    w_shift: int = Field(alias="WShift")
    r_shift: int = Field(alias="RShift")
    g_shift: int = Field(alias="GShift")
    b_shift: int = Field(alias="BShift")
    gamma: Optional[List[int]] = Field(default=None, alias="Gamma")

    @classmethod
    def from_channel(cls, channel: ChannelOption) -> "FrameOption":
        return cls(
            led_count=channel.led_count,
            stripe_type=int(channel.strip_type),
            brightness=channel.brightness,
            w_shift=channel.w_shift,
            r_shift=channel.r_shift,
            g_shift=channel.g_shift,
            b_shift=channel.b_shift,
            gamma=list(channel.gamma) if channel.gamma is not None else None,
        )


class FrameMessage(BaseModel):
    """One frame of one channel"""

    option: FrameOption
    leds: List[int]

    @classmethod
    def build(cls, channel: ChannelOption, leds: Sequence[int]) -> "FrameMessage":
        return cls(
            option=FrameOption.from_channel(channel), leds=[int(v) for v in leds]
        )

    def encode(self) -> bytes:
        """Serialize to the JSON bytes sent on the wire"""
        return self.model_dump_json(by_alias=True).encode("utf-8")
