from __future__ import annotations

from typing import List, Optional
from pydantic import BaseModel, Field


class AudioDeviceItem(BaseModel):
    id: str
    name: str
    is_default: bool


class DevicesResponse(BaseModel):
    devices: List[AudioDeviceItem]


class SelectDeviceRequest(BaseModel):
    device_id: Optional[str] = Field(
        default=None,
        description="Input device name as listed by /devices. Empty/None means host default.",
    )


class SelectDeviceResponse(BaseModel):
    ok: bool
    device_id: Optional[str] = None


class StartStopResponse(BaseModel):
    ok: bool
    message: str
    running: bool


class StopCaptureResponse(BaseModel):
    ok: bool
    running: bool
    samples: int
    sample_rate: int
    peak_level: float
    duration_ms: float


class CaptureStatusResponse(BaseModel):
    running: bool
    device_id: Optional[str] = None
    sample_rate: int
    buffered_samples: int


class LevelResponse(BaseModel):
    running: bool
    rms: float
