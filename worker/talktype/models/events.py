from __future__ import annotations

from typing import List, Optional, Union

from pydantic import BaseModel, Field


class AudioLevelUpdate(BaseModel):
    level: float


class TranscriptionProgress(BaseModel):
    text: str
    is_final: bool


class ModelDownloadProgress(BaseModel):
    progress_percent: float = Field(..., ge=0.0, le=100.0)
    downloaded_bytes: int
    total_bytes: int


class ModelDownloadComplete(BaseModel):
    success: bool
    error: Optional[str] = None


Event = Union[AudioLevelUpdate, TranscriptionProgress, ModelDownloadProgress, ModelDownloadComplete]


class EventItem(BaseModel):
    id: int
    type: str
    payload: dict


class EventsResponse(BaseModel):
    ok: bool
    items: List[EventItem]
    next_since_id: int
