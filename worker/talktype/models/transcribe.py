from __future__ import annotations

from typing import Optional
from pydantic import BaseModel, Field


class DictationStopRequest(BaseModel):
    model_id: Optional[str] = Field(default=None, description="Catalog id; defaults to the loaded or configured model")
    chunk_seconds: Optional[float] = Field(default=None, gt=0, le=120, description="Decode in windows of this length")


class DictationResponse(BaseModel):
    ok: bool
    text: str
    skipped: Optional[str] = Field(default=None, description="'silence'|'empty' when decoding was skipped")
    word_count: int
    duration_ms: float
    wpm: float
    peak_level: float
    sample_rate: int
    model_id: Optional[str] = None
