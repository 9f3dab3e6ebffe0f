from __future__ import annotations

from typing import List, Optional
from pydantic import BaseModel


class ModelInfo(BaseModel):
    id: str
    name: str
    size_mb: int
    description: str
    source_url: str
    local_filename: str
    recommended_for: List[str]
    downloaded: bool
    loaded: bool


class ModelsResponse(BaseModel):
    models: List[ModelInfo]
    current_model_id: Optional[str] = None
    models_dir: str


class LoadModelResponse(BaseModel):
    ok: bool
    model_id: str


class DownloadStartedResponse(BaseModel):
    ok: bool
    model_id: str
    started: bool
    message: str
