from __future__ import annotations

from pathlib import Path
from typing import Optional

from platformdirs import user_data_dir
from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings.

    Values may be provided via environment variables. The core never reads
    these directly; the worker passes them down as call arguments.
    """

    app_id: str = Field("com.talktype.desktop", description="Namespace for the local data directory")
    models_dir: Optional[str] = Field(None, description="Override for the model storage directory")

    # Audio
    preferred_samplerate: int = 16000
    preferred_channels: int = 1
    silence_threshold: float = Field(0.01, description="Peak below which a recording is treated as silence")

    # Transcription
    model_id: str = Field("large-v3-turbo", description="Catalog id loaded when nothing is loaded yet")
    whisper_device: str = Field("auto", description="cpu|cuda|auto")
    whisper_compute_type: str = Field("int8", description="CTranslate2 compute type")
    language: str = "en"
    chunk_seconds: Optional[float] = Field(None, gt=0, description="Decode in fixed windows of this length")

    # Housekeeping
    download_timeout_s: float = 60.0
    resampler_cache_size: int = Field(8, ge=1)
    event_log_size: int = Field(500, ge=1)

    class Config:
        env_prefix = "TALKTYPE_"
        case_sensitive = False

    def resolve_models_dir(self) -> Path:
        if self.models_dir:
            path = Path(self.models_dir).expanduser()
        else:
            path = Path(user_data_dir(self.app_id, appauthor=False)) / "models"
        path.mkdir(parents=True, exist_ok=True)
        return path


def load_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]
