from __future__ import annotations

import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import Request

from .config import Settings
from .models.events import AudioLevelUpdate
from .services.capture import AudioCapture
from .services.downloader import ModelDownloadManager
from .services.events import EventBus, EventLog
from .services.resample import ResamplerCache, SampleRateConverter
from .services.transcriber import TranscriptionEngine, default_model_factory


@dataclass
class State:
    """Mutable application state shared across routers.

    Every core component is owned here and attached to FastAPI's app.state;
    nothing lives in module-level globals.
    """

    settings: Settings
    models_dir: Path
    capture: AudioCapture
    engine: TranscriptionEngine
    downloads: ModelDownloadManager
    events: EventBus
    event_log: EventLog
    active_downloads: Dict[str, threading.Thread] = field(default_factory=dict)
    downloads_lock: threading.Lock = field(default_factory=threading.Lock)


def build_state(
    settings: Settings,
    *,
    audio_backend: Any = None,
    model_factory: Optional[Any] = None,
    opener: Optional[Any] = None,
) -> State:
    models_dir = settings.resolve_models_dir()
    events = EventBus()
    event_log = EventLog(maxlen=settings.event_log_size)
    events.subscribe(event_log)

    capture = AudioCapture(
        backend=audio_backend,
        preferred_samplerate=settings.preferred_samplerate,
        preferred_channels=settings.preferred_channels,
        on_level=lambda level: events.publish(AudioLevelUpdate(level=level)),
    )
    engine = TranscriptionEngine(
        models_dir,
        model_factory=model_factory
        or default_model_factory(settings.whisper_device, settings.whisper_compute_type),
        converter=SampleRateConverter(ResamplerCache(settings.resampler_cache_size)),
        language=settings.language,
    )
    downloads = ModelDownloadManager(models_dir, opener=opener, timeout=settings.download_timeout_s)
    return State(
        settings=settings,
        models_dir=models_dir,
        capture=capture,
        engine=engine,
        downloads=downloads,
        events=events,
        event_log=event_log,
    )


def get_state(request: Request) -> State:  # FastAPI dependency helper
    return request.app.state.state
