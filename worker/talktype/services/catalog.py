from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import FrozenSet, List, Optional, Tuple


_HF = "https://huggingface.co"

# CTranslate2 conversions as published for faster-whisper
_CT2_FILES = ("config.json", "model.bin", "tokenizer.json", "vocabulary.txt")
_CT2_FILES_V3 = ("config.json", "model.bin", "preprocessor_config.json", "tokenizer.json", "vocabulary.json")


@dataclass(frozen=True)
class ModelDescriptor:
    id: str
    name: str
    size_mb: int
    description: str
    source_url: str
    local_filename: str
    recommended_for: FrozenSet[str] = field(default_factory=frozenset)
    files: Tuple[str, ...] = _CT2_FILES

    def file_url(self, filename: str) -> str:
        return f"{self.source_url.rstrip('/')}/{filename}"


_MODELS: Tuple[ModelDescriptor, ...] = (
    ModelDescriptor(
        id="large-v3-turbo",
        name="Large v3 Turbo",
        size_mb=1620,
        description="Best quality and performance",
        source_url=f"{_HF}/mobiuslabsgmbh/faster-whisper-large-v3-turbo/resolve/main",
        local_filename="faster-whisper-large-v3-turbo",
        recommended_for=frozenset({"accuracy", "performance"}),
        files=_CT2_FILES_V3,
    ),
    ModelDescriptor(
        id="distil-large-v3",
        name="Distil-Large v3",
        size_mb=1510,
        description="Several times faster than Large v3 with near-equal accuracy",
        source_url=f"{_HF}/Systran/faster-distil-whisper-large-v3/resolve/main",
        local_filename="faster-distil-whisper-large-v3",
        recommended_for=frozenset({"accuracy", "speed"}),
        files=_CT2_FILES_V3,
    ),
    ModelDescriptor(
        id="small.en",
        name="Small (English)",
        size_mb=484,
        description="Good quality for slower machines",
        source_url=f"{_HF}/Systran/faster-whisper-small.en/resolve/main",
        local_filename="faster-whisper-small.en",
        recommended_for=frozenset({"slower_machines"}),
    ),
    ModelDescriptor(
        id="base.en",
        name="Base (English)",
        size_mb=145,
        description="Smallest download, fastest decoding",
        source_url=f"{_HF}/Systran/faster-whisper-base.en/resolve/main",
        local_filename="faster-whisper-base.en",
        recommended_for=frozenset({"speed", "slower_machines"}),
    ),
)


def all_models() -> List[ModelDescriptor]:
    return list(_MODELS)


def get_by_id(model_id: str) -> Optional[ModelDescriptor]:
    for m in _MODELS:
        if m.id == model_id:
            return m
    return None


def model_path(descriptor: ModelDescriptor, models_dir: Path) -> Path:
    return Path(models_dir) / descriptor.local_filename


def is_downloaded(model_id: str, models_dir: Path) -> bool:
    descriptor = get_by_id(model_id)
    if descriptor is None:
        return False
    return model_path(descriptor, models_dir).is_dir()


def downloaded_models(models_dir: Path) -> List[str]:
    return [m.id for m in _MODELS if is_downloaded(m.id, models_dir)]
