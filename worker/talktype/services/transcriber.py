from __future__ import annotations

import logging
import math
import os
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import numpy as np

from ..errors import (
    DecodeError,
    ModelLoadError,
    ModelNotDownloadedError,
    ModelNotFoundError,
    ModelNotLoadedError,
)
from . import catalog
from .resample import WHISPER_SAMPLE_RATE, SampleRateConverter


ModelFactory = Callable[[str], Any]
OnChunk = Callable[[str, bool], None]


def available_parallelism() -> int:
    try:
        return len(os.sched_getaffinity(0))
    except AttributeError:
        return os.cpu_count() or 4


def default_model_factory(device: str = "auto", compute_type: str = "int8") -> ModelFactory:
    def _build(path: str):
        from faster_whisper import WhisperModel  # lazy import to avoid test env dependency

        return WhisperModel(path, device=device, compute_type=compute_type, cpu_threads=available_parallelism())

    return _build


class TranscriptionEngine:
    """Owns the loaded speech model and runs greedy, context-free decoding.

    At most one model is loaded. A replacement is built before the old one
    is released, so a failed load leaves the previous model in place.
    """

    def __init__(
        self,
        models_dir: Path,
        model_factory: Optional[ModelFactory] = None,
        converter: Optional[SampleRateConverter] = None,
        language: str = "en",
    ):
        self.models_dir = Path(models_dir)
        self._factory = model_factory or default_model_factory()
        self.converter = converter or SampleRateConverter()
        self.language = language
        self.logger = logging.getLogger("app.transcribe")
        # _lock serializes decoding; _state_lock only guards the model slot
        self._lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._model: Any = None
        self._model_id: Optional[str] = None

    @property
    def current_model_id(self) -> Optional[str]:
        with self._state_lock:
            return self._model_id

    @property
    def is_loaded(self) -> bool:
        with self._state_lock:
            return self._model is not None

    def load(self, model_id: Optional[str] = None) -> None:
        model_id = model_id or self.current_model_id
        if not model_id:
            raise ModelNotFoundError("No model specified")
        descriptor = catalog.get_by_id(model_id)
        if descriptor is None:
            raise ModelNotFoundError(f"Model not found: {model_id}")
        path = catalog.model_path(descriptor, self.models_dir)
        if not path.exists():
            raise ModelNotDownloadedError("Model not downloaded")

        started = time.perf_counter()
        try:
            model = self._factory(str(path))
        except Exception as e:
            self.logger.exception("model init failed for %s", model_id)
            raise ModelLoadError(f"Failed to load model: {e}") from e

        with self._state_lock:
            self._model = model
            self._model_id = model_id
        elapsed = time.perf_counter() - started
        self.logger.info(
            "model %s loaded in %.2fs",
            model_id,
            elapsed,
            extra={"model_id": model_id, "elapsed_ms": int(elapsed * 1000)},
        )

    def _loaded_model(self) -> Any:
        with self._state_lock:
            model = self._model
        if model is None:
            raise ModelNotLoadedError("Model not loaded")
        return model

    def _decode_params(self) -> Dict[str, Any]:
        return dict(
            language=self.language,
            beam_size=1,
            best_of=1,
            temperature=0.0,
            condition_on_previous_text=False,
            without_timestamps=True,
            suppress_blank=True,
            vad_filter=False,
        )

    def _to_model_rate(self, samples: np.ndarray, sample_rate: int) -> np.ndarray:
        audio = np.asarray(samples, dtype=np.float32).reshape(-1)
        if int(sample_rate) == WHISPER_SAMPLE_RATE:
            return audio
        started = time.perf_counter()
        self.logger.info("resampling from %d Hz to %d Hz", sample_rate, WHISPER_SAMPLE_RATE)
        out = self.converter.convert(audio, int(sample_rate), WHISPER_SAMPLE_RATE)
        self.logger.debug("resampling took %.3fs", time.perf_counter() - started)
        return out

    def _decode(self, model: Any, audio: np.ndarray) -> str:
        try:
            segments, _info = model.transcribe(audio, **self._decode_params())
            text = "".join(seg.text for seg in segments)
        except Exception as e:
            raise DecodeError(f"Failed to transcribe: {e}") from e
        return text.strip()

    def transcribe(self, samples: np.ndarray, sample_rate: int) -> str:
        with self._lock:
            model = self._loaded_model()
            audio = self._to_model_rate(samples, sample_rate)
            if audio.size == 0:
                return ""
            started = time.perf_counter()
            text = self._decode(model, audio)
        self.logger.info("transcribed %d samples in %.2fs", audio.shape[0], time.perf_counter() - started)
        return text

    def transcribe_chunked(
        self,
        samples: np.ndarray,
        sample_rate: int,
        chunk_duration: float,
        on_chunk: OnChunk,
    ) -> str:
        """Decode fixed-length windows independently.

        ``on_chunk(accumulated_text, is_last_chunk)`` fires only for windows
        that produced text. No acoustic context crosses window boundaries.
        """
        chunk_samples = int(WHISPER_SAMPLE_RATE * float(chunk_duration))
        if chunk_samples <= 0:
            raise ValueError("chunk_duration must be positive")

        with self._lock:
            model = self._loaded_model()
            audio = self._to_model_rate(samples, sample_rate)
            total_chunks = math.ceil(audio.shape[0] / chunk_samples)
            self.logger.info("processing %d chunks of %.1fs each", total_chunks, chunk_duration)

            full_text = ""
            for idx in range(total_chunks):
                started = time.perf_counter()
                chunk = audio[idx * chunk_samples:(idx + 1) * chunk_samples]
                if chunk.shape[0] < chunk_samples:
                    padded = np.zeros(chunk_samples, dtype=np.float32)
                    padded[: chunk.shape[0]] = chunk
                    chunk = padded
                chunk_text = self._decode(model, chunk)
                if chunk_text:
                    full_text = f"{full_text} {chunk_text}" if full_text else chunk_text
                    on_chunk(full_text, idx == total_chunks - 1)
                self.logger.debug("chunk %d took %.2fs", idx + 1, time.perf_counter() - started)
        return full_text
