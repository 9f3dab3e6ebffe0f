from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from ..models.events import TranscriptionProgress
from .capture import AudioCapture, CaptureResult
from .transcriber import TranscriptionEngine


@dataclass
class DictationResult:
    text: str
    skipped: Optional[str]
    word_count: int
    duration_ms: float
    wpm: float
    peak_level: float
    sample_rate: int
    model_id: Optional[str]


def word_count(text: str) -> int:
    return len(text.split())


def words_per_minute(words: int, duration_ms: float) -> float:
    if duration_ms <= 0:
        return 0.0
    return words / (duration_ms / 60000.0)


def finish_dictation(
    capture: AudioCapture,
    engine: TranscriptionEngine,
    *,
    model_id: Optional[str] = None,
    silence_threshold: float = 0.01,
    chunk_seconds: Optional[float] = None,
    publish: Optional[Callable[[TranscriptionProgress], None]] = None,
) -> DictationResult:
    """Stop the capture session and turn what was recorded into text.

    Near-silent recordings (peak below ``silence_threshold``) are never
    decoded. The raw audio is dropped once this returns.
    """
    logger = logging.getLogger("app")
    rec: CaptureResult = capture.stop()

    def _result(text: str, skipped: Optional[str]) -> DictationResult:
        words = word_count(text)
        return DictationResult(
            text=text,
            skipped=skipped,
            word_count=words,
            duration_ms=rec.duration_ms,
            wpm=words_per_minute(words, rec.duration_ms),
            peak_level=rec.peak_level,
            sample_rate=rec.sample_rate,
            model_id=engine.current_model_id,
        )

    if rec.samples.size == 0:
        return _result("", "empty")
    if rec.peak_level < silence_threshold:
        logger.info("skipping transcription: peak %.4f below %.4f", rec.peak_level, silence_threshold)
        return _result("", "silence")

    if not engine.is_loaded or (model_id and engine.current_model_id != model_id):
        engine.load(model_id)

    if chunk_seconds:
        def _on_chunk(text: str, is_final: bool) -> None:
            if publish is not None:
                publish(TranscriptionProgress(text=text, is_final=is_final))

        text = engine.transcribe_chunked(rec.samples, rec.sample_rate, chunk_seconds, _on_chunk)
    else:
        text = engine.transcribe(rec.samples, rec.sample_rate)
        if publish is not None and text:
            publish(TranscriptionProgress(text=text, is_final=True))
    return _result(text, None)
