from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends

from ..services.dictation import finish_dictation
from ..state import get_state, State
from ..models.transcribe import DictationResponse, DictationStopRequest

router = APIRouter(tags=["dictation"])


@router.post("/dictation/stop", response_model=DictationResponse)
def v1_dictation_stop(
    payload: Optional[DictationStopRequest] = None,
    state: State = Depends(get_state),
) -> DictationResponse:
    payload = payload or DictationStopRequest()
    settings = state.settings
    model_id = payload.model_id or state.engine.current_model_id or settings.model_id
    res = finish_dictation(
        state.capture,
        state.engine,
        model_id=model_id,
        silence_threshold=settings.silence_threshold,
        chunk_seconds=payload.chunk_seconds or settings.chunk_seconds,
        publish=state.events.publish,
    )
    return DictationResponse(
        ok=True,
        text=res.text,
        skipped=res.skipped,
        word_count=res.word_count,
        duration_ms=res.duration_ms,
        wpm=res.wpm,
        peak_level=res.peak_level,
        sample_rate=res.sample_rate,
        model_id=res.model_id,
    )
