from __future__ import annotations

from fastapi import APIRouter, Depends

from ..state import get_state, State
from ..models.capture import (
    AudioDeviceItem,
    CaptureStatusResponse,
    DevicesResponse,
    LevelResponse,
    SelectDeviceRequest,
    SelectDeviceResponse,
    StartStopResponse,
    StopCaptureResponse,
)

router = APIRouter(tags=["capture"])


@router.get("/devices", response_model=DevicesResponse)
def v1_list_devices(state: State = Depends(get_state)) -> DevicesResponse:
    """Enumerate input-capable devices, marking the host default."""
    devices = state.capture.list_devices()
    return DevicesResponse(
        devices=[AudioDeviceItem(id=d.id, name=d.display_name, is_default=d.is_default) for d in devices]
    )


@router.post("/select_device", response_model=SelectDeviceResponse)
def v1_select_device(payload: SelectDeviceRequest, state: State = Depends(get_state)) -> SelectDeviceResponse:
    device_id = payload.device_id.strip() if payload.device_id else None
    state.capture.select_device(device_id or None)
    return SelectDeviceResponse(ok=True, device_id=state.capture.selected_device())


@router.post("/start_capture", response_model=StartStopResponse)
def v1_start_capture(state: State = Depends(get_state)) -> StartStopResponse:
    if state.capture.is_active:
        return StartStopResponse(ok=True, message="already running", running=True)
    state.capture.start()
    return StartStopResponse(ok=True, message="started", running=True)


@router.post("/stop_capture", response_model=StopCaptureResponse)
def v1_stop_capture(state: State = Depends(get_state)) -> StopCaptureResponse:
    """Stop without transcribing; the recorded audio is discarded."""
    rec = state.capture.stop()
    return StopCaptureResponse(
        ok=True,
        running=False,
        samples=int(rec.samples.shape[0]),
        sample_rate=int(rec.sample_rate),
        peak_level=float(rec.peak_level),
        duration_ms=float(rec.duration_ms),
    )


@router.get("/capture_status", response_model=CaptureStatusResponse)
def v1_capture_status(state: State = Depends(get_state)) -> CaptureStatusResponse:
    return CaptureStatusResponse(**state.capture.status())


@router.get("/level", response_model=LevelResponse)
def v1_level(state: State = Depends(get_state)) -> LevelResponse:
    return LevelResponse(running=state.capture.is_active, rms=state.capture.level())
