from __future__ import annotations

import logging
import threading

from fastapi import APIRouter, Depends

from ..errors import ModelNotFoundError
from ..services import catalog
from ..services.downloader import run_download
from ..state import get_state, State
from ..models.catalog import DownloadStartedResponse, LoadModelResponse, ModelInfo, ModelsResponse

router = APIRouter(tags=["models"])


@router.get("/models", response_model=ModelsResponse)
def v1_list_models(state: State = Depends(get_state)) -> ModelsResponse:
    current = state.engine.current_model_id
    downloaded = set(catalog.downloaded_models(state.models_dir))
    items = [
        ModelInfo(
            id=m.id,
            name=m.name,
            size_mb=m.size_mb,
            description=m.description,
            source_url=m.source_url,
            local_filename=m.local_filename,
            recommended_for=sorted(m.recommended_for),
            downloaded=m.id in downloaded,
            loaded=m.id == current,
        )
        for m in catalog.all_models()
    ]
    return ModelsResponse(models=items, current_model_id=current, models_dir=str(state.models_dir))


@router.post("/models/{model_id}/load", response_model=LoadModelResponse)
def v1_load_model(model_id: str, state: State = Depends(get_state)) -> LoadModelResponse:
    state.engine.load(model_id)
    return LoadModelResponse(ok=True, model_id=model_id)


@router.post("/models/{model_id}/download", response_model=DownloadStartedResponse)
def v1_download_model(model_id: str, state: State = Depends(get_state)) -> DownloadStartedResponse:
    """Kick off a background download; progress and completion arrive as events."""
    descriptor = catalog.get_by_id(model_id)
    if descriptor is None:
        raise ModelNotFoundError(f"Model not found: {model_id}")

    with state.downloads_lock:
        running = state.active_downloads.get(model_id)
        if running is not None and running.is_alive():
            return DownloadStartedResponse(ok=True, model_id=model_id, started=False, message="already downloading")

        def _worker():
            try:
                ok = run_download(state.downloads, descriptor, state.events.publish)
                logging.getLogger("app.models").info("download %s finished ok=%s", model_id, ok)
            finally:
                with state.downloads_lock:
                    state.active_downloads.pop(model_id, None)

        thread = threading.Thread(target=_worker, name=f"download-{model_id}", daemon=True)
        state.active_downloads[model_id] = thread
        thread.start()
    return DownloadStartedResponse(ok=True, model_id=model_id, started=True, message="download started")
