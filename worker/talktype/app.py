from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pathlib import Path
from typing import Any, Optional
import logging
import os

from .routers.capture import router as capture_router
from .routers.models import router as models_router
from .routers.dictation import router as dictation_router
from .routers.events import router as events_router
from .config import Settings, load_settings
from .logging import setup_logging, install_app_logging
from .errors import install_error_handlers
from .state import build_state


def _load_env_file(env_path: Path) -> None:
    """Minimal .env loader: KEY=VALUE lines into os.environ if not set.
    - Ignores comments and blank lines
    - Strips surrounding quotes
    - Supports optional 'export ' prefix
    """
    if not env_path.exists():
        return
    try:
        lines = env_path.read_text(encoding="utf-8").splitlines()
    except OSError as e:
        logging.getLogger("app").warning("could not read %s: %s", env_path, e)
        return
    for raw in lines:
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line.lower().startswith("export "):
            line = line[7:].lstrip()
        if "=" not in line:
            continue
        k, v = line.split("=", 1)
        key = k.strip()
        val = v.strip().strip('"').strip("'")
        os.environ.setdefault(key, val)


def create_app(
    settings: Optional[Settings] = None,
    *,
    audio_backend: Any = None,
    model_factory: Any = None,
    opener: Any = None,
) -> FastAPI:
    if settings is None:
        # Load environment from optional .env files (repo root and worker dir)
        pkg_dir = Path(__file__).resolve().parent
        worker_dir = pkg_dir.parent
        _load_env_file(worker_dir.parent / ".env")
        _load_env_file(worker_dir / ".env")
        settings = load_settings()
    setup_logging()

    app = FastAPI(title="TalkType Dictation Worker", version="0.1.0")

    # Attach config/state
    app.state.settings = settings
    app.state.state = build_state(
        settings,
        audio_backend=audio_backend,
        model_factory=model_factory,
        opener=opener,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    install_app_logging(app)
    install_error_handlers(app)

    # Versioned API
    app.include_router(capture_router, prefix="/v1")
    app.include_router(models_router, prefix="/v1")
    app.include_router(dictation_router, prefix="/v1")
    app.include_router(events_router, prefix="/v1")

    @app.get("/health")
    def health():  # pragma: no cover - trivial
        return {"status": "ok"}
    return app
