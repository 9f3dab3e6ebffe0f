from __future__ import annotations

import json
import logging
import os
import time
import uuid
from typing import Any, Dict

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware


CORE_LOGGERS = (
    "app",
    "app.capture",
    "app.resample",
    "app.models",
    "app.transcribe",
    "app.access",
)

# Structured fields services attach with ``extra=``; copied into the JSON line.
CONTEXT_FIELDS = (
    "request_id",
    "device",
    "sample_rate",
    "model_id",
    "bytes_total",
    "samples",
    "elapsed_ms",
)

REQUEST_ID_HEADER = "X-Request-ID"


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        data: Dict[str, Any] = {
            "level": record.levelname,
            "ts": int(time.time() * 1000),
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                data[key] = value
        if record.exc_info:
            data["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(data, ensure_ascii=False, default=str)


def _resolve_level(default: int = logging.INFO) -> int:
    env_level = (os.getenv("TALKTYPE_LOG_LEVEL") or "").strip()
    if not env_level:
        return default
    if env_level.isdigit():
        return int(env_level)
    lvl = logging.getLevelName(env_level.upper())
    return lvl if isinstance(lvl, int) else default


def setup_logging(level: int | None = None) -> None:
    """Route the core loggers through one JSON stream handler."""
    resolved_level = level if level is not None else _resolve_level()
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(resolved_level)
    for name in CORE_LOGGERS:
        logging.getLogger(name).setLevel(resolved_level)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Tag each request with an id and write one access line per call.

    A caller-supplied ``X-Request-ID`` is reused so a desktop shell can
    correlate its own logs with ours; it is echoed on the response.
    """

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:12]
        request.state.request_id = request_id
        start = time.perf_counter()
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        logging.getLogger("app.access").info(
            "%s %s -> %d",
            request.method,
            request.url.path,
            response.status_code,
            extra={
                "request_id": request_id,
                "elapsed_ms": int((time.perf_counter() - start) * 1000),
            },
        )
        return response


def install_app_logging(app: FastAPI) -> None:
    app.add_middleware(RequestContextMiddleware)
