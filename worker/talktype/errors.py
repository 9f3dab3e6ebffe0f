from __future__ import annotations

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    ok: bool = False
    error: str


class CoreError(Exception):
    """Base class for every failure the dictation core reports to its caller."""

    status_code: int = 400


# ---- devices ----
class DeviceError(CoreError):
    status_code = 409


class DeviceNotFoundError(DeviceError):
    status_code = 404


class NoDefaultDeviceError(DeviceError):
    pass


class UnsupportedSampleFormatError(DeviceError):
    pass


class StreamError(DeviceError):
    pass


# ---- conversion ----
class ConversionError(CoreError):
    status_code = 500


# ---- models ----
class ModelError(CoreError):
    pass


class ModelNotFoundError(ModelError):
    status_code = 404


class ModelNotDownloadedError(ModelError):
    status_code = 409


class ModelLoadError(ModelError):
    status_code = 500


class ModelNotLoadedError(ModelError):
    status_code = 409


class DecodeError(ModelError):
    status_code = 500


# ---- downloads ----
class DownloadError(CoreError):
    status_code = 502


class MissingContentLengthError(DownloadError):
    pass


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(CoreError)
    async def _handle_core_error(request: Request, exc: CoreError):  # type: ignore[unused-variable]
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(error=str(exc)).dict(),
        )

    @app.exception_handler(HTTPException)
    async def _handle_http_exception(request: Request, exc: HTTPException):  # type: ignore[unused-variable]
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(error=str(exc.detail)).dict(),
        )

    @app.exception_handler(Exception)
    async def _handle_unexpected(request: Request, exc: Exception):  # type: ignore[unused-variable]
        return JSONResponse(status_code=500, content=ErrorResponse(error="internal error").dict())
