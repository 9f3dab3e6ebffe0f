from __future__ import annotations

import logging
import os
import shutil
from http import client
from pathlib import Path
from typing import Callable, Dict, Iterator, Optional, Union
from urllib import error, request

from ..errors import DownloadError, MissingContentLengthError
from ..models.events import ModelDownloadComplete, ModelDownloadProgress
from .catalog import ModelDescriptor, model_path


DownloadEvent = Union[ModelDownloadProgress, ModelDownloadComplete]

USER_AGENT = "talktype/1.0 python-urllib"
READ_CHUNK = 1 << 16


def staging_path(final: Path) -> Path:
    return final.with_name(final.name + ".tmp")


class KeepHeadRedirectHandler(request.HTTPRedirectHandler):
    """Follow redirects without turning a HEAD into a GET.

    Model hosts answer resolve URLs with a redirect to a CDN; the stock
    handler re-issues those as GET on older interpreters, which opens the
    whole body just to read its length.
    """

    def redirect_request(self, req, fp, code, msg, headers, newurl):
        new = super().redirect_request(req, fp, code, msg, headers, newurl)
        if new is not None and req.get_method() == "HEAD":
            new.method = "HEAD"
        return new


def default_opener() -> Callable[..., object]:
    return request.build_opener(KeepHeadRedirectHandler).open


class ModelDownloadManager:
    """Fetches catalog models into the models directory.

    Every file is streamed into a ``<name>.tmp`` staging directory next to
    the final location; the staging directory is renamed into place only
    after all files are written and synced. Nothing is retried.
    """

    def __init__(
        self,
        models_dir: Path,
        opener: Optional[Callable[..., object]] = None,
        timeout: float = 60.0,
    ):
        self.models_dir = Path(models_dir)
        self._opener = opener or default_opener()
        self.timeout = timeout
        self.logger = logging.getLogger("app.models")

    def _open(self, url: str, method: str = "GET"):
        req = request.Request(url, headers={"User-Agent": USER_AGENT}, method=method)
        try:
            return self._opener(req, timeout=self.timeout)
        except error.HTTPError as e:
            raise DownloadError(f"Failed to start download: HTTP {e.code} for {url}") from e
        except (error.URLError, OSError) as e:
            raise DownloadError(f"Failed to start download: {e}") from e

    @staticmethod
    def _content_length(resp, url: str) -> int:
        raw = resp.headers.get("Content-Length")
        if raw is None or not str(raw).strip().isdigit():
            raise MissingContentLengthError(f"Failed to get content length for {url}")
        return int(raw)

    def _probe_sizes(self, descriptor: ModelDescriptor) -> Dict[str, int]:
        sizes: Dict[str, int] = {}
        for name in descriptor.files:
            url = descriptor.file_url(name)
            with self._open(url, method="HEAD") as resp:
                sizes[name] = self._content_length(resp, url)
        return sizes

    def download(self, descriptor: ModelDescriptor) -> Iterator[DownloadEvent]:
        """Yield progress events and a final completion event.

        On failure the completion event carries the error and the error is
        then raised to the caller.
        """
        final = model_path(descriptor, self.models_dir)
        if final.exists():
            self.logger.info("model %s already present at %s", descriptor.id, final)
            yield ModelDownloadComplete(success=True)
            return

        tmp = staging_path(final)
        try:
            if tmp.exists():
                self.logger.warning("removing stale staging dir %s", tmp)
                shutil.rmtree(tmp)
            sizes = self._probe_sizes(descriptor)
            total = sum(sizes.values())
            self.logger.info(
                "downloading model %s (%d bytes) to %s",
                descriptor.id,
                total,
                final,
                extra={"model_id": descriptor.id, "bytes_total": total},
            )
            tmp.mkdir(parents=True)
            downloaded = 0
            for name in descriptor.files:
                url = descriptor.file_url(name)
                written = 0
                with self._open(url) as resp, open(tmp / name, "wb") as fh:
                    while True:
                        try:
                            chunk = resp.read(READ_CHUNK)
                        except (OSError, error.URLError, client.HTTPException) as e:
                            raise DownloadError(f"Download failed: {e!r}") from e
                        if not chunk:
                            break
                        try:
                            fh.write(chunk)
                        except OSError as e:
                            raise DownloadError(f"Failed to write chunk: {e}") from e
                        written += len(chunk)
                        downloaded += len(chunk)
                        percent = min(100.0, downloaded * 100.0 / total) if total else 100.0
                        yield ModelDownloadProgress(
                            progress_percent=percent,
                            downloaded_bytes=downloaded,
                            total_bytes=total,
                        )
                    fh.flush()
                    os.fsync(fh.fileno())
                if written != sizes[name]:
                    raise DownloadError(
                        f"Download of {name} ended early: got {written} of {sizes[name]} bytes"
                    )
            os.replace(tmp, final)
        except GeneratorExit:
            self._discard(tmp)
            raise
        except DownloadError as e:
            self._discard(tmp)
            self.logger.error("download of %s failed: %s", descriptor.id, e, extra={"model_id": descriptor.id})
            yield ModelDownloadComplete(success=False, error=str(e))
            raise
        except Exception as e:
            self._discard(tmp)
            err = DownloadError(f"Download failed: {e!r}")
            self.logger.error("download of %s failed: %s", descriptor.id, err, extra={"model_id": descriptor.id})
            yield ModelDownloadComplete(success=False, error=str(err))
            raise err from e

        self.logger.info("model %s installed at %s", descriptor.id, final)
        yield ModelDownloadComplete(success=True)

    def _discard(self, tmp: Path) -> None:
        shutil.rmtree(tmp, ignore_errors=True)


def run_download(manager: ModelDownloadManager, descriptor: ModelDescriptor, publish: Callable[[DownloadEvent], None]) -> bool:
    """Drain a download into ``publish``; used from background threads."""
    try:
        for event in manager.download(descriptor):
            publish(event)
    except DownloadError:
        return False
    return True
