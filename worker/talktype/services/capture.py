from __future__ import annotations


from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple
import logging
import threading

import numpy as np

from ..errors import (
    DeviceNotFoundError,
    NoDefaultDeviceError,
    StreamError,
    UnsupportedSampleFormatError,
)


DEFAULT_SAMPLERATE = 16000


@dataclass
class AudioDevice:
    # Host APIs only expose names, so the name doubles as the id.
    id: str
    display_name: str
    is_default: bool = False


@dataclass
class CaptureResult:
    samples: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.float32))
    sample_rate: int = DEFAULT_SAMPLERATE
    peak_level: float = 0.0

    @property
    def duration_ms(self) -> float:
        if self.sample_rate <= 0:
            return 0.0
        return self.samples.shape[0] * 1000.0 / float(self.sample_rate)


def _norm_default(val) -> Optional[int]:
    try:
        if val is None:
            return None
        iv = int(val)
        return iv if iv >= 0 else None
    except (TypeError, ValueError):
        return None


class AudioCapture:
    """Push-to-talk capture session: Idle -> Recording -> Idle.

    ``backend`` is the ``sounddevice`` module unless a stand-in is given.
    Samples are downmixed to mono in the stream callback and appended to a
    buffer that is drained exactly once per ``stop()``.
    """

    def __init__(
        self,
        backend: Any = None,
        preferred_samplerate: int = DEFAULT_SAMPLERATE,
        preferred_channels: int = 1,
        on_level: Optional[Callable[[float], None]] = None,
    ):
        self._backend = backend
        self.preferred_samplerate = int(preferred_samplerate)
        self.preferred_channels = int(preferred_channels)
        self.on_level = on_level
        self.logger = logging.getLogger("app.capture")

        # _control serializes start/stop; _lock guards what the callback touches
        self._control = threading.Lock()
        self._lock = threading.Lock()
        self._selected: Optional[str] = None
        self._active = False
        self._chunks: List[np.ndarray] = []
        self._stream: Any = None
        self._sample_rate = self.preferred_samplerate
        self._last_level = 0.0

    @property
    def sd(self):
        if self._backend is None:
            import sounddevice as sd  # lazy import to avoid PortAudio at import time
            self._backend = sd
        return self._backend

    # ---- queries ----
    @property
    def is_active(self) -> bool:
        with self._lock:
            return self._active

    @property
    def sample_rate(self) -> int:
        with self._lock:
            return self._sample_rate

    def level(self) -> float:
        with self._lock:
            return self._last_level if self._active else 0.0

    def selected_device(self) -> Optional[str]:
        with self._lock:
            return self._selected

    def status(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "running": self._active,
                "device_id": self._selected,
                "sample_rate": int(self._sample_rate),
                "buffered_samples": int(sum(c.shape[0] for c in self._chunks)),
            }

    # ---- devices ----
    def _default_input_index(self) -> Optional[int]:
        try:
            defaults_raw = self.sd.default.device
        except Exception:
            return None
        if isinstance(defaults_raw, (list, tuple)):
            return _norm_default(defaults_raw[0]) if defaults_raw else None
        return _norm_default(defaults_raw)

    def _input_devices(self) -> List[Tuple[int, Dict[str, Any]]]:
        try:
            info = self.sd.query_devices()
        except Exception as e:
            raise StreamError(f"Failed to enumerate input devices: {e}") from e
        return [
            (idx, dict(dev))
            for idx, dev in enumerate(info)
            if int(dev.get("max_input_channels", 0)) > 0
        ]

    def list_devices(self) -> List[AudioDevice]:
        inputs = self._input_devices()
        default_idx = self._default_input_index()
        default_name = None
        for idx, dev in inputs:
            if idx == default_idx:
                default_name = str(dev["name"])
        return [
            AudioDevice(id=str(dev["name"]), display_name=str(dev["name"]), is_default=str(dev["name"]) == default_name)
            for _, dev in inputs
        ]

    def select_device(self, device_id: Optional[str]) -> None:
        """Remember the device for the next start; a running session is untouched."""
        with self._lock:
            self._selected = device_id or None

    def _resolve_device(self) -> Tuple[int, Dict[str, Any]]:
        selected = self.selected_device()
        inputs = self._input_devices()
        if selected is not None:
            for idx, dev in inputs:
                if str(dev["name"]) == selected:
                    return idx, dev
            raise DeviceNotFoundError(f"Device not found: {selected}")
        default_idx = self._default_input_index()
        for idx, dev in inputs:
            if idx == default_idx:
                return idx, dev
        raise NoDefaultDeviceError("No default input device available")

    def _negotiate(self, index: int, info: Dict[str, Any]) -> Tuple[int, int]:
        try:
            self.sd.check_input_settings(
                device=index,
                channels=self.preferred_channels,
                samplerate=self.preferred_samplerate,
                dtype="float32",
            )
            self.logger.info(
                "using preferred config: %d Hz, %dch", self.preferred_samplerate, self.preferred_channels
            )
            return self.preferred_channels, self.preferred_samplerate
        except Exception as e:
            self.logger.info("preferred config rejected by %s: %s", info.get("name"), e)

        native_sr = int(info.get("default_samplerate") or 0)
        native_ch = max(1, int(info.get("max_input_channels") or 1))
        try:
            self.sd.check_input_settings(device=index, channels=native_ch, samplerate=native_sr, dtype="float32")
        except Exception as e:
            if "sample format" in str(e).lower():
                raise UnsupportedSampleFormatError(f"Unsupported sample format: {e}") from e
            raise StreamError(f"Audio device not usable: {e}") from e
        self.logger.warning(
            "preferred %d Hz unsupported, using device default (%d Hz, %dch)",
            self.preferred_samplerate,
            native_sr,
            native_ch,
        )
        return native_ch, native_sr

    # ---- session ----
    def _callback(self, indata, frames, time_info, status):
        if status:
            self.logger.warning("input callback status=%s", status)
        data = np.asarray(indata, dtype=np.float32)
        if data.ndim == 2:
            mono = data.mean(axis=1, dtype=np.float32)
        else:
            mono = np.array(data.reshape(-1), dtype=np.float32, copy=True)
        if mono.size == 0:
            return
        rms = float(np.sqrt(np.mean(np.square(mono))))
        with self._lock:
            if not self._active:
                return
            self._chunks.append(mono)
            self._last_level = rms
        if self.on_level is not None:
            self.on_level(rms)

    def start(self) -> None:
        with self._control:
            with self._lock:
                if self._active:
                    self.logger.info("start ignored: already recording")
                    return
                self._chunks = []

            index, info = self._resolve_device()
            channels, samplerate = self._negotiate(index, info)
            try:
                stream = self.sd.InputStream(
                    device=index,
                    channels=channels,
                    samplerate=samplerate,
                    dtype="float32",
                    callback=self._callback,
                )
            except Exception as e:
                raise StreamError(f"Failed to open input stream: {e}") from e

            with self._lock:
                self._stream = stream
                self._sample_rate = samplerate
                self._last_level = 0.0
                self._active = True
            try:
                stream.start()
            except Exception as e:
                with self._lock:
                    self._active = False
                    self._stream = None
                try:
                    stream.close()
                except Exception:
                    self.logger.warning("closing failed stream raised", exc_info=True)
                raise StreamError(f"Failed to start input stream: {e}") from e
            self.logger.info(
                "recording from %s at %d Hz, %dch",
                info.get("name"),
                samplerate,
                channels,
                extra={"device": info.get("name"), "sample_rate": samplerate},
            )

    def stop(self) -> CaptureResult:
        with self._control:
            with self._lock:
                if not self._active:
                    return CaptureResult(sample_rate=self.preferred_samplerate)
                self._active = False
                stream = self._stream
                self._stream = None

            if stream is not None:
                try:
                    stream.stop()
                except Exception:
                    self.logger.warning("error while stopping input stream", exc_info=True)
                try:
                    stream.close()
                except Exception:
                    self.logger.warning("error while closing input stream", exc_info=True)

            with self._lock:
                chunks = self._chunks
                self._chunks = []
                rate = self._sample_rate
                self._last_level = 0.0

        samples = np.concatenate(chunks) if chunks else np.zeros(0, dtype=np.float32)
        peak = float(np.max(np.abs(samples))) if samples.size else 0.0
        self.logger.info(
            "recorded %d samples at %d Hz (peak=%.4f)",
            samples.shape[0],
            rate,
            peak,
            extra={"samples": int(samples.shape[0]), "sample_rate": rate},
        )
        return CaptureResult(samples=samples, sample_rate=rate, peak_level=peak)
