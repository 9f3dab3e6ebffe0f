from __future__ import annotations

import io
import types
from typing import Callable, Dict, List, Optional

import numpy as np
import pytest


# ---- audio backend stand-in (mirrors the parts of sounddevice we call) ----
class FakeStream:
    def __init__(self, owner: "FakeSoundDevice", **kwargs):
        self.kwargs = kwargs
        self.callback = kwargs["callback"]
        self.started = False
        self.closed = False
        self.fail_stop = False
        owner.streams.append(self)

    def start(self):
        self.started = True

    def stop(self):
        if self.fail_stop:
            raise RuntimeError("PortAudio error: stream stop failed")
        self.started = False

    def close(self):
        self.closed = True

    def feed(self, block: np.ndarray):
        block = np.asarray(block, dtype=np.float32)
        if block.ndim == 1:
            block = block.reshape(-1, 1)
        self.callback(block, block.shape[0], None, None)


class FakeSoundDevice:
    def __init__(self, devices: List[dict], default_input: int = 0, supported: Optional[set] = None):
        self.devices = devices
        self.default = types.SimpleNamespace(device=(default_input, -1))
        self.supported = supported
        self.streams: List[FakeStream] = []

    def query_devices(self):
        return [dict(d) for d in self.devices]

    def check_input_settings(self, device=None, channels=None, samplerate=None, dtype=None):
        if self.supported is not None and (channels, samplerate) not in self.supported:
            raise ValueError(f"Invalid sample rate {samplerate} / channels {channels}")

    def InputStream(self, **kwargs):
        return FakeStream(self, **kwargs)

    def open_streams(self) -> List[FakeStream]:
        return [s for s in self.streams if s.started and not s.closed]


DEVICES = [
    {"name": "Built-in Microphone", "max_input_channels": 1, "default_samplerate": 48000.0},
    {"name": "Built-in Output", "max_input_channels": 0, "default_samplerate": 48000.0},
    {"name": "USB Interface", "max_input_channels": 2, "default_samplerate": 44100.0},
]


@pytest.fixture
def fake_sd() -> FakeSoundDevice:
    return FakeSoundDevice(DEVICES, default_input=0)


# ---- speech model stand-in (mirrors faster_whisper.WhisperModel.transcribe) ----
class FakeWhisperModel:
    def __init__(self, path: str, script: Optional[Callable[[np.ndarray], str]] = None):
        self.path = path
        self.script = script or (lambda audio: "hello world")
        self.calls: List[tuple] = []

    def transcribe(self, audio, **kwargs):
        self.calls.append((np.array(audio, copy=True), kwargs))
        text = self.script(audio)
        segments = iter([types.SimpleNamespace(text=f" {text} ")] if text else [])
        info = types.SimpleNamespace(language="en", duration=len(audio) / 16000.0)
        return segments, info


class ModelFactory:
    def __init__(self, script=None, fail: bool = False):
        self.script = script
        self.fail = fail
        self.built: List[FakeWhisperModel] = []

    def __call__(self, path: str):
        if self.fail:
            raise RuntimeError("bad model file")
        model = FakeWhisperModel(path, self.script)
        self.built.append(model)
        return model


@pytest.fixture
def model_factory() -> ModelFactory:
    return ModelFactory()


def install_model(models_dir, local_filename: str):
    path = models_dir / local_filename
    path.mkdir(parents=True)
    (path / "model.bin").write_bytes(b"\0")
    return path


# ---- HTTP stand-in (mirrors urllib.request.urlopen) ----
class FakeResponse:
    def __init__(self, body: bytes, headers: Dict[str, str], fail: Optional[BaseException] = None):
        self._buf = io.BytesIO(body)
        self.headers = headers
        self.fail = fail

    def read(self, n: int = -1) -> bytes:
        if self.fail is not None:
            raise self.fail
        return self._buf.read(n)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False


class FakeOpener:
    def __init__(
        self,
        files: Dict[str, bytes],
        fail_file: Optional[str] = None,
        omit_length: bool = False,
        fail_with: Optional[BaseException] = None,
        short_file: Optional[str] = None,
    ):
        self.files = files
        self.fail_file = fail_file
        self.omit_length = omit_length
        self.fail_with = fail_with or ConnectionResetError("connection reset by peer")
        self.short_file = short_file
        self.calls: List[tuple] = []

    def __call__(self, req, timeout=None):
        method = req.get_method()
        self.calls.append((method, req.full_url))
        name = req.full_url.rsplit("/", 1)[-1]
        body = self.files[name]
        headers = {} if self.omit_length else {"Content-Length": str(len(body))}
        if method == "HEAD":
            return FakeResponse(b"", headers)
        if name == self.short_file:
            body = body[: len(body) // 2]
        return FakeResponse(body, headers, fail=self.fail_with if name == self.fail_file else None)
