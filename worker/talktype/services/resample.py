from __future__ import annotations

import logging
import math
import threading
from collections import OrderedDict
from typing import Tuple

import numpy as np
from scipy import signal

from ..errors import ConversionError


WHISPER_SAMPLE_RATE = 16000
BASE_CHUNK = 1024
MIN_CHUNK = 64
UPSAMPLE_CHUNK = 512

CacheKey = Tuple[int, int, int]


def chunk_size_for(from_rate: int, to_rate: int) -> int:
    """Input chunk length requested for a rate pair.

    Downsampling keeps chunk boundaries on whole multiples of the integer
    ratio; upsampling uses a fixed chunk.
    """
    ratio = from_rate / to_rate
    if ratio > 1.0:
        return max(int(math.floor(BASE_CHUNK / ratio + 0.5)) * int(ratio), MIN_CHUNK)
    return UPSAMPLE_CHUNK


class FftResampler:
    """Fixed-in/fixed-out FFT resampler for mono float32 audio.

    The requested chunk size is rounded up so that one input chunk maps to a
    whole number of output samples. Each chunk is resampled between the
    chunk before it and the chunk after it and only the middle is kept, so
    the periodic wrap of the FFT never lands on emitted samples. Output
    therefore lags input by one chunk; ``flush`` drains the last one.
    """

    def __init__(self, from_rate: int, to_rate: int, chunk_size: int):
        if from_rate <= 0 or to_rate <= 0:
            raise ConversionError(f"Invalid sample rates: {from_rate} -> {to_rate}")
        if chunk_size <= 0:
            raise ConversionError(f"Invalid chunk size: {chunk_size}")
        self.from_rate = int(from_rate)
        self.to_rate = int(to_rate)
        gcd = math.gcd(self.from_rate, self.to_rate)
        unit_in = self.from_rate // gcd
        unit_out = self.to_rate // gcd
        wanted_out = chunk_size * self.to_rate // self.from_rate
        units = max(1, math.ceil(wanted_out / unit_out))
        self.input_frames = units * unit_in
        self.output_frames = units * unit_out
        self.lock = threading.Lock()
        self.reset()

    def reset(self) -> None:
        self._history = np.zeros(self.input_frames, dtype=np.float32)
        self._pending: np.ndarray | None = None

    def process(self, chunk: np.ndarray) -> np.ndarray:
        """Feed one chunk and return the output of the chunk fed before it."""
        if chunk.shape[0] != self.input_frames:
            raise ConversionError(
                f"Resampler expects {self.input_frames} frames, got {chunk.shape[0]}"
            )
        chunk = np.array(chunk, dtype=np.float32, copy=True)
        if self._pending is None:
            self._pending = chunk
            return np.zeros(0, dtype=np.float32)
        block = np.concatenate((self._history, self._pending, chunk))
        out = signal.resample(block, 3 * self.output_frames)
        self._history = self._pending
        self._pending = chunk
        return out[self.output_frames:2 * self.output_frames].astype(np.float32, copy=False)

    def flush(self) -> np.ndarray:
        if self._pending is None:
            return np.zeros(0, dtype=np.float32)
        out = self.process(np.zeros(self.input_frames, dtype=np.float32))
        self._pending = None
        return out


class ResamplerCache:
    """LRU of resamplers keyed by (from_rate, to_rate, chunk_size).

    Capture devices only ever expose a handful of rates, so a small bound
    keeps every realistic pair warm.
    """

    def __init__(self, capacity: int = 8):
        self.capacity = max(1, int(capacity))
        self._entries: "OrderedDict[CacheKey, FftResampler]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, from_rate: int, to_rate: int, chunk_size: int) -> FftResampler:
        key = (int(from_rate), int(to_rate), int(chunk_size))
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                self._entries.move_to_end(key)
                return entry
            entry = FftResampler(*key)
            self._entries[key] = entry
            while len(self._entries) > self.capacity:
                self._entries.popitem(last=False)
            return entry

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def keys(self):
        with self._lock:
            return list(self._entries.keys())


class SampleRateConverter:
    def __init__(self, cache: ResamplerCache | None = None):
        self.cache = cache or ResamplerCache()
        self.logger = logging.getLogger("app.resample")

    def convert(self, samples: np.ndarray, from_rate: int, to_rate: int) -> np.ndarray:
        """Resample a whole mono buffer; fails atomically on any error."""
        x = np.asarray(samples, dtype=np.float32).reshape(-1)
        if from_rate == to_rate or x.size == 0:
            return x.copy()
        if from_rate <= 0 or to_rate <= 0:
            raise ConversionError(f"Invalid sample rates: {from_rate} -> {to_rate}")
        try:
            resampler = self.cache.get(from_rate, to_rate, chunk_size_for(from_rate, to_rate))
        except ConversionError:
            raise
        except Exception as e:
            raise ConversionError(f"Failed to create resampler: {e}") from e

        frames = resampler.input_frames
        full, rest = divmod(x.shape[0], frames)
        expected = full * resampler.output_frames
        if rest:
            expected += int(math.floor(rest * to_rate / from_rate + 0.5))

        pieces = []
        with resampler.lock:
            resampler.reset()
            try:
                for pos in range(0, x.shape[0], frames):
                    chunk = x[pos:pos + frames]
                    if chunk.shape[0] < frames:
                        padded = np.zeros(frames, dtype=np.float32)
                        padded[: chunk.shape[0]] = chunk
                        chunk = padded
                    pieces.append(resampler.process(chunk))
                pieces.append(resampler.flush())
            except ConversionError:
                raise
            except Exception as e:
                raise ConversionError(f"Failed to resample chunk: {e}") from e
        # the zero-padded tail only contributes its own share of output
        out = np.concatenate(pieces)[:expected]
        self.logger.debug(
            "resampled %d samples %d Hz -> %d samples %d Hz", x.shape[0], from_rate, out.shape[0], to_rate
        )
        return out
