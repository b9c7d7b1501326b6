from __future__ import annotations

"""Audio rendering paths.

A Renderer pushes decoded frames to an output from a given frame offset at a
given play-rate and reports natural exhaustion through a one-shot callback.
Programmatic ``stop()`` never triggers that callback.
"""

import threading
from typing import Callable, Dict, Optional

import numpy as np


class Renderer:
    """Abstract-like renderer interface for playback engines."""

    def start(
        self,
        frames: np.ndarray,
        sample_rate: int,
        offset_frames: int,
        play_rate: float,
        on_exhausted: Callable[[], None],
    ) -> None:
        """Begin rendering ``frames[offset_frames:]``."""
        raise NotImplementedError

    def stop(self) -> None:
        """Halt rendering without firing the exhaustion callback."""
        raise NotImplementedError

    def close(self) -> None:
        """Release resources."""
        self.stop()


def resample_for_rate(frames: np.ndarray, play_rate: float) -> np.ndarray:
    """Linear-interpolate frames so they last ``1 / play_rate`` as long."""
    if play_rate == 1.0 or len(frames) < 2:
        return frames.astype(np.float32, copy=False)
    n_out = max(1, int(len(frames) / play_rate))
    src = np.arange(len(frames), dtype=np.float64)
    pos = np.minimum(np.arange(n_out, dtype=np.float64) * play_rate, len(frames) - 1)
    out = np.empty((n_out, frames.shape[1]), dtype=np.float32)
    for ch in range(frames.shape[1]):
        out[:, ch] = np.interp(pos, src, frames[:, ch])
    return out


class SoundDeviceRenderer(Renderer):
    """Concrete Renderer using a sounddevice OutputStream."""

    def __init__(self, blocksize: int = 1024, device: Optional[str] = None) -> None:
        try:
            import sounddevice  # type: ignore
        except Exception as e:  # pragma: no cover - runtime dependency
            raise RuntimeError("sounddevice is not installed") from e

        self._sd = sounddevice
        self.blocksize = int(blocksize)
        self.device = device
        self._lock = threading.Lock()
        self._stream = None
        self._data: Optional[np.ndarray] = None
        self._pos = 0
        self._cancelled = False
        self._on_exhausted: Optional[Callable[[], None]] = None

    def start(self, frames, sample_rate, offset_frames, play_rate, on_exhausted) -> None:
        self.stop()
        data = resample_for_rate(frames[int(offset_frames):], play_rate)
        with self._lock:
            self._data = data
            self._pos = 0
            self._cancelled = False
            self._on_exhausted = on_exhausted
        stream = self._sd.OutputStream(
            samplerate=int(sample_rate),
            channels=int(frames.shape[1]),
            dtype="float32",
            blocksize=self.blocksize,
            device=self.device,
            callback=self._callback,
            finished_callback=self._on_finished,
        )
        with self._lock:
            self._stream = stream
        stream.start()

    # -- sounddevice audio-thread callbacks --

    def _callback(self, outdata: np.ndarray, frames: int, _time, status) -> None:
        with self._lock:
            data = self._data
            if data is None:
                outdata.fill(0)
                raise self._sd.CallbackStop
            chunk = data[self._pos:self._pos + frames]
            n = len(chunk)
            outdata[:n] = chunk
            outdata[n:] = 0
            self._pos += n
            exhausted = self._pos >= len(data)
        if exhausted:
            raise self._sd.CallbackStop

    def _on_finished(self) -> None:
        with self._lock:
            callback = None if self._cancelled else self._on_exhausted
            self._on_exhausted = None
        if callback is not None:
            callback()

    def stop(self) -> None:
        with self._lock:
            self._cancelled = True
            self._on_exhausted = None
            stream = self._stream
            self._stream = None
            self._data = None
        if stream is not None:
            try:
                stream.stop()
            finally:
                stream.close()


class SilentRenderer(Renderer):
    """Renderer that only keeps time; exhaustion is signalled by a timer thread."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._cycle = 0

    def start(self, frames, sample_rate, offset_frames, play_rate, on_exhausted) -> None:
        self.stop()
        remaining = max(0, len(frames) - int(offset_frames))
        seconds = remaining / float(sample_rate) / float(play_rate)
        with self._lock:
            self._cycle += 1
            timer = threading.Timer(seconds, self._fire, args=(self._cycle, on_exhausted))
            timer.daemon = True
            self._timer = timer
        timer.start()

    def _fire(self, cycle: int, on_exhausted: Callable[[], None]) -> None:
        with self._lock:
            if self._timer is None or cycle != self._cycle:
                return
            self._timer = None
        on_exhausted()

    def stop(self) -> None:
        with self._lock:
            timer = self._timer
            self._timer = None
        if timer is not None:
            timer.cancel()


def make_renderer_from_config(cfg: Dict) -> Renderer:
    """Factory for Renderer from config dict."""
    audio = cfg.get("audio", {})
    backend = audio.get("backend", "sounddevice")
    if backend == "sounddevice":
        return SoundDeviceRenderer(blocksize=int(audio.get("blocksize", 1024)), device=audio.get("device"))
    if backend == "silent":
        return SilentRenderer()
    raise ValueError(f"Unsupported backend: {backend}")
