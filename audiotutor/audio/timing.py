from __future__ import annotations

"""Playback timing engine.

Tracks the logical (rate-adjusted) position of one decoded buffer through
pause/resume cycles:

    position = paused_offset + (now - anchor) * play_rate   while playing
    position = paused_offset                                while paused

Elapsed wall-clock time is scaled by the play-rate when it is folded into the
paused-offset, so a resume at 0.9x or 1.15x lands on the right frame.
"""

import threading
import time
from typing import Callable, Optional

import numpy as np

from .pcm import to_mono
from .rendering import Renderer


class AudioTimingEngine:
    """Owns one decoded buffer and its playback position."""

    def __init__(
        self,
        frames: np.ndarray,
        sample_rate: int,
        *,
        renderer: Renderer,
        play_rate: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        fft_size: int = 256,
        min_decibels: float = -100.0,
        max_decibels: float = -30.0,
    ) -> None:
        if play_rate <= 0:
            raise ValueError(f"play_rate must be positive, got {play_rate}")
        if sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {sample_rate}")
        if frames.ndim == 1:
            frames = frames.reshape(-1, 1)
        self._frames = frames
        self._mono = to_mono(frames)
        self.sample_rate = int(sample_rate)
        self.play_rate = float(play_rate)
        self._renderer = renderer
        self._clock = clock
        self.fft_size = int(fft_size)
        self.min_decibels = float(min_decibels)
        self.max_decibels = float(max_decibels)
        self._window = np.blackman(self.fft_size)

        self._lock = threading.Lock()
        self._paused_offset = 0.0
        self._anchor = 0.0
        self._playing = False
        # Bumped on every play/pause/stop so stale exhaustion callbacks are dropped
        self._cycle = 0
        self._on_complete: Optional[Callable[[], None]] = None

    @property
    def channels(self) -> int:
        return int(self._frames.shape[1])

    @property
    def is_playing(self) -> bool:
        return self._playing

    @property
    def paused_offset(self) -> float:
        return self._paused_offset

    def duration(self) -> float:
        return len(self._frames) / float(self.sample_rate)

    def play(self, on_complete: Optional[Callable[[], None]] = None) -> None:
        """Begin or resume rendering from the paused-offset.

        ``on_complete`` fires at most once, and only when the buffer is
        exhausted naturally during this play cycle.
        """
        with self._lock:
            if self._playing:
                return
            self._cycle += 1
            cycle = self._cycle
            self._on_complete = on_complete
            self._playing = True
            self._anchor = self._clock()
            offset_frames = min(int(round(self._paused_offset * self.sample_rate)), len(self._frames))
        try:
            self._renderer.start(
                self._frames,
                self.sample_rate,
                offset_frames,
                self.play_rate,
                lambda: self._exhausted(cycle),
            )
        except Exception:
            with self._lock:
                if self._cycle == cycle:
                    self._playing = False
                    self._on_complete = None
            raise
        with self._lock:
            # Re-anchor once the output is actually running
            if self._cycle == cycle and self._playing:
                self._anchor = self._clock()

    def pause(self) -> None:
        with self._lock:
            if not self._playing:
                return
            elapsed = self._clock() - self._anchor
            self._paused_offset = min(self._paused_offset + elapsed * self.play_rate, self.duration())
            self._playing = False
            self._cycle += 1
            self._on_complete = None
        self._renderer.stop()

    def stop(self) -> None:
        with self._lock:
            self._playing = False
            self._paused_offset = 0.0
            self._cycle += 1
            self._on_complete = None
        self._renderer.stop()

    def current_position(self) -> float:
        with self._lock:
            if self._playing:
                pos = self._paused_offset + (self._clock() - self._anchor) * self.play_rate
            else:
                pos = self._paused_offset
        return min(max(pos, 0.0), self.duration())

    def spectrum_sample(self) -> np.ndarray:
        """Byte magnitudes (``fft_size // 2`` bins) at the current rendering instant."""
        bins = self.fft_size // 2
        if not self._playing:
            return np.zeros(bins, dtype=np.uint8)
        end = int(self.current_position() * self.sample_rate)
        segment = self._mono[max(0, end - self.fft_size):end]
        block = np.zeros(self.fft_size, dtype=np.float64)
        if len(segment):
            block[self.fft_size - len(segment):] = segment
        magnitudes = np.abs(np.fft.rfft(block * self._window))[:bins] / self.fft_size
        db = 20.0 * np.log10(np.maximum(magnitudes, 1e-12))
        scaled = (db - self.min_decibels) * (255.0 / (self.max_decibels - self.min_decibels))
        return np.clip(scaled, 0, 255).astype(np.uint8)

    def _exhausted(self, cycle: int) -> None:
        with self._lock:
            if cycle != self._cycle or not self._playing:
                return
            self._playing = False
            self._paused_offset = 0.0
            callback = self._on_complete
            self._on_complete = None
        if callback is not None:
            callback()
