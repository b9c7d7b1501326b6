from __future__ import annotations

"""AudioPlayer: one timing engine bound to one loaded track."""

import time
from typing import Callable, Optional

import numpy as np

from ..models import SynthesizedAudio
from .pcm import decode_pcm16
from .rendering import Renderer, SilentRenderer
from .timing import AudioTimingEngine


class AudioPlayer:
    """Lifecycle wrapper for a single role (lesson track or answer track).

    Constructed with a fixed play-rate, loaded once, then played, paused and
    stopped until ``close()`` releases the rendering path.
    """

    def __init__(
        self,
        play_rate: float = 1.0,
        *,
        renderer: Optional[Renderer] = None,
        clock: Callable[[], float] = time.monotonic,
        fft_size: int = 256,
        min_decibels: float = -100.0,
        max_decibels: float = -30.0,
    ) -> None:
        if play_rate <= 0:
            raise ValueError(f"play_rate must be positive, got {play_rate}")
        self.play_rate = float(play_rate)
        self._renderer = renderer or SilentRenderer()
        self._clock = clock
        self._fft_size = int(fft_size)
        self._min_db = float(min_decibels)
        self._max_db = float(max_decibels)
        self._engine: Optional[AudioTimingEngine] = None
        self._closed = False

    @property
    def is_loaded(self) -> bool:
        return self._engine is not None

    @property
    def is_playing(self) -> bool:
        return self._engine is not None and self._engine.is_playing

    @property
    def closed(self) -> bool:
        return self._closed

    def load(self, audio: SynthesizedAudio) -> None:
        """Decode ``audio`` into the engine's sample format. Raises DecodeError."""
        if self._closed:
            raise RuntimeError("player is closed")
        if self._engine is not None:
            raise RuntimeError("player already loaded")
        frames = decode_pcm16(audio.data, channels=audio.channels)
        self._engine = AudioTimingEngine(
            frames,
            audio.sample_rate,
            renderer=self._renderer,
            play_rate=self.play_rate,
            clock=self._clock,
            fft_size=self._fft_size,
            min_decibels=self._min_db,
            max_decibels=self._max_db,
        )

    def play(self, on_complete: Optional[Callable[[], None]] = None) -> None:
        if self._closed:
            raise RuntimeError("player is closed")
        if self._engine is None:
            return
        self._engine.play(on_complete)

    def pause(self) -> None:
        if self._engine is not None:
            self._engine.pause()

    def stop(self) -> None:
        if self._engine is not None:
            self._engine.stop()

    def current_position(self) -> float:
        return self._engine.current_position() if self._engine is not None else 0.0

    def duration(self) -> float:
        return self._engine.duration() if self._engine is not None else 0.0

    def spectrum_sample(self) -> np.ndarray:
        if self._engine is None:
            return np.zeros(self._fft_size // 2, dtype=np.uint8)
        return self._engine.spectrum_sample()

    def close(self) -> None:
        """Stop playback and release the renderer. Safe to call repeatedly."""
        if self._closed:
            return
        self._closed = True
        try:
            self.stop()
        finally:
            self._renderer.close()

    def __enter__(self) -> "AudioPlayer":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
