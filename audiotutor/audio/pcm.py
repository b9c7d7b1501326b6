from __future__ import annotations

"""Raw 16-bit little-endian PCM conversion.

The speech synthesizer returns headerless PCM, so samples are decoded
directly into float32 frames in [-1.0, 1.0).
"""

import numpy as np

from ..app.explain import warn
from ..errors import DecodeError

SAMPLE_WIDTH = 2
_SCALE = 32768.0


def decode_pcm16(data: bytes, channels: int = 1) -> np.ndarray:
    """Decode interleaved 16-bit PCM into a ``(frames, channels)`` float32 array.

    Trailing bytes that do not make up a whole frame are dropped.
    """
    if not isinstance(data, (bytes, bytearray, memoryview)):
        raise DecodeError(f"expected bytes-like audio, got {type(data).__name__}")
    if channels < 1:
        raise DecodeError(f"invalid channel count: {channels}")
    raw = bytes(data)
    frame_bytes = SAMPLE_WIDTH * channels
    if len(raw) < frame_bytes:
        raise DecodeError(f"audio buffer too small: {len(raw)} bytes")
    usable = len(raw) - (len(raw) % frame_bytes)
    if usable != len(raw):
        warn(
            "audio byte length is not a whole number of frames, truncating",
            {"bytes": len(raw), "dropped": len(raw) - usable},
        )
    ints = np.frombuffer(raw[:usable], dtype="<i2")
    return (ints.astype(np.float32) / _SCALE).reshape(-1, channels)


def encode_pcm16(samples: np.ndarray) -> bytes:
    """Encode float samples (any shape, interleaved by row) as 16-bit PCM."""
    arr = np.clip(np.asarray(samples, dtype=np.float64), -1.0, 1.0)
    ints = np.clip(np.round(arr * _SCALE), -32768, 32767).astype("<i2")
    return ints.tobytes()


def to_mono(frames: np.ndarray) -> np.ndarray:
    if frames.ndim == 1:
        return frames
    if frames.shape[1] == 1:
        return frames[:, 0]
    return frames.mean(axis=1)
