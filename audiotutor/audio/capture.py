from __future__ import annotations

"""Question recording: start/stop capture contract and a microphone backend."""

import io
import threading
from typing import Dict, List, Optional

import numpy as np

from ..errors import CaptureError
from ..models import RecordedAudio


class Recorder:
    """Abstract-like recorder interface."""

    @property
    def is_recording(self) -> bool:
        raise NotImplementedError

    def start(self) -> None:
        """Begin capturing. Raises CaptureError on device/permission failure."""
        raise NotImplementedError

    def stop(self) -> RecordedAudio:
        """Finish capturing and return one encoded buffer."""
        raise NotImplementedError

    def discard(self) -> None:
        """Abort any in-flight capture, dropping what was recorded."""
        raise NotImplementedError


class SoundDeviceRecorder(Recorder):
    """Microphone capture through sounddevice, encoded as WAV with soundfile."""

    def __init__(self, sample_rate: int = 16000, channels: int = 1, device: Optional[str] = None) -> None:
        try:
            import sounddevice  # type: ignore
            import soundfile  # type: ignore
        except Exception as e:  # pragma: no cover - runtime dependency
            raise RuntimeError("sounddevice and soundfile are required for recording") from e

        self._sd = sounddevice
        self._sf = soundfile
        self.sample_rate = int(sample_rate)
        self.channels = int(channels)
        self.device = device
        self._lock = threading.Lock()
        self._chunks: List[np.ndarray] = []
        self._stream = None

    @property
    def is_recording(self) -> bool:
        return self._stream is not None

    def _callback(self, indata, frames, time_info, status) -> None:
        with self._lock:
            self._chunks.append(indata.copy())

    def start(self) -> None:
        if self._stream is not None:
            return
        with self._lock:
            self._chunks = []
        try:
            stream = self._sd.InputStream(
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype="float32",
                device=self.device,
                callback=self._callback,
            )
            stream.start()
        except Exception as e:
            raise CaptureError(f"could not start recording: {e}") from e
        self._stream = stream

    def _close_stream(self) -> None:
        stream = self._stream
        self._stream = None
        if stream is None:
            return
        try:
            stream.stop()
        finally:
            stream.close()

    def stop(self) -> RecordedAudio:
        if self._stream is None:
            raise CaptureError("recording was not started")
        try:
            self._close_stream()
        except Exception as e:
            raise CaptureError(f"could not stop recording: {e}") from e
        with self._lock:
            chunks, self._chunks = self._chunks, []
        if chunks:
            audio = np.concatenate(chunks, axis=0)
        else:
            audio = np.zeros((0, self.channels), dtype=np.float32)
        buf = io.BytesIO()
        self._sf.write(buf, audio, self.sample_rate, format="WAV", subtype="PCM_16")
        return RecordedAudio(data=buf.getvalue(), mime_type="audio/wav")

    def discard(self) -> None:
        try:
            self._close_stream()
        finally:
            with self._lock:
                self._chunks = []


def make_recorder_from_config(cfg: Dict) -> Recorder:
    capture = cfg.get("capture", {})
    return SoundDeviceRecorder(
        sample_rate=int(capture.get("sample_rate", 16000)),
        channels=int(capture.get("channels", 1)),
        device=capture.get("device"),
    )
