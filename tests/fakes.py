"""Test doubles: manual clock, renderer, recorder and generation service."""

from __future__ import annotations

import asyncio
from typing import Callable, List, Optional

import numpy as np

from audiotutor.audio.capture import Recorder
from audiotutor.audio.pcm import encode_pcm16
from audiotutor.audio.player import AudioPlayer
from audiotutor.audio.rendering import Renderer
from audiotutor.errors import CaptureError
from audiotutor.generation.service import GenerationService
from audiotutor.models import QuizQuestion, RecordedAudio, SpokenAnswer, SynthesizedAudio


class FakeClock:
    def __init__(self, t: float = 100.0) -> None:
        self.t = t

    def __call__(self) -> float:
        return self.t

    def advance(self, dt: float) -> None:
        self.t += dt


class FakeRenderer(Renderer):
    """Renderer whose exhaustion is triggered by hand with ``finish()``."""

    def __init__(self, fail_start: bool = False) -> None:
        self.fail_start = fail_start
        self.starts: List[tuple] = []
        self.callbacks: List[Callable[[], None]] = []
        self.running = False
        self.closed = False
        self._on_exhausted: Optional[Callable[[], None]] = None

    def start(self, frames, sample_rate, offset_frames, play_rate, on_exhausted) -> None:
        if self.fail_start:
            raise RuntimeError("output device unavailable")
        self.starts.append((int(offset_frames), float(play_rate)))
        self.callbacks.append(on_exhausted)
        self.running = True
        self._on_exhausted = on_exhausted

    def stop(self) -> None:
        self.running = False
        self._on_exhausted = None

    def close(self) -> None:
        self.stop()
        self.closed = True

    def finish(self) -> None:
        callback = self._on_exhausted
        self.running = False
        self._on_exhausted = None
        if callback is not None:
            callback()


class PlayerFactory:
    """Builds AudioPlayers on fake renderers sharing one clock."""

    def __init__(self, clock: FakeClock, fail_start_on: Optional[int] = None) -> None:
        self.clock = clock
        # Index of the built player whose renderer cannot open its output
        self.fail_start_on = fail_start_on
        self.players: List[AudioPlayer] = []
        self.renderers: List[FakeRenderer] = []
        self.rates: List[float] = []

    def __call__(self, play_rate: float) -> AudioPlayer:
        renderer = FakeRenderer(fail_start=len(self.players) == self.fail_start_on)
        player = AudioPlayer(play_rate, renderer=renderer, clock=self.clock)
        self.players.append(player)
        self.renderers.append(renderer)
        self.rates.append(play_rate)
        return player


class FakeRecorder(Recorder):
    def __init__(self, fail_start: bool = False, fail_stop: bool = False) -> None:
        self.fail_start = fail_start
        self.fail_stop = fail_stop
        self.recording = False
        self.discarded = 0
        self.stopped = 0

    @property
    def is_recording(self) -> bool:
        return self.recording

    def start(self) -> None:
        if self.fail_start:
            raise CaptureError("microphone permission denied")
        self.recording = True

    def stop(self) -> RecordedAudio:
        self.recording = False
        self.stopped += 1
        if self.fail_stop:
            raise CaptureError("device lost")
        return RecordedAudio(data=b"RIFF-question", mime_type="audio/wav")

    def discard(self) -> None:
        self.recording = False
        self.discarded += 1


def tone(seconds: float, sample_rate: int = 8000, freq: float = 440.0) -> SynthesizedAudio:
    t = np.arange(int(seconds * sample_rate)) / float(sample_rate)
    return SynthesizedAudio(data=encode_pcm16(0.5 * np.sin(2 * np.pi * freq * t)), sample_rate=sample_rate)


QUIZ = [
    QuizQuestion("What is A?", ("x", "a", "y"), 1),
    QuizQuestion("What is B?", ("b", "x", "y"), 0),
    QuizQuestion("What is C?", ("x", "y", "c"), 2),
]


class FakeService(GenerationService):
    def __init__(
        self,
        *,
        script: str = "A lesson about things.",
        lesson_audio: Optional[SynthesizedAudio] = None,
        answer_audio: Optional[SynthesizedAudio] = None,
        quiz: Optional[List[QuizQuestion]] = None,
        lesson_error: Optional[Exception] = None,
        answer_error: Optional[Exception] = None,
        answer_speech_error: Optional[Exception] = None,
        spoken: Optional[SpokenAnswer] = None,
    ) -> None:
        self.script = script
        self.lesson_audio = lesson_audio or tone(30.0)
        self.answer_audio = answer_audio or tone(2.0)
        self.quiz = list(QUIZ) if quiz is None else quiz
        self.lesson_error = lesson_error
        self.answer_error = answer_error
        self.answer_speech_error = answer_speech_error
        self.spoken = spoken or SpokenAnswer(transcript="What is A?", answer="A is the first letter.")
        self.answer_gate: Optional[asyncio.Event] = None
        self.calls: List[str] = []

    async def generate_lesson(self, topic, complexity, pacing) -> str:
        self.calls.append("generate_lesson")
        if self.lesson_error is not None:
            raise self.lesson_error
        return self.script

    async def synthesize_speech(self, text: str) -> SynthesizedAudio:
        self.calls.append("synthesize_speech")
        if text == self.script:
            return self.lesson_audio
        if self.answer_speech_error is not None:
            raise self.answer_speech_error
        return self.answer_audio

    async def generate_quiz(self, script: str) -> List[QuizQuestion]:
        self.calls.append("generate_quiz")
        return list(self.quiz)

    async def answer_question(self, script: str, recording: RecordedAudio) -> SpokenAnswer:
        self.calls.append("answer_question")
        if self.answer_gate is not None:
            await self.answer_gate.wait()
        if self.answer_error is not None:
            raise self.answer_error
        return self.spoken
