from __future__ import annotations

"""Interruption pipeline: ask a question mid-lesson and hear the answer.

Steps, driven by the session machine:

1. ``pause_lesson``   pause the lesson track, remembering its position
2. ``start_capture``  begin recording (False on device/permission failure)
3. ``finish_capture`` finalize the recording into one encoded buffer
4. ``fetch_answer``   transcript + answer text from the service, answer audio
                      synthesized and loaded into a fresh player
5. ``play_answer``    play the transient answer track
6. ``release_answer`` dispose of the transient player

Resuming the lesson is a ``play()`` on the same lesson player, which continues
from the paused-offset recorded in step 1.
"""

from typing import Callable, Optional

from ..audio.capture import Recorder
from ..audio.player import AudioPlayer
from ..errors import AnswerError, CaptureError, DecodeError, SynthesisError
from ..generation.service import GenerationService
from ..models import RecordedAudio, SpokenAnswer
from .explain import trace


class InterruptionPipeline:
    def __init__(
        self,
        recorder: Optional[Recorder],
        service: GenerationService,
        player_factory: Callable[[float], AudioPlayer],
        *,
        answer_play_rate: float = 1.0,
    ) -> None:
        self._recorder = recorder
        self._service = service
        self._player_factory = player_factory
        self.answer_play_rate = float(answer_play_rate)
        self.answer_player: Optional[AudioPlayer] = None
        self.interrupted_at: Optional[float] = None
        self.last_error: Optional[Exception] = None

    def pause_lesson(self, lesson: AudioPlayer) -> float:
        lesson.pause()
        self.interrupted_at = lesson.current_position()
        trace("lesson_paused", {"position": round(self.interrupted_at, 3)})
        return self.interrupted_at

    def start_capture(self) -> bool:
        try:
            if self._recorder is None:
                raise CaptureError("no recording device configured")
            self._recorder.start()
        except CaptureError as e:
            self.last_error = e
            trace("capture_failed", {"error": str(e)})
            return False
        return True

    def finish_capture(self) -> RecordedAudio:
        if self._recorder is None:
            raise CaptureError("no recording device configured")
        return self._recorder.stop()

    async def fetch_answer(self, script: str, recording: RecordedAudio) -> SpokenAnswer:
        """Ask the service, then load the spoken answer into a new player.

        Synthesis and decode failures are reported as AnswerError.
        """
        try:
            spoken = await self._service.answer_question(script, recording)
            audio = await self._service.synthesize_speech(spoken.answer)
        except SynthesisError as e:
            raise AnswerError(f"answer synthesis failed: {e}") from e
        player = self._player_factory(self.answer_play_rate)
        try:
            player.load(audio)
        except DecodeError as e:
            player.close()
            raise AnswerError(f"answer audio could not be decoded: {e}") from e
        self.release_answer()
        self.answer_player = player
        return spoken

    def play_answer(self, on_complete: Callable[[], None]) -> None:
        if self.answer_player is None:
            raise RuntimeError("no answer loaded")
        self.answer_player.play(on_complete)

    def release_answer(self) -> None:
        player = self.answer_player
        self.answer_player = None
        if player is not None:
            player.close()

    def finish(self) -> None:
        self.release_answer()
        self.interrupted_at = None

    def abort(self) -> None:
        """Discard any in-flight recording and the transient answer track."""
        try:
            if self._recorder is not None and self._recorder.is_recording:
                self._recorder.discard()
        finally:
            self.finish()
