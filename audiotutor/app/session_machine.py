from __future__ import annotations

"""Session state machine for one guided audio lesson.

LOADING -> PLAYING -> QUIZ -> RATING -> FINISHED, with the interruption loop
PLAYING -> LISTENING -> PROCESSING -> ANSWERING -> PLAYING nested inside the
playing phase and ERROR reachable from LOADING.

All transitions run on one asyncio worker that consumes triggers one at a
time. Service calls run as background jobs that post their outcome as a
trigger; audio completions arrive from the rendering thread and are posted
thread-safely. Every posted trigger carries the epoch it was issued in, and
``teardown``/``restart`` bump the epoch so late outcomes are dropped.
"""

import asyncio
import random
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, Set

import numpy as np

from ..audio.capture import Recorder
from ..audio.player import AudioPlayer
from ..audio.rendering import make_renderer_from_config
from ..config.config import play_rate_for, validate_config
from ..errors import CaptureError
from ..generation.service import GenerationService
from ..models import LessonContent, SessionConfiguration, SessionResult, SpokenAnswer, WorkloadRating
from ..quiz.flow import QuizFlowController
from ..results.event_log import SessionEventLog
from .events import EventBus
from .explain import trace
from .interruption import InterruptionPipeline

LOAD_FAILED_MESSAGE = "Failed to initialize session. Please try again."


class SessionState(Enum):
    LOADING = "LOADING"
    PLAYING = "PLAYING"
    LISTENING = "LISTENING"
    PROCESSING = "PROCESSING"
    ANSWERING = "ANSWERING"
    QUIZ = "QUIZ"
    RATING = "RATING"
    FINISHED = "FINISHED"
    ERROR = "ERROR"


class PresentationMode(str, Enum):
    DEFAULT = "default"
    EXPLANATION = "explanation"
    INTERRUPTION = "interruption"
    QUIZ = "quiz"


_INTERRUPTION_STATES = {SessionState.LISTENING, SessionState.PROCESSING, SessionState.ANSWERING}


def presentation_mode(state: SessionState) -> PresentationMode:
    if state == SessionState.PLAYING:
        return PresentationMode.EXPLANATION
    if state in _INTERRUPTION_STATES:
        return PresentationMode.INTERRUPTION
    if state == SessionState.QUIZ:
        return PresentationMode.QUIZ
    return PresentationMode.DEFAULT


class Trigger(Enum):
    CONTENT_READY = "content_ready"
    GENERATION_FAILED = "generation_failed"
    LESSON_COMPLETE = "lesson_complete"
    START_INTERRUPTION = "start_interruption"
    STOP_INTERRUPTION = "stop_interruption"
    ANSWER_READY = "answer_ready"
    ANSWER_FAILED = "answer_failed"
    ANSWER_COMPLETE = "answer_complete"
    QUIZ_ANSWER = "quiz_answer"
    QUIZ_SKIP = "quiz_skip"
    QUIZ_PREVIOUS = "quiz_previous"
    RATING_SUBMITTED = "rating_submitted"
    RESTART = "restart"


@dataclass(frozen=True)
class _Posted:
    trigger: Trigger
    payload: Any
    epoch: int


# (state, trigger) -> handler method name
_TRANSITIONS: Dict[tuple, str] = {
    (SessionState.LOADING, Trigger.CONTENT_READY): "_on_content_ready",
    (SessionState.LOADING, Trigger.GENERATION_FAILED): "_on_generation_failed",
    (SessionState.PLAYING, Trigger.LESSON_COMPLETE): "_on_lesson_complete",
    (SessionState.PLAYING, Trigger.START_INTERRUPTION): "_on_start_interruption",
    (SessionState.LISTENING, Trigger.STOP_INTERRUPTION): "_on_stop_interruption",
    (SessionState.PROCESSING, Trigger.ANSWER_READY): "_on_answer_ready",
    (SessionState.PROCESSING, Trigger.ANSWER_FAILED): "_on_answer_failed",
    (SessionState.ANSWERING, Trigger.ANSWER_COMPLETE): "_on_answer_complete",
    (SessionState.QUIZ, Trigger.QUIZ_ANSWER): "_on_quiz_answer",
    (SessionState.QUIZ, Trigger.QUIZ_SKIP): "_on_quiz_skip",
    (SessionState.QUIZ, Trigger.QUIZ_PREVIOUS): "_on_quiz_previous",
    (SessionState.RATING, Trigger.RATING_SUBMITTED): "_on_rating_submitted",
}


def random_participant_id() -> str:
    return f"p-{random.randint(0, 9999):04d}"


class SessionStateMachine:
    """Drives one lesson session from loading to the final rating.

    Args:
        config: Topic, complexity and pacing chosen by the learner.
        service: Generation collaborator (lesson, speech, quiz, answers).
        cfg: Configuration dictionary; validated on construction.
        recorder: Question recorder. Without one every interruption falls
            back to PLAYING.
        player_factory: Builds an AudioPlayer for a play-rate. Defaults to a
            player on the configured renderer backend.
        event_log: Session-scoped event recorder.
        participant_id: Identifier written to the event log.
        bus: EventBus for presentation signals.
    """

    def __init__(
        self,
        config: SessionConfiguration,
        service: GenerationService,
        *,
        cfg: Optional[Dict[str, Any]] = None,
        recorder: Optional[Recorder] = None,
        player_factory: Optional[Callable[[float], AudioPlayer]] = None,
        event_log: Optional[SessionEventLog] = None,
        participant_id: Optional[str] = None,
        bus: Optional[EventBus] = None,
    ) -> None:
        self.config = config
        self.cfg = validate_config(cfg if cfg is not None else {})
        self.events = bus or EventBus()
        self.event_log = event_log or SessionEventLog()
        self.participant_id = participant_id or random_participant_id()
        self._service = service
        self._player_factory = player_factory or self._default_player
        self._pipeline = InterruptionPipeline(
            recorder,
            service,
            self._player_factory,
            answer_play_rate=float(self.cfg["pacing"]["answer_play_rate"]),
        )

        self.state = SessionState.LOADING
        self.mode = presentation_mode(self.state)
        self.error_message: Optional[str] = None
        self.content: Optional[LessonContent] = None
        self.quiz: Optional[QuizFlowController] = None
        self.answer_text = ""
        self.transcript = ""
        self.interruptions = 0
        self.session_id: Optional[str] = None

        self._lesson: Optional[AudioPlayer] = None
        self._epoch = 0
        self._torn_down = False
        self._queue: Optional[asyncio.Queue] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._loop_thread: Optional[int] = None
        self._worker: Optional[asyncio.Task] = None
        self._jobs: Set[asyncio.Task] = set()

    def _default_player(self, play_rate: float) -> AudioPlayer:
        audio = self.cfg["audio"]
        return AudioPlayer(
            play_rate,
            renderer=make_renderer_from_config(self.cfg),
            fft_size=int(audio["fft_size"]),
            min_decibels=float(audio["min_decibels"]),
            max_decibels=float(audio["max_decibels"]),
        )

    # ---------------------------------------------------------------- lifecycle

    async def start(self) -> None:
        """Start the worker and begin loading content. Must run on the loop."""
        if self._worker is not None:
            return
        self._loop = asyncio.get_running_loop()
        self._loop_thread = threading.get_ident()
        self._queue = asyncio.Queue()
        self._worker = asyncio.create_task(self._run())
        self._begin_loading(initial=True)

    async def wait_idle(self) -> None:
        """Wait until no trigger is queued and no background job is pending."""
        if self._queue is None:
            return
        while True:
            await self._queue.join()
            pending = [j for j in self._jobs if not j.done()]
            if not pending:
                if self._queue.empty():
                    return
                continue
            await asyncio.wait(pending)

    def teardown(self) -> None:
        """Stop both tracks, discard any recording and cancel in-flight jobs.

        Valid in any state. Triggers issued before the call are dropped and
        later entry-point calls are ignored until ``restart``. ``state`` and
        ``mode`` keep their last values, so check ``torn_down`` before
        presenting them as live.
        """
        self._epoch += 1
        self._torn_down = True
        for job in list(self._jobs):
            job.cancel()
        self._release_audio()
        self.event_log.append_event("session_teardown", state=self.state.value)
        trace("session_teardown", {"state": self.state.value})

    async def shutdown(self) -> None:
        self.teardown()
        if self._jobs:
            await asyncio.gather(*self._jobs, return_exceptions=True)
        worker, self._worker = self._worker, None
        if worker is not None:
            worker.cancel()
            try:
                await worker
            except asyncio.CancelledError:
                pass

    # ----------------------------------------------------------- entry points

    def start_interruption(self) -> None:
        self._post(Trigger.START_INTERRUPTION)

    def stop_interruption(self) -> None:
        self._post(Trigger.STOP_INTERRUPTION)

    def submit_quiz_answer(self, index: int) -> None:
        if self.state == SessionState.QUIZ and self.quiz is not None:
            question = self.quiz.current_question
            if question is not None and not (0 <= index < len(question.options)):
                raise ValueError(f"option index {index} out of range for {len(question.options)} options")
        self._post(Trigger.QUIZ_ANSWER, int(index))

    def skip_quiz_question(self) -> None:
        self._post(Trigger.QUIZ_SKIP)

    def previous_quiz_question(self) -> None:
        self._post(Trigger.QUIZ_PREVIOUS)

    def submit_rating(self, rating: WorkloadRating) -> None:
        if not isinstance(rating, WorkloadRating):
            raise TypeError(f"expected WorkloadRating, got {type(rating).__name__}")
        self._post(Trigger.RATING_SUBMITTED, rating)

    def restart(self) -> None:
        """Tear down whatever is running and load a fresh session."""
        self.teardown()
        self._torn_down = False
        self._post(Trigger.RESTART)

    @property
    def torn_down(self) -> bool:
        return self._torn_down

    # ----------------------------------------------------------- visualization

    def _active_player(self) -> Optional[AudioPlayer]:
        if self.state == SessionState.ANSWERING and self._pipeline.answer_player is not None:
            return self._pipeline.answer_player
        return self._lesson

    def position(self) -> float:
        player = self._active_player()
        return player.current_position() if player is not None else 0.0

    def duration(self) -> float:
        player = self._active_player()
        return player.duration() if player is not None else 0.0

    def spectrum(self) -> np.ndarray:
        player = self._active_player()
        if player is None:
            return np.zeros(int(self.cfg["audio"]["fft_size"]) // 2, dtype=np.uint8)
        return player.spectrum_sample()

    # ----------------------------------------------------------------- queue

    def _post(self, trigger: Trigger, payload: Any = None, epoch: Optional[int] = None) -> None:
        if self._queue is None or self._loop is None:
            raise RuntimeError("session has not been started")
        if self._torn_down and epoch is None:
            trace("trigger_ignored", {"trigger": trigger.value, "reason": "torn_down"})
            return
        posted = _Posted(trigger, payload, self._epoch if epoch is None else epoch)
        if threading.get_ident() == self._loop_thread:
            self._queue.put_nowait(posted)
        else:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, posted)

    def _completion(self, trigger: Trigger) -> Callable[[], None]:
        epoch = self._epoch
        return lambda: self._post(trigger, epoch=epoch)

    def _spawn(self, coro) -> None:
        job = asyncio.create_task(coro)
        self._jobs.add(job)
        job.add_done_callback(self._jobs.discard)

    async def _run(self) -> None:
        assert self._queue is not None
        while True:
            posted = await self._queue.get()
            try:
                self._dispatch(posted)
            except Exception as e:
                self._fail(f"{type(e).__name__}: {e}")
            finally:
                self._queue.task_done()

    def _dispatch(self, posted: _Posted) -> None:
        if posted.epoch != self._epoch:
            trace("trigger_stale", {"trigger": posted.trigger.value})
            self._discard_payload(posted)
            return
        if posted.trigger == Trigger.RESTART:
            self._restart()
            return
        name = _TRANSITIONS.get((self.state, posted.trigger))
        if name is None:
            trace("trigger_ignored", {"trigger": posted.trigger.value, "state": self.state.value})
            self._discard_payload(posted)
            return
        handler = getattr(self, name)
        if posted.payload is None:
            handler()
        else:
            handler(posted.payload)

    @staticmethod
    def _discard_payload(posted: _Posted) -> None:
        if posted.trigger == Trigger.CONTENT_READY:
            _, player = posted.payload
            player.close()

    # ------------------------------------------------------------------ state

    def _set_state(self, new: SessionState, *, force: bool = False) -> None:
        old = self.state
        if old == new and not force:
            return
        self.state = new
        trace("state_changed", {"from": old.value, "to": new.value})
        self.events.emit("state_changed", (old, new))
        mode = presentation_mode(new)
        if mode != self.mode or force:
            self.mode = mode
            self.events.emit("mode_changed", mode)

    def _release_audio(self) -> None:
        try:
            self._pipeline.abort()
        finally:
            lesson, self._lesson = self._lesson, None
            if lesson is not None:
                lesson.close()

    def _fail(self, message: str) -> None:
        self.error_message = message or LOAD_FAILED_MESSAGE
        self._epoch += 1
        for job in list(self._jobs):
            job.cancel()
        self._release_audio()
        self.event_log.append_event("session_error", message=self.error_message)
        self._set_state(SessionState.ERROR)
        self.events.emit("session_error", self.error_message)

    # ---------------------------------------------------------------- loading

    def _begin_loading(self, *, initial: bool = False) -> None:
        self._set_state(SessionState.LOADING, force=initial)
        self.session_id = self.event_log.start(self.participant_id)
        self.event_log.append_event(
            "session_loading",
            topic=self.config.topic,
            complexity=self.config.complexity.value,
            pacing=self.config.pacing.value,
        )
        trace("session_loading", self.config.to_json())
        self._spawn(self._load_content(self._epoch))

    async def _load_content(self, epoch: int) -> None:
        player: Optional[AudioPlayer] = None
        try:
            script = await self._service.generate_lesson(
                self.config.topic, self.config.complexity, self.config.pacing
            )
            speech = asyncio.ensure_future(self._service.synthesize_speech(script))
            try:
                await asyncio.sleep(float(self.cfg["generation"]["quiz_stagger_ms"]) / 1000.0)
                quiz = await self._service.generate_quiz(script)
                audio = await speech
            finally:
                if not speech.done():
                    speech.cancel()
            player = self._player_factory(play_rate_for(self.cfg, self.config.pacing))
            player.load(audio)
        except asyncio.CancelledError:
            if player is not None:
                player.close()
            raise
        except Exception as e:
            if player is not None:
                player.close()
            trace("load_failed", {"error": repr(e)})
            self._post(Trigger.GENERATION_FAILED, e, epoch)
            return
        content = LessonContent(script=script, audio=audio, quiz=tuple(quiz))
        self._post(Trigger.CONTENT_READY, (content, player), epoch)

    def _on_content_ready(self, payload) -> None:
        content, player = payload
        self.content = content
        self._lesson = player
        self.quiz = QuizFlowController(content.quiz)
        self.event_log.append_context(self.config, content.script, content.quiz)
        self.event_log.append_event(
            "content_ready",
            words=len(content.script.split()),
            questions=len(content.quiz),
            duration=round(player.duration(), 3),
        )
        self._enter_playing()

    def _on_generation_failed(self, error: Exception) -> None:
        trace("generation_failed", {"error": str(error)})
        self._fail(LOAD_FAILED_MESSAGE)

    def _restart(self) -> None:
        self.content = None
        self.quiz = None
        self.error_message = None
        self.answer_text = ""
        self.transcript = ""
        self.interruptions = 0
        self._begin_loading()

    # ---------------------------------------------------------------- playing

    def _enter_playing(self) -> None:
        assert self._lesson is not None
        self._set_state(SessionState.PLAYING)
        self.answer_text = ""
        position = self._lesson.current_position()
        if position > 0.1:
            self.event_log.append_event("audio_resume", position=round(position, 3))
        else:
            self.event_log.append_event(
                "audio_start", topic=self.config.topic, duration=round(self._lesson.duration(), 3)
            )
        self._lesson.play(self._completion(Trigger.LESSON_COMPLETE))

    def _on_lesson_complete(self) -> None:
        assert self.quiz is not None
        self.event_log.append_event("lesson_complete")
        self._release_audio()
        if self.quiz.total == 0:
            self._finish_quiz()
        else:
            self._set_state(SessionState.QUIZ)
            self.events.emit("quiz_changed", self.quiz)

    # ----------------------------------------------------------- interruption

    def _on_start_interruption(self) -> None:
        assert self._lesson is not None
        if not self._lesson.is_playing:
            # Lesson already ran out; its completion is queued behind us
            trace("trigger_ignored", {"trigger": "start_interruption", "reason": "lesson_exhausted"})
            return
        position = self._pipeline.pause_lesson(self._lesson)
        self.interruptions += 1
        self.event_log.append_event("user_interrupt", progress_ms=int(round(position * 1000)))
        self._set_state(SessionState.LISTENING)
        if not self._pipeline.start_capture():
            err = self._pipeline.last_error
            self.event_log.append_event("capture_failed", error=str(err) if err else "")
            self._pipeline.finish()
            self._enter_playing()

    def _on_stop_interruption(self) -> None:
        self._set_state(SessionState.PROCESSING)
        try:
            recording = self._pipeline.finish_capture()
        except CaptureError as e:
            self.event_log.append_event("answer_failed", error=str(e))
            self._pipeline.finish()
            self._enter_playing()
            return
        self.event_log.append_event("question_submitted", bytes=len(recording.data))
        assert self.content is not None
        self._spawn(self._fetch_answer(self.content.script, recording, self._epoch))

    async def _fetch_answer(self, script: str, recording, epoch: int) -> None:
        try:
            spoken = await self._pipeline.fetch_answer(script, recording)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._post(Trigger.ANSWER_FAILED, e, epoch)
            return
        self._post(Trigger.ANSWER_READY, spoken, epoch)

    def _on_answer_ready(self, spoken: SpokenAnswer) -> None:
        self.transcript = spoken.transcript
        self.answer_text = spoken.answer
        self.event_log.append_conversation(spoken.transcript, spoken.answer)
        self._set_state(SessionState.ANSWERING)
        self.event_log.append_event("answer_start", chars=len(spoken.answer))
        try:
            self._pipeline.play_answer(self._completion(Trigger.ANSWER_COMPLETE))
        except Exception as e:
            # Output failure on the answer track abandons the answer, not the session
            self._on_answer_failed(e)

    def _on_answer_failed(self, error: Exception) -> None:
        self.event_log.append_event("answer_failed", error=str(error))
        trace("answer_failed", {"error": repr(error)})
        self._pipeline.finish()
        self._enter_playing()

    def _on_answer_complete(self) -> None:
        self.event_log.append_event("answer_end")
        self._pipeline.finish()
        self._enter_playing()

    # ------------------------------------------------------------------- quiz

    def _on_quiz_answer(self, index: int) -> None:
        assert self.quiz is not None
        question = self.quiz.current_question
        if question is None or not (0 <= index < len(question.options)):
            trace("trigger_ignored", {"trigger": "quiz_answer", "index": index})
            return
        position = self.quiz.current_index
        last = self.quiz.answer(index)
        self.event_log.append_event(
            "quiz_answer", question=position, selected=index, correct=index == question.correct_index
        )
        self._after_quiz_step(last)

    def _on_quiz_skip(self) -> None:
        assert self.quiz is not None
        position = self.quiz.current_index
        last = self.quiz.skip()
        self.event_log.append_event("quiz_skip", question=position)
        self._after_quiz_step(last)

    def _on_quiz_previous(self) -> None:
        assert self.quiz is not None
        if self.quiz.previous():
            self.event_log.append_event("quiz_previous", question=self.quiz.current_index)
            self.events.emit("quiz_changed", self.quiz)

    def _after_quiz_step(self, last: bool) -> None:
        if last:
            self._finish_quiz()
        else:
            self.events.emit("quiz_changed", self.quiz)

    def _finish_quiz(self) -> None:
        assert self.quiz is not None
        self.event_log.append_event("session_end", quiz_score=self.quiz.score)
        self.event_log.append_results(self.quiz.score, self.quiz.answers)
        self._set_state(SessionState.RATING)

    # ----------------------------------------------------------------- rating

    def _on_rating_submitted(self, rating: WorkloadRating) -> None:
        assert self.quiz is not None
        self.event_log.append_event("rating_submitted", **rating.to_json())
        self.event_log.append_results(self.quiz.score, self.quiz.answers, rating)
        result = SessionResult(
            configuration=self.config,
            quiz_score=self.quiz.score,
            workload_rating=rating,
            quiz_total=self.quiz.total,
            answers=self.quiz.answers,
            session_id=self.session_id,
        )
        record = self.event_log.finalize()
        self._set_state(SessionState.FINISHED)
        if record is not None:
            self.events.emit("session_logged", record)
        self.events.emit("session_finished", result)
