from __future__ import annotations

"""Session-scoped structured event log.

Injected into the session machine; records timestamped facts, the lesson
context, spoken question/answer turns and the final results. Appends before
``start`` are ignored. The machine never reads the log back.
"""

import time
import uuid
from dataclasses import asdict
from typing import Any, Callable, Dict, List, Optional, Sequence

from ..models import QuizQuestion, SessionConfiguration, WorkloadRating
from ..quiz.flow import summarize


def _now_ms() -> int:
    return int(time.time() * 1000)


class SessionEventLog:
    def __init__(self, clock_ms: Callable[[], int] = _now_ms) -> None:
        self._clock_ms = clock_ms
        self._session: Optional[Dict[str, Any]] = None
        self._questions: List[QuizQuestion] = []

    @property
    def active(self) -> bool:
        return self._session is not None

    @property
    def session_id(self) -> Optional[str]:
        return self._session["sessionId"] if self._session else None

    def start(self, participant_id: str) -> str:
        self._questions = []
        self._session = {
            "participantId": participant_id,
            "sessionId": str(uuid.uuid4()),
            "startTime": self._clock_ms(),
            "events": [],
            "conversationHistory": [],
        }
        return self._session["sessionId"]

    def append_context(self, config: SessionConfiguration, script: str, quiz: Sequence[QuizQuestion]) -> None:
        if self._session is None:
            return
        self._questions = list(quiz)
        self._session["config"] = config.to_json()
        self._session["lessonScript"] = script
        self._session["quizQuestions"] = [q.to_json() for q in quiz]

    def append_event(self, event_type: str, **metadata: Any) -> None:
        if self._session is None:
            return
        now = self._clock_ms()
        self._session["events"].append(
            {
                "timestamp": now,
                "timestampRelative": now - self._session["startTime"],
                "eventType": event_type,
                "metadata": metadata,
            }
        )

    def append_conversation(self, transcript: str, answer: str) -> None:
        if self._session is None:
            return
        self._session["conversationHistory"].append(
            {"timestamp": self._clock_ms(), "userQuestion": transcript, "aiAnswer": answer}
        )

    def append_results(self, score: int, answers: Sequence[int], rating: Optional[WorkloadRating] = None) -> None:
        if self._session is None:
            return
        self._session["quizScore"] = int(score)
        self._session["quizAnswers"] = list(answers)
        summary = summarize(self._questions, answers, score)
        self._session["quizStats"] = {
            "totalQuestions": summary.total,
            "questionsAnswered": summary.answered,
            "questionsSkipped": summary.skipped,
            "finalScore": summary.score,
        }
        self._session["quizDetails"] = [asdict(d) for d in summary.details]
        if rating is not None:
            self._session["nasaTlx"] = rating.to_json()

    def snapshot(self) -> Optional[Dict[str, Any]]:
        return dict(self._session) if self._session is not None else None

    def finalize(self) -> Optional[Dict[str, Any]]:
        """Close the session and hand back its record."""
        record = self._session
        self._session = None
        self._questions = []
        return record
