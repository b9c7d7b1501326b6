from __future__ import annotations

"""Session data model: configuration, lesson content, quiz and results."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

SKIPPED = -1


class Complexity(str, Enum):
    SIMPLE = "Simple"
    COMPLEX = "Complex"


class Pacing(str, Enum):
    NORMAL = "Normal"
    FAST = "Fast"


@dataclass(frozen=True)
class SessionConfiguration:
    topic: str
    complexity: Complexity = Complexity.SIMPLE
    pacing: Pacing = Pacing.NORMAL

    def to_json(self) -> Dict[str, Any]:
        return {"topic": self.topic, "complexity": self.complexity.value, "pacing": self.pacing.value}

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "SessionConfiguration":
        return cls(
            topic=str(data["topic"]),
            complexity=Complexity(data.get("complexity", Complexity.SIMPLE.value)),
            pacing=Pacing(data.get("pacing", Pacing.NORMAL.value)),
        )


@dataclass(frozen=True)
class QuizQuestion:
    prompt: str
    options: Tuple[str, ...]
    correct_index: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "options", tuple(self.options))
        if not (0 <= int(self.correct_index) < len(self.options)):
            raise ValueError(
                f"correct_index {self.correct_index} out of range for {len(self.options)} options"
            )

    def to_json(self) -> Dict[str, Any]:
        return {"question": self.prompt, "options": list(self.options), "correctIndex": self.correct_index}

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "QuizQuestion":
        return cls(
            prompt=str(data["question"]),
            options=tuple(str(o) for o in data.get("options", [])),
            correct_index=int(data["correctIndex"]),
        )


@dataclass(frozen=True)
class SynthesizedAudio:
    """Encoded 16-bit PCM plus the format the synthesizer reported."""

    data: bytes
    sample_rate: int = 24000
    channels: int = 1


@dataclass(frozen=True)
class RecordedAudio:
    data: bytes
    mime_type: str = "audio/wav"


@dataclass(frozen=True)
class SpokenAnswer:
    transcript: str
    answer: str


@dataclass(frozen=True)
class LessonContent:
    script: str
    audio: SynthesizedAudio
    quiz: Tuple[QuizQuestion, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "quiz", tuple(self.quiz))


@dataclass(frozen=True)
class WorkloadRating:
    mental_demand: int = 50
    performance: int = 50
    effort: int = 50
    frustration: int = 50

    def __post_init__(self) -> None:
        for name in ("mental_demand", "performance", "effort", "frustration"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or not (0 <= value <= 100):
                raise ValueError(f"{name} must be an integer in 0..100, got {value!r}")

    def to_json(self) -> Dict[str, Any]:
        return {
            "mentalDemand": self.mental_demand,
            "performance": self.performance,
            "effort": self.effort,
            "frustration": self.frustration,
        }


@dataclass(frozen=True)
class SessionResult:
    configuration: SessionConfiguration
    quiz_score: int
    workload_rating: WorkloadRating
    quiz_total: int = 0
    answers: Tuple[int, ...] = field(default_factory=tuple)
    session_id: Optional[str] = None

    def to_json(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "config": self.configuration.to_json(),
            "quizScore": self.quiz_score,
            "quizTotal": self.quiz_total,
            "quizAnswers": list(self.answers),
            "rating": self.workload_rating.to_json(),
        }


def quiz_from_json(items: List[Dict[str, Any]]) -> List[QuizQuestion]:
    return [QuizQuestion.from_json(item) for item in items]
