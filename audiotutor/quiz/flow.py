from __future__ import annotations

"""Quiz flow: linear progression through a fixed question list.

Forward steps (answer/skip) append one entry to ``answers``; ``previous``
pops it and reverses its scoring, so ``len(answers) == current_index`` and
``score`` equals the number of correct, non-skipped entries at every stable
point.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from ..models import SKIPPED, QuizQuestion


@dataclass
class QuizDetail:
    index: int
    question: str
    selected: str
    skipped: bool
    correct: bool


@dataclass
class QuizSummary:
    """Aggregated result statistics for a finished (or partial) quiz."""

    total: int
    answered: int
    skipped: int
    score: int
    details: List[QuizDetail] = field(default_factory=list)


class QuizFlowController:
    def __init__(self, questions: Sequence[QuizQuestion]) -> None:
        self.questions: Tuple[QuizQuestion, ...] = tuple(questions)
        self.current_index = 0
        self.score = 0
        self._answers: List[int] = []

    @property
    def answers(self) -> Tuple[int, ...]:
        return tuple(self._answers)

    @property
    def total(self) -> int:
        return len(self.questions)

    @property
    def finished(self) -> bool:
        return self.current_index >= len(self.questions)

    @property
    def current_question(self) -> Optional[QuizQuestion]:
        if self.finished:
            return None
        return self.questions[self.current_index]

    def answer(self, option_index: int) -> bool:
        """Record ``option_index`` for the current question.

        Returns True when this was the last question.
        """
        question = self._require_current()
        if not (0 <= option_index < len(question.options)):
            raise ValueError(f"option index {option_index} out of range for {len(question.options)} options")
        if option_index == question.correct_index:
            self.score += 1
        return self._advance(option_index)

    def skip(self) -> bool:
        self._require_current()
        return self._advance(SKIPPED)

    def previous(self) -> bool:
        """Undo the most recent forward step. Returns False at index 0."""
        if self.current_index == 0:
            return False
        last = self._answers[-1]
        undone = self.questions[self.current_index - 1]
        if last != SKIPPED and last == undone.correct_index:
            self.score = max(0, self.score - 1)
        self._answers.pop()
        self.current_index -= 1
        return True

    def recompute_score(self) -> int:
        return sum(
            1
            for q, a in zip(self.questions, self._answers)
            if a != SKIPPED and a == q.correct_index
        )

    def summary(self) -> QuizSummary:
        return summarize(self.questions, self._answers, self.score)

    def _require_current(self) -> QuizQuestion:
        question = self.current_question
        if question is None:
            raise RuntimeError("quiz is already finished")
        return question

    def _advance(self, entry: int) -> bool:
        self._answers.append(entry)
        self.current_index += 1
        return self.finished


def summarize(questions: Sequence[QuizQuestion], answers: Sequence[int], score: int) -> QuizSummary:
    """Per-question details and totals for the answers given so far."""
    details: List[QuizDetail] = []
    skipped = 0
    for i, (q, a) in enumerate(zip(questions, answers)):
        is_skipped = a == SKIPPED
        skipped += 1 if is_skipped else 0
        details.append(
            QuizDetail(
                index=i + 1,
                question=q.prompt,
                selected="SKIPPED" if is_skipped else q.options[a],
                skipped=is_skipped,
                correct=not is_skipped and a == q.correct_index,
            )
        )
    return QuizSummary(
        total=len(questions),
        answered=len(details) - skipped,
        skipped=skipped,
        score=int(score),
        details=details,
    )
