from __future__ import annotations

"""Generation service boundary.

The session machine treats every call as an opaque asynchronous operation
that either returns a value or raises one of the taxonomy errors. Retries and
timeouts live behind this interface.
"""

from typing import List

from ..models import Complexity, Pacing, QuizQuestion, RecordedAudio, SpokenAnswer, SynthesizedAudio


class GenerationService:
    """Abstract-like generative content service."""

    async def generate_lesson(self, topic: str, complexity: Complexity, pacing: Pacing) -> str:
        """Write the lesson script. Raises GenerationError."""
        raise NotImplementedError

    async def synthesize_speech(self, text: str) -> SynthesizedAudio:
        """Speak ``text``. Raises SynthesisError."""
        raise NotImplementedError

    async def generate_quiz(self, script: str) -> List[QuizQuestion]:
        """Comprehension questions for ``script``; may be empty. Raises GenerationError."""
        raise NotImplementedError

    async def answer_question(self, script: str, recording: RecordedAudio) -> SpokenAnswer:
        """Transcribe and answer a spoken question about ``script``. Raises AnswerError."""
        raise NotImplementedError

    async def aclose(self) -> None:
        """Release resources."""
        return None
