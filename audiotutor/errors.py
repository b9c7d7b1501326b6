from __future__ import annotations

"""Error taxonomy for lesson sessions.

Loading failures are fatal to a session; interruption failures are recovered
locally by the session machine.
"""


class TutorError(Exception):
    """Base class for all session errors."""


class GenerationError(TutorError):
    """Lesson script or quiz generation failed."""


class SynthesisError(TutorError):
    """Speech synthesis failed or returned no audio."""


class AnswerError(TutorError):
    """Answering a spoken learner question failed."""


class DecodeError(TutorError):
    """Encoded audio bytes could not be decoded into samples."""


class CaptureError(TutorError):
    """Recording device or permission failure."""
