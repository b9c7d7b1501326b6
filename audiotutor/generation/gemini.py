from __future__ import annotations

"""Gemini REST implementation of the generation service."""

import asyncio
import base64
import json
import os
import re
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

import httpx

from ..app.explain import trace, warn
from ..config.config import play_rate_for, target_words_for
from ..errors import AnswerError, GenerationError, SynthesisError
from ..models import Complexity, Pacing, QuizQuestion, RecordedAudio, SpokenAnswer, SynthesizedAudio
from .prompts import FALLBACK_ANSWER, answer_prompt, lesson_prompt, quiz_prompt
from .service import GenerationService

T = TypeVar("T")

_RATE_RE = re.compile(r"rate=(\d+)")

QUIZ_SCHEMA: Dict[str, Any] = {
    "type": "ARRAY",
    "items": {
        "type": "OBJECT",
        "properties": {
            "question": {"type": "STRING"},
            "options": {"type": "ARRAY", "items": {"type": "STRING"}},
            "correctIndex": {"type": "INTEGER"},
        },
        "required": ["question", "options", "correctIndex"],
    },
}

ANSWER_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "transcript": {"type": "STRING"},
        "answer": {"type": "STRING"},
    },
    "required": ["transcript", "answer"],
}


def is_retryable(err: Exception) -> bool:
    if isinstance(err, httpx.HTTPStatusError) and err.response.status_code >= 500:
        return True
    message = str(err)
    return "Internal error" in message or "Overloaded" in message


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    retries: int = 3,
    delay: float = 1.0,
    *,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """Call ``fn``, retrying server-side failures with exponential backoff."""
    while True:
        try:
            return await fn()
        except Exception as e:
            if retries <= 0 or not is_retryable(e):
                raise
            warn(f"Retrying API call ({retries} attempts left): {e}")
            await sleep(delay)
            retries -= 1
            delay *= 2


def _parts(data: Dict[str, Any]) -> List[Dict[str, Any]]:
    return data["candidates"][0]["content"]["parts"]


def _text_of(data: Dict[str, Any]) -> str:
    return "".join(str(p.get("text", "")) for p in _parts(data))


def _sample_rate_of(mime_type: str, default: int) -> int:
    m = _RATE_RE.search(mime_type or "")
    return int(m.group(1)) if m else default


class GeminiGenerationService(GenerationService):
    def __init__(
        self,
        cfg: Dict[str, Any],
        *,
        api_key: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        gen = cfg.get("generation", {})
        self.cfg = cfg
        self.api_key = api_key or os.environ.get(str(gen.get("api_key_env", "GEMINI_API_KEY")))
        if not self.api_key:
            raise ValueError(f"{gen.get('api_key_env', 'GEMINI_API_KEY')} is not configured")
        self.base_url = str(gen.get("base_url", "https://generativelanguage.googleapis.com/v1beta")).rstrip("/")
        self.text_model = str(gen.get("text_model", "gemini-3-flash-preview"))
        self.tts_model = str(gen.get("tts_model", "gemini-2.5-flash-preview-tts"))
        self.voice = str(gen.get("voice", "Kore"))
        self.quiz_questions = int(gen.get("quiz_questions", 3))
        self.retries = int(gen.get("retries", 3))
        self.retry_delay = float(gen.get("retry_delay_s", 1.0))
        self.default_sample_rate = int(cfg.get("audio", {}).get("sample_rate", 24000))
        self._client = client or httpx.AsyncClient(timeout=float(gen.get("timeout_s", 60)))
        self._sleep = sleep

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _post(self, model: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        r = await self._client.post(
            f"{self.base_url}/models/{model}:generateContent",
            params={"key": self.api_key},
            json=payload,
        )
        r.raise_for_status()
        return r.json()

    async def _call(self, model: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await with_retry(
            lambda: self._post(model, payload),
            retries=self.retries,
            delay=self.retry_delay,
            sleep=self._sleep,
        )

    async def generate_lesson(self, topic: str, complexity: Complexity, pacing: Pacing) -> str:
        prompt = lesson_prompt(topic, complexity, target_words_for(self.cfg, pacing), play_rate_for(self.cfg, pacing))
        try:
            data = await self._call(self.text_model, {"contents": [{"parts": [{"text": prompt}]}]})
            text = _text_of(data)
        except (httpx.HTTPError, KeyError, IndexError, TypeError, ValueError) as e:
            raise GenerationError(f"lesson generation failed: {e}") from e
        # Strip markdown bold/italic markers
        script = re.sub(r"\*+", "", text).strip()
        if not script:
            raise GenerationError("lesson generation returned no text")
        trace("lesson_generated", {"words": len(script.split())})
        return script

    async def synthesize_speech(self, text: str) -> SynthesizedAudio:
        if not text or not text.strip():
            raise SynthesisError("cannot synthesize empty text")
        payload = {
            "contents": [{"parts": [{"text": text}]}],
            "generationConfig": {
                "responseModalities": ["AUDIO"],
                "speechConfig": {"voiceConfig": {"prebuiltVoiceConfig": {"voiceName": self.voice}}},
            },
        }
        try:
            data = await self._call(self.tts_model, payload)
            inline = _parts(data)[0]["inlineData"]
            raw = base64.b64decode(inline["data"], validate=True)
        except (httpx.HTTPError, KeyError, IndexError, TypeError, ValueError) as e:
            raise SynthesisError(f"speech synthesis failed: {e}") from e
        if not raw:
            raise SynthesisError("speech synthesis returned no audio")
        rate = _sample_rate_of(str(inline.get("mimeType", "")), self.default_sample_rate)
        return SynthesizedAudio(data=raw, sample_rate=rate, channels=1)

    async def generate_quiz(self, script: str) -> List[QuizQuestion]:
        payload = {
            "contents": [{"parts": [{"text": quiz_prompt(script, self.quiz_questions)}]}],
            "generationConfig": {"responseMimeType": "application/json", "responseSchema": QUIZ_SCHEMA},
        }
        try:
            data = await self._call(self.text_model, payload)
            text = _text_of(data) or "[]"
        except (httpx.HTTPError, KeyError, IndexError, TypeError) as e:
            raise GenerationError(f"quiz generation failed: {e}") from e
        try:
            items = json.loads(text)
        except ValueError:
            warn("Failed to parse quiz JSON, continuing without a quiz")
            return []
        if not isinstance(items, list):
            warn("Quiz JSON is not a list, continuing without a quiz")
            return []
        quiz: List[QuizQuestion] = []
        for i, item in enumerate(items):
            try:
                quiz.append(QuizQuestion.from_json(item))
            except (KeyError, TypeError, ValueError) as e:
                warn(f"Dropping malformed quiz question {i}: {e}")
        return quiz

    async def answer_question(self, script: str, recording: RecordedAudio) -> SpokenAnswer:
        payload = {
            "contents": [
                {
                    "parts": [
                        {"text": answer_prompt(script)},
                        {
                            "inlineData": {
                                "mimeType": recording.mime_type,
                                "data": base64.b64encode(recording.data).decode("ascii"),
                            }
                        },
                    ]
                }
            ],
            "generationConfig": {"responseMimeType": "application/json", "responseSchema": ANSWER_SCHEMA},
        }
        try:
            data = await self._call(self.text_model, payload)
            text = _text_of(data)
        except (httpx.HTTPError, KeyError, IndexError, TypeError, ValueError) as e:
            raise AnswerError(f"answering failed: {e}") from e
        try:
            body = json.loads(text)
            transcript = str(body.get("transcript", "")).strip()
            answer = str(body.get("answer", "")).strip()
        except (ValueError, AttributeError):
            transcript, answer = "", text.strip()
        return SpokenAnswer(transcript=transcript, answer=answer or FALLBACK_ANSWER)


def make_service_from_config(cfg: Dict[str, Any]) -> GenerationService:
    """Factory for the generation service from config dict."""
    provider = cfg.get("generation", {}).get("provider", "gemini")
    if provider == "gemini":
        return GeminiGenerationService(cfg)
    raise ValueError(f"Unsupported generation provider: {provider}")
