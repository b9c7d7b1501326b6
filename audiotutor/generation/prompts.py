from __future__ import annotations

"""Prompt builders for the Gemini generation service."""

from ..models import Complexity

FALLBACK_ANSWER = "I didn't quite catch that, could you repeat?"


def lesson_prompt(topic: str, complexity: Complexity, target_words: int, play_rate: float) -> str:
    if complexity == Complexity.SIMPLE:
        level = "Use simple language, foundational concepts, and short sentences suitable for a beginner."
    else:
        level = (
            "Use technical terminology, dense syntax, and in-depth academic concepts "
            "suitable for an advanced student."
        )
    length = (
        f"The script must be approximately {target_words} words long. This specific length is required "
        f"because the text will be read at {play_rate:g}x speed, resulting in about 60 seconds of audio."
    )
    return (
        "You are an AI Tutor.\n"
        f"Topic: {topic}\n"
        f"Level: {complexity.value}\n"
        f"Instruction: {level}\n"
        f"Task: Write a clear, educational explanation of the topic. {length}\n"
        "Do not use markdown formatting like bold or headers, just plain text suitable for reading aloud.\n"
        "Strictly adhere to the word count to ensure the timing is correct."
    )


def quiz_prompt(script: str, count: int) -> str:
    return (
        f"Based on the following explanation, generate {count} multiple-choice comprehension questions.\n\n"
        f'Explanation: "{script}"\n\n'
        "Each question has exactly four options and correctIndex is the 0-based index of the correct option."
    )


def answer_prompt(script: str) -> str:
    return (
        "You are an AI Tutor interrupting your lesson to answer a student's question.\n\n"
        f'Context of the current lesson: "{script}"\n\n'
        "Instruction:\n"
        "1. Listen to the student's question in the audio and transcribe it as `transcript`.\n"
        "2. Answer the question in ONE SHORT SENTENCE (max 20 words) as `answer`.\n"
        "3. Be direct and encouraging."
    )
