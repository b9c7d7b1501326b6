from __future__ import annotations

"""Configuration loading and validation for audiotutor.

This module loads YAML configuration, applies defaults, and validates
enumerations and numeric ranges used by the session machine.
"""

from pathlib import Path
from typing import Any, Dict, Optional

import sys

import yaml

from ..models import Pacing


ALLOWED_BACKENDS = {"sounddevice", "silent"}
ALLOWED_PROVIDERS = {"gemini"}


def _load_yaml(path: Path) -> Dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}
    except FileNotFoundError:
        print(f"ERROR: Config file not found: {path}", file=sys.stderr)
        sys.exit(1)


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration from YAML or defaults.

    Args:
        path: Optional path to a YAML config. If None, use package defaults.

    Returns:
        A dictionary with configuration values.
    """
    if path:
        cfg = _load_yaml(Path(path))
    else:
        default_path = Path(__file__).with_name("defaults.yml")
        cfg = _load_yaml(default_path)
    return cfg


def _positive_float(section: Dict[str, Any], key: str, default: float) -> None:
    try:
        value = float(section.get(key, default))
    except (TypeError, ValueError):
        value = -1.0
    if value <= 0:
        print(f"WARNING: Invalid {key} '{section.get(key)}', using {default}.")
        value = default
    section[key] = value


def validate_config(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """Apply defaults and validate configuration values.

    Args:
        cfg: The raw configuration dictionary.

    Returns:
        The validated and merged configuration dictionary.
    """
    # Shallow defaults for missing sections
    cfg.setdefault("audio", {})
    cfg.setdefault("pacing", {})
    cfg.setdefault("capture", {})
    cfg.setdefault("generation", {})
    cfg.setdefault("results", {})

    audio = cfg["audio"]
    pacing = cfg["pacing"]
    capture = cfg["capture"]
    generation = cfg["generation"]
    results = cfg["results"]

    audio.setdefault("backend", "sounddevice")
    audio.setdefault("sample_rate", 24000)
    audio.setdefault("channels", 1)
    audio.setdefault("fft_size", 256)
    audio.setdefault("min_decibels", -100.0)
    audio.setdefault("max_decibels", -30.0)
    audio.setdefault("blocksize", 1024)

    pacing.setdefault("normal", {})
    pacing.setdefault("fast", {})
    pacing["normal"].setdefault("play_rate", 0.9)
    pacing["normal"].setdefault("target_words", 150)
    pacing["fast"].setdefault("play_rate", 1.15)
    pacing["fast"].setdefault("target_words", 190)
    pacing.setdefault("answer_play_rate", 1.0)

    capture.setdefault("sample_rate", 16000)
    capture.setdefault("channels", 1)

    generation.setdefault("provider", "gemini")
    generation.setdefault("api_key_env", "GEMINI_API_KEY")
    generation.setdefault("base_url", "https://generativelanguage.googleapis.com/v1beta")
    generation.setdefault("text_model", "gemini-3-flash-preview")
    generation.setdefault("tts_model", "gemini-2.5-flash-preview-tts")
    generation.setdefault("voice", "Kore")
    generation.setdefault("quiz_questions", 3)
    generation.setdefault("timeout_s", 60)
    generation.setdefault("retries", 3)
    generation.setdefault("retry_delay_s", 1.0)
    generation.setdefault("quiz_stagger_ms", 500)

    results.setdefault("log_dir", "./session_logs")
    results.setdefault("data_dir", "./storage/data")

    # Enum validations
    backend = audio.get("backend")
    if backend not in ALLOWED_BACKENDS:
        print(f"WARNING: Unsupported audio backend '{backend}', falling back to 'sounddevice'.")
        audio["backend"] = "sounddevice"

    provider = generation.get("provider")
    if provider not in ALLOWED_PROVIDERS:
        print(f"WARNING: Unsupported generation provider '{provider}', using 'gemini'.")
        generation["provider"] = "gemini"

    # Numeric ranges
    _positive_float(pacing["normal"], "play_rate", 0.9)
    _positive_float(pacing["fast"], "play_rate", 1.15)
    _positive_float(pacing, "answer_play_rate", 1.0)

    fft_size = int(audio.get("fft_size", 256))
    if fft_size < 32 or fft_size > 32768 or fft_size & (fft_size - 1):
        print(f"WARNING: fft_size must be a power of two in 32..32768, got {fft_size}; using 256.")
        fft_size = 256
    audio["fft_size"] = fft_size

    if float(audio["min_decibels"]) >= float(audio["max_decibels"]):
        print("WARNING: min_decibels must be below max_decibels; using -100/-30.")
        audio["min_decibels"] = -100.0
        audio["max_decibels"] = -30.0

    generation["quiz_questions"] = max(0, int(generation.get("quiz_questions", 3)))
    generation["retries"] = max(0, int(generation.get("retries", 3)))

    return cfg


def play_rate_for(cfg: Dict[str, Any], pacing: Pacing) -> float:
    """Lesson track play-rate for a pacing variant."""
    section = cfg.get("pacing", {}).get("fast" if pacing == Pacing.FAST else "normal", {})
    return float(section.get("play_rate", 1.15 if pacing == Pacing.FAST else 0.9))


def target_words_for(cfg: Dict[str, Any], pacing: Pacing) -> int:
    """Script length that fills roughly one minute at the pacing's play-rate."""
    section = cfg.get("pacing", {}).get("fast" if pacing == Pacing.FAST else "normal", {})
    return int(section.get("target_words", 190 if pacing == Pacing.FAST else 150))
