from __future__ import annotations

"""Minimal tracing helpers (Explain Mode).

Enable with the CLI flag to print one terse JSON line per session milestone.
"""

import json
from typing import Any, Dict

_ENABLED = False


def enable(flag: bool = True) -> None:
    global _ENABLED
    _ENABLED = bool(flag)


def enabled() -> bool:
    return _ENABLED


def trace(event: str, payload: Dict[str, Any] | None = None) -> None:
    if not _ENABLED:
        return
    data = payload or {}
    try:
        line = json.dumps(data, separators=(",", ":"), default=str)
    except (TypeError, ValueError):
        line = "{}"
    print(f"[EXPLAIN] {event} :: {line}")


def warn(message: str, payload: Dict[str, Any] | None = None) -> None:
    """Print a runtime warning and mirror it into the trace."""
    print(f"WARNING: {message}")
    trace("warning", {"message": message, **(payload or {})})
