from __future__ import annotations

"""JSON export of finalized session logs.

One file per session, named after the lesson topic and the session start
time in milliseconds:

    lesson_<topic>_<startTime>.json
"""

import json
import re
from pathlib import Path
from typing import Any, Dict


def log_filename(log: Dict[str, Any]) -> str:
    topic = str((log.get("config") or {}).get("topic") or "session")
    topic = re.sub(r"\s+", "_", topic.strip()) or "session"
    topic = re.sub(r"[^\w\-]", "", topic) or "session"
    return f"lesson_{topic}_{int(log.get('startTime', 0))}.json"


def write_session_log(log: Dict[str, Any], out_dir: str | Path) -> Path:
    """Write a finalized session log as indented JSON and return its path."""
    d = Path(out_dir)
    d.mkdir(parents=True, exist_ok=True)
    p = d / log_filename(log)
    with p.open("w", encoding="utf-8") as f:
        json.dump(log, f, indent=2)
    return p
