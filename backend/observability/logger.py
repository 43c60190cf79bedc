"""
JSONL event logger.

- Write one JSON object per line
- Output to stdout by default
- No buffering, no batching
- No side effects beyond logging
"""

from __future__ import annotations

import json
import sys
from typing import Any, Mapping, Callable


LEVELS: dict[str, int] = {
    "debug": 10,
    "info": 20,
    "warning": 30,
    "error": 40,
}


# ------------------------------------------------------------------
# Explicit output sink (patchable in tests, swappable later)
# ------------------------------------------------------------------

def _stdout_print(line: str) -> None:
    sys.stdout.write(line + "\n")
    sys.stdout.flush()

_print: Callable[[str], None] = _stdout_print

_min_level: int = LEVELS["info"]
_enabled: bool = True


def set_level(level: str) -> None:
    """
    Drop records whose "level" field ranks below this one.

    Unknown names fall back to "info". Records without a level are
    always written.
    """
    global _min_level
    _min_level = LEVELS.get(level.lower(), LEVELS["info"])


def set_enabled(enabled: bool) -> None:
    global _enabled
    _enabled = enabled


def log_event(event: Mapping[str, Any]) -> None:
    """
    Write a single JSONL event to the sink.

    The caller is responsible for:
    - Supplying a fully-formed event dict
    - Including ts_ms, call_context, state, etc.

    This function:
    - Filters by level
    - Serializes to JSON
    - Writes exactly one line
    - Never raises
    """
    if not _enabled:
        return

    level = event.get("level")
    if isinstance(level, str) and LEVELS.get(level, _min_level) < _min_level:
        return

    try:
        line = json.dumps(event, ensure_ascii=False, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        # Last-resort fallback: logging must never crash the gate
        fallback: dict[str, Any] = {
            "ts_ms": event.get("ts_ms"),
            "event_type": "LOGGER_SERIALIZATION_ERROR",
            "error": str(e),
            "original_event_repr": repr(event),
        }
        line = json.dumps(fallback, ensure_ascii=False, separators=(",", ":"))

    _print(line)
