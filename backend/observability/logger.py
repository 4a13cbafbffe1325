"""
JSONL event logger.

- One JSON object per line
- Output to stdout
- No buffering, no batching
- Never raises: logging must not take down an audio callback or a teardown
"""

from __future__ import annotations

import json
import sys
import time
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Mapping


# ------------------------------------------------------------------
# Explicit output sink (patchable in tests)
# ------------------------------------------------------------------

def _stdout_print(line: str) -> None:
    sys.stdout.write(line + "\n")
    sys.stdout.flush()

_print: Callable[[str], None] = _stdout_print


def _default(value: Any) -> Any:
    """Serialize the handful of non-JSON types that show up in session logs."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (bytes, bytearray)):
        return f"<{len(value)} bytes>"
    if isinstance(value, BaseException):
        return repr(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def log_event(event: Mapping[str, Any]) -> None:
    """
    Write a single JSONL event to stdout.

    The caller supplies event_type and any context (session_id, state,
    decision, ...). ts_ms is filled in when the caller omits it.
    """
    payload = dict(event)
    payload.setdefault("ts_ms", time.time_ns() // 1_000_000)

    try:
        line = json.dumps(
            payload, ensure_ascii=False, separators=(",", ":"), default=_default
        )
    except (TypeError, ValueError) as e:
        fallback: dict[str, Any] = {
            "ts_ms": payload.get("ts_ms"),
            "event_type": "LOGGER_SERIALIZATION_ERROR",
            "error": str(e),
            "original_event_repr": repr(event),
        }
        line = json.dumps(fallback, ensure_ascii=False, separators=(",", ":"))

    _print(line)
