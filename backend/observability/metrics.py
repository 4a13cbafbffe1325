"""
Metrics helpers for observability.

- Durations use monotonic time; event timestamps use wall-clock time
- One metric = one log event, no aggregation in-process
- Prefer the `timed()` context manager so a timer can never leak
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Any, Iterator

from observability.logger import log_event


@contextmanager
def timed(
    name: str,
    *,
    session_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> Iterator[dict[str, Any]]:
    """
    Measure the duration of the enclosed block and emit METRIC_TIMER.

    The yielded dict is merged into `details`, so the block can attach
    its outcome:

        with timed("channel_open", session_id=sid) as extra:
            await channel.open()
            extra["outcome"] = "open"

    The metric is emitted exactly once, also when the block raises.
    """
    extra: dict[str, Any] = {}
    start_ns = time.monotonic_ns()
    try:
        yield extra
    finally:
        duration_ms = (time.monotonic_ns() - start_ns) // 1_000_000
        log_event({
            "event_type": "METRIC_TIMER",
            "metric": name,
            "value_ms": duration_ms,
            "session_id": session_id,
            "details": {**(details or {}), **extra},
        })


def count(
    name: str,
    value: int,
    *,
    session_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> None:
    """Emit a single METRIC_COUNTER event."""
    log_event({
        "event_type": "METRIC_COUNTER",
        "metric": name,
        "value": value,
        "session_id": session_id,
        "details": details or {},
    })
