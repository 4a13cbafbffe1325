"""
Authoritative orchestrator state container.

Rules:
- This dataclass is a pure data model.
- It contains ALL state the reducer may ever need.
- No behavior, no helpers, no derived logic.
"""
from __future__ import annotations

from dataclasses import dataclass

from orchestrator.enums.state import SessionState


@dataclass(frozen=True)
class OrchestratorState:
    """
    Immutable snapshot of the call lifecycle.

    attempt:
        Monotonic count of accepted start requests. Bumped only on
        IDLE|ERROR -> CONNECTING; never reused.

    last_error:
        User-facing message of the most recent failure. Cleared when a new
        attempt starts.
    """

    state: SessionState = SessionState.IDLE
    attempt: int = 0
    last_error: str | None = None
