"""
Authoritative session state enumeration.

Rules:
- This enum defines ONLY the call lifecycle states.
- No behavior, no helper methods, no side effects.
- Transitions are defined exclusively in the reducer.
"""

from __future__ import annotations

from enum import Enum


class SessionState(str, Enum):
    """
    Lifecycle of a single live call attempt.

    IDLE and ERROR are resting states: a new call may start from either.
    CONNECTING and LISTENING mean a session (and its channel) is active.
    """

    IDLE = "IDLE"
    CONNECTING = "CONNECTING"
    LISTENING = "LISTENING"
    ERROR = "ERROR"
