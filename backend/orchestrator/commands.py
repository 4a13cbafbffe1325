"""
Side-effect command definitions for the session orchestrator.

Rules:
- Commands are declarative requests for side effects.
- Commands are emitted by the reducer and executed by the gateway.
- No behavior, no async, no I/O, no clocks.
Invariant:
    - All concrete Command subclasses MUST be frozen dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from context.conversation import Speaker


# =============================================================================
# Command Type Enumeration
# =============================================================================

class CommandType(str, Enum):
    """
    Canonical command types emitted by the reducer.

    These are stable discriminants used for logging and dispatch.
    """

    # Session lifecycle
    BEGIN_SESSION = "BEGIN_SESSION"
    START_CAPTURE = "START_CAPTURE"
    TEARDOWN = "TEARDOWN"
    SURFACE_ERROR = "SURFACE_ERROR"

    # Inbound fan-out
    APPEND_TRANSCRIPT = "APPEND_TRANSCRIPT"
    FLUSH_TRANSCRIPT = "FLUSH_TRANSCRIPT"
    SCHEDULE_PLAYBACK = "SCHEDULE_PLAYBACK"
    INTERRUPT_PLAYBACK = "INTERRUPT_PLAYBACK"

    # Observability
    LOG_EVENT = "LOG_EVENT"


# =============================================================================
# Base Command
# =============================================================================

class Command:
    """
    Base command type.

    command_type is an explicit discriminant and must never be inferred
    from Python type identity.
    """

    command_type: CommandType


# =============================================================================
# Session Lifecycle
# =============================================================================

@dataclass(frozen=True)
class BeginSession(Command):
    """Construct a fresh VoiceSession for this attempt."""
    attempt: int
    command_type: CommandType = CommandType.BEGIN_SESSION


@dataclass(frozen=True)
class StartCapture(Command):
    """Start streaming microphone chunks into the open channel."""
    command_type: CommandType = CommandType.START_CAPTURE


@dataclass(frozen=True)
class Teardown(Command):
    """Release every resource of the current session. Idempotent."""
    reason: str
    command_type: CommandType = CommandType.TEARDOWN


@dataclass(frozen=True)
class SurfaceError(Command):
    """Show a user-facing error message."""
    message: str
    command_type: CommandType = CommandType.SURFACE_ERROR


# =============================================================================
# Inbound Fan-out
# =============================================================================

@dataclass(frozen=True)
class AppendTranscript(Command):
    """Append a partial fragment to the speaker's turn buffer."""
    speaker: Speaker
    text: str
    command_type: CommandType = CommandType.APPEND_TRANSCRIPT


@dataclass(frozen=True)
class FlushTranscript(Command):
    """Flush both turn buffers into the transcript history."""
    command_type: CommandType = CommandType.FLUSH_TRANSCRIPT


@dataclass(frozen=True)
class SchedulePlayback(Command):
    """Decode and schedule one agent audio chunk."""
    pcm_bytes: bytes
    sample_rate_hz: int
    command_type: CommandType = CommandType.SCHEDULE_PLAYBACK


@dataclass(frozen=True)
class InterruptPlayback(Command):
    """Stop all scheduled agent audio immediately."""
    command_type: CommandType = CommandType.INTERRUPT_PLAYBACK


# =============================================================================
# Observability
# =============================================================================

@dataclass(frozen=True)
class LogEvent(Command):
    """Request to emit a structured observability event."""
    event: dict[str, Any]
    command_type: CommandType = CommandType.LOG_EVENT
