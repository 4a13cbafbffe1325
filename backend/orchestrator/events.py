"""
Unified event definitions for the session reducer.

Rules:
- Events describe facts that have occurred.
- Events carry data only (no behavior).
- All reducer decisions are based on these events.
- The duplex channel speaks ONLY in these variants; no transport-specific
  message type crosses the adapter boundary.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from context.conversation import Speaker


# =============================================================================
# Event Type Enumeration
# =============================================================================

class EventType(str, Enum):
    """
    Canonical event types understood by the reducer.

    Every (state, event_type) pair must be explicitly handled
    or explicitly ignored by the reducer.
    """

    # ------------------------------------------------------------------
    # User control
    # ------------------------------------------------------------------
    START_REQUESTED = "START_REQUESTED"
    STOP_REQUESTED = "STOP_REQUESTED"

    # ------------------------------------------------------------------
    # Start-up failures (detected by the gateway)
    # ------------------------------------------------------------------
    CONFIGURATION_MISSING = "CONFIGURATION_MISSING"
    MICROPHONE_DENIED = "MICROPHONE_DENIED"
    START_FAILED = "START_FAILED"

    # ------------------------------------------------------------------
    # Capture
    # ------------------------------------------------------------------
    CAPTURE_ENDED = "CAPTURE_ENDED"

    # ------------------------------------------------------------------
    # Duplex channel
    # ------------------------------------------------------------------
    CHANNEL_OPENED = "CHANNEL_OPENED"
    TRANSCRIPT_FRAGMENT = "TRANSCRIPT_FRAGMENT"
    AUDIO_RESPONSE = "AUDIO_RESPONSE"
    TURN_COMPLETE = "TURN_COMPLETE"
    INTERRUPTED = "INTERRUPTED"

    # Terminal (at most one per channel)
    CHANNEL_CLOSED = "CHANNEL_CLOSED"
    CHANNEL_FAILED = "CHANNEL_FAILED"


# =============================================================================
# Base Event
# =============================================================================

@dataclass(frozen=True)
class Event:
    """
    Base event type.

    All events must specify:
    - event_type: discriminant
    - ts_ms: timestamp provided by the source (or fake in tests)
    """

    event_type: EventType
    ts_ms: int


# =============================================================================
# User Control Events
# =============================================================================

@dataclass(frozen=True)
class StartRequested(Event):
    """User asked to start a call."""


@dataclass(frozen=True)
class StopRequested(Event):
    """User asked to end the call."""


# =============================================================================
# Start-up Failures
# =============================================================================

@dataclass(frozen=True)
class ConfigurationMissing(Event):
    """A required credential or setting is absent."""
    detail: str


@dataclass(frozen=True)
class MicrophoneDenied(Event):
    """The OS refused microphone access."""
    detail: str


@dataclass(frozen=True)
class StartFailed(Event):
    """Any other failure while opening devices or the channel."""
    detail: str


# =============================================================================
# Capture
# =============================================================================

@dataclass(frozen=True)
class CaptureEnded(Event):
    """The capture device ended its stream without being asked to."""


# =============================================================================
# Duplex Channel Events
# =============================================================================

@dataclass(frozen=True)
class ChannelOpened(Event):
    """Remote confirmed the session setup; audio may flow."""


@dataclass(frozen=True)
class TranscriptFragment(Event):
    """Partial transcription text for one speaker."""
    speaker: Speaker
    text: str


@dataclass(frozen=True)
class AudioResponse(Event):
    """One chunk of agent audio (raw PCM16LE, already base64-decoded)."""
    pcm_bytes: bytes
    sample_rate_hz: int


@dataclass(frozen=True)
class TurnComplete(Event):
    """Remote agent finished its turn."""


@dataclass(frozen=True)
class Interrupted(Event):
    """Remote agent's current response was cut short."""


@dataclass(frozen=True)
class ChannelClosed(Event):
    """Channel closed cleanly. Terminal."""
    code: int | None = None
    reason: str | None = None


@dataclass(frozen=True)
class ChannelFailed(Event):
    """Transport-level failure. Terminal."""
    reason: str


TERMINAL_CHANNEL_EVENTS: tuple[type[Event], ...] = (ChannelClosed, ChannelFailed)
