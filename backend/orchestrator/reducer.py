"""
Pure session reducer.

(state, event) -> (new_state, commands)

Rules:
- Pure: no side effects, no IO, no clocks.
- Deterministic: output depends only on inputs.
- Total: every (state, event) pair is handled or explicitly ignored (logged).

Transition table:

    IDLE|ERROR            + StartRequested        -> CONNECTING  [BeginSession]
    CONNECTING|LISTENING  + StartRequested        -> (ignored; one channel at a time)
    CONNECTING            + ConfigurationMissing  -> ERROR       [SurfaceError, Teardown]
    CONNECTING            + MicrophoneDenied      -> ERROR       [SurfaceError, Teardown]
    CONNECTING            + StartFailed           -> ERROR       [SurfaceError, Teardown]
    CONNECTING            + ChannelOpened         -> LISTENING   [StartCapture]
    CONNECTING|LISTENING|ERROR + StopRequested    -> IDLE        [Teardown]
    CONNECTING|LISTENING  + ChannelClosed         -> IDLE        [Teardown]
    CONNECTING|LISTENING  + ChannelFailed         -> ERROR       [SurfaceError, Teardown]
    LISTENING             + CaptureEnded          -> ERROR       [SurfaceError, Teardown]
    LISTENING             + TranscriptFragment    -> LISTENING   [AppendTranscript]
    LISTENING             + AudioResponse         -> LISTENING   [SchedulePlayback]
    LISTENING             + TurnComplete          -> LISTENING   [FlushTranscript]
    LISTENING             + Interrupted           -> LISTENING   [InterruptPlayback]
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any

from orchestrator.commands import (
    AppendTranscript,
    BeginSession,
    Command,
    FlushTranscript,
    InterruptPlayback,
    LogEvent,
    SchedulePlayback,
    StartCapture,
    SurfaceError,
    Teardown,
)
from orchestrator.enums.state import SessionState
from orchestrator.events import (
    AudioResponse,
    CaptureEnded,
    ChannelClosed,
    ChannelFailed,
    ChannelOpened,
    ConfigurationMissing,
    Event,
    Interrupted,
    MicrophoneDenied,
    StartFailed,
    StartRequested,
    StopRequested,
    TranscriptFragment,
    TurnComplete,
)
from orchestrator.state_dataclass import OrchestratorState
from spec import (
    CAPTURE_ENDED_MESSAGE,
    CHANNEL_ERROR_MESSAGE,
    MICROPHONE_DENIED_MESSAGE,
    MISSING_API_KEY_MESSAGE,
    START_FAILED_GENERIC_MESSAGE,
    START_FAILED_MESSAGE,
)

_ACTIVE = (SessionState.CONNECTING, SessionState.LISTENING)


# =============================================================================
# Helpers
# =============================================================================

def _log(
    state: OrchestratorState,
    event: Event,
    decision: str,
    details: dict[str, Any] | None = None,
) -> LogEvent:
    return LogEvent(
        event={
            "ts_ms": event.ts_ms,
            "state": state.state.value,
            "attempt": state.attempt,
            "event_type": event.event_type.value,
            "decision": decision,
            "details": details or {},
        }
    )


def _ignore(
    state: OrchestratorState, event: Event, reason: str
) -> tuple[OrchestratorState, tuple[Command, ...]]:
    return state, (_log(state, event, "ignore", {"reason": reason}),)


def _transition(
    state: OrchestratorState,
    new_state: OrchestratorState,
    event: Event,
    commands: tuple[Command, ...],
) -> tuple[OrchestratorState, tuple[Command, ...]]:
    """Side-effect commands first, the state_changed log last."""
    decision = f"{state.state.value.lower()}_to_{new_state.state.value.lower()}"
    return new_state, commands + (
        _log(
            new_state,
            event,
            decision,
            {
                "from_state": state.state.value,
                "to_state": new_state.state.value,
            },
        ),
    )


def _fail(
    state: OrchestratorState, event: Event, message: str, reason: str
) -> tuple[OrchestratorState, tuple[Command, ...]]:
    new_state = replace(state, state=SessionState.ERROR, last_error=message)
    return _transition(
        state,
        new_state,
        event,
        (SurfaceError(message=message), Teardown(reason=reason)),
    )


def start_failed_message(detail: str) -> str:
    if not detail:
        return START_FAILED_GENERIC_MESSAGE
    return START_FAILED_MESSAGE.format(detail=detail)


def channel_error_message(reason: str) -> str:
    return CHANNEL_ERROR_MESSAGE.format(detail=reason or "connection lost")


# =============================================================================
# Reducer entrypoint
# =============================================================================

def reduce(  # pylint: disable=too-many-return-statements,too-many-branches
    state: OrchestratorState, event: Event
) -> tuple[OrchestratorState, tuple[Command, ...]]:
    """
    Pure reducer for the call lifecycle.

    Given the current state and a single event, returns:
    - the next state
    - a tuple of commands describing required side effects
    """
    current = state.state

    # ------------------------------------------------------------------
    # User control
    # ------------------------------------------------------------------
    if isinstance(event, StartRequested):
        if current in _ACTIVE:
            return _ignore(state, event, "session_already_active")
        new_state = replace(
            state,
            state=SessionState.CONNECTING,
            attempt=state.attempt + 1,
            last_error=None,
        )
        return _transition(
            state, new_state, event, (BeginSession(attempt=new_state.attempt),)
        )

    if isinstance(event, StopRequested):
        if current is SessionState.IDLE:
            return _ignore(state, event, "already_idle")
        new_state = replace(state, state=SessionState.IDLE, last_error=None)
        return _transition(state, new_state, event, (Teardown(reason="user_stop"),))

    # ------------------------------------------------------------------
    # Start-up failures
    # ------------------------------------------------------------------
    if isinstance(event, (ConfigurationMissing, MicrophoneDenied, StartFailed)):
        if current is not SessionState.CONNECTING:
            return _ignore(state, event, "not_connecting")
        if isinstance(event, ConfigurationMissing):
            return _fail(state, event, MISSING_API_KEY_MESSAGE, "configuration_missing")
        if isinstance(event, MicrophoneDenied):
            return _fail(state, event, MICROPHONE_DENIED_MESSAGE, "microphone_denied")
        return _fail(state, event, start_failed_message(event.detail), "start_failed")

    # ------------------------------------------------------------------
    # Channel lifecycle
    # ------------------------------------------------------------------
    if isinstance(event, ChannelOpened):
        if current is not SessionState.CONNECTING:
            return _ignore(state, event, "not_connecting")
        new_state = replace(state, state=SessionState.LISTENING)
        return _transition(state, new_state, event, (StartCapture(),))

    if isinstance(event, ChannelClosed):
        if current not in _ACTIVE:
            return _ignore(state, event, "no_active_session")
        new_state = replace(state, state=SessionState.IDLE)
        return _transition(
            state, new_state, event, (Teardown(reason="channel_closed"),)
        )

    if isinstance(event, ChannelFailed):
        if current not in _ACTIVE:
            return _ignore(state, event, "no_active_session")
        return _fail(state, event, channel_error_message(event.reason), "channel_failed")

    if isinstance(event, CaptureEnded):
        if current is not SessionState.LISTENING:
            return _ignore(state, event, "not_listening")
        return _fail(state, event, CAPTURE_ENDED_MESSAGE, "capture_ended")

    # ------------------------------------------------------------------
    # Inbound fan-out (LISTENING only)
    # ------------------------------------------------------------------
    if isinstance(event, (TranscriptFragment, AudioResponse, TurnComplete, Interrupted)):
        if current is not SessionState.LISTENING:
            return _ignore(state, event, "not_listening")

        if isinstance(event, TranscriptFragment):
            return state, (AppendTranscript(speaker=event.speaker, text=event.text),)
        if isinstance(event, AudioResponse):
            return state, (
                SchedulePlayback(
                    pcm_bytes=event.pcm_bytes, sample_rate_hz=event.sample_rate_hz
                ),
            )
        if isinstance(event, TurnComplete):
            return state, (FlushTranscript(), _log(state, event, "turn_complete"))
        return state, (InterruptPlayback(), _log(state, event, "interrupted"))

    return _ignore(state, event, "unhandled_event")
