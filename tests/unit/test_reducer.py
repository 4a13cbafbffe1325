# pylint: disable=missing-module-docstring,missing-function-docstring

import pytest

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
    EventType,
    Interrupted,
    MicrophoneDenied,
    StartFailed,
    StartRequested,
    StopRequested,
    TranscriptFragment,
    TurnComplete,
)
from orchestrator.reducer import reduce
from orchestrator.state_dataclass import OrchestratorState
from spec import (
    CAPTURE_ENDED_MESSAGE,
    MICROPHONE_DENIED_MESSAGE,
    MISSING_API_KEY_MESSAGE,
)


# ---------------------------------------------------------------------
# Event helpers
# ---------------------------------------------------------------------

def start() -> StartRequested:
    return StartRequested(event_type=EventType.START_REQUESTED, ts_ms=0)


def stop() -> StopRequested:
    return StopRequested(event_type=EventType.STOP_REQUESTED, ts_ms=0)


def opened() -> ChannelOpened:
    return ChannelOpened(event_type=EventType.CHANNEL_OPENED, ts_ms=0)


def closed() -> ChannelClosed:
    return ChannelClosed(event_type=EventType.CHANNEL_CLOSED, ts_ms=0, code=1000)


def failed(reason: str = "socket reset") -> ChannelFailed:
    return ChannelFailed(event_type=EventType.CHANNEL_FAILED, ts_ms=0, reason=reason)


def fragment(speaker: str = "user", text: str = "hi") -> TranscriptFragment:
    return TranscriptFragment(event_type=EventType.TRANSCRIPT_FRAGMENT, ts_ms=0, speaker=speaker, text=text)  # type: ignore[arg-type]


def audio() -> AudioResponse:
    return AudioResponse(event_type=EventType.AUDIO_RESPONSE, ts_ms=0, pcm_bytes=b"\x00\x00", sample_rate_hz=24_000)


def turn_complete() -> TurnComplete:
    return TurnComplete(event_type=EventType.TURN_COMPLETE, ts_ms=0)


def interrupted() -> Interrupted:
    return Interrupted(event_type=EventType.INTERRUPTED, ts_ms=0)


def at(state: SessionState, attempt: int = 1) -> OrchestratorState:
    return OrchestratorState(state=state, attempt=attempt)


def side_effects(commands: tuple[Command, ...]) -> list[Command]:
    return [c for c in commands if not isinstance(c, LogEvent)]


def decisions(commands: tuple[Command, ...]) -> list[str]:
    return [c.event["decision"] for c in commands if isinstance(c, LogEvent)]


# ---------------------------------------------------------------------
# Start / stop
# ---------------------------------------------------------------------

@pytest.mark.parametrize("origin", [SessionState.IDLE, SessionState.ERROR])
def test_start_from_idle_or_error_connects(origin: SessionState):
    state = OrchestratorState(state=origin, attempt=2, last_error="old")

    new_state, commands = reduce(state, start())

    assert new_state.state is SessionState.CONNECTING
    assert new_state.attempt == 3
    assert new_state.last_error is None
    assert side_effects(commands) == [BeginSession(attempt=3)]
    assert decisions(commands) == [f"{origin.value.lower()}_to_connecting"]


@pytest.mark.parametrize("origin", [SessionState.CONNECTING, SessionState.LISTENING])
def test_start_while_active_is_ignored(origin: SessionState):
    state = at(origin)

    new_state, commands = reduce(state, start())

    assert new_state == state
    assert side_effects(commands) == []
    assert decisions(commands) == ["ignore"]
    assert commands[0].event["details"]["reason"] == "session_already_active"  # type: ignore[attr-defined]


@pytest.mark.parametrize("origin", [SessionState.CONNECTING, SessionState.LISTENING, SessionState.ERROR])
def test_stop_tears_down_to_idle(origin: SessionState):
    new_state, commands = reduce(at(origin), stop())

    assert new_state.state is SessionState.IDLE
    assert side_effects(commands) == [Teardown(reason="user_stop")]


def test_stop_from_error_clears_the_error():
    state = OrchestratorState(state=SessionState.ERROR, attempt=1, last_error="boom")

    new_state, _ = reduce(state, stop())

    assert new_state.state is SessionState.IDLE
    assert new_state.last_error is None


def test_stop_when_idle_is_ignored():
    new_state, commands = reduce(at(SessionState.IDLE), stop())

    assert new_state.state is SessionState.IDLE
    assert side_effects(commands) == []
    assert decisions(commands) == ["ignore"]


# ---------------------------------------------------------------------
# Start-up failures
# ---------------------------------------------------------------------

@pytest.mark.parametrize(
    "event,message",
    [
        (ConfigurationMissing(event_type=EventType.CONFIGURATION_MISSING, ts_ms=0, detail="api_key"), MISSING_API_KEY_MESSAGE),
        (MicrophoneDenied(event_type=EventType.MICROPHONE_DENIED, ts_ms=0, detail="denied"), MICROPHONE_DENIED_MESSAGE),
        (StartFailed(event_type=EventType.START_FAILED, ts_ms=0, detail="dns failure"), "Failed to start session: dns failure"),
    ],
)
def test_startup_failures_enter_error(event: Event, message: str):
    new_state, commands = reduce(at(SessionState.CONNECTING), event)

    assert new_state.state is SessionState.ERROR
    assert new_state.last_error == message
    effects = side_effects(commands)
    assert effects[0] == SurfaceError(message=message)
    assert isinstance(effects[1], Teardown)
    assert decisions(commands) == ["connecting_to_error"]


def test_startup_failure_messages_are_distinct():
    messages = {
        reduce(at(SessionState.CONNECTING), e)[0].last_error
        for e in (
            ConfigurationMissing(event_type=EventType.CONFIGURATION_MISSING, ts_ms=0, detail=""),
            MicrophoneDenied(event_type=EventType.MICROPHONE_DENIED, ts_ms=0, detail=""),
            StartFailed(event_type=EventType.START_FAILED, ts_ms=0, detail=""),
        )
    }
    assert len(messages) == 3


def test_startup_failure_after_stop_is_ignored():
    event = StartFailed(event_type=EventType.START_FAILED, ts_ms=0, detail="late")

    new_state, commands = reduce(at(SessionState.IDLE), event)

    assert new_state.state is SessionState.IDLE
    assert decisions(commands) == ["ignore"]


# ---------------------------------------------------------------------
# Channel lifecycle
# ---------------------------------------------------------------------

def test_channel_opened_starts_capture():
    new_state, commands = reduce(at(SessionState.CONNECTING), opened())

    assert new_state.state is SessionState.LISTENING
    assert side_effects(commands) == [StartCapture()]
    assert decisions(commands) == ["connecting_to_listening"]


@pytest.mark.parametrize("origin", [SessionState.CONNECTING, SessionState.LISTENING])
def test_channel_closed_returns_to_idle(origin: SessionState):
    new_state, commands = reduce(at(origin), closed())

    assert new_state.state is SessionState.IDLE
    assert side_effects(commands) == [Teardown(reason="channel_closed")]


@pytest.mark.parametrize("origin", [SessionState.CONNECTING, SessionState.LISTENING])
def test_channel_failure_enters_error_with_retry_hint(origin: SessionState):
    new_state, commands = reduce(at(origin), failed("socket reset"))

    assert new_state.state is SessionState.ERROR
    assert "socket reset" in (new_state.last_error or "")
    assert "reconnecting" in (new_state.last_error or "")
    assert [type(c) for c in side_effects(commands)] == [SurfaceError, Teardown]


@pytest.mark.parametrize("origin", [SessionState.IDLE, SessionState.ERROR])
def test_channel_terminal_events_without_session_are_ignored(origin: SessionState):
    for event in (closed(), failed()):
        new_state, commands = reduce(at(origin), event)
        assert new_state.state is origin
        assert side_effects(commands) == []


def test_capture_end_enters_error():
    new_state, commands = reduce(at(SessionState.LISTENING), CaptureEnded(event_type=EventType.CAPTURE_ENDED, ts_ms=0))

    assert new_state.state is SessionState.ERROR
    assert new_state.last_error == CAPTURE_ENDED_MESSAGE
    assert [type(c) for c in side_effects(commands)] == [SurfaceError, Teardown]


# ---------------------------------------------------------------------
# Inbound fan-out
# ---------------------------------------------------------------------

def test_fan_out_while_listening():
    listening = at(SessionState.LISTENING)

    assert side_effects(reduce(listening, fragment("agent", "Hel"))[1]) == [AppendTranscript(speaker="agent", text="Hel")]
    assert side_effects(reduce(listening, audio())[1]) == [SchedulePlayback(pcm_bytes=b"\x00\x00", sample_rate_hz=24_000)]
    assert side_effects(reduce(listening, turn_complete())[1]) == [FlushTranscript()]
    assert side_effects(reduce(listening, interrupted())[1]) == [InterruptPlayback()]

    for event in (fragment(), audio(), turn_complete(), interrupted()):
        assert reduce(listening, event)[0] == listening


@pytest.mark.parametrize("origin", [SessionState.IDLE, SessionState.CONNECTING, SessionState.ERROR])
def test_fan_out_outside_listening_is_ignored(origin: SessionState):
    for event in (fragment(), audio(), turn_complete(), interrupted()):
        new_state, commands = reduce(at(origin), event)
        assert new_state.state is origin
        assert side_effects(commands) == []
        assert decisions(commands) == ["ignore"]


# ---------------------------------------------------------------------
# LogEvent contract
# ---------------------------------------------------------------------

def test_reducer_emits_logevent_with_required_fields():
    _, commands = reduce(at(SessionState.IDLE), StartRequested(event_type=EventType.START_REQUESTED, ts_ms=123))

    payload = [c for c in commands if isinstance(c, LogEvent)][-1].event

    assert payload["ts_ms"] == 123
    assert payload["state"] == "CONNECTING"
    assert payload["event_type"] == "START_REQUESTED"
    assert payload["decision"] == "idle_to_connecting"
    assert payload["details"] == {"from_state": "IDLE", "to_state": "CONNECTING"}


def test_reducer_is_pure():
    state = at(SessionState.LISTENING)

    first = reduce(state, failed())
    second = reduce(state, failed())

    assert first == second
    assert state == at(SessionState.LISTENING)
