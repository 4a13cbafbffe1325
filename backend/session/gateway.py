"""
Session gateway.

Responsibilities:
- Owns the orchestrator state and calls the pure reducer
- Executes the commands the reducer emits (device, channel, playback,
  transcript and logging side effects)
- Owns the VoiceSession lifecycle: one fresh session per call attempt,
  at most one active at a time
- Translates start-up failures (configuration, microphone, channel open)
  into events
- Drops channel events from sessions that are no longer current

NOT responsible for:
- Any state machine logic (see orchestrator.reducer)
- Wire formats (see adapters.live)
- HTTP / websocket surfaces (see server)
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from functools import partial
from typing import Any, Callable, TYPE_CHECKING

from uuid import uuid4

from adapters.live.base import ChannelConfig, ChannelOpenError, DuplexChannel, EventSink
from adapters.live.gemini import GeminiLiveChannel
from audio.capture import (
    CapturePipeline,
    CaptureSource,
    MicrophonePermissionError,
    MicrophoneSource,
)
from audio.output import OutputTimeline, SoundDeviceOutput
from audio.playback import PlaybackScheduler
from context.conversation import TranscriptHistory
from context.transcript import TranscriptAggregator
from observability import metrics
from observability.logger import log_event
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
    CaptureEnded,
    ConfigurationMissing,
    Event,
    EventType,
    MicrophoneDenied,
    StartFailed,
    StartRequested,
    StopRequested,
)
from orchestrator.reducer import reduce
from orchestrator.state_dataclass import OrchestratorState
from session.signals import SpeakingSignal
from session.voice_session import VoiceSession
from spec import CHANNEL_CLOSE_TIMEOUT_S, GREETING_TEXT

if TYPE_CHECKING:
    from config import AppConfig


MicrophoneFactory = Callable[[asyncio.AbstractEventLoop], CaptureSource]
OutputFactory = Callable[[asyncio.AbstractEventLoop], OutputTimeline]
ChannelFactory = Callable[[ChannelConfig, EventSink, str], DuplexChannel]


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def _new_session_id() -> str:
    return f"sess_{uuid4().hex[:12]}"


# ------------------------------------------------------------------
# Default factories (real devices, real remote service)
# ------------------------------------------------------------------

def _default_microphone_factory(config: AppConfig) -> MicrophoneFactory:
    def factory(loop: asyncio.AbstractEventLoop) -> CaptureSource:
        return MicrophoneSource(loop=loop, device=config.input_device)
    return factory


def _default_output_factory(config: AppConfig) -> OutputFactory:
    def factory(loop: asyncio.AbstractEventLoop) -> OutputTimeline:
        return SoundDeviceOutput(loop=loop, device=config.output_device)
    return factory


def _default_channel_factory(
    channel_config: ChannelConfig, emit_event: EventSink, session_id: str
) -> DuplexChannel:
    return GeminiLiveChannel(
        config=channel_config, emit_event=emit_event, session_id=session_id
    )


# ------------------------------------------------------------------
# SessionGateway
# ------------------------------------------------------------------

class SessionGateway:
    """
    Runtime for the live voice call.

    All events, whatever their source (user control, start-up checks,
    channel, capture), converge on _dispatch(). Events are processed one
    at a time: an event raised while commands are executing is queued and
    handled after the current one.
    """

    def __init__(
        self,
        *,
        config: AppConfig,
        channel_factory: ChannelFactory | None = None,
        microphone_factory: MicrophoneFactory | None = None,
        output_factory: OutputFactory | None = None,
    ) -> None:
        self._config = config
        self._channel_factory = channel_factory or _default_channel_factory
        self._microphone_factory = microphone_factory or _default_microphone_factory(config)
        self._output_factory = output_factory or _default_output_factory(config)

        self._state = OrchestratorState()
        self._session: VoiceSession | None = None
        self._error_message: str | None = None

        self.speaking = SpeakingSignal()
        self.history = TranscriptHistory()
        self._aggregator = TranscriptAggregator(self.history)

        self._queued: deque[Event] = deque()
        self._dispatching = False
        self._close_tasks: set[asyncio.Task[None]] = set()

    # ------------------------------------------------------------------
    # Read-only surface
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state.state

    @property
    def orchestrator_state(self) -> OrchestratorState:
        return self._state

    @property
    def error_message(self) -> str | None:
        return self._error_message

    @property
    def session_id(self) -> str | None:
        session = self._session
        if session is None or session.torn_down:
            return None
        return session.session_id

    def snapshot(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "error": self._error_message,
            "speaking": self.speaking.value,
            "session_id": self.session_id,
        }

    # ------------------------------------------------------------------
    # User control
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """
        Start a call. A start while a call is connecting or listening is a
        no-op. Returns once the channel is open or the attempt has failed;
        the outcome is visible through `state` and `error_message`.
        """
        previous = self._session
        self._dispatch(StartRequested(event_type=EventType.START_REQUESTED, ts_ms=_now_ms()))
        session = self._session
        # Only the call whose StartRequested began a fresh session builds resources.
        if self._state.state is not SessionState.CONNECTING or session is None or session is previous:
            return

        api_key = self._config.api_key
        if not api_key:
            self._dispatch(ConfigurationMissing(
                event_type=EventType.CONFIGURATION_MISSING,
                ts_ms=_now_ms(),
                detail="api_key",
            ))
            return

        loop = asyncio.get_running_loop()

        try:
            session.microphone = self._microphone_factory(loop)
        except MicrophonePermissionError as e:
            self._dispatch(MicrophoneDenied(
                event_type=EventType.MICROPHONE_DENIED, ts_ms=_now_ms(), detail=str(e)
            ))
            return
        except Exception as e:  # pylint: disable=broad-exception-caught
            self._dispatch(StartFailed(
                event_type=EventType.START_FAILED, ts_ms=_now_ms(), detail=str(e)
            ))
            return

        try:
            session.output = self._output_factory(loop)
            session.playback = PlaybackScheduler(
                session.output,
                on_speaking_changed=self.speaking.set,
                session_id=session.session_id,
            )
            channel = self._channel_factory(
                self._channel_config(api_key),
                partial(self._on_channel_event, session),
                session.session_id,
            )
            session.channel = channel
        except Exception as e:  # pylint: disable=broad-exception-caught
            self._dispatch(StartFailed(
                event_type=EventType.START_FAILED, ts_ms=_now_ms(), detail=str(e)
            ))
            return

        with metrics.timed(
            "channel_open", session_id=session.session_id, details={"model": self._config.live_model}
        ) as extra:
            try:
                await channel.open()
                extra["outcome"] = "open" if self._is_current(session) else "abandoned"
            except ChannelOpenError as e:
                extra["outcome"] = "failed"
                self._start_failed(session, str(e))
            except Exception as e:  # pylint: disable=broad-exception-caught
                extra["outcome"] = "failed"
                self._start_failed(session, repr(e))

    async def stop(self) -> None:
        """
        End the call. Idempotent.

        Local resources are released synchronously; the channel close is
        then awaited (bounded).
        """
        self._dispatch(StopRequested(event_type=EventType.STOP_REQUESTED, ts_ms=_now_ms()))
        await self.wait_closed()

    async def wait_closed(self) -> None:
        """Wait for every pending graceful channel close."""
        while self._close_tasks:
            await asyncio.gather(*list(self._close_tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        await self.stop()

    # ------------------------------------------------------------------
    # Event sources
    # ------------------------------------------------------------------

    def _on_channel_event(self, session: VoiceSession, event: Event) -> None:
        if not self._is_current(session):
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "STALE_CHANNEL_EVENT_DROPPED",
                "session_id": session.session_id,
                "dropped_event": event.event_type.value,
            })
            return
        self._dispatch(event)

    def _on_capture_ended(self, session: VoiceSession) -> None:
        if not self._is_current(session):
            return
        self._dispatch(CaptureEnded(event_type=EventType.CAPTURE_ENDED, ts_ms=_now_ms()))

    def _start_failed(self, session: VoiceSession, detail: str) -> None:
        if not self._is_current(session):
            # Stopped while opening; the failure belongs to a dead attempt.
            return
        self._dispatch(StartFailed(
            event_type=EventType.START_FAILED, ts_ms=_now_ms(), detail=detail
        ))

    def _is_current(self, session: VoiceSession) -> bool:
        return session is self._session and not session.torn_down

    # ------------------------------------------------------------------
    # Reducer dispatch
    # ------------------------------------------------------------------

    def _dispatch(self, event: Event) -> None:
        self._queued.append(event)
        if self._dispatching:
            return
        self._dispatching = True
        try:
            while self._queued:
                current = self._queued.popleft()
                self._state, commands = reduce(self._state, current)
                for cmd in commands:
                    self._execute(cmd)
        finally:
            self._dispatching = False

    # ------------------------------------------------------------------
    # Command execution (side effects)
    # ------------------------------------------------------------------

    def _execute(self, cmd: Command) -> None:  # pylint: disable=too-many-branches
        session = self._session

        if isinstance(cmd, LogEvent):
            log_event({
                **cmd.event,
                "session_id": session.session_id if session is not None else None,
            })

        elif isinstance(cmd, BeginSession):
            self._begin_session(cmd.attempt)

        elif isinstance(cmd, StartCapture):
            self._start_capture()

        elif isinstance(cmd, Teardown):
            if cmd.reason == "user_stop":
                self._error_message = None
            self._teardown(cmd.reason)

        elif isinstance(cmd, SurfaceError):
            self._error_message = cmd.message
            self.history.add("agent", cmd.message)

        elif isinstance(cmd, AppendTranscript):
            self._aggregator.append_fragment(cmd.speaker, cmd.text)

        elif isinstance(cmd, FlushTranscript):
            self._aggregator.complete_turn()

        elif isinstance(cmd, SchedulePlayback):
            if session is None or session.playback is None:
                return
            try:
                session.playback.enqueue(cmd.pcm_bytes)
            except ValueError as e:
                log_event({
                    "ts_ms": _now_ms(),
                    "event_type": "PLAYBACK_DECODE_FAILED",
                    "session_id": session.session_id,
                    "bytes": len(cmd.pcm_bytes),
                    "error": str(e),
                })

        elif isinstance(cmd, InterruptPlayback):
            if session is not None and session.playback is not None:
                session.playback.interrupt()

        else:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "UNHANDLED_COMMAND",
                "command_type": cmd.command_type.value,
            })

    def _begin_session(self, attempt: int) -> None:
        previous = self._session
        if previous is not None and not previous.torn_down:
            self._schedule_close(previous.release_local(), previous.session_id)

        self._error_message = None
        self._aggregator.reset()
        self.history.clear()
        self.history.add("agent", GREETING_TEXT)

        self._session = VoiceSession(session_id=_new_session_id(), attempt=attempt)
        log_event({
            "ts_ms": _now_ms(),
            "event_type": "SESSION_CREATED",
            **self._session.log_context(),
        })

    def _start_capture(self) -> None:
        session = self._session
        if session is None or session.microphone is None or session.channel is None:
            return
        pipeline = CapturePipeline(
            session.microphone,
            session.channel.send,
            session_id=session.session_id,
            on_ended=partial(self._on_capture_ended, session),
        )
        session.capture = pipeline
        try:
            pipeline.start()
        except Exception as e:  # pylint: disable=broad-exception-caught
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "CAPTURE_START_FAILED",
                "session_id": session.session_id,
                "error": repr(e),
            })
            self._dispatch(CaptureEnded(event_type=EventType.CAPTURE_ENDED, ts_ms=_now_ms()))

    def _teardown(self, reason: str) -> None:
        session = self._session
        if session is not None:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "SESSION_TEARDOWN",
                **session.log_context(),
                "reason": reason,
            })
            self._schedule_close(session.release_local(), session.session_id)
        self.speaking.set(False)
        self._aggregator.reset()

    def _schedule_close(self, channel: DuplexChannel | None, session_id: str) -> None:
        if channel is None:
            return
        task = asyncio.get_running_loop().create_task(self._close_channel(channel, session_id))
        self._close_tasks.add(task)
        task.add_done_callback(self._close_tasks.discard)

    async def _close_channel(self, channel: DuplexChannel, session_id: str) -> None:
        try:
            await asyncio.wait_for(channel.close(), timeout=CHANNEL_CLOSE_TIMEOUT_S)
        except asyncio.TimeoutError:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "CHANNEL_CLOSE_TIMEOUT",
                "session_id": session_id,
                "timeout_s": CHANNEL_CLOSE_TIMEOUT_S,
            })
        except Exception as e:  # pylint: disable=broad-exception-caught
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "CHANNEL_CLOSE_FAILED",
                "session_id": session_id,
                "error": repr(e),
            })

    def _channel_config(self, api_key: str) -> ChannelConfig:
        return ChannelConfig(
            api_key=api_key,
            model=self._config.live_model,
            system_instruction=self._config.system_instruction,
            voice_name=self._config.voice_name,
        )
