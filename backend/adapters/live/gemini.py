"""
Gemini Live duplex channel (BidiGenerateContent over a raw websocket).

Connection model:
- One websocket per call. The first client message is the setup message;
  the channel counts as open only once the server answers setupComplete.
- Mic audio goes out as realtimeInput messages from a single sender task,
  so send() never blocks the capture path and chunks leave in capture order.
- Inbound serverContent is translated into orchestrator events by a pure
  function (translate_server_message) and emitted in receive order.

Failure model:
- Malformed inbound JSON or audio: logged, that single event is skipped.
- Clean close after open  -> ChannelClosed (terminal)
- Any other transport end -> ChannelFailed (terminal)
- Failure before setupComplete -> open() raises ChannelOpenError; no
  terminal event is emitted for a channel that never opened.

Design constraints:
- Adapter must not call the reducer.
- Adapter must not know about playback, capture devices or transcripts.
"""

from __future__ import annotations

import asyncio
import json
import time
import urllib.parse
from typing import Any, Callable

from websockets.asyncio.client import ClientConnection, connect as ws_connect
from websockets.exceptions import ConnectionClosed

from adapters.live.base import ChannelConfig, ChannelOpenError, DuplexChannel, EventSink
from audio.frames import AudioChunk
from audio.queues import ChunkQueue
from observability.logger import log_event
from orchestrator.events import (
    AudioResponse,
    ChannelClosed,
    ChannelFailed,
    ChannelOpened,
    Event,
    EventType,
    Interrupted,
    TERMINAL_CHANNEL_EVENTS,
    TranscriptFragment,
    TurnComplete,
)
from protocol.wire import WireFormatError, decode_base64, parse_pcm_mime_type
from spec import (
    CHANNEL_OPEN_TIMEOUT_S,
    LIVE_WS_MAX_MESSAGE_BYTES,
    LIVE_WS_URL,
    OUTBOX_MAX_CHUNKS,
    OUTPUT_SAMPLE_RATE_HZ,
    PENDING_CHUNK_Q_MAX_S,
)


def _now_ms() -> int:
    return int(time.time() * 1000)


# -------------------------------------------------------------------------
# Wire messages (pure)
# -------------------------------------------------------------------------

def build_url(api_key: str) -> str:
    return f"{LIVE_WS_URL}?{urllib.parse.urlencode({'key': api_key})}"


def build_setup_message(config: ChannelConfig) -> dict[str, Any]:
    """First message on the socket: model, modality, prompt, transcription."""
    model = config.model if config.model.startswith("models/") else f"models/{config.model}"

    generation_config: dict[str, Any] = {
        "responseModalities": [config.response_modality],
    }
    if config.voice_name:
        generation_config["speechConfig"] = {
            "voiceConfig": {"prebuiltVoiceConfig": {"voiceName": config.voice_name}},
        }

    setup: dict[str, Any] = {
        "model": model,
        "generationConfig": generation_config,
        "systemInstruction": {"parts": [{"text": config.system_instruction}]},
    }
    if config.input_transcription:
        setup["inputAudioTranscription"] = {}
    if config.output_transcription:
        setup["outputAudioTranscription"] = {}
    return {"setup": setup}


def build_realtime_input(chunk: AudioChunk) -> dict[str, Any]:
    return {"realtimeInput": {"audio": chunk.to_blob()}}


def _transcription_text(value: Any) -> str:
    if isinstance(value, dict):
        text = value.get("text")
        if isinstance(text, str):
            return text
    return ""


def _decode_inline_audio(
    inline: dict[str, Any], *, session_id: str | None
) -> AudioResponse | None:
    try:
        mime = inline.get("mimeType")
        rate = parse_pcm_mime_type(mime) if mime else OUTPUT_SAMPLE_RATE_HZ
        if rate != OUTPUT_SAMPLE_RATE_HZ:
            raise WireFormatError(f"unexpected output rate {rate}")
        pcm = decode_base64(inline.get("data", ""))
    except WireFormatError as e:
        log_event({
            "event_type": "LIVE_AUDIO_DECODE_FAILED",
            "session_id": session_id,
            "error": str(e),
        })
        return None

    return AudioResponse(
        event_type=EventType.AUDIO_RESPONSE,
        ts_ms=_now_ms(),
        pcm_bytes=pcm,
        sample_rate_hz=rate,
    )


def translate_server_message(
    data: dict[str, Any], *, session_id: str | None = None
) -> list[Event]:
    """
    Translate one inbound message into orchestrator events.

    Emission order within a message:
        agent fragment, user fragment, turn completion, audio, interruption
    """
    content = data.get("serverContent")
    if not isinstance(content, dict):
        return []

    now_ms = _now_ms()
    events: list[Event] = []

    agent_text = _transcription_text(content.get("outputTranscription"))
    if agent_text:
        events.append(TranscriptFragment(
            event_type=EventType.TRANSCRIPT_FRAGMENT,
            ts_ms=now_ms,
            speaker="agent",
            text=agent_text,
        ))

    user_text = _transcription_text(content.get("inputTranscription"))
    if user_text:
        events.append(TranscriptFragment(
            event_type=EventType.TRANSCRIPT_FRAGMENT,
            ts_ms=now_ms,
            speaker="user",
            text=user_text,
        ))

    if content.get("turnComplete"):
        events.append(TurnComplete(event_type=EventType.TURN_COMPLETE, ts_ms=now_ms))

    model_turn = content.get("modelTurn")
    parts = model_turn.get("parts") if isinstance(model_turn, dict) else None
    for part in parts if isinstance(parts, list) else []:
        inline = part.get("inlineData") if isinstance(part, dict) else None
        if not isinstance(inline, dict):
            continue
        audio = _decode_inline_audio(inline, session_id=session_id)
        if audio is not None:
            events.append(audio)

    if content.get("interrupted"):
        events.append(Interrupted(event_type=EventType.INTERRUPTED, ts_ms=now_ms))

    return events


# -------------------------------------------------------------------------
# Channel
# -------------------------------------------------------------------------

class GeminiLiveChannel(DuplexChannel):
    """
    Gemini Live websocket channel.

    Public interface (DuplexChannel):
    - open(): connect + setup handshake
    - send(chunk): fire-and-forget, buffered before open
    - close(): graceful, idempotent
    - force_reset(): synchronous hard stop
    """

    def __init__(
        self,
        *,
        config: ChannelConfig,
        emit_event: EventSink,
        session_id: str | None = None,
        open_timeout_s: float = CHANNEL_OPEN_TIMEOUT_S,
        connect: Callable[..., Any] = ws_connect,
    ) -> None:
        self._config = config
        self._emit_event = emit_event
        self._session_id = session_id
        self._open_timeout_s = open_timeout_s
        self._connect = connect

        self._ws: ClientConnection | None = None
        self._recv_task: asyncio.Task[None] | None = None
        self._send_task: asyncio.Task[None] | None = None
        self._closing_task: asyncio.Task[None] | None = None
        self._setup_done: asyncio.Future[None] | None = None

        self._pending = ChunkQueue(max_depth_s=PENDING_CHUNK_Q_MAX_S)
        self._outbox: asyncio.Queue[AudioChunk] | None = None

        self._opened = False
        self._closed = False
        self._abandoned = False
        self._terminal_emitted = False

        self.chunks_sent = 0
        self.chunks_dropped = 0

    # -------------------------------------------------------------------------
    # DuplexChannel
    # -------------------------------------------------------------------------

    async def open(self) -> None:
        if self._closed or self._opened:
            return

        try:
            ws = await asyncio.wait_for(
                self._connect(build_url(self._config.api_key), max_size=LIVE_WS_MAX_MESSAGE_BYTES),
                timeout=self._open_timeout_s,
            )
        except asyncio.TimeoutError as e:
            if self._abandoned:
                return
            raise ChannelOpenError("timed out connecting to the live service") from e
        except Exception as e:  # pylint: disable=broad-exception-caught
            if self._abandoned:
                return
            raise ChannelOpenError(f"could not connect to the live service: {e}") from e

        if self._abandoned:
            await self._close_quietly(ws)
            return
        self._ws = ws

        loop = asyncio.get_running_loop()
        self._setup_done = loop.create_future()
        # Retrieve the outcome even when nobody awaits it any more.
        self._setup_done.add_done_callback(
            lambda f: None if f.cancelled() else f.exception()
        )

        try:
            await ws.send(json.dumps(build_setup_message(self._config)))
        except Exception as e:  # pylint: disable=broad-exception-caught
            if self._abandoned:
                return
            await self._abort_open()
            raise ChannelOpenError(f"could not send session setup: {e}") from e

        self._recv_task = asyncio.create_task(self._recv_loop(ws))

        try:
            await asyncio.wait_for(asyncio.shield(self._setup_done), timeout=self._open_timeout_s)
        except asyncio.TimeoutError as e:
            if self._abandoned:
                return
            await self._abort_open()
            raise ChannelOpenError("timed out waiting for session setup") from e
        except ChannelOpenError:
            if self._abandoned:
                return
            await self._abort_open()
            raise

        if self._abandoned:
            return

        self._opened = True
        self._outbox = asyncio.Queue(maxsize=OUTBOX_MAX_CHUNKS)
        pending = self._pending.snapshot()
        for chunk in self._pending.drain():
            self._put_outbox(chunk)
        self._send_task = asyncio.create_task(self._send_loop(ws))

        log_event({
            "event_type": "LIVE_CHANNEL_OPEN",
            "session_id": self._session_id,
            "model": self._config.model,
            "pending": pending,
        })
        self._emit(ChannelOpened(event_type=EventType.CHANNEL_OPENED, ts_ms=_now_ms()))

    def send(self, chunk: AudioChunk) -> None:
        if self._closed:
            self.chunks_dropped += 1
            return
        if not self._opened:
            if not self._pending.enqueue(chunk):
                self.chunks_dropped += 1
            return
        self._put_outbox(chunk)

    async def close(self) -> None:
        self._abandoned = True
        if not self._closed:
            self._closed = True
            ws = self._detach()
            if ws is not None:
                await self._close_quietly(ws)

        closing = self._closing_task
        if closing is not None and not closing.done():
            await asyncio.wait({closing})

        self._log_closed()

    def force_reset(self) -> None:
        self._abandoned = True
        if self._closed:
            return
        self._closed = True
        ws = self._detach()
        if ws is not None:
            # Close best-effort (can't await); close() awaits it later.
            self._closing_task = asyncio.get_running_loop().create_task(
                self._close_quietly(ws)
            )

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _emit(self, event: Event) -> None:
        if self._terminal_emitted:
            return
        is_terminal = isinstance(event, TERMINAL_CHANNEL_EVENTS)
        if is_terminal:
            self._terminal_emitted = True
        elif self._closed:
            return

        try:
            self._emit_event(event)
        except Exception as e:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "LIVE_EVENT_SINK_FAILED",
                "session_id": self._session_id,
                "event": event.event_type.value,
                "error": repr(e),
            })

    def _put_outbox(self, chunk: AudioChunk) -> None:
        outbox = self._outbox
        if outbox is None:
            self.chunks_dropped += 1
            return
        if outbox.full():
            # Keep the freshest audio: evict the oldest queued chunk.
            outbox.get_nowait()
            self.chunks_dropped += 1
        outbox.put_nowait(chunk)

    def _detach(self) -> ClientConnection | None:
        """Drop references to socket and tasks; fail a pending setup."""
        ws = self._ws
        self._ws = None

        current = asyncio.current_task()
        for task in (self._recv_task, self._send_task):
            if task is not None and task is not current and not task.done():
                task.cancel()
        self._recv_task = None
        self._send_task = None

        fut = self._setup_done
        if fut is not None and not fut.done():
            fut.set_exception(ChannelOpenError("channel closed during setup"))

        self._pending.clear()
        return ws

    async def _abort_open(self) -> None:
        self._closed = True
        ws = self._detach()
        if ws is not None:
            await self._close_quietly(ws)

    async def _close_quietly(self, ws: ClientConnection) -> None:
        try:
            await ws.close()
        except Exception as e:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "LIVE_CLOSE_FAILED",
                "session_id": self._session_id,
                "error": repr(e),
            })

    def _log_closed(self) -> None:
        log_event({
            "event_type": "LIVE_CHANNEL_CLOSED",
            "session_id": self._session_id,
            "chunks_sent": self.chunks_sent,
            "chunks_dropped": self.chunks_dropped,
        })

    # -------------------------------------------------------------------------
    # Background loops
    # -------------------------------------------------------------------------

    async def _send_loop(self, ws: ClientConnection) -> None:
        outbox = self._outbox
        assert outbox is not None
        while True:
            chunk = await outbox.get()
            try:
                await ws.send(json.dumps(build_realtime_input(chunk)))
                self.chunks_sent += 1
            except ConnectionClosed:
                # The receive loop reports the closure.
                return
            except Exception as e:  # pylint: disable=broad-exception-caught
                self.chunks_dropped += 1
                log_event({
                    "event_type": "LIVE_SEND_FAILED",
                    "session_id": self._session_id,
                    "sequence_num": chunk.sequence_num,
                    "error": repr(e),
                })

    async def _recv_loop(self, ws: ClientConnection) -> None:
        try:
            async for raw in ws:
                try:
                    data = json.loads(raw)
                except (ValueError, UnicodeDecodeError) as e:
                    log_event({
                        "event_type": "LIVE_MESSAGE_DECODE_FAILED",
                        "session_id": self._session_id,
                        "error": str(e),
                    })
                    continue
                if not isinstance(data, dict):
                    continue
                self._handle_message(data)
        except asyncio.CancelledError:
            return
        except ConnectionClosed as e:
            self._on_transport_end(failed=True, code=e.code, reason=e.reason or str(e))
            return
        except Exception as e:  # pylint: disable=broad-exception-caught
            self._on_transport_end(failed=True, code=None, reason=repr(e))
            return

        self._on_transport_end(failed=False, code=ws.close_code, reason=ws.close_reason)

    def _handle_message(self, data: dict[str, Any]) -> None:
        if "setupComplete" in data:
            fut = self._setup_done
            if fut is not None and not fut.done():
                fut.set_result(None)
            return

        if "goAway" in data:
            log_event({
                "event_type": "LIVE_GO_AWAY",
                "session_id": self._session_id,
                "details": data.get("goAway"),
            })
            return

        for event in translate_server_message(data, session_id=self._session_id):
            self._emit(event)

    def _on_transport_end(self, *, failed: bool, code: int | None, reason: str | None) -> None:
        if self._abandoned:
            # Caller-initiated close; nothing to report.
            return

        if not self._opened:
            self._closed = True
            fut = self._setup_done
            if fut is not None and not fut.done():
                fut.set_exception(ChannelOpenError(
                    f"connection closed before setup completed (code {code}): {reason or ''}"
                ))
            self._detach()
            log_event({
                "event_type": "LIVE_SETUP_REJECTED",
                "session_id": self._session_id,
                "code": code,
                "reason": reason,
            })
            return

        log_event({
            "event_type": "LIVE_TRANSPORT_ENDED",
            "session_id": self._session_id,
            "failed": failed,
            "code": code,
            "reason": reason,
        })
        self._closed = True
        self._detach()

        if failed:
            self._emit(ChannelFailed(
                event_type=EventType.CHANNEL_FAILED,
                ts_ms=_now_ms(),
                reason=reason or f"connection closed (code {code})",
            ))
        else:
            self._emit(ChannelClosed(
                event_type=EventType.CHANNEL_CLOSED,
                ts_ms=_now_ms(),
                code=code,
                reason=reason,
            ))
