# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
import base64
from typing import Any

import pytest

from adapters.live.base import ChannelConfig, ChannelOpenError
from adapters.live.gemini import (
    GeminiLiveChannel,
    build_setup_message,
    build_url,
    translate_server_message,
)
from audio.frames import AudioChunk
from orchestrator.events import (
    AudioResponse,
    ChannelClosed,
    ChannelFailed,
    ChannelOpened,
    Event,
    Interrupted,
    TranscriptFragment,
    TurnComplete,
)

from fakes import FakeWebSocket, settle


CONFIG = ChannelConfig(api_key="k e/y", model="live-model", system_instruction="Be brief.")


def b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def chunk(seq: int) -> AudioChunk:
    return AudioChunk(sequence_num=seq, pcm_bytes=b"\x01\x00" * 4, sample_rate_hz=16_000, ts_ms=0)


# ---------------------------------------------------------------------
# Wire messages
# ---------------------------------------------------------------------

def test_setup_message():
    setup = build_setup_message(CONFIG)["setup"]

    assert setup["model"] == "models/live-model"
    assert setup["generationConfig"] == {"responseModalities": ["AUDIO"]}
    assert setup["systemInstruction"] == {"parts": [{"text": "Be brief."}]}
    assert setup["inputAudioTranscription"] == {}
    assert setup["outputAudioTranscription"] == {}


def test_setup_message_with_voice():
    config = ChannelConfig(api_key="k", model="models/m", system_instruction="x", voice_name="Puck")

    setup = build_setup_message(config)["setup"]

    assert setup["model"] == "models/m"
    assert setup["generationConfig"]["speechConfig"] == {
        "voiceConfig": {"prebuiltVoiceConfig": {"voiceName": "Puck"}}
    }


def test_url_carries_escaped_key():
    assert build_url("k e/y").endswith("?key=k+e%2Fy")


# ---------------------------------------------------------------------
# Inbound translation
# ---------------------------------------------------------------------

def test_translation_order_within_one_message():
    events = translate_server_message({
        "serverContent": {
            "interrupted": True,
            "modelTurn": {"parts": [{"inlineData": {"data": b64(b"\x00\x01"), "mimeType": "audio/pcm;rate=24000"}}]},
            "turnComplete": True,
            "inputTranscription": {"text": "Hi"},
            "outputTranscription": {"text": "Hel"},
        }
    })

    assert [type(e) for e in events] == [
        TranscriptFragment, TranscriptFragment, TurnComplete, AudioResponse, Interrupted,
    ]
    assert (events[0].speaker, events[0].text) == ("agent", "Hel")  # type: ignore[attr-defined]
    assert (events[1].speaker, events[1].text) == ("user", "Hi")  # type: ignore[attr-defined]
    assert events[3].pcm_bytes == b"\x00\x01"  # type: ignore[attr-defined]
    assert events[3].sample_rate_hz == 24_000  # type: ignore[attr-defined]


def test_audio_without_mime_type_assumes_output_rate():
    events = translate_server_message({
        "serverContent": {"modelTurn": {"parts": [{"inlineData": {"data": b64(b"\x00\x00")}}]}}
    })

    assert len(events) == 1
    assert events[0].sample_rate_hz == 24_000  # type: ignore[attr-defined]


@pytest.mark.parametrize(
    "inline",
    [
        {"data": "%%%not-base64%%%", "mimeType": "audio/pcm;rate=24000"},
        {"data": b64(b"\x00\x00"), "mimeType": "audio/pcm;rate=16000"},
        {"data": b64(b"\x00\x00"), "mimeType": "audio/mp3"},
    ],
)
def test_undecodable_audio_is_skipped(inline: dict[str, Any]):
    events = translate_server_message({
        "serverContent": {
            "modelTurn": {"parts": [{"inlineData": inline}]},
            "turnComplete": True,
        }
    })

    assert [type(e) for e in events] == [TurnComplete]


def test_messages_without_server_content_translate_to_nothing():
    assert translate_server_message({"usageMetadata": {"totalTokenCount": 3}}) == []
    assert translate_server_message({"serverContent": {"modelTurn": {"parts": [{"text": "hi"}]}}}) == []
    assert translate_server_message({"serverContent": {"outputTranscription": {"text": ""}}}) == []


# ---------------------------------------------------------------------
# Channel over a fake socket
# ---------------------------------------------------------------------

def make_channel(ws: FakeWebSocket, events: list[Event], timeout_s: float = 1.0) -> GeminiLiveChannel:
    async def connect(url: str, **kwargs: Any) -> FakeWebSocket:
        ws.url = url  # type: ignore[attr-defined]
        return ws

    return GeminiLiveChannel(
        config=CONFIG, emit_event=events.append, session_id="s1",
        open_timeout_s=timeout_s, connect=connect,
    )


def test_open_sends_setup_and_flushes_buffered_chunks_in_order():
    async def scenario() -> tuple[FakeWebSocket, list[Event]]:
        ws = FakeWebSocket()
        events: list[Event] = []
        channel = make_channel(ws, events)
        ws.push({"setupComplete": {}})

        channel.send(chunk(1))
        channel.send(chunk(2))
        await channel.open()
        channel.send(chunk(3))
        await settle()
        await channel.close()
        return ws, events

    ws, events = asyncio.run(scenario())

    assert "setup" in ws.sent[0]
    sent_audio = [m["realtimeInput"]["audio"] for m in ws.sent[1:]]
    assert len(sent_audio) == 3
    assert all(a["mimeType"] == "audio/pcm;rate=16000" for a in sent_audio)
    assert [type(e) for e in events] == [ChannelOpened]
    assert ws.closed


def test_inbound_events_in_receive_order_then_single_clean_close():
    async def scenario() -> list[Event]:
        ws = FakeWebSocket()
        events: list[Event] = []
        channel = make_channel(ws, events)
        ws.push({"setupComplete": {}})
        await channel.open()

        ws.push("{not json")
        ws.push({"serverContent": {"outputTranscription": {"text": "Hello"}}})
        ws.push({"goAway": {"timeLeft": "10s"}})
        ws.push({"serverContent": {"turnComplete": True}})
        ws.finish(1000, "bye")
        await settle()
        await channel.close()
        return events

    events = asyncio.run(scenario())

    assert [type(e) for e in events] == [ChannelOpened, TranscriptFragment, TurnComplete, ChannelClosed]
    assert events[-1].code == 1000  # type: ignore[attr-defined]


def test_transport_error_emits_single_failure():
    async def scenario() -> list[Event]:
        ws = FakeWebSocket()
        events: list[Event] = []
        channel = make_channel(ws, events)
        ws.push({"setupComplete": {}})
        await channel.open()

        ws.push(RuntimeError("network unreachable"))
        await settle()
        channel.force_reset()
        await channel.close()
        return events

    events = asyncio.run(scenario())

    assert [type(e) for e in events] == [ChannelOpened, ChannelFailed]
    assert "network unreachable" in events[-1].reason  # type: ignore[attr-defined]


def test_close_before_setup_raises_open_error():
    async def scenario() -> list[Event]:
        ws = FakeWebSocket()
        events: list[Event] = []
        channel = make_channel(ws, events)
        ws.finish(1008, "invalid model")
        with pytest.raises(ChannelOpenError):
            await channel.open()
        return events

    assert asyncio.run(scenario()) == []


def test_setup_timeout_raises_open_error():
    async def scenario() -> FakeWebSocket:
        ws = FakeWebSocket()
        channel = make_channel(ws, [], timeout_s=0.01)
        with pytest.raises(ChannelOpenError):
            await channel.open()
        return ws

    assert asyncio.run(scenario()).closed


def test_connect_failure_raises_open_error():
    async def scenario() -> None:
        async def refuse(url: str, **kwargs: Any) -> FakeWebSocket:
            raise OSError("connection refused")

        channel = GeminiLiveChannel(config=CONFIG, emit_event=lambda e: None, connect=refuse)
        with pytest.raises(ChannelOpenError):
            await channel.open()

    asyncio.run(scenario())


def test_force_reset_during_setup_returns_quietly_and_emits_nothing():
    async def scenario() -> tuple[FakeWebSocket, list[Event]]:
        ws = FakeWebSocket()
        events: list[Event] = []
        channel = make_channel(ws, events)
        opening = asyncio.create_task(channel.open())
        await settle()

        channel.force_reset()
        await opening
        ws.push({"setupComplete": {}})
        await channel.close()
        await channel.close()
        return ws, events

    ws, events = asyncio.run(scenario())

    assert events == []
    assert ws.closed


def test_nothing_emitted_after_caller_close():
    async def scenario() -> list[Event]:
        ws = FakeWebSocket()
        events: list[Event] = []
        channel = make_channel(ws, events)
        ws.push({"setupComplete": {}})
        await channel.open()

        await channel.close()
        channel.send(chunk(1))
        await settle()
        return events

    assert [type(e) for e in asyncio.run(scenario())] == [ChannelOpened]
