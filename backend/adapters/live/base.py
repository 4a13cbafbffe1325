"""
Duplex channel adapter contract.

This module defines the *interface only*: no wire format, no sockets.

Key invariants:
- One channel == one persistent streaming connection to the remote agent.
- Inbound traffic is delivered through ONE synchronous, ordered event sink
  (emit_event), using the variants in orchestrator.events only.
- At most one terminal event (ChannelClosed / ChannelFailed) is emitted;
  nothing is emitted after it.
- The adapter never calls the reducer and never decides session state.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable

from audio.frames import AudioChunk
from orchestrator.events import Event
from spec import LIVE_RESPONSE_MODALITY


EventSink = Callable[[Event], None]


class ChannelOpenError(Exception):
    """The channel could not be opened (connect, setup or timeout failure)."""


@dataclass(frozen=True)
class ChannelConfig:
    """Everything needed to open a call with the remote agent."""
    api_key: str
    model: str
    system_instruction: str
    response_modality: str = LIVE_RESPONSE_MODALITY
    voice_name: str | None = None
    input_transcription: bool = True
    output_transcription: bool = True


class DuplexChannel(ABC):
    """
    Abstract interface for a streaming duplex channel.

    Implementations are responsible for:
    - Opening the connection and confirming setup via open()
    - Accepting outbound chunks via send() without blocking
    - Translating inbound traffic into orchestrator events, in order
    - Guaranteeing the single-terminal-event rule

    Non-responsibilities:
    - No playback, no transcript aggregation
    - No retries: a failed channel is reported, never silently reopened
    """

    @abstractmethod
    async def open(self) -> None:
        """
        Connect and complete the session setup handshake.

        Outcomes (exactly one):
        - ChannelOpened is emitted and open() returns
        - ChannelOpenError is raised (nothing is emitted)
        - force_reset()/close() ran during the attempt: open() returns
          without emitting anything
        """
        raise NotImplementedError

    @abstractmethod
    def send(self, chunk: AudioChunk) -> None:
        """
        Queue one outbound audio chunk. Fire-and-forget.

        Contract:
        - Never blocks and never raises.
        - Chunks sent before open completes are buffered briefly (bounded)
          and flushed in order once open.
        - Chunks sent after close are dropped.
        """
        raise NotImplementedError

    @abstractmethod
    async def close(self) -> None:
        """
        Gracefully close the connection.

        Idempotent, never raises. Emits nothing: a caller-initiated close is
        not reported back as a terminal event.
        """
        raise NotImplementedError

    @abstractmethod
    def force_reset(self) -> None:
        """
        Emergency hard stop without awaiting.

        Must:
        - Not await
        - Not emit events
        - Leave the channel permanently closed
        """
        raise NotImplementedError
