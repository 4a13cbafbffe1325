"""
Voice session container.

- Constructed fresh for every call attempt
- Exclusively owns the call's resources (microphone, capture pipeline,
  duplex channel, output timeline, playback scheduler)
- Owned and mutated by SessionGateway
- NOT a state machine
- Contains no orchestration logic
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

from adapters.live.base import DuplexChannel
from audio.capture import CapturePipeline, CaptureSource
from audio.output import OutputTimeline
from audio.playback import PlaybackScheduler
from observability import metrics
from observability.logger import log_event


# ---------------------------------------------------------------------
# VoiceSession
# ---------------------------------------------------------------------


@dataclass
class VoiceSession:
    """Mutable runtime container for a single call attempt."""

    # ------------------------------------------------------------------
    # Identity / lifecycle
    # ------------------------------------------------------------------

    session_id: str
    attempt: int
    created_at: float = field(default_factory=time.time)

    # ------------------------------------------------------------------
    # Resources (attached by the gateway as they are acquired)
    # ------------------------------------------------------------------

    microphone: CaptureSource | None = None
    capture: CapturePipeline | None = None
    channel: DuplexChannel | None = None
    output: OutputTimeline | None = None
    playback: PlaybackScheduler | None = None

    torn_down: bool = False

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def release_local(self) -> DuplexChannel | None:
        """
        Synchronously release everything that does not need awaiting.

        Order: capture, microphone, playback, output, channel (hard reset).
        Returns the channel so the caller can await its graceful close;
        returns None on every call after the first.
        """
        if self.torn_down:
            return None
        self.torn_down = True

        capture, self.capture = self.capture, None
        microphone, self.microphone = self.microphone, None
        playback, self.playback = self.playback, None
        output, self.output = self.output, None
        channel, self.channel = self.channel, None

        if capture is not None:
            self._step("capture_stop", capture.stop)
        if microphone is not None:
            # Usually already closed by the pipeline; close() is idempotent.
            self._step("microphone_close", microphone.close)
        if playback is not None:
            self._step("playback_close", playback.close)
        if output is not None:
            self._step("output_close", output.close)
        if channel is not None:
            self._step("channel_reset", channel.force_reset)

        self._emit_counters(capture, playback)
        log_event({
            "event_type": "SESSION_RELEASED",
            **self.log_context(),
            "lifetime_ms": int((time.time() - self.created_at) * 1000),
        })
        return channel

    def _step(self, name: str, fn: Any) -> None:
        try:
            fn()
        except Exception as e:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "SESSION_RELEASE_STEP_FAILED",
                **self.log_context(),
                "step": name,
                "error": repr(e),
            })

    def _emit_counters(
        self, capture: CapturePipeline | None, playback: PlaybackScheduler | None
    ) -> None:
        if capture is not None:
            metrics.count("capture_chunks_produced", capture.chunks_produced, session_id=self.session_id)
            metrics.count("capture_chunks_dropped", capture.chunks_dropped, session_id=self.session_id)
        if playback is not None:
            metrics.count("playback_units_scheduled", playback.units_scheduled, session_id=self.session_id)
            metrics.count("playback_units_interrupted", playback.units_interrupted, session_id=self.session_id)

    # ------------------------------------------------------------------
    # Observability helpers (read-only)
    # ------------------------------------------------------------------

    def log_context(self) -> dict[str, Any]:
        """Standard logging context for this session."""
        return {
            "session_id": self.session_id,
            "attempt": self.attempt,
        }
