"""
Microphone capture pipeline.

Responsibilities:
- Own the microphone input stream (sounddevice / PortAudio)
- Marshal device callbacks onto the asyncio loop
- Resample, frame and quantize live audio into fixed-size AudioChunks
- Hand each chunk to the duplex channel's send()

Non-responsibilities:
- No session state transitions (end-of-stream is reported, not acted on)
- No network IO (send() is the channel's concern)

Threading model:
- PortAudio invokes _callback on its own audio thread. The callback only
  copies the block and posts it to the loop with call_soon_threadsafe;
  everything downstream runs on the loop thread.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Callable, Protocol

import numpy as np

from audio.device import AudioBackendUnavailable, import_sounddevice
from audio.frame_generator import ChunkFramer
from audio.frames import AudioChunk
from audio.pcm import float32_to_pcm16
from audio.resample import Resampler
from observability.logger import log_event
from spec import (
    AUDIO_CHANNELS,
    CAPTURE_CHUNK_SAMPLES,
    CAPTURE_DEVICE_BLOCK_MS,
    INPUT_SAMPLE_RATE_HZ,
)


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


# ---------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------

class MicrophoneError(Exception):
    """Base class for microphone acquisition failures."""


class MicrophonePermissionError(MicrophoneError):
    """The OS refused access to the input device."""


class MicrophoneUnavailableError(MicrophoneError):
    """No usable input device, or the device could not be opened."""


_PERMISSION_MARKERS = ("permission", "denied", "not allowed", "not permitted")


def _classify_open_error(exc: Exception) -> MicrophoneError:
    text = str(exc).lower()
    if any(marker in text for marker in _PERMISSION_MARKERS):
        return MicrophonePermissionError(str(exc))
    return MicrophoneUnavailableError(str(exc))


# ---------------------------------------------------------------------
# Capture source
# ---------------------------------------------------------------------

class CaptureSource(Protocol):
    """Anything that delivers mono float32 blocks at sample_rate_hz."""

    sample_rate_hz: int

    def start(
        self,
        on_block: Callable[[np.ndarray], None],
        on_ended: Callable[[], None],
    ) -> None: ...

    def close(self) -> None: ...


class MicrophoneSource:
    """
    sounddevice input stream, opened (and therefore permission-checked)
    at construction, started later by the pipeline.

    Prefers the 16kHz wire rate when the device supports it; otherwise
    opens at the device default rate and the pipeline resamples.
    """

    def __init__(
        self,
        *,
        loop: asyncio.AbstractEventLoop,
        device: int | str | None = None,
        block_ms: int = CAPTURE_DEVICE_BLOCK_MS,
    ) -> None:
        self._loop = loop
        self._on_block: Callable[[np.ndarray], None] | None = None
        self._on_ended: Callable[[], None] | None = None
        self._closing = False
        self._closed = False

        try:
            sd = import_sounddevice()
        except AudioBackendUnavailable as e:
            raise MicrophoneUnavailableError(str(e)) from e

        try:
            self.sample_rate_hz = self._pick_rate(sd, device)
            self._stream = sd.InputStream(
                samplerate=self.sample_rate_hz,
                blocksize=(self.sample_rate_hz * block_ms) // 1000,
                channels=AUDIO_CHANNELS,
                dtype="float32",
                device=device,
                callback=self._callback,
                finished_callback=self._finished,
            )
        except (sd.PortAudioError, ValueError) as e:
            raise _classify_open_error(e) from e

        log_event({
            "event_type": "MIC_OPENED",
            "device": device,
            "sample_rate_hz": self.sample_rate_hz,
            "block_ms": block_ms,
        })

    @staticmethod
    def _pick_rate(sd: Any, device: int | str | None) -> int:
        info = sd.query_devices(device, "input")
        try:
            sd.check_input_settings(
                device=device,
                samplerate=INPUT_SAMPLE_RATE_HZ,
                channels=AUDIO_CHANNELS,
                dtype="float32",
            )
            return INPUT_SAMPLE_RATE_HZ
        except (sd.PortAudioError, ValueError):
            return int(info["default_samplerate"])

    def start(
        self,
        on_block: Callable[[np.ndarray], None],
        on_ended: Callable[[], None],
    ) -> None:
        if self._closed:
            return
        self._on_block = on_block
        self._on_ended = on_ended
        self._stream.start()

    def close(self) -> None:
        """Stop and release the device. Idempotent."""
        if self._closed:
            return
        self._closing = True
        self._closed = True
        self._on_block = None
        try:
            self._stream.stop()
        finally:
            self._stream.close()
        log_event({"event_type": "MIC_CLOSED"})

    # -- PortAudio thread --------------------------------------------------

    def _post(self, fn: Callable[..., None], *args: Any) -> None:
        if self._loop.is_closed():
            return
        try:
            self._loop.call_soon_threadsafe(fn, *args)
        except RuntimeError:
            # Loop shut down between the check and the call.
            return

    def _callback(self, indata: np.ndarray, frames: int, time_info: Any, status: Any) -> None:
        if status:
            log_event({"event_type": "MIC_STATUS", "status": str(status), "frames": frames})
        on_block = self._on_block
        if on_block is None:
            return
        self._post(on_block, indata[:, 0].copy())

    def _finished(self) -> None:
        on_ended = self._on_ended
        if self._closing or on_ended is None:
            return
        self._post(on_ended)


# ---------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------

class CapturePipeline:
    """
    Turns a capture source into a capture-ordered stream of AudioChunks.

    send:
        The channel's fire-and-forget send. Exceptions from it are logged
        and counted; they never escape into the device callback path.

    on_ended:
        Called once if the source reports end-of-stream on its own
        (not when stop() is called).
    """

    def __init__(
        self,
        source: CaptureSource,
        send: Callable[[AudioChunk], None],
        *,
        session_id: str | None = None,
        chunk_samples: int = CAPTURE_CHUNK_SAMPLES,
        on_ended: Callable[[], None] | None = None,
    ) -> None:
        self._source = source
        self._send = send
        self._session_id = session_id
        self._on_ended = on_ended

        self._resampler = Resampler(source.sample_rate_hz, INPUT_SAMPLE_RATE_HZ)
        self._framer = ChunkFramer(chunk_samples=chunk_samples)

        self._next_seq = 1
        self._running = False
        self._stopped = False

        self.chunks_produced = 0
        self.chunks_dropped = 0

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running or self._stopped:
            return
        self._running = True
        self._source.start(self._on_block, self._on_source_ended)
        log_event({
            "event_type": "CAPTURE_STARTED",
            "session_id": self._session_id,
            "device_rate_hz": self._source.sample_rate_hz,
            "resampling": not self._resampler.is_passthrough,
        })

    def stop(self) -> None:
        """Stop producing chunks and release the source. Idempotent."""
        if self._stopped:
            return
        self._stopped = True
        self._running = False
        self._framer.reset()
        try:
            self._source.close()
        except Exception as e:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "CAPTURE_CLOSE_FAILED",
                "session_id": self._session_id,
                "error": repr(e),
            })
        log_event({
            "event_type": "CAPTURE_STOPPED",
            "session_id": self._session_id,
            "chunks_produced": self.chunks_produced,
            "chunks_dropped": self.chunks_dropped,
        })

    # -- loop thread -------------------------------------------------------

    def _on_block(self, samples: np.ndarray) -> None:
        if not self._running:
            return
        for chunk_samples in self._framer.push(self._resampler.process(samples)):
            self._emit(chunk_samples)

    def _emit(self, samples: np.ndarray) -> None:
        chunk = AudioChunk(
            sequence_num=self._next_seq,
            pcm_bytes=float32_to_pcm16(samples),
            sample_rate_hz=INPUT_SAMPLE_RATE_HZ,
            ts_ms=_now_ms(),
        )
        self._next_seq += 1
        self.chunks_produced += 1

        try:
            self._send(chunk)
        except Exception as e:  # pylint: disable=broad-exception-caught
            self.chunks_dropped += 1
            log_event({
                "event_type": "CAPTURE_SEND_FAILED",
                "session_id": self._session_id,
                "sequence_num": chunk.sequence_num,
                "error": repr(e),
            })

    def _on_source_ended(self) -> None:
        if not self._running:
            return
        log_event({"event_type": "CAPTURE_SOURCE_ENDED", "session_id": self._session_id})
        self.stop()
        if self._on_ended is not None:
            self._on_ended()
