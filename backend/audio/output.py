"""
Output timeline: the playback device and its clock.

Responsibilities:
- Own one callback-driven output stream (sounddevice / PortAudio)
- Expose a monotonic playback clock (seconds of audio rendered)
- Mix every scheduled voice into the block that overlaps it, sample-exact
- Report natural completion of a voice on the asyncio loop

Non-responsibilities:
- No scheduling policy (where a voice starts is the scheduler's decision)
- No decoding

Threading model:
- _callback runs on the PortAudio thread and only touches the voice list
  and frame counter, both guarded by _lock. Completion callbacks are posted
  to the loop with call_soon_threadsafe.
"""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol

import numpy as np

from audio.device import import_sounddevice
from audio.frames import AudioBuffer
from observability.logger import log_event
from spec import OUTPUT_BLOCK_FRAMES, OUTPUT_CHANNELS, OUTPUT_SAMPLE_RATE_HZ


class PlaybackHandle(Protocol):
    """
    One scheduled buffer on an output timeline.

    start:
        Seconds on the device clock where the buffer actually begins. Later
        than the requested start when the clock had already passed it.
    """

    @property
    def start(self) -> float: ...

    def stop(self) -> None: ...


class OutputTimeline(Protocol):
    """
    Playback clock + scheduling surface used by PlaybackScheduler.

    current_time:
        Seconds on the device clock. Non-decreasing.

    schedule:
        Play buffer starting at `start` seconds on that clock. on_ended is
        invoked once, on the loop, when the buffer finishes naturally. It is
        NOT invoked for a handle that was stopped.
    """

    @property
    def current_time(self) -> float: ...

    def schedule(
        self,
        buffer: AudioBuffer,
        start: float,
        on_ended: Callable[[], None],
    ) -> PlaybackHandle: ...

    def close(self) -> None: ...


# ---------------------------------------------------------------------
# sounddevice implementation
# ---------------------------------------------------------------------

@dataclass(eq=False)
class _Voice:
    owner: SoundDeviceOutput
    samples: np.ndarray        # mono float32
    rate: int
    start_frame: int
    on_ended: Callable[[], None]
    stopped: bool = field(default=False)

    @property
    def end_frame(self) -> int:
        return self.start_frame + len(self.samples)

    @property
    def start(self) -> float:
        return self.start_frame / self.rate

    def stop(self) -> None:
        self.owner.cancel(self)


class SoundDeviceOutput:
    """
    Output timeline backed by a PortAudio output stream.

    The stream runs continuously from construction until close(), rendering
    silence when nothing is scheduled, so the clock keeps advancing in real
    time.
    """

    def __init__(
        self,
        *,
        loop: asyncio.AbstractEventLoop,
        device: int | str | None = None,
        sample_rate_hz: int = OUTPUT_SAMPLE_RATE_HZ,
        block_frames: int = OUTPUT_BLOCK_FRAMES,
    ) -> None:
        sd = import_sounddevice()

        self._loop = loop
        self._rate = sample_rate_hz
        self._lock = threading.Lock()
        self._voices: list[_Voice] = []
        self._frame_pos = 0
        self._closed = False

        self._stream = sd.OutputStream(
            samplerate=sample_rate_hz,
            blocksize=block_frames,
            channels=OUTPUT_CHANNELS,
            dtype="float32",
            device=device,
            latency="low",
            callback=self._callback,
        )
        self._stream.start()
        log_event({
            "event_type": "OUTPUT_OPENED",
            "device": device,
            "sample_rate_hz": sample_rate_hz,
            "block_frames": block_frames,
        })

    @property
    def current_time(self) -> float:
        with self._lock:
            return self._frame_pos / self._rate

    def schedule(
        self,
        buffer: AudioBuffer,
        start: float,
        on_ended: Callable[[], None],
    ) -> _Voice:
        # Mono output: mix channels down.
        mono = buffer.samples.mean(axis=0).astype(np.float32)
        if buffer.sample_rate_hz != self._rate:
            raise ValueError(
                f"buffer rate {buffer.sample_rate_hz} != output rate {self._rate}"
            )

        voice = _Voice(
            owner=self,
            samples=mono,
            rate=self._rate,
            start_frame=int(round(start * self._rate)),
            on_ended=on_ended,
        )
        with self._lock:
            if self._closed:
                voice.stopped = True
                return voice
            # The clock may have moved since the caller read it; a start in
            # the past plays from the next block, in full, and the handle
            # reports the moved start.
            voice.start_frame = max(voice.start_frame, self._frame_pos)
            self._voices.append(voice)
        return voice

    def cancel(self, voice: _Voice) -> None:
        with self._lock:
            voice.stopped = True
            if voice in self._voices:
                self._voices.remove(voice)

    def close(self) -> None:
        """Stop all voices and release the device. Idempotent."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            for voice in self._voices:
                voice.stopped = True
            self._voices.clear()
        try:
            self._stream.stop()
        finally:
            self._stream.close()
        log_event({"event_type": "OUTPUT_CLOSED"})

    # -- PortAudio thread --------------------------------------------------

    def _callback(self, outdata: np.ndarray, frames: int, time_info: Any, status: Any) -> None:
        if status:
            log_event({"event_type": "OUTPUT_STATUS", "status": str(status), "frames": frames})

        mix = np.zeros(frames, dtype=np.float32)
        finished: list[_Voice] = []

        with self._lock:
            block_start = self._frame_pos
            block_end = block_start + frames

            for voice in self._voices:
                lo = max(block_start, voice.start_frame)
                hi = min(block_end, voice.end_frame)
                if lo < hi:
                    mix[lo - block_start : hi - block_start] += voice.samples[
                        lo - voice.start_frame : hi - voice.start_frame
                    ]
                if voice.end_frame <= block_end:
                    finished.append(voice)

            for voice in finished:
                self._voices.remove(voice)
            self._frame_pos = block_end

        outdata[:, 0] = np.clip(mix, -1.0, 1.0)

        for voice in finished:
            self._post(voice.on_ended)

    def _post(self, fn: Callable[[], None]) -> None:
        if self._loop.is_closed():
            return
        try:
            self._loop.call_soon_threadsafe(fn)
        except RuntimeError:
            return
