"""
Audio value types.

Pure data containers only.
No queues, no timing logic, no devices.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from protocol.wire import make_media_blob, pcm_mime_type
from spec import AUDIO_SAMPLE_WIDTH_BYTES


@dataclass(frozen=True)
class AudioChunk:
    """
    One outbound slice of captured microphone audio.

    sequence_num:
        Monotonic per-session sequence number, assigned in capture order.

    pcm_bytes:
        PCM16 little-endian mono samples.

    sample_rate_hz:
        Encoding profile rate (16kHz for the capture profile).

    ts_ms:
        Wall-clock time the chunk was produced. Observability only.
    """
    sequence_num: int
    pcm_bytes: bytes
    sample_rate_hz: int
    ts_ms: int

    @property
    def mime_type(self) -> str:
        return pcm_mime_type(self.sample_rate_hz)

    @property
    def duration_s(self) -> float:
        samples = len(self.pcm_bytes) // AUDIO_SAMPLE_WIDTH_BYTES
        return samples / self.sample_rate_hz

    def to_blob(self) -> dict[str, str]:
        """Text-safe media blob for the duplex channel."""
        return make_media_blob(self.pcm_bytes, self.sample_rate_hz)


@dataclass(frozen=True, eq=False)
class AudioBuffer:
    """
    Decoded multi-channel playback buffer.

    samples has shape (num_channels, frames), dtype float32, values in [-1, 1).
    """
    samples: np.ndarray
    sample_rate_hz: int

    @property
    def num_channels(self) -> int:
        return int(self.samples.shape[0])

    @property
    def frames(self) -> int:
        return int(self.samples.shape[1])

    @property
    def duration_s(self) -> float:
        return self.frames / self.sample_rate_hz

    def channel_data(self, channel: int) -> np.ndarray:
        return self.samples[channel]
