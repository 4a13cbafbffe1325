"""PCM conversion utilities."""
from __future__ import annotations

import numpy as np

from audio.frames import AudioBuffer
from spec import PCM16_MAX, PCM16_MIN, PCM16_SCALE


def float32_to_pcm16(samples: np.ndarray) -> bytes:
    """
    Quantize float samples in [-1.0, 1.0] to PCM16 little-endian bytes.

    Values are scaled by 32768, clipped to the int16 range and truncated
    toward zero. Full-scale +1.0 therefore maps to 32767, not a wrapped
    -32768.
    """
    scaled = np.asarray(samples, dtype=np.float32) * PCM16_SCALE
    clipped = np.clip(scaled, PCM16_MIN, PCM16_MAX)
    return clipped.astype("<i2").tobytes()


def pcm16le_to_float32(pcm_bytes: bytes) -> np.ndarray:
    """
    Convert PCM16 little-endian mono bytes to float32 in [-1.0, 1.0).

    No resampling. No channel mixing.
    """
    if len(pcm_bytes) % 2 != 0:
        # Truncated sample; drop it rather than reject the whole payload.
        pcm_bytes = pcm_bytes[: len(pcm_bytes) - 1]

    audio_i16 = np.frombuffer(pcm_bytes, dtype="<i2")
    return audio_i16.astype(np.float32) / PCM16_SCALE


def decode_audio_data(
    pcm_bytes: bytes,
    sample_rate_hz: int,
    num_channels: int = 1,
) -> AudioBuffer:
    """
    Decode interleaved PCM16 bytes into a playback buffer.

    Sample i of channel c is read from interleaved position
    i * num_channels + c. Any incomplete trailing frame is dropped.

    Raises:
        ValueError if sample_rate_hz or num_channels is not positive.
    """
    if sample_rate_hz <= 0:
        raise ValueError("sample_rate_hz must be > 0")
    if num_channels <= 0:
        raise ValueError("num_channels must be > 0")

    interleaved = pcm16le_to_float32(pcm_bytes)
    frames = len(interleaved) // num_channels
    interleaved = interleaved[: frames * num_channels]

    samples = interleaved.reshape(frames, num_channels).T.copy()
    return AudioBuffer(samples=samples, sample_rate_hz=sample_rate_hz)
