# pylint: disable=missing-module-docstring,missing-function-docstring

import numpy as np
import pytest

from audio.pcm import decode_audio_data, float32_to_pcm16, pcm16le_to_float32


def test_round_trip_within_one_quantization_step():
    samples = np.linspace(-1.0, 0.999, 2001, dtype=np.float32)

    decoded = pcm16le_to_float32(float32_to_pcm16(samples))

    assert decoded.dtype == np.float32
    assert np.max(np.abs(decoded - samples)) <= 1.0 / 32768


def test_encoding_is_little_endian_two_bytes_per_sample():
    pcm = float32_to_pcm16(np.array([0.5, -0.5], dtype=np.float32))

    assert pcm == b"\x00\x40\x00\xc0"


def test_full_scale_clips_instead_of_wrapping():
    pcm = float32_to_pcm16(np.array([1.0, -1.0, 2.5, -3.0], dtype=np.float32))

    values = np.frombuffer(pcm, dtype="<i2").tolist()
    assert values == [32767, -32768, 32767, -32768]


def test_odd_trailing_byte_is_dropped():
    decoded = pcm16le_to_float32(b"\x00\x40\x7f")

    assert decoded.tolist() == [0.5]


def test_decode_mono_buffer():
    buffer = decode_audio_data(b"\x00\x40" * 240, 24_000)

    assert buffer.num_channels == 1
    assert buffer.frames == 240
    assert buffer.duration_s == pytest.approx(0.01)
    assert np.allclose(buffer.channel_data(0), 0.5)


def test_decode_deinterleaves_channels():
    pcm = np.array([1, 2, 3, 4, 5, 6], dtype="<i2").tobytes()

    buffer = decode_audio_data(pcm, 24_000, num_channels=2)

    assert buffer.frames == 3
    assert (buffer.channel_data(0) * 32768).tolist() == [1.0, 3.0, 5.0]
    assert (buffer.channel_data(1) * 32768).tolist() == [2.0, 4.0, 6.0]


def test_decode_drops_incomplete_trailing_frame():
    pcm = np.array([1, 2, 3], dtype="<i2").tobytes()

    buffer = decode_audio_data(pcm, 24_000, num_channels=2)

    assert buffer.frames == 1


def test_decode_empty_payload():
    buffer = decode_audio_data(b"", 24_000)

    assert buffer.frames == 0
    assert buffer.duration_s == 0.0


@pytest.mark.parametrize("rate,channels", [(0, 1), (-1, 1), (24_000, 0)])
def test_decode_rejects_invalid_profile(rate: int, channels: int):
    with pytest.raises(ValueError):
        decode_audio_data(b"\x00\x00", rate, num_channels=channels)
