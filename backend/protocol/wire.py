# backend/protocol/wire.py
"""
Text-safe wire helpers for audio transport.

Outbound (mic):
    {"data": <base64 PCM16LE mono>, "mimeType": "audio/pcm;rate=16000"}

Inbound (agent audio):
    base64 PCM16LE mono payload, tagged "audio/pcm;rate=24000"

Pure functions only: no IO, no sockets, no clocks.
"""

from __future__ import annotations

import base64
import binascii

from spec import PCM_MIME_BASE


# -------------------------
# Exceptions
# -------------------------

class WireFormatError(Exception):
    """
    Raised when an inbound payload or tag violates the wire contract.

    The offending event is unsafe to process and must be skipped; it never
    invalidates the session.
    """


# -------------------------
# Binary <-> text
# -------------------------

def encode_base64(data: bytes) -> str:
    """Encode raw bytes as standard, padded base64 text."""
    return base64.b64encode(data).decode("ascii")


def decode_base64(text: str) -> bytes:
    """
    Decode standard base64 text.

    Raises:
        WireFormatError if the text is not valid base64.
    """
    if not isinstance(text, str):
        raise WireFormatError(f"expected base64 text, got {type(text).__name__}")
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as e:
        raise WireFormatError(f"invalid base64 payload: {e}") from e


# -------------------------
# MIME-style format tags
# -------------------------

def pcm_mime_type(rate_hz: int) -> str:
    """Tag for 16-bit PCM at the given rate, e.g. audio/pcm;rate=16000."""
    if rate_hz <= 0:
        raise WireFormatError(f"sample rate must be > 0 (got {rate_hz})")
    return f"{PCM_MIME_BASE};rate={rate_hz}"


def parse_pcm_mime_type(tag: str) -> int:
    """
    Return the sample rate carried by an audio/pcm tag.

    Raises:
        WireFormatError if the tag is not audio/pcm or has no usable rate.
    """
    parts = [p.strip() for p in tag.split(";")]
    if not parts or parts[0].lower() != PCM_MIME_BASE:
        raise WireFormatError(f"unsupported audio format tag: {tag!r}")

    for param in parts[1:]:
        key, _, value = param.partition("=")
        if key.strip().lower() != "rate":
            continue
        try:
            rate = int(value.strip())
        except ValueError as e:
            raise WireFormatError(f"invalid rate in tag {tag!r}") from e
        if rate <= 0:
            raise WireFormatError(f"invalid rate in tag {tag!r}")
        return rate

    raise WireFormatError(f"missing rate in tag {tag!r}")


def make_media_blob(pcm_bytes: bytes, rate_hz: int) -> dict[str, str]:
    """Build the outbound media blob for one PCM16 chunk."""
    return {
        "data": encode_base64(pcm_bytes),
        "mimeType": pcm_mime_type(rate_hz),
    }
