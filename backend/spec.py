"""
BEHAVIORAL CONSTANTS
-------------------
Single source of truth for all behavioral invariants in the system.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers elsewhere in the codebase.
- Other modules MUST import from this file.
"""

from __future__ import annotations

from typing import Final

# =============================================================================
# Audio Format: capture (PCM16 mono @ 16kHz)
# =============================================================================

INPUT_SAMPLE_RATE_HZ: Final[int] = 16_000
AUDIO_CHANNELS: Final[int] = 1
AUDIO_SAMPLE_WIDTH_BYTES: Final[int] = 2  # PCM16 (signed 16-bit)

# 4096 samples @ 16kHz == 256 ms per outbound chunk
CAPTURE_CHUNK_SAMPLES: Final[int] = 4096
CAPTURE_CHUNK_DURATION_S: Final[float] = CAPTURE_CHUNK_SAMPLES / INPUT_SAMPLE_RATE_HZ
CAPTURE_CHUNK_BYTES: Final[int] = CAPTURE_CHUNK_SAMPLES * AUDIO_SAMPLE_WIDTH_BYTES

# Device block size requested from PortAudio (frames at the device rate)
CAPTURE_DEVICE_BLOCK_MS: Final[int] = 64

# =============================================================================
# Audio Format: playback (PCM16 mono @ 24kHz)
# =============================================================================

OUTPUT_SAMPLE_RATE_HZ: Final[int] = 24_000
OUTPUT_CHANNELS: Final[int] = 1
OUTPUT_BLOCK_MS: Final[int] = 20
OUTPUT_BLOCK_FRAMES: Final[int] = (OUTPUT_SAMPLE_RATE_HZ * OUTPUT_BLOCK_MS) // 1000

# =============================================================================
# PCM quantization
# =============================================================================

PCM16_SCALE: Final[float] = 32768.0
PCM16_MIN: Final[int] = -32768
PCM16_MAX: Final[int] = 32767

# =============================================================================
# Wire format
# =============================================================================

PCM_MIME_BASE: Final[str] = "audio/pcm"

LIVE_WS_URL: Final[str] = (
    "wss://generativelanguage.googleapis.com/ws/"
    "google.ai.generativelanguage.v1beta.GenerativeService.BidiGenerateContent"
)
LIVE_MODEL_DEFAULT: Final[str] = "gemini-2.5-flash-native-audio-preview-12-2025"
LIVE_RESPONSE_MODALITY: Final[str] = "AUDIO"
LIVE_WS_MAX_MESSAGE_BYTES: Final[int] = 2**22

DEFAULT_SYSTEM_INSTRUCTION: Final[str] = (
    "You are a friendly virtual assistant. "
    "Keep your answers concise and conversational."
)

# =============================================================================
# Channel timing / buffering
# =============================================================================

CHANNEL_OPEN_TIMEOUT_S: Final[float] = 15.0
CHANNEL_CLOSE_TIMEOUT_S: Final[float] = 2.0

# Chunks produced before the channel confirms open are held briefly.
PENDING_CHUNK_Q_MAX_S: Final[float] = 4 * CAPTURE_CHUNK_DURATION_S

# Outbound chunks waiting for the sender task (~4s of audio).
OUTBOX_MAX_CHUNKS: Final[int] = 16

# =============================================================================
# Transcript
# =============================================================================

GREETING_TEXT: Final[str] = "Hello! How can I help you today?"

# =============================================================================
# User-facing messages (one per error class)
# =============================================================================

MISSING_API_KEY_MESSAGE: Final[str] = (
    "GEMINI_API_KEY is not configured. "
    "Please set it up to use the application."
)
MICROPHONE_DENIED_MESSAGE: Final[str] = (
    "Microphone access was denied. Please allow microphone access "
    "in your system settings and try again."
)
START_FAILED_MESSAGE: Final[str] = "Failed to start session: {detail}"
START_FAILED_GENERIC_MESSAGE: Final[str] = (
    "An unexpected error occurred while starting the session."
)
CHANNEL_ERROR_MESSAGE: Final[str] = (
    "A session error occurred: {detail}. Please try reconnecting."
)
CAPTURE_ENDED_MESSAGE: Final[str] = (
    "The microphone stopped delivering audio. "
    "Please check your input device and try again."
)
