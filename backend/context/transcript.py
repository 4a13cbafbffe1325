"""
Per-turn transcript aggregation.

Streaming transcription arrives as fragments per speaker. Fragments are
concatenated verbatim (no separators added) until the remote agent signals
turn completion; then each non-blank buffer is flushed as one entry, user
before agent, and both buffers are cleared.
"""

from __future__ import annotations

from context.conversation import Speaker, TranscriptEntry, TranscriptHistory

# Flush order: the user's speech precedes the response it triggered.
FLUSH_ORDER: tuple[Speaker, ...] = ("user", "agent")


class TranscriptAggregator:
    """Two turn-scoped text buffers feeding a TranscriptHistory."""

    def __init__(self, history: TranscriptHistory) -> None:
        self._history = history
        self._buffers: dict[Speaker, str] = {speaker: "" for speaker in FLUSH_ORDER}

    def append_fragment(self, speaker: Speaker, text: str) -> None:
        if speaker not in self._buffers:
            raise ValueError(f"unknown speaker: {speaker!r}")
        if text:
            self._buffers[speaker] += text

    def pending(self, speaker: Speaker) -> str:
        return self._buffers[speaker]

    def complete_turn(self) -> tuple[TranscriptEntry, ...]:
        """Flush non-blank buffers into the history, then clear both."""
        flushed: list[TranscriptEntry] = []
        for speaker in FLUSH_ORDER:
            text = self._buffers[speaker].strip()
            if text:
                flushed.append(self._history.add(speaker, text))
        self.reset()
        return tuple(flushed)

    def reset(self) -> None:
        for speaker in FLUSH_ORDER:
            self._buffers[speaker] = ""
