"""
Transcript history.

Responsibilities:
- Store finalized transcript entries in chronological order
- Notify listeners as entries are appended

Non-responsibilities:
- No turn aggregation (see context.transcript)
- No persistence: history lives as long as the process-level gateway
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Literal

from observability.logger import log_event


Speaker = Literal["user", "agent"]


@dataclass(frozen=True)
class TranscriptEntry:
    """Single finalized utterance. Immutable once created."""
    speaker: Speaker
    text: str
    timestamp: datetime

    def to_dict(self) -> dict[str, str]:
        return {
            "speaker": self.speaker,
            "text": self.text,
            "timestamp": self.timestamp.isoformat(),
        }


class TranscriptHistory:
    """
    Append-only list of TranscriptEntry.

    Entries are never mutated or removed individually; clear() only runs
    when a new call starts.
    """

    def __init__(self, clock: Callable[[], datetime] = datetime.now) -> None:
        self._clock = clock
        self._entries: list[TranscriptEntry] = []
        self._listeners: list[Callable[[TranscriptEntry], None]] = []

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def add(self, speaker: Speaker, text: str) -> TranscriptEntry:
        """Create an entry stamped with the current time and append it."""
        entry = TranscriptEntry(speaker=speaker, text=text, timestamp=self._clock())
        self.append(entry)
        return entry

    def append(self, entry: TranscriptEntry) -> None:
        self._entries.append(entry)
        for listener in list(self._listeners):
            try:
                listener(entry)
            except Exception as e:  # pylint: disable=broad-exception-caught
                log_event({
                    "event_type": "TRANSCRIPT_LISTENER_FAILED",
                    "error": repr(e),
                })

    def entries(self) -> tuple[TranscriptEntry, ...]:
        return tuple(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def subscribe(self, listener: Callable[[TranscriptEntry], None]) -> Callable[[], None]:
        """Register an append listener. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def __len__(self) -> int:
        return len(self._entries)
