# backend/audio/queues.py
"""
Bounded queue for outbound audio chunks held before the channel is open.

- Depth measured in seconds of audio (not chunk count)
- Explicit drop behavior with distinguishable reasons
- Drops OLDEST chunks when full so the freshest speech reaches the agent
- Deterministic, synchronous behavior
"""

from __future__ import annotations
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Deque

from audio.frames import AudioChunk


class DropReason(str, Enum):
    """
    Reason an audio chunk was dropped.
    """
    STALE = "stale"          # evicted to make room for a newer chunk
    OVERSIZED = "oversized"  # a single chunk longer than the whole queue


@dataclass
class DropCounters:
    """
    Drop counters for observability.
    """
    stale: int = 0
    oversized: int = 0


class ChunkQueue:
    """
    Bounded FIFO of AudioChunk objects.

    Drop rules:
    - enqueue evicts the OLDEST chunks until the new one fits
    - a chunk that can never fit is dropped outright
    """

    def __init__(self, *, max_depth_s: float) -> None:
        if max_depth_s <= 0:
            raise ValueError("max_depth_s must be > 0")

        self._max_depth_s: float = max_depth_s
        self._chunks: Deque[AudioChunk] = deque()
        self._depth_s: float = 0.0
        self.drops: DropCounters = DropCounters()

    # -------------------------
    # Core queue operations
    # -------------------------

    def enqueue(self, chunk: AudioChunk) -> bool:
        """
        Enqueue a chunk, evicting stale ones if needed.

        Returns:
            True if enqueued
            False if the chunk itself was dropped
        """
        duration = chunk.duration_s
        if duration > self._max_depth_s:
            self.drops.oversized += 1
            return False

        while self._chunks and self._depth_s + duration > self._max_depth_s:
            evicted = self._chunks.popleft()
            self._depth_s -= evicted.duration_s
            self.drops.stale += 1

        self._chunks.append(chunk)
        self._depth_s += duration
        return True

    def drain(self) -> list[AudioChunk]:
        """Remove and return all chunks in FIFO order."""
        out = list(self._chunks)
        self.clear()
        return out

    def clear(self) -> None:
        """
        Drop all queued chunks without counting them as drops.

        Used during teardown.
        """
        self._chunks.clear()
        self._depth_s = 0.0

    # -------------------------
    # Introspection helpers
    # -------------------------

    def __len__(self) -> int:
        return len(self._chunks)

    def depth_seconds(self) -> float:
        """Seconds of audio currently queued."""
        return self._depth_s

    def total_drops(self) -> int:
        return self.drops.stale + self.drops.oversized

    def snapshot(self) -> dict[str, float | int]:
        """
        Lightweight snapshot for logging / metrics.
        """
        return {
            "chunks": len(self._chunks),
            "depth_s": self.depth_seconds(),
            "dropped_stale": self.drops.stale,
            "dropped_oversized": self.drops.oversized,
            "dropped_total": self.total_drops(),
        }
