"""
Capture framing utilities.

Purpose:
- Turn arbitrarily sized device blocks into back-to-back, fixed-size
  chunks for the duplex channel.

Invariants:
- Mono float32 samples in, mono float32 chunks out
- Every emitted chunk is exactly chunk_samples long
- Samples are emitted in the order they were pushed, none duplicated
- Any incomplete trailing chunk is dropped at reset (no padding)
"""

from __future__ import annotations

import numpy as np

from spec import CAPTURE_CHUNK_SAMPLES


def split_samples_into_chunks(
    samples: np.ndarray,
    *,
    chunk_samples: int = CAPTURE_CHUNK_SAMPLES,
) -> tuple[list[np.ndarray], np.ndarray]:
    """
    Split a 1-D sample array into whole chunks.

    Returns:
        (chunks, remainder): every chunk has exactly chunk_samples samples;
        remainder holds the trailing samples that did not fill a chunk.

    Raises:
        ValueError if chunk_samples is not positive.
    """
    if chunk_samples <= 0:
        raise ValueError("chunk_samples must be > 0")

    whole = len(samples) // chunk_samples
    end = whole * chunk_samples
    chunks = [samples[offset : offset + chunk_samples] for offset in range(0, end, chunk_samples)]
    return chunks, samples[end:]


class ChunkFramer:
    """
    Stateful framer: carries the remainder of each push into the next one.
    """

    def __init__(self, *, chunk_samples: int = CAPTURE_CHUNK_SAMPLES) -> None:
        if chunk_samples <= 0:
            raise ValueError("chunk_samples must be > 0")
        self._chunk_samples = chunk_samples
        self._pending = np.zeros(0, dtype=np.float32)

    @property
    def chunk_samples(self) -> int:
        return self._chunk_samples

    @property
    def pending_samples(self) -> int:
        return len(self._pending)

    def push(self, samples: np.ndarray) -> list[np.ndarray]:
        """Append samples and return every chunk that is now complete."""
        block = np.asarray(samples, dtype=np.float32).reshape(-1)
        if block.size == 0:
            return []

        joined = np.concatenate((self._pending, block)) if self._pending.size else block
        chunks, remainder = split_samples_into_chunks(
            joined, chunk_samples=self._chunk_samples
        )
        self._pending = remainder.copy()
        return [c.copy() for c in chunks]

    def reset(self) -> None:
        """Drop the partial chunk."""
        self._pending = np.zeros(0, dtype=np.float32)
