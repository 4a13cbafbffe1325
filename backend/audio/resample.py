"""
Device-rate to wire-rate resampling.

Microphones commonly run at 44.1kHz or 48kHz; the wire profile is fixed at
16kHz. Resampling is stateless polyphase filtering (scipy), applied per
device block.
"""

from math import gcd

import numpy as np
from scipy import signal


class Resampler:
    """Converts float32 mono blocks from src_rate_hz to dst_rate_hz."""

    def __init__(self, src_rate_hz: int, dst_rate_hz: int):
        if src_rate_hz <= 0 or dst_rate_hz <= 0:
            raise ValueError("sample rates must be > 0")
        divisor = gcd(src_rate_hz, dst_rate_hz)
        self._up = dst_rate_hz // divisor
        self._down = src_rate_hz // divisor
        self.src_rate_hz = src_rate_hz
        self.dst_rate_hz = dst_rate_hz

    @property
    def is_passthrough(self) -> bool:
        return self._up == self._down

    def process(self, samples: np.ndarray) -> np.ndarray:
        """Resample one block. Output stays float32 and within [-1, 1]."""
        block = np.asarray(samples, dtype=np.float32).reshape(-1)
        if self.is_passthrough or block.size == 0:
            return block

        out = signal.resample_poly(block, self._up, self._down)
        return np.clip(out, -1.0, 1.0).astype(np.float32)
