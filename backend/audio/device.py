"""
Deferred access to the PortAudio binding.

sounddevice loads the native PortAudio library at import time, which fails
on hosts without an audio stack (CI, containers). Importing it lazily keeps
the pure pipeline modules importable there; only opening a real device
requires it.
"""

from __future__ import annotations

from typing import Any


class AudioBackendUnavailable(OSError):
    """sounddevice or the native PortAudio library could not be loaded."""


def import_sounddevice() -> Any:
    """Import sounddevice, raising a clear error if it cannot be loaded."""
    try:
        import sounddevice as sd  # pylint: disable=import-outside-toplevel
    except (ImportError, OSError) as e:
        raise AudioBackendUnavailable(
            "sounddevice (and the PortAudio library) is required for live audio: "
            f"{e}"
        ) from e
    return sd
