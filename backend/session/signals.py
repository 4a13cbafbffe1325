"""
Observable "agent is speaking" signal.

The avatar renderer (and any other read-only consumer) either polls
`value` or subscribes for changes. Consumers get no handle back into the
audio core.
"""

from __future__ import annotations

from typing import Callable

from observability.logger import log_event


class SpeakingSignal:
    """Boolean state value with change notification."""

    def __init__(self) -> None:
        self._value = False
        self._subscribers: list[Callable[[bool], None]] = []

    @property
    def value(self) -> bool:
        return self._value

    def set(self, value: bool) -> None:
        """Update the value; subscribers are notified only on change."""
        if value == self._value:
            return
        self._value = value
        for callback in list(self._subscribers):
            try:
                callback(value)
            except Exception as e:  # pylint: disable=broad-exception-caught
                log_event({
                    "event_type": "SPEAKING_SUBSCRIBER_FAILED",
                    "error": repr(e),
                })

    def subscribe(self, callback: Callable[[bool], None]) -> Callable[[], None]:
        """Register a change callback. Returns an unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe
