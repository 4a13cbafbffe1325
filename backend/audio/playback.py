"""
Gapless playback scheduler for agent audio.

Each inbound audio chunk becomes one PlaybackUnit placed on the output
timeline immediately after whatever is already queued:

    start  = max(output.current_time, cursor)
    cursor = start + duration

Because a unit is anchored to the previous unit's end rather than to its
arrival time, chunks play back-to-back in arrival order no matter how
irregularly they arrive.

Invariants:
- cursor is non-decreasing between interruptions
- every unit starts at or after the cursor value it was scheduled against
- the in-flight set holds exactly the units that are scheduled or playing
- "speaking" is True iff the in-flight set is non-empty
  (interrupt() forces it to False regardless)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

from audio.output import OutputTimeline, PlaybackHandle
from audio.pcm import decode_audio_data
from observability.logger import log_event
from spec import OUTPUT_CHANNELS, OUTPUT_SAMPLE_RATE_HZ


@dataclass(eq=False)
class PlaybackUnit:
    """One decoded response chunk placed on the output timeline."""
    sequence_num: int
    start: float
    duration: float
    handle: PlaybackHandle | None = field(default=None, repr=False)

    @property
    def end(self) -> float:
        return self.start + self.duration


class PlaybackScheduler:
    """
    Owns the output-timeline cursor and the set of in-flight units.

    on_speaking_changed:
        Called with True when the first unit is scheduled onto an idle
        timeline, and with False when the last unit finishes or on
        interrupt().
    """

    def __init__(
        self,
        output: OutputTimeline,
        *,
        on_speaking_changed: Callable[[bool], None],
        sample_rate_hz: int = OUTPUT_SAMPLE_RATE_HZ,
        num_channels: int = OUTPUT_CHANNELS,
        session_id: str | None = None,
    ) -> None:
        self._output = output
        self._on_speaking_changed = on_speaking_changed
        self._sample_rate_hz = sample_rate_hz
        self._num_channels = num_channels
        self._session_id = session_id

        self._cursor = 0.0
        self._in_flight: set[PlaybackUnit] = set()
        self._next_seq = 1
        self._closed = False

        self.units_scheduled = 0
        self.units_interrupted = 0

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def cursor(self) -> float:
        return self._cursor

    @property
    def in_flight(self) -> frozenset[PlaybackUnit]:
        return frozenset(self._in_flight)

    @property
    def is_speaking(self) -> bool:
        return bool(self._in_flight)

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def enqueue(self, pcm_bytes: bytes) -> PlaybackUnit | None:
        """
        Decode one response chunk and schedule it after the current cursor.

        Returns the scheduled unit, or None for an empty payload or a
        closed scheduler.
        """
        if self._closed:
            return None

        buffer = decode_audio_data(pcm_bytes, self._sample_rate_hz, self._num_channels)
        if buffer.frames == 0:
            return None

        start = max(self._output.current_time, self._cursor)
        unit = PlaybackUnit(
            sequence_num=self._next_seq,
            start=start,
            duration=buffer.duration_s,
        )
        self._next_seq += 1

        unit.handle = self._output.schedule(
            buffer, start, lambda: self._on_unit_ended(unit)
        )
        # Anchor on the start the timeline used, not the earlier clock read.
        unit.start = max(start, unit.handle.start)
        self._cursor = unit.end

        was_idle = not self._in_flight
        self._in_flight.add(unit)
        self.units_scheduled += 1
        if was_idle:
            self._on_speaking_changed(True)
        return unit

    def _on_unit_ended(self, unit: PlaybackUnit) -> None:
        if unit not in self._in_flight:
            # Already removed by interrupt()/close().
            return
        self._in_flight.discard(unit)
        if not self._in_flight:
            self._on_speaking_changed(False)

    # ------------------------------------------------------------------
    # Interruption / teardown
    # ------------------------------------------------------------------

    def interrupt(self) -> int:
        """
        Stop every in-flight unit and re-anchor the cursor at "now".

        Returns the number of units stopped.
        """
        stopped = self._stop_all()
        self._cursor = self._output.current_time
        self.units_interrupted += stopped
        log_event({
            "event_type": "PLAYBACK_INTERRUPTED",
            "session_id": self._session_id,
            "units_stopped": stopped,
            "cursor_s": self._cursor,
        })
        self._on_speaking_changed(False)
        return stopped

    def close(self) -> None:
        """Stop everything and refuse further units. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self.units_interrupted += self._stop_all()
        self._cursor = 0.0
        self._on_speaking_changed(False)

    def _stop_all(self) -> int:
        units = list(self._in_flight)
        self._in_flight.clear()
        for unit in units:
            if unit.handle is None:
                continue
            try:
                unit.handle.stop()
            except Exception as e:  # pylint: disable=broad-exception-caught
                log_event({
                    "event_type": "PLAYBACK_STOP_FAILED",
                    "session_id": self._session_id,
                    "sequence_num": unit.sequence_num,
                    "error": repr(e),
                })
        return len(units)
