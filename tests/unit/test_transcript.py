# pylint: disable=missing-module-docstring,missing-function-docstring

from datetime import datetime

import pytest

from context.conversation import TranscriptEntry, TranscriptHistory
from context.transcript import TranscriptAggregator


def fixed_clock() -> datetime:
    return datetime(2025, 1, 1, 12, 0, 0)


def make_aggregator() -> tuple[TranscriptAggregator, TranscriptHistory]:
    history = TranscriptHistory(clock=fixed_clock)
    return TranscriptAggregator(history), history


def test_fragments_concatenate_and_flush_user_first():
    agg, history = make_aggregator()

    agg.append_fragment("agent", "Hel")
    agg.append_fragment("agent", "lo")
    agg.append_fragment("user", "Hi")
    flushed = agg.complete_turn()

    assert [(e.speaker, e.text) for e in flushed] == [("user", "Hi"), ("agent", "Hello")]
    assert [(e.speaker, e.text) for e in history.entries()] == [("user", "Hi"), ("agent", "Hello")]
    assert agg.pending("user") == ""
    assert agg.pending("agent") == ""


def test_fragments_are_joined_verbatim_and_trimmed_on_flush():
    agg, history = make_aggregator()

    agg.append_fragment("user", " what's")
    agg.append_fragment("user", " the time ")
    agg.complete_turn()

    assert history.entries()[0].text == "what's the time"


def test_blank_buffers_add_nothing():
    agg, history = make_aggregator()

    agg.append_fragment("agent", "   ")
    assert agg.complete_turn() == ()
    assert len(history) == 0
    assert agg.pending("agent") == ""


def test_turn_without_user_speech_flushes_agent_only():
    agg, history = make_aggregator()

    agg.append_fragment("agent", "Sure.")
    agg.complete_turn()

    assert [e.speaker for e in history.entries()] == ["agent"]


def test_reset_discards_partial_turn():
    agg, history = make_aggregator()
    agg.append_fragment("user", "half a sent")

    agg.reset()
    agg.complete_turn()

    assert len(history) == 0


def test_unknown_speaker_rejected():
    agg, _ = make_aggregator()

    with pytest.raises(ValueError):
        agg.append_fragment("model", "x")  # type: ignore[arg-type]


# ---------------------------------------------------------------------
# History
# ---------------------------------------------------------------------

def test_history_notifies_listeners_until_unsubscribed():
    history = TranscriptHistory(clock=fixed_clock)
    seen: list[TranscriptEntry] = []
    unsubscribe = history.subscribe(seen.append)

    history.add("agent", "one")
    unsubscribe()
    history.add("agent", "two")

    assert [e.text for e in seen] == ["one"]
    assert len(history) == 2


def test_failing_listener_does_not_block_append():
    history = TranscriptHistory(clock=fixed_clock)

    def broken(_: TranscriptEntry) -> None:
        raise RuntimeError("listener bug")

    history.subscribe(broken)
    history.add("user", "hello")

    assert len(history) == 1


def test_entry_to_dict():
    entry = TranscriptEntry(speaker="user", text="Hi", timestamp=fixed_clock())

    assert entry.to_dict() == {"speaker": "user", "text": "Hi", "timestamp": "2025-01-01T12:00:00"}


def test_entries_is_a_copy():
    history = TranscriptHistory(clock=fixed_clock)
    history.add("user", "a")
    snapshot = history.entries()

    history.clear()

    assert len(snapshot) == 1
    assert len(history) == 0
