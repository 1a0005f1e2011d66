from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

import pytest

from sight_singing.notes import NoteEvent, NoteLabel, parse_note_name
from sight_singing.stabilizer import NoteStabilizer, StabilizerConfig

HOP = 2048 / 44_100  # one frame period

C4 = parse_note_name("C4")
D4 = parse_note_name("D4")
E4 = parse_note_name("E4")


def _feed(stab: NoteStabilizer, runs: Sequence[Tuple[Optional[NoteLabel], float]]) -> List[NoteEvent]:
    """Feed (label, seconds) runs at the frame rate, return emitted events."""
    out = []
    t = 0.0
    for label, seconds in runs:
        n = int(round(seconds / HOP))
        for _ in range(n):
            ev = stab.update(label, t)
            if ev is not None:
                out.append(ev)
            t += HOP
    return out


def test_long_hold_emits_exactly_once() -> None:
    events = _feed(NoteStabilizer(), [(C4, 2.0)])
    assert len(events) == 1
    ev = events[0]
    assert ev.label == C4
    assert ev.start == 0.0
    assert ev.duration() >= 0.3


def test_short_runs_never_emit() -> None:
    runs = [(C4, 0.2), (D4, 0.2), (C4, 0.2), (E4, 0.25)] * 3
    assert _feed(NoteStabilizer(), runs) == []


def test_silence_breaks_a_run() -> None:
    events = _feed(NoteStabilizer(), [(C4, 0.2), (None, 0.05), (C4, 0.2)])
    assert events == []


def test_one_event_per_contiguous_run() -> None:
    runs = [(C4, 0.6), (None, 0.1), (C4, 0.6), (E4, 0.6)]
    events = _feed(NoteStabilizer(), runs)
    assert [str(e.label) for e in events] == ["C4", "C4", "E4"]
    for a, b in zip(events, events[1:]):
        assert a.end < b.start


def test_custom_min_duration() -> None:
    stab = NoteStabilizer(StabilizerConfig(min_stable_duration=0.1))
    assert stab.update(C4, 0.0) is None
    assert stab.update(C4, 0.05) is None
    ev = stab.update(C4, 0.1)
    assert ev is not None and ev.end == pytest.approx(0.1)
    assert stab.update(C4, 0.5) is None


def test_reset_forgets_the_run() -> None:
    stab = NoteStabilizer()
    stab.update(C4, 0.0)
    stab.reset()
    assert stab.last_label is None
    assert stab.update(C4, 0.35) is None
    assert stab.update(C4, 0.7) is not None


def test_run_of_exactly_min_duration_commits() -> None:
    stab = NoteStabilizer()
    assert stab.update(C4, 0.4) is None
    ev = stab.update(C4, 0.7)  # 0.7 - 0.4 == 0.29999999999999993
    assert ev is not None
    assert (ev.start, ev.end) == (0.4, 0.7)
    assert stab.update(D4, 0.75) is None
