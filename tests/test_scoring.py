from __future__ import annotations

from typing import List

import pytest

from sight_singing.notes import NoteEvent, parse_melody, parse_note_name
from sight_singing.scoring import score_melody, summary_message


def _events(*names: str) -> List[NoteEvent]:
    return [
        NoteEvent(label=parse_note_name(n), start=i * 0.5, end=i * 0.5 + 0.35)
        for i, n in enumerate(names)
    ]


@pytest.fixture
def c_d_e():
    return parse_melody("C4 D4 E4")


def test_all_correct(c_d_e) -> None:
    res = score_melody(c_d_e, _events("C4", "D4", "E4"))
    assert res.accuracy == 100
    assert all(r.is_correct for r in res.per_note)
    assert not res.no_notes_detected


def test_nothing_sung_is_flagged(c_d_e) -> None:
    res = score_melody(c_d_e, [])
    assert res.accuracy == 0
    assert res.no_notes_detected
    assert [r.sung for r in res.per_note] == [None, None, None]


def test_all_wrong_is_not_flagged_as_empty(c_d_e) -> None:
    res = score_melody(c_d_e, _events("G4", "A4", "B4"))
    assert res.accuracy == 0
    assert not res.no_notes_detected
    assert summary_message(res) != summary_message(score_melody(c_d_e, []))


def test_partial_take(c_d_e) -> None:
    res = score_melody(c_d_e, _events("C4"))
    assert res.accuracy == 33
    assert [r.is_correct for r in res.per_note] == [True, False, False]
    assert [r.sung_name for r in res.per_note] == ["C4", "Not sung", "Not sung"]


def test_extra_events_are_ignored(c_d_e) -> None:
    res = score_melody(c_d_e, _events("C4", "D4", "E4", "F4", "G4"))
    assert res.accuracy == 100
    assert res.total == 3


def test_accidentals_are_not_distinguished() -> None:
    res = score_melody(parse_melody("C4 F4"), _events("C#4", "F#4"))
    assert res.accuracy == 100


def test_wrong_octave_is_wrong() -> None:
    res = score_melody(parse_melody("C4 D4"), _events("C5", "D4"))
    assert [r.is_correct for r in res.per_note] == [False, True]
    assert res.accuracy == 50


def test_accepts_plain_labels() -> None:
    labels = [parse_note_name("A4"), parse_note_name("B4")]
    res = score_melody(labels, _events("A4", "C5"))
    assert res.correct_count == 1
    assert res.accuracy == 50


def test_empty_expected_raises() -> None:
    with pytest.raises(ValueError):
        score_melody([], _events("C4"))


def test_rounding_is_half_up() -> None:
    mel = parse_melody("C4 D4 E4 F4 G4 A4 B4 C5")
    res = score_melody(mel, _events("C4", "D4", "E4", "F4", "G4", "A4", "B4", "D5"))
    # 7/8 = 87.5
    assert res.accuracy == 88


@pytest.mark.parametrize(
    "sung,prefix",
    [
        (("C4", "D4", "E4", "F4", "G4"), "Excellent!"),
        (("C4", "D4", "E4", "C4", "C4"), "Good job!"),
        (("C4", "D4", "C4", "C4", "C4"), "You sang 2 out of 5"),
        (("C4", "C4", "C4", "C4", "C4"), "You sang 1 out of 5"),
    ],
)
def test_summary_tiers(sung, prefix) -> None:
    res = score_melody(parse_melody("C4 D4 E4 F4 G4"), _events(*sung))
    assert summary_message(res).startswith(prefix)
