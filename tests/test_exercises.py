from __future__ import annotations

import pytest

from sight_singing.errors import InvalidReferenceMelody
from sight_singing.exercises import (
    Chord,
    Difficulty,
    Exercise,
    Interval,
    Melody,
    NoteKind,
    Scale,
    melody_for,
)
from sight_singing.notes import parse_melody


def _names(ex: Exercise, root: str = "C4"):
    return [str(n) for n in melody_for(ex, root=root)]


def test_interval() -> None:
    ex = Exercise(name="Perfect Fifth", difficulty=Difficulty.EASY, kind=Interval(7))
    assert _names(ex) == ["C4", "G4"]
    assert ex.exercise_type == "Intervals"
    assert ex.exercise_id == "Intervals-Perfect Fifth-Easy"


def test_chord_arpeggio_from_other_root() -> None:
    ex = Exercise(name="Minor Triad", difficulty=Difficulty.EASY, kind=Chord((0, 3, 7)))
    assert _names(ex, root="A3") == ["A3", "C4", "E4"]


def test_scale_crosses_octave() -> None:
    ex = Exercise(name="Major Scale", difficulty=Difficulty.EASY, kind=Scale((0, 2, 4, 5, 7, 9, 11, 12)))
    assert _names(ex) == ["C4", "D4", "E4", "F4", "G4", "A4", "B4", "C5"]


def test_single_note_uses_exercise_name() -> None:
    ex = Exercise(name="F#", difficulty=Difficulty.MEDIUM, kind=NoteKind())
    assert _names(ex, root="C3") == ["F#3"]
    assert ex.exercise_id == "Notes-F#-Medium"


def test_written_melody_passes_through() -> None:
    mel = parse_melody("C4 E4 G4 C5:h")
    ex = Exercise(name="Basic Intervals", difficulty=Difficulty.EASY, kind=Melody(mel))
    assert melody_for(ex) is mel
    assert ex.exercise_type == "Melody"


def test_empty_pattern_is_invalid() -> None:
    ex = Exercise(name="Nothing", difficulty=Difficulty.HARD, kind=Scale(()))
    with pytest.raises(InvalidReferenceMelody):
        melody_for(ex)


def test_unknown_kind_is_a_type_error() -> None:
    ex = Exercise(name="?", difficulty=Difficulty.HARD, kind=object())  # type: ignore[arg-type]
    with pytest.raises(TypeError):
        melody_for(ex)
    with pytest.raises(TypeError):
        ex.exercise_id
