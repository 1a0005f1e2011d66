"""Exercise descriptions handed to the practice engine.

Every exercise shares a ``name``/``difficulty`` header and carries one
``ExerciseKind`` variant. ``melody_for`` turns any exercise into the
reference melody the singer is scored against.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Tuple, Union

from .notes import MelodyNote, NoteLabel, ReferenceMelody, parse_note_name


class Difficulty(Enum):
    EASY = "Easy"
    MEDIUM = "Medium"
    HARD = "Hard"


@dataclass(frozen=True)
class Interval:
    semitones: int


@dataclass(frozen=True)
class Chord:
    pattern: Tuple[int, ...]  # semitone offsets from the root, sung as an arpeggio


@dataclass(frozen=True)
class NoteKind:
    """Single pitch; the pitch class is the exercise name ("C#")."""


@dataclass(frozen=True)
class Scale:
    pattern: Tuple[int, ...]


@dataclass(frozen=True)
class Melody:
    notes: ReferenceMelody


ExerciseKind = Union[Interval, Chord, NoteKind, Scale, Melody]


@dataclass(frozen=True)
class Exercise:
    name: str
    difficulty: Difficulty
    kind: ExerciseKind

    @property
    def exercise_type(self) -> str:
        k = self.kind
        if isinstance(k, Interval):
            return "Intervals"
        if isinstance(k, Chord):
            return "Chords"
        if isinstance(k, NoteKind):
            return "Notes"
        if isinstance(k, Scale):
            return "Scales"
        if isinstance(k, Melody):
            return "Melody"
        raise TypeError(f"unknown exercise kind: {k!r}")

    @property
    def exercise_id(self) -> str:
        return f"{self.exercise_type}-{self.name}-{self.difficulty.value}"


def _offsets(root: NoteLabel, offsets: Tuple[int, ...]) -> ReferenceMelody:
    return ReferenceMelody(
        notes=tuple(MelodyNote(label=NoteLabel.from_midi(root.midi + int(o))) for o in offsets)
    )


def melody_for(exercise: Exercise, root: str = "C4") -> ReferenceMelody:
    """Expand an exercise into the notes to sing, starting from ``root``."""
    k = exercise.kind
    if isinstance(k, Melody):
        return k.notes

    base = parse_note_name(root)
    if isinstance(k, Interval):
        return _offsets(base, (0, int(k.semitones)))
    if isinstance(k, (Chord, Scale)):
        return _offsets(base, tuple(k.pattern))
    if isinstance(k, NoteKind):
        return ReferenceMelody.from_names([f"{exercise.name}{base.octave}"])
    raise TypeError(f"unknown exercise kind: {k!r}")
