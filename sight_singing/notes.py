from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Iterator, Optional, Sequence, Tuple, Union

import pretty_midi

from .errors import InvalidNoteName, InvalidReferenceMelody


NOTE_NAMES = ["C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B"]

A4_HZ = 440.0
# Semitones from C0 to A4 is 57; MIDI 69 == A4.
_A4_INDEX = 57


# ------------------------------------------------------------
# Labels
# ------------------------------------------------------------
@dataclass(frozen=True)
class NoteLabel:
    pitch_class: int  # 0..11 (C=0)
    octave: int

    def __post_init__(self) -> None:
        if not 0 <= self.pitch_class < 12:
            raise ValueError(f"pitch_class out of range: {self.pitch_class}")

    @classmethod
    def from_midi(cls, midi: int) -> "NoteLabel":
        midi = int(midi)
        return cls(pitch_class=midi % 12, octave=midi // 12 - 1)

    @property
    def name(self) -> str:
        return NOTE_NAMES[self.pitch_class]

    @property
    def step(self) -> str:
        """Natural letter without accidental ("C#" -> "C")."""
        return self.name[0]

    @property
    def midi(self) -> int:
        return (self.octave + 1) * 12 + self.pitch_class

    def matches(self, other: "NoteLabel") -> bool:
        """Letter-and-octave comparison; accidentals are ignored."""
        return self.step == other.step and self.octave == other.octave

    def __str__(self) -> str:
        return f"{self.name}{self.octave}"


def note_from_frequency(frequency: float) -> NoteLabel:
    """Map a frequency to the nearest 12-TET note (A4 = 440 Hz)."""
    f = float(frequency)
    if not math.isfinite(f) or f <= 0:
        raise ValueError(f"frequency must be positive and finite, got {frequency!r}")

    n = int(math.floor(12.0 * math.log2(f / A4_HZ) + 0.5))
    index = _A4_INDEX + n
    return NoteLabel(pitch_class=index % 12, octave=index // 12)


def parse_note_name(name: str) -> NoteLabel:
    """Parse names such as "C4", "F#3" or "Bb5". Flats normalize to sharps."""
    s = str(name).strip()
    try:
        midi = pretty_midi.note_name_to_number(s)
    except (ValueError, KeyError, AttributeError) as e:
        raise InvalidNoteName(f"invalid note name: {name!r}") from e
    return NoteLabel.from_midi(midi)


# ------------------------------------------------------------
# Events
# ------------------------------------------------------------
@dataclass(frozen=True)
class NoteEvent:
    label: NoteLabel
    start: float  # seconds
    end: float    # seconds

    def __post_init__(self) -> None:
        if not self.end > self.start:
            raise ValueError(f"NoteEvent end must be after start ({self.start} -> {self.end})")

    def duration(self) -> float:
        return float(self.end - self.start)


# ------------------------------------------------------------
# Reference melody
# ------------------------------------------------------------
class Duration(Enum):
    WHOLE = "whole"
    HALF = "half"
    QUARTER = "quarter"
    EIGHTH = "eighth"

    @property
    def beats(self) -> float:
        return _BEATS[self]

    @classmethod
    def parse(cls, s: str) -> "Duration":
        key = str(s).strip().lower()
        if key in _SHORT_CODES:
            return _SHORT_CODES[key]
        try:
            return cls(key)
        except ValueError:
            raise InvalidReferenceMelody(f"unknown duration: {s!r}") from None


_BEATS = {
    Duration.WHOLE: 4.0,
    Duration.HALF: 2.0,
    Duration.QUARTER: 1.0,
    Duration.EIGHTH: 0.5,
}

_SHORT_CODES = {
    "w": Duration.WHOLE,
    "h": Duration.HALF,
    "q": Duration.QUARTER,
    "e": Duration.EIGHTH,
}


@dataclass(frozen=True)
class MelodyNote:
    label: NoteLabel
    duration: Duration = Duration.QUARTER

    def __str__(self) -> str:
        return str(self.label)


@dataclass(frozen=True)
class ReferenceMelody:
    """Ordered, non-empty and immutable sequence of expected notes."""

    notes: Tuple[MelodyNote, ...]

    def __post_init__(self) -> None:
        if not self.notes:
            raise InvalidReferenceMelody("reference melody must contain at least one note")

    def __len__(self) -> int:
        return len(self.notes)

    def __iter__(self) -> Iterator[MelodyNote]:
        return iter(self.notes)

    def __getitem__(self, i: int) -> MelodyNote:
        return self.notes[i]

    @property
    def labels(self) -> Tuple[NoteLabel, ...]:
        return tuple(n.label for n in self.notes)

    def __str__(self) -> str:
        return " ".join(str(n) for n in self.notes)

    @classmethod
    def from_names(
        cls,
        names: Sequence[str],
        durations: Optional[Sequence[Union[str, Duration]]] = None,
    ) -> "ReferenceMelody":
        if durations is not None and len(durations) != len(names):
            raise InvalidReferenceMelody(
                f"got {len(names)} notes but {len(durations)} durations"
            )
        out = []
        for i, nm in enumerate(names):
            dur = Duration.QUARTER
            if durations is not None:
                d = durations[i]
                dur = d if isinstance(d, Duration) else Duration.parse(d)
            out.append(MelodyNote(label=parse_note_name(nm), duration=dur))
        return cls(notes=tuple(out))


def parse_melody(text: Union[str, Iterable[str]]) -> ReferenceMelody:
    """Parse "C4:q D4 E4:h" (or an iterable of such tokens) into a melody.

    Tokens may be separated by whitespace or commas; a missing duration means
    a quarter note.
    """
    if isinstance(text, str):
        tokens = text.replace(",", " ").split()
    else:
        tokens = [str(t).strip() for t in text if str(t).strip()]

    names = []
    durations = []
    for tok in tokens:
        if ":" in tok:
            nm, dur = tok.split(":", 1)
        else:
            nm, dur = tok, "q"
        names.append(nm)
        durations.append(dur)

    return ReferenceMelody.from_names(names, durations)
