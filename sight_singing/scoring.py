from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple, Union

from .notes import MelodyNote, NoteEvent, NoteLabel, ReferenceMelody

ExpectedNote = Union[NoteLabel, MelodyNote]


@dataclass(frozen=True)
class NoteResult:
    expected: NoteLabel
    sung: Optional[NoteLabel]  # None: not sung
    is_correct: bool

    @property
    def sung_name(self) -> str:
        return str(self.sung) if self.sung is not None else "Not sung"


@dataclass(frozen=True)
class ScoreResult:
    per_note: Tuple[NoteResult, ...]
    accuracy: int               # 0..100
    no_notes_detected: bool = False

    @property
    def total(self) -> int:
        return len(self.per_note)

    @property
    def correct_count(self) -> int:
        return sum(1 for r in self.per_note if r.is_correct)


def _as_label(n: ExpectedNote) -> NoteLabel:
    return n.label if isinstance(n, MelodyNote) else n


def score_melody(
    expected: Union[ReferenceMelody, Sequence[ExpectedNote]],
    recorded: Sequence[NoteEvent],
) -> ScoreResult:
    """Positional index-by-index comparison of sung events against the melody.

    Letter and octave must match; sharps and flats are not distinguished.
    Recorded events past the end of the melody are ignored.
    """
    labels = [_as_label(n) for n in expected]
    if not labels:
        raise ValueError("expected melody is empty")

    results = []
    for i, exp in enumerate(labels):
        sung = recorded[i].label if i < len(recorded) else None
        ok = sung is not None and sung.matches(exp)
        results.append(NoteResult(expected=exp, sung=sung, is_correct=ok))

    correct = sum(1 for r in results if r.is_correct)
    accuracy = int(math.floor(100.0 * correct / len(labels) + 0.5))
    return ScoreResult(
        per_note=tuple(results),
        accuracy=accuracy,
        no_notes_detected=(len(recorded) == 0),
    )


def summary_message(result: ScoreResult) -> str:
    if result.no_notes_detected:
        return "No notes were detected. Please try again."

    n, total = result.correct_count, result.total
    if result.accuracy >= 80:
        return f"Excellent! You sang {n} out of {total} notes correctly!"
    if result.accuracy >= 60:
        return f"Good job! You sang {n} out of {total} notes correctly. Keep practicing!"
    if result.accuracy >= 40:
        return f"You sang {n} out of {total} notes correctly. Practice more to improve."
    return (
        f"You sang {n} out of {total} notes correctly. "
        "Try slowing down and listening carefully."
    )
