from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import pretty_midi

from .notes import NoteEvent, ReferenceMelody
from .scoring import ScoreResult


def save_take_midi(
    events: List[NoteEvent],
    out_midi: Path,
    program: int = 52,  # GM "Choir Aahs"
    name: str = "voice",
    velocity: int = 90,
) -> None:
    """Save the committed notes of a take as a single-track MIDI file."""
    out_midi.parent.mkdir(parents=True, exist_ok=True)
    pm = pretty_midi.PrettyMIDI()
    inst = pretty_midi.Instrument(program=program, name=name)

    vel = int(max(1, min(127, velocity)))
    for ev in events:
        inst.notes.append(
            pretty_midi.Note(
                velocity=vel,
                pitch=int(ev.label.midi),
                start=float(ev.start),
                end=float(ev.end),
            )
        )

    pm.instruments.append(inst)
    pm.write(str(out_midi))


def save_reference_midi(
    melody: ReferenceMelody,
    out_midi: Path,
    bpm: float = 90.0,
    program: int = 0,  # GM "Acoustic Grand Piano"
    velocity: int = 80,
) -> None:
    """Write the reference melody with its written durations at ``bpm``."""
    out_midi.parent.mkdir(parents=True, exist_ok=True)
    pm = pretty_midi.PrettyMIDI(initial_tempo=float(bpm))
    inst = pretty_midi.Instrument(program=program, name="reference")

    beat = 60.0 / float(bpm)
    t = 0.0
    for note in melody:
        dur = note.duration.beats * beat
        inst.notes.append(
            pretty_midi.Note(velocity=int(velocity), pitch=int(note.label.midi), start=t, end=t + dur)
        )
        t += dur

    pm.instruments.append(inst)
    pm.write(str(out_midi))

def take_payload(
    events: List[NoteEvent],
    result: Optional[ScoreResult],
    meta: Dict[str, Any],
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "meta": meta,
        "notes": [
            {
                "name": pretty_midi.note_number_to_name(ev.label.midi),
                "midi": ev.label.midi,
                "start": ev.start,
                "end": ev.end,
                "duration": ev.duration(),
            }
            for ev in events
        ],
    }
    if result is not None:
        payload["score"] = {
            "accuracy": result.accuracy,
            "no_notes_detected": result.no_notes_detected,
            "per_note": [
                {
                    "expected": str(r.expected),
                    "sung": r.sung_name,
                    "is_correct": r.is_correct,
                }
                for r in result.per_note
            ],
        }
    return payload


def save_take_json(
    events: List[NoteEvent],
    out_json: Path,
    result: Optional[ScoreResult],
    meta: Dict[str, Any],
) -> None:
    out_json.parent.mkdir(parents=True, exist_ok=True)
    payload = take_payload(events, result, meta)
    out_json.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
