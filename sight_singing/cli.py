from __future__ import annotations

import argparse
import logging
import sys
import threading
from pathlib import Path
from typing import List, Optional, Tuple

from .capture import CaptureConfig, MicrophoneCapture
from .errors import SightSingingError
from .exercises import Chord, Difficulty, Exercise, Interval, Melody, NoteKind, Scale, melody_for
from .notes import ReferenceMelody, parse_melody
from .pipeline import run_pipeline
from .pitch import YinConfig, YinPitchEstimator
from .progress import LoggingProgressSink, ProgressReporter
from .scoring import ScoreResult
from .session import Feedback, PracticeMode, SessionConfig, SessionController, SessionState
from .stabilizer import StabilizerConfig


def _pattern(s: str) -> Tuple[int, ...]:
    try:
        return tuple(int(x) for x in s.replace(" ", "").split(",") if x)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected comma-separated semitones, got {s!r}") from None


def _add_exercise_args(p: argparse.ArgumentParser) -> None:
    g = p.add_mutually_exclusive_group(required=True)
    g.add_argument("--melody", type=str, help='notes to sing, e.g. "C4:q D4 E4:h"')
    g.add_argument("--interval", type=int, help="interval in semitones above --root")
    g.add_argument("--chord", type=_pattern, help="arpeggio pattern, e.g. 0,4,7")
    g.add_argument("--scale", type=_pattern, help="scale pattern, e.g. 0,2,4,5,7,9,11,12")
    g.add_argument("--note", type=str, help="single pitch class, e.g. C#")

    p.add_argument("--root", type=str, default="C4", help="starting note for interval/chord/scale/note")
    p.add_argument("--name", type=str, default=None, help="exercise name used when reporting")
    p.add_argument(
        "--difficulty",
        type=str,
        default="Medium",
        choices=[d.value for d in Difficulty],
    )
    p.add_argument(
        "--mode",
        type=str,
        default=PracticeMode.FULL_MELODY.value,
        choices=[m.value for m in PracticeMode],
    )

    # Detection tuning
    p.add_argument("--threshold", type=float, default=0.15, help="YIN absolute threshold")
    p.add_argument("--min_stable", type=float, default=0.3, help="seconds a note must be held")
    p.add_argument("--frame_size", type=int, default=2048, help="samples per analysis frame")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="sight-singing",
        description="Sing a reference melody and get an accuracy score (monophonic voice).",
    )
    p.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    sub = p.add_subparsers(dest="command", required=True)

    a = sub.add_parser("analyze", help="score a recorded take (wav, or anything ffmpeg reads)")
    a.add_argument("input", type=str, help="recorded audio path")
    a.add_argument("--out", type=str, default=None, help="write take.json, take.mid, reference.mid, pitch_track.csv and the decoded wav here")
    a.add_argument("--engine", type=str, default="yin", choices=["yin", "pyin"])
    _add_exercise_args(a)

    live = sub.add_parser("live", help="practice with the microphone")
    live.add_argument("--device", type=str, default=None, help="input device index or name")
    live.add_argument("--sample_rate", type=int, default=44100)
    live.add_argument("--countdown", type=int, default=3, help="countdown ticks before full-melody recording")
    _add_exercise_args(live)

    return p


def exercise_from_args(args: argparse.Namespace) -> Tuple[Exercise, ReferenceMelody]:
    difficulty = Difficulty(args.difficulty)
    if args.melody:
        melody = parse_melody(args.melody)
        ex = Exercise(name=args.name or "Custom Melody", difficulty=difficulty, kind=Melody(melody))
        return ex, melody

    if args.interval is not None:
        kind, default_name = Interval(args.interval), f"Interval {args.interval}"
    elif args.chord:
        kind, default_name = Chord(args.chord), "Chord " + "-".join(map(str, args.chord))
    elif args.scale:
        kind, default_name = Scale(args.scale), "Scale " + "-".join(map(str, args.scale))
    else:
        kind, default_name = NoteKind(), args.note

    # a NoteKind exercise is named after the pitch class it asks for
    name = args.note if isinstance(kind, NoteKind) else (args.name or default_name)
    ex = Exercise(name=name, difficulty=difficulty, kind=kind)
    return ex, melody_for(ex, root=args.root)


def _print_result(result: Optional[ScoreResult]) -> None:
    if result is None:
        print("No score (take ended before completion).")
        return
    print("\n===== Result =====")
    for i, r in enumerate(result.per_note):
        mark = "ok" if r.is_correct else "--"
        print(f"{i + 1:>3}. expected {str(r.expected):<4} sung {r.sung_name:<9} {mark}")
    print(f"Accuracy: {result.accuracy}%")
    if result.no_notes_detected:
        print("(no notes detected)")


def _device(s: Optional[str]):
    if s is None:
        return None
    return int(s) if s.isdigit() else s


def run_analyze(args: argparse.Namespace) -> int:
    exercise, melody = exercise_from_args(args)
    analysis = run_pipeline(
        input_audio=Path(args.input).expanduser().resolve(),
        melody=melody,
        out_dir=Path(args.out).expanduser().resolve() if args.out else None,
        mode=PracticeMode(args.mode),
        engine=str(args.engine),
        frame_size=int(args.frame_size),
        yin=YinConfig(threshold=float(args.threshold)),
        stabilizer=StabilizerConfig(min_stable_duration=float(args.min_stable)),
    )

    print(f"Exercise: {exercise.name} ({exercise.difficulty.value})")
    print(f"Melody:   {melody}")
    print("Sung:     " + (" ".join(str(e.label) for e in analysis.events) or "-"))
    for fb in analysis.feedback:
        print(f"  {fb.message}")
    _print_result(analysis.result)
    return 0


def run_live(args: argparse.Namespace) -> int:
    exercise, melody = exercise_from_args(args)
    done = threading.Event()

    def on_feedback(fb: Feedback) -> None:
        print(fb.message, flush=True)

    def on_state(state: SessionState) -> None:
        if state in (SessionState.FEEDBACK, SessionState.IDLE):
            done.set()

    def on_error(err: Exception) -> None:
        print(f"error: {err}", file=sys.stderr)
        done.set()

    capture = MicrophoneCapture(
        CaptureConfig(
            sample_rate=int(args.sample_rate),
            frame_size=int(args.frame_size),
            device=_device(args.device),
        )
    )
    reporter = ProgressReporter(LoggingProgressSink())
    controller = SessionController(
        melody,
        PracticeMode(args.mode),
        capture=capture,
        estimator=YinPitchEstimator(YinConfig(threshold=float(args.threshold))),
        config=SessionConfig(
            countdown_from=int(args.countdown),
            stabilizer=StabilizerConfig(min_stable_duration=float(args.min_stable)),
        ),
        exercise=exercise,
        reporter=reporter,
        on_note_event=lambda ev: print(f"  heard {ev.label}", flush=True),
        on_feedback=on_feedback,
        on_state_change=on_state,
        on_countdown=lambda n: print(f"{n}...", flush=True),
        on_error=on_error,
    )

    print(f"Sing: {melody}   (Ctrl-C to stop)")
    try:
        controller.start()
        while not done.wait(0.2):
            pass
    except KeyboardInterrupt:
        print()
        controller.stop()
    except SightSingingError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2
    finally:
        result = controller.result
        controller.reset()
        reporter.close()

    _print_result(result)
    return 0


def main(argv: Optional[List[str]] = None) -> None:
    p = build_parser()
    args = p.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.command == "analyze":
            code = run_analyze(args)
        else:
            code = run_live(args)
    except SightSingingError as e:
        p.error(str(e))
    sys.exit(code)


if __name__ == "__main__":
    main()
