from __future__ import annotations

import csv
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

import numpy as np

from .audio import AudioFrame, iter_frames, load_take, write_wav_mono_16bit
from .backends.pyin_backend import PyinConfig, extract_f0_pyin
from .capture import FrameHandler
from .midi_io import save_reference_midi, save_take_json, save_take_midi
from .notes import NoteEvent, ReferenceMelody
from .pitch import YinConfig, YinPitchEstimator
from .scoring import ScoreResult
from .session import Feedback, PracticeMode, SessionConfig, SessionController
from .stabilizer import StabilizerConfig

logger = logging.getLogger(__name__)


class FileCapture:
    """Replays a decoded take as AudioFrames.

    ``open`` only registers the handler; ``play`` pushes the frames, stopping
    early if the session closes the capture.
    """

    def __init__(self, audio: np.ndarray, sr: int, frame_size: int = 2048, hop: Optional[int] = None) -> None:
        self.audio = np.asarray(audio, dtype=np.float32)
        self.sr = int(sr)
        self.frame_size = int(frame_size)
        self.hop = int(hop or frame_size)
        self._handler: Optional[FrameHandler] = None

    def ensure_available(self) -> None:
        if self.audio.size < self.frame_size:
            logger.warning("take is shorter than one %d-sample frame", self.frame_size)

    def open(self, on_frame: FrameHandler) -> None:
        self._handler = on_frame

    def close(self) -> None:
        self._handler = None

    def play(self) -> int:
        n = 0
        for frame in iter_frames(self.audio, self.sr, self.frame_size, self.hop):
            handler = self._handler
            if handler is None:
                break
            handler(frame)
            n += 1
        return n


class TrackEstimator:
    """Serves a precomputed f0 track (e.g. from pYIN) frame by frame."""

    def __init__(self, times: np.ndarray, f0_hz: np.ndarray) -> None:
        self.times = np.asarray(times, dtype=np.float64)
        self.f0 = np.asarray(f0_hz, dtype=np.float64)

    def __call__(self, frame: AudioFrame) -> Optional[float]:
        if self.times.size == 0:
            return None
        i = int(np.searchsorted(self.times, frame.time, side="left"))
        if i >= self.times.size:
            i = self.times.size - 1
        elif i > 0 and abs(self.times[i - 1] - frame.time) < abs(self.times[i] - frame.time):
            i -= 1
        hz = float(self.f0[i])
        return hz if hz > 0 else None


class _RecordingEstimator:
    def __init__(self, inner) -> None:
        self.inner = inner
        self.track: List[Tuple[float, Optional[float]]] = []

    def __call__(self, frame: AudioFrame) -> Optional[float]:
        hz = self.inner(frame)
        self.track.append((frame.time, hz))
        return hz


@dataclass
class TakeAnalysis:
    events: List[NoteEvent]
    result: Optional[ScoreResult]
    feedback: List[Feedback] = field(default_factory=list)
    track: List[Tuple[float, Optional[float]]] = field(default_factory=list)


def _write_pitch_csv(out_csv: Path, track: List[Tuple[float, Optional[float]]]) -> None:
    out_csv.parent.mkdir(parents=True, exist_ok=True)
    with out_csv.open("w", newline="", encoding="utf-8") as f:
        w = csv.writer(f)
        w.writerow(["time_s", "f0_hz", "voiced"])
        for t, hz in track:
            w.writerow([float(t), float(hz or 0.0), int(hz is not None)])


def analyze_take(
    audio: np.ndarray,
    sr: int,
    melody: ReferenceMelody,
    *,
    mode: PracticeMode = PracticeMode.FULL_MELODY,
    engine: str = "yin",  # yin|pyin
    frame_size: int = 2048,
    hop: Optional[int] = None,
    yin: Optional[YinConfig] = None,
    stabilizer: Optional[StabilizerConfig] = None,
) -> TakeAnalysis:
    """Run a recorded take through the same session logic a live run uses."""
    if engine == "pyin":
        pcfg = PyinConfig(frame_length=frame_size, hop_length=int(hop or frame_size // 4))
        times, f0 = extract_f0_pyin(audio, sr, cfg=pcfg)
        inner = TrackEstimator(times, f0)
        hop = pcfg.hop_length
    elif engine == "yin":
        inner = YinPitchEstimator(yin)
    else:
        raise ValueError(f"unknown engine: {engine}")

    estimator = _RecordingEstimator(inner)
    capture = FileCapture(audio, sr, frame_size=frame_size, hop=hop)
    feedback: List[Feedback] = []

    controller = SessionController(
        melody,
        mode,
        capture=capture,
        estimator=estimator,
        config=SessionConfig(
            countdown_from=0,
            stabilizer=stabilizer or StabilizerConfig(),
        ),
        on_feedback=feedback.append,
    )
    controller.start()
    n_frames = capture.play()
    session = controller.session
    events = list(session.events) if session is not None else []
    result = controller.stop()
    logger.info("analysed %d frames, %d notes committed", n_frames, len(events))

    return TakeAnalysis(events=events, result=result, feedback=feedback, track=estimator.track)


def run_pipeline(
    *,
    input_audio: Path,
    melody: ReferenceMelody,
    out_dir: Optional[Path] = None,
    mode: PracticeMode = PracticeMode.FULL_MELODY,
    engine: str = "yin",
    frame_size: int = 2048,
    yin: Optional[YinConfig] = None,
    stabilizer: Optional[StabilizerConfig] = None,
) -> TakeAnalysis:
    """Score a recorded file and optionally write the take to out_dir."""
    sr, audio = load_take(Path(input_audio))

    analysis = analyze_take(
        audio,
        sr,
        melody,
        mode=mode,
        engine=engine,
        frame_size=frame_size,
        yin=yin,
        stabilizer=stabilizer,
    )

    if out_dir is not None:
        out_dir = Path(out_dir)
        out_dir.mkdir(parents=True, exist_ok=True)
        # decoded mono take, after any ffmpeg preprocessing
        write_wav_mono_16bit(out_dir / "take_decoded.wav", sr, audio)
        save_reference_midi(melody, out_dir / "reference.mid")
        _write_pitch_csv(out_dir / "pitch_track.csv", analysis.track)
        meta = {
            "input": str(input_audio),
            "melody": str(melody),
            "mode": mode.value,
            "engine": engine,
            "sample_rate": int(sr),
        }
        save_take_json(analysis.events, out_dir / "take.json", analysis.result, meta)
        if analysis.events:
            save_take_midi(analysis.events, out_dir / "take.mid")

    return analysis
