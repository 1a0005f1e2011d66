from __future__ import annotations

import logging
import shutil
import subprocess
import sys
import tempfile
import wave
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional, Tuple

import numpy as np

logger = logging.getLogger(__name__)


# ------------------------------------------------------------
# Frames
# ------------------------------------------------------------
@dataclass(frozen=True)
class AudioFrame:
    """One fixed-length block of mono samples in [-1, 1]."""

    samples: np.ndarray
    sample_rate: int
    time: float = 0.0  # seconds, timestamp of the first sample

    @property
    def duration(self) -> float:
        return float(len(self.samples)) / float(self.sample_rate)


def iter_frames(
    audio: np.ndarray,
    sr: int,
    frame_size: int = 2048,
    hop: Optional[int] = None,
) -> Iterator[AudioFrame]:
    """Slice a recording into AudioFrames the way the live capture delivers them."""
    hop = int(hop or frame_size)
    x = np.asarray(audio, dtype=np.float32)
    for start in range(0, len(x) - frame_size + 1, hop):
        yield AudioFrame(
            samples=x[start : start + frame_size],
            sample_rate=int(sr),
            time=float(start) / float(sr),
        )


# ------------------------------------------------------------
# ffmpeg discovery
# ------------------------------------------------------------
def _find_ffmpeg() -> str:
    """Find ffmpeg executable.

    Priority:
      1) ffmpeg in PATH
      2) ffmpeg inside the active environment prefix
    """
    p = shutil.which("ffmpeg")
    if p:
        return p

    prefix = Path(sys.prefix)
    candidates = [
        prefix / "Library" / "bin" / "ffmpeg.exe",
        prefix / "Scripts" / "ffmpeg.exe",
        prefix / "bin" / "ffmpeg",
    ]
    for c in candidates:
        if c.exists():
            return str(c)

    raise FileNotFoundError(
        "ffmpeg not found. Install it (e.g. `conda install -c conda-forge ffmpeg`) "
        "or pass a 16-bit PCM WAV file instead."
    )


# ------------------------------------------------------------
# Preprocess spec
# ------------------------------------------------------------
@dataclass(frozen=True)
class PreprocessSpec:
    """Audio preprocessing for recorded takes (voice defaults)."""

    sr: int = 44100
    highpass_hz: int = 80
    lowpass_hz: Optional[int] = 8000

    # Loudness normalization keeps quiet phone recordings above the silence gate
    loudnorm: bool = True
    loudnorm_i: float = -16.0
    loudnorm_tp: float = -1.5
    loudnorm_lra: float = 11.0


def preprocess_to_wav(
    input_audio: Path,
    output_wav: Path,
    spec: PreprocessSpec,
) -> None:
    """Convert any audio into mono 16-bit PCM WAV via ffmpeg."""
    ffmpeg = _find_ffmpeg()
    output_wav.parent.mkdir(parents=True, exist_ok=True)

    chain = []
    if spec.highpass_hz and spec.highpass_hz > 0:
        chain.append(f"highpass=f={spec.highpass_hz}")
    if spec.lowpass_hz and spec.lowpass_hz > 0:
        chain.append(f"lowpass=f={spec.lowpass_hz}")
    if spec.loudnorm:
        chain.append(
            f"loudnorm=I={spec.loudnorm_i}:"
            f"TP={spec.loudnorm_tp}:"
            f"LRA={spec.loudnorm_lra}"
        )

    cmd = [
        ffmpeg,
        "-y",
        "-i",
        str(input_audio),
        "-ac",
        "1",  # mono
        "-ar",
        str(spec.sr),
        "-vn",
        "-acodec",
        "pcm_s16le",
    ]
    if chain:
        cmd += ["-af", ",".join(chain)]
    cmd += [str(output_wav)]

    logger.debug("running %s", " ".join(cmd))
    r = subprocess.run(cmd, capture_output=True, text=True)
    if r.returncode != 0:
        raise RuntimeError(
            "ffmpeg preprocessing failed.\n"
            f"command: {' '.join(cmd)}\n"
            f"stdout:\n{r.stdout}\n"
            f"stderr:\n{r.stderr}\n"
        )

    if not output_wav.exists() or output_wav.stat().st_size < 1000:
        raise RuntimeError("preprocessed wav is missing or too small; check the input audio.")


# ------------------------------------------------------------
# WAV IO helpers
# ------------------------------------------------------------
def read_wav_mono_16bit(path: Path) -> Tuple[int, np.ndarray]:
    """Read 16-bit PCM WAV (mono or stereo) into float32 [-1, 1]."""
    with wave.open(str(path), "rb") as wf:
        sr = wf.getframerate()
        ch = wf.getnchannels()
        sampwidth = wf.getsampwidth()
        nframes = wf.getnframes()
        data = wf.readframes(nframes)

    if sampwidth != 2:
        raise ValueError(
            f"only 16-bit PCM wav is supported (sampwidth={sampwidth}); "
            "convert it with preprocess_to_wav first."
        )

    audio = np.frombuffer(data, dtype=np.int16).astype(np.float32) / 32768.0
    if ch == 2:
        audio = audio.reshape(-1, 2).mean(axis=1)
    return sr, audio


def write_wav_mono_16bit(path: Path, sr: int, audio: np.ndarray) -> None:
    """Write float32 [-1, 1] to 16-bit PCM WAV (mono)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    x = np.clip(audio, -1.0, 1.0)
    pcm = (x * 32767.0).astype(np.int16)

    with wave.open(str(path), "wb") as wf:
        wf.setnchannels(1)
        wf.setsampwidth(2)
        wf.setframerate(sr)
        wf.writeframes(pcm.tobytes())


def load_take(path: Path, spec: Optional[PreprocessSpec] = None) -> Tuple[int, np.ndarray]:
    """Load a recorded take. WAV files are read directly, anything else goes through ffmpeg."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"input file not found: {path}")

    if path.suffix.lower() == ".wav" and spec is None:
        try:
            return read_wav_mono_16bit(path)
        except (ValueError, wave.Error):
            logger.info("%s is not 16-bit PCM, converting with ffmpeg", path.name)

    spec = spec or PreprocessSpec()
    with tempfile.TemporaryDirectory() as tmp:
        out = Path(tmp) / "take.wav"
        preprocess_to_wav(path, out, spec)
        return read_wav_mono_16bit(out)
