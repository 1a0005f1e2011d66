from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numpy as np

from ..pitch import MAX_VOICE_HZ, MIN_VOICE_HZ
from ..utils.optional_import import require_module


@dataclass(frozen=True)
class PyinConfig:
    fmin: float = MIN_VOICE_HZ
    fmax: float = MAX_VOICE_HZ
    frame_length: int = 2048
    hop_length: int = 512
    voiced_prob_threshold: float = 0.5


def extract_f0_pyin(
    audio: np.ndarray,
    sr: int,
    cfg: PyinConfig = PyinConfig(),
) -> Tuple[np.ndarray, np.ndarray]:
    """Extract a monophonic f0 track for a whole take using probabilistic YIN (librosa).

    Returns
    -------
    times_s, f0_hz  (f0 is 0.0 where the frame is unvoiced)
    """
    require_module("librosa")
    import librosa  # type: ignore

    audio = np.asarray(audio, dtype=np.float32)

    f0, voiced_flag, voiced_probs = librosa.pyin(
        audio,
        fmin=float(cfg.fmin),
        fmax=float(min(cfg.fmax, sr / 2.0)),
        sr=int(sr),
        frame_length=int(cfg.frame_length),
        hop_length=int(cfg.hop_length),
        center=False,
    )

    f0 = np.asarray(f0, dtype=np.float32)
    voiced_probs = np.asarray(voiced_probs, dtype=np.float32)

    # librosa returns nan for unvoiced
    voiced = (
        np.asarray(voiced_flag, dtype=bool)
        & np.isfinite(f0)
        & (voiced_probs >= float(cfg.voiced_prob_threshold))
    )
    voiced &= (f0 >= MIN_VOICE_HZ) & (f0 <= MAX_VOICE_HZ)

    f0_clean = np.where(voiced, f0, 0.0).astype(np.float32)

    times = librosa.frames_to_time(
        np.arange(len(f0_clean)),
        sr=int(sr),
        hop_length=int(cfg.hop_length),
    ).astype(np.float32)

    return times, f0_clean
