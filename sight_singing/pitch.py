from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np

from .audio import AudioFrame
from .notes import NoteLabel, note_from_frequency


# Human-voice band accepted by the estimator.
MIN_VOICE_HZ = 50.0
MAX_VOICE_HZ = 2000.0


@dataclass(frozen=True)
class YinConfig:
    """YIN pitch estimation config (de Cheveigne & Kawahara, 2002)."""

    threshold: float = 0.15  # absolute threshold on the normalized difference
    fmin: float = MIN_VOICE_HZ
    fmax: float = MAX_VOICE_HZ

    # Frames quieter than this RMS are treated as silence before any lag search
    silence_rms: float = 1e-3


def _difference(x: np.ndarray, tau_max: int) -> np.ndarray:
    """YIN difference function d(tau) for tau in [0, tau_max)."""
    w = len(x) - tau_max
    sq = np.concatenate(([0.0], np.cumsum(x * x)))
    energy0 = sq[w]
    taus = np.arange(tau_max)
    energy_tau = sq[taus + w] - sq[taus]
    corr = np.correlate(x, x[:w], mode="valid")[:tau_max]
    d = energy0 + energy_tau - 2.0 * corr
    return np.maximum(d, 0.0)


def _cmnd(d: np.ndarray) -> np.ndarray:
    """Cumulative-mean-normalized difference d'(tau)."""
    out = np.ones_like(d)
    if len(d) < 2:
        return out
    running = np.cumsum(d[1:])
    taus = np.arange(1, len(d), dtype=np.float64)
    ok = running > 1e-12
    vals = np.ones(len(d) - 1, dtype=np.float64)
    vals[ok] = d[1:][ok] * taus[ok] / running[ok]
    out[1:] = vals
    return out


def _parabolic(cmnd: np.ndarray, tau: int) -> float:
    """Refine an integer lag with a parabola through its two neighbours."""
    if tau <= 0 or tau >= len(cmnd) - 1:
        return float(tau)
    s0, s1, s2 = float(cmnd[tau - 1]), float(cmnd[tau]), float(cmnd[tau + 1])
    denom = s0 - 2.0 * s1 + s2
    if abs(denom) < 1e-12:
        return float(tau)
    shift = 0.5 * (s0 - s2) / denom
    if abs(shift) > 1.0:
        return float(tau)
    return float(tau) + shift


def estimate_f0_yin(
    samples: np.ndarray,
    sample_rate: int,
    cfg: YinConfig = YinConfig(),
) -> Optional[float]:
    """Estimate the fundamental frequency of one frame.

    Returns None for silence, unvoiced frames, or estimates outside the voice
    band. Never raises for quiet or degenerate input.
    """
    x = np.asarray(samples, dtype=np.float64).ravel()
    sr = float(sample_rate)
    if x.size < 4 or sr <= 0 or not np.all(np.isfinite(x)):
        return None

    x = x - float(np.mean(x))
    rms = float(np.sqrt(np.mean(x * x)))
    if rms < cfg.silence_rms:
        return None

    tau_min = max(2, int(np.floor(sr / cfg.fmax)))
    tau_max = min(int(np.ceil(sr / cfg.fmin)) + 2, x.size // 2)
    if tau_max <= tau_min + 1:
        return None

    cmnd = _cmnd(_difference(x, tau_max))

    below = np.nonzero(cmnd[tau_min:tau_max] < cfg.threshold)[0]
    if below.size == 0:
        return None

    tau = int(below[0]) + tau_min
    # walk down to the bottom of the dip
    while tau + 1 < tau_max and cmnd[tau + 1] < cmnd[tau]:
        tau += 1

    refined = _parabolic(cmnd, tau)
    if refined <= 0:
        return None

    f0 = sr / refined
    if not (MIN_VOICE_HZ <= f0 <= MAX_VOICE_HZ):
        return None
    return float(f0)


class YinPitchEstimator:
    """Stateless per-frame estimator; safe to call from the audio delivery thread."""

    def __init__(self, cfg: Optional[YinConfig] = None) -> None:
        self.cfg = cfg or YinConfig()

    def __call__(self, frame: AudioFrame) -> Optional[float]:
        return estimate_f0_yin(frame.samples, frame.sample_rate, self.cfg)

    def label(self, frame: AudioFrame) -> Optional[NoteLabel]:
        """Estimate and map in one step (None when no pitch was found)."""
        f0 = self(frame)
        if f0 is None:
            return None
        return note_from_frequency(f0)
