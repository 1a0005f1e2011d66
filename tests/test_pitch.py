from __future__ import annotations

import numpy as np
import pytest

from sight_singing.audio import AudioFrame
from sight_singing.notes import note_from_frequency
from sight_singing.pitch import YinConfig, YinPitchEstimator, estimate_f0_yin

SR = 44_100
N = 2048


def _frame(freq: float, amp: float = 0.5) -> np.ndarray:
    t = np.arange(N, dtype=np.float64) / SR
    return (amp * np.sin(2 * np.pi * freq * t)).astype(np.float32)


def test_a440_maps_to_a4() -> None:
    f0 = estimate_f0_yin(_frame(440.0), SR)
    assert f0 is not None
    assert abs(f0 - 440.0) < 2.0
    assert str(note_from_frequency(f0)) == "A4"


@pytest.mark.parametrize(
    "freq,name",
    [(110.0, "A2"), (196.0, "G3"), (261.63, "C4"), (329.63, "E4"), (880.0, "A5"), (1046.5, "C6")],
)
def test_voice_range_tones(freq: float, name: str) -> None:
    f0 = estimate_f0_yin(_frame(freq), SR)
    assert f0 is not None
    # within a quarter tone
    assert abs(1200 * np.log2(f0 / freq)) < 50
    assert str(note_from_frequency(f0)) == name


def test_silence_is_absent() -> None:
    assert estimate_f0_yin(np.zeros(N, dtype=np.float32), SR) is None


def test_near_zero_energy_is_absent() -> None:
    rng = np.random.default_rng(0)
    x = (rng.standard_normal(N) * 1e-6).astype(np.float32)
    assert estimate_f0_yin(x, SR) is None


def test_quiet_tone_below_gate_is_absent() -> None:
    cfg = YinConfig(silence_rms=0.05)
    assert estimate_f0_yin(_frame(440.0, amp=0.01), SR, cfg) is None


def test_below_voice_band_is_absent() -> None:
    assert estimate_f0_yin(_frame(30.0), SR) is None


def test_non_finite_and_tiny_frames_do_not_raise() -> None:
    x = _frame(440.0)
    x[10] = np.nan
    assert estimate_f0_yin(x, SR) is None
    assert estimate_f0_yin(np.zeros(3, dtype=np.float32), SR) is None


def test_estimator_is_stateless() -> None:
    est = YinPitchEstimator()
    frame = AudioFrame(samples=_frame(330.0), sample_rate=SR, time=1.0)
    first = est(frame)
    est(AudioFrame(samples=np.zeros(N, dtype=np.float32), sample_rate=SR))
    assert est(frame) == first
    assert str(est.label(frame)) == "E4"
    assert est.label(AudioFrame(samples=np.zeros(N, dtype=np.float32), sample_rate=SR)) is None
