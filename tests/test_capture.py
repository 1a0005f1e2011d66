from __future__ import annotations

import threading

import numpy as np
import pytest

import sight_singing.capture as capture_mod
from sight_singing.capture import CaptureConfig, MicrophoneCapture
from sight_singing.errors import CaptureUnavailable, MicrophonePermissionDenied

from conftest import fake_sounddevice


def test_frames_are_delivered_off_the_callback_thread(fake_sd) -> None:
    cap = MicrophoneCapture(CaptureConfig(sample_rate=8000, frame_size=256))
    got = []
    threads = set()
    done = threading.Event()

    def on_frame(frame) -> None:
        got.append(frame)
        threads.add(threading.current_thread().name)
        if len(got) == 2:
            done.set()

    cap.open(on_frame)
    assert cap.is_open
    stream = fake_sd.streams[0]
    assert stream.started and stream.kw["blocksize"] == 256 and stream.kw["channels"] == 1

    block = np.full((256, 1), 0.25, dtype=np.float32)
    stream.callback(block, 256, None, 0)
    stream.callback(block, 256, None, 0)
    assert done.wait(2.0)

    cap.close()
    cap.close()
    assert stream.closed and not cap.is_open

    assert [f.time for f in got] == [0.0, 256 / 8000]
    assert all(f.samples.shape == (256,) for f in got)
    assert threads == {"frame-delivery"}


def test_full_queue_drops_frames(fake_sd) -> None:
    cap = MicrophoneCapture(CaptureConfig(frame_size=64, max_pending_frames=1))
    release = threading.Event()
    cap.open(lambda frame: release.wait(2.0))
    stream = fake_sd.streams[0]

    block = np.zeros((64, 1), dtype=np.float32)
    for _ in range(10):
        stream.callback(block, 64, None, 0)
    release.set()
    cap.close()

    assert cap.dropped_frames > 0


def test_open_twice_is_an_error(fake_sd) -> None:
    cap = MicrophoneCapture()
    cap.open(lambda frame: None)
    with pytest.raises(RuntimeError):
        cap.open(lambda frame: None)
    cap.close()


@pytest.mark.parametrize(
    "err,expected",
    [
        (OSError("Permission denied by the system"), MicrophonePermissionDenied),
        (ValueError("No input device matching 'usb'"), CaptureUnavailable),
    ],
)
def test_ensure_available_translates_errors(monkeypatch, err, expected) -> None:
    monkeypatch.setattr(capture_mod, "_sounddevice", lambda: fake_sounddevice(check_error=err))
    with pytest.raises(expected):
        MicrophoneCapture().ensure_available()


def test_stream_start_failure(monkeypatch) -> None:
    sd = fake_sounddevice(start_error=RuntimeError("Error opening InputStream: not authorized"))
    monkeypatch.setattr(capture_mod, "_sounddevice", lambda: sd)
    cap = MicrophoneCapture()
    with pytest.raises(MicrophonePermissionDenied):
        cap.open(lambda frame: None)
    assert not cap.is_open


def test_missing_sounddevice(monkeypatch) -> None:
    def missing(name):
        raise ImportError(f"missing dependency: {name}")

    monkeypatch.setattr(capture_mod, "require_module", missing)
    with pytest.raises(CaptureUnavailable, match="sounddevice"):
        MicrophoneCapture().ensure_available()
