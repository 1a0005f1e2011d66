from __future__ import annotations

from types import SimpleNamespace
from typing import Callable, List, Optional

import numpy as np
import pytest

from sight_singing.audio import AudioFrame

SR = 44_100


class FakeCapture:
    """Records open/close calls instead of touching a microphone."""

    def __init__(self) -> None:
        self.available_error: Optional[Exception] = None
        self.open_error: Optional[Exception] = None
        self.handler: Optional[Callable[[AudioFrame], None]] = None
        self.open_calls = 0
        self.close_calls = 0

    @property
    def is_open(self) -> bool:
        return self.handler is not None

    def ensure_available(self) -> None:
        if self.available_error is not None:
            raise self.available_error

    def open(self, on_frame) -> None:
        self.open_calls += 1
        if self.open_error is not None:
            raise self.open_error
        self.handler = on_frame

    def close(self) -> None:
        self.close_calls += 1
        self.handler = None


class FakeTimer:
    def __init__(self, interval, function, args=(), kwargs=None) -> None:
        self.interval = interval
        self.function = function
        self.args = tuple(args or ())
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        self.function(*self.args)


class TimerFactory:
    def __init__(self) -> None:
        self.timers: List[FakeTimer] = []

    def __call__(self, interval, function, args=(), kwargs=None) -> FakeTimer:
        t = FakeTimer(interval, function, args, kwargs)
        self.timers.append(t)
        return t

    def fire_next(self) -> None:
        pending = [t for t in self.timers if t.started and not t.cancelled]
        pending[-1].fire()


class FakeStream:
    """Stands in for sounddevice.InputStream; tests call ``callback`` directly."""

    def __init__(self, *, callback, start_error=None, **kw) -> None:
        self.callback = callback
        self.kw = kw
        self.start_error = start_error
        self.started = False
        self.closed = False

    def start(self) -> None:
        if self.start_error is not None:
            raise self.start_error
        self.started = True

    def stop(self) -> None:
        self.started = False

    def close(self) -> None:
        self.closed = True


def fake_sounddevice(check_error=None, start_error=None) -> SimpleNamespace:
    streams: List[FakeStream] = []

    def check_input_settings(**kw):
        if check_error is not None:
            raise check_error

    def input_stream(**kw):
        s = FakeStream(start_error=start_error, **kw)
        streams.append(s)
        return s

    return SimpleNamespace(
        check_input_settings=check_input_settings,
        InputStream=input_stream,
        streams=streams,
    )


@pytest.fixture
def fake_sd(monkeypatch) -> SimpleNamespace:
    import sight_singing.capture as capture_mod

    sd = fake_sounddevice()
    monkeypatch.setattr(capture_mod, "_sounddevice", lambda: sd)
    return sd


@pytest.fixture
def capture() -> FakeCapture:
    return FakeCapture()


@pytest.fixture
def timers() -> TimerFactory:
    return TimerFactory()


def sine(freq: float, seconds: float, sr: int = SR, amp: float = 0.5) -> np.ndarray:
    t = np.arange(int(seconds * sr), dtype=np.float32) / sr
    return (amp * np.sin(2 * np.pi * freq * t)).astype(np.float32)


@pytest.fixture
def tone() -> Callable[..., np.ndarray]:
    return sine
