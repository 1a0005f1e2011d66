from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass
from types import ModuleType
from typing import Callable, Optional, Protocol, Union

import numpy as np

from .audio import AudioFrame
from .errors import CaptureUnavailable, MicrophonePermissionDenied
from .utils.optional_import import require_module

logger = logging.getLogger(__name__)

FrameHandler = Callable[[AudioFrame], None]

_PERMISSION_HINTS = ("permission", "denied", "not authorized", "unauthorized", "not permitted")


@dataclass(frozen=True)
class CaptureConfig:
    sample_rate: int = 44100
    frame_size: int = 2048  # ~46 ms at 44.1 kHz
    device: Optional[Union[int, str]] = None
    max_pending_frames: int = 32


class AudioCapture(Protocol):
    """Anything that can deliver AudioFrames to a handler between open() and close()."""

    def ensure_available(self) -> None:
        ...

    def open(self, on_frame: FrameHandler) -> None:
        ...

    def close(self) -> None:
        ...


def _sounddevice() -> ModuleType:
    try:
        return require_module("sounddevice")
    except ImportError as e:
        raise CaptureUnavailable(str(e)) from e


def _translate(err: Exception) -> Exception:
    msg = str(err).lower()
    if any(h in msg for h in _PERMISSION_HINTS):
        return MicrophonePermissionDenied(str(err))
    return CaptureUnavailable(str(err))


class MicrophoneCapture:
    """Microphone input through PortAudio (sounddevice).

    The PortAudio callback only copies blocks into a bounded queue; a
    separate delivery thread turns them into AudioFrames and calls the
    handler, so no analysis ever runs on the PortAudio thread.
    """

    def __init__(self, cfg: Optional[CaptureConfig] = None) -> None:
        self.cfg = cfg or CaptureConfig()
        self._lock = threading.Lock()
        self._stream = None
        self._thread: Optional[threading.Thread] = None
        self._queue: "queue.Queue" = queue.Queue(maxsize=self.cfg.max_pending_frames)
        self._stop = threading.Event()
        self._samples_seen = 0
        self.dropped_frames = 0
        self.status_flags = 0

    @property
    def is_open(self) -> bool:
        return self._stream is not None

    def ensure_available(self) -> None:
        sd = _sounddevice()
        try:
            sd.check_input_settings(
                device=self.cfg.device,
                channels=1,
                dtype="float32",
                samplerate=self.cfg.sample_rate,
            )
        except Exception as e:
            raise _translate(e) from e

    def open(self, on_frame: FrameHandler) -> None:
        sd = _sounddevice()
        with self._lock:
            if self._stream is not None:
                raise RuntimeError("capture is already open")

            # one queue and stop flag per open
            self._stop = threading.Event()
            self._queue = queue.Queue(maxsize=self.cfg.max_pending_frames)
            self._samples_seen = 0
            self.dropped_frames = 0

            try:
                stream = sd.InputStream(
                    samplerate=self.cfg.sample_rate,
                    blocksize=self.cfg.frame_size,
                    channels=1,
                    dtype="float32",
                    device=self.cfg.device,
                    callback=self._callback,
                )
                stream.start()
            except Exception as e:
                raise _translate(e) from e

            self._stream = stream
            self._thread = threading.Thread(
                target=self._pump,
                args=(on_frame, self._queue, self._stop),
                name="frame-delivery",
                daemon=True,
            )
            self._thread.start()
        logger.info(
            "microphone open (device=%s, %d Hz, %d-sample frames)",
            self.cfg.device, self.cfg.sample_rate, self.cfg.frame_size,
        )

    def _callback(self, indata, frames, time_info, status) -> None:
        if status:
            self.status_flags += 1
        offset = self._samples_seen
        self._samples_seen += int(frames)
        try:
            self._queue.put_nowait((offset, np.array(indata[:, 0], dtype=np.float32)))
        except queue.Full:
            self.dropped_frames += 1

    def _pump(self, on_frame: FrameHandler, q: "queue.Queue", stop: threading.Event) -> None:
        sr = float(self.cfg.sample_rate)
        while not stop.is_set():
            try:
                item = q.get(timeout=0.1)
            except queue.Empty:
                continue
            if item is None:
                break
            offset, block = item
            frame = AudioFrame(samples=block, sample_rate=int(sr), time=offset / sr)
            try:
                on_frame(frame)
            except Exception:
                logger.exception("frame handler failed at t=%.3f", frame.time)

    def close(self) -> None:
        """Stop the stream and the delivery thread. Idempotent; safe from the delivery thread."""
        with self._lock:
            stream, self._stream = self._stream, None
            thread, self._thread = self._thread, None
            q = self._queue
            self._stop.set()

        if stream is not None:
            try:
                stream.stop()
            finally:
                stream.close()
            logger.info(
                "microphone closed (dropped=%d, status_flags=%d)",
                self.dropped_frames, self.status_flags,
            )

        if thread is not None:
            try:
                q.put_nowait(None)
            except queue.Full:
                pass
            if thread is not threading.current_thread():
                thread.join(timeout=1.0)
