from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .notes import NoteEvent, NoteLabel

logger = logging.getLogger(__name__)

# absorbs float error in frame timestamps (0.7 - 0.4 < 0.3)
_TIME_EPS = 1e-9


@dataclass(frozen=True)
class StabilizerConfig:
    # A label must be observed continuously this long (seconds) before it is committed
    min_stable_duration: float = 0.3


class NoteStabilizer:
    """Debounce a per-frame label stream into committed NoteEvents.

    Each contiguous run of one label yields at most one event, and only once
    the run has lasted ``min_stable_duration``. A ``None`` label (silence)
    breaks the run without emitting.

    Not thread-safe: the frame-delivery context is the only writer.
    """

    def __init__(self, cfg: Optional[StabilizerConfig] = None) -> None:
        self.cfg = cfg or StabilizerConfig()
        self._last_label: Optional[NoteLabel] = None
        self._label_start: float = 0.0
        self._committed = False

    @property
    def last_label(self) -> Optional[NoteLabel]:
        return self._last_label

    def reset(self) -> None:
        self._last_label = None
        self._label_start = 0.0
        self._committed = False

    def update(self, label: Optional[NoteLabel], now: float) -> Optional[NoteEvent]:
        if label is None:
            self.reset()
            return None

        if label != self._last_label:
            self._last_label = label
            self._label_start = float(now)
            self._committed = False
            return None

        if self._committed:
            return None

        held = float(now) - self._label_start
        if held <= 0 or held + _TIME_EPS < self.cfg.min_stable_duration:
            return None

        self._committed = True
        event = NoteEvent(label=label, start=self._label_start, end=float(now))
        logger.debug("committed %s (%.3f-%.3f)", label, event.start, event.end)
        return event
