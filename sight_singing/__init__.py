"""sight_singing - real-time pitch matching for sight-singing practice.

Main entry:
  sight-singing live --melody "C4 D4 E4" ...
  sight-singing analyze take.wav --melody "C4 D4 E4" ...

Pieces, leaves first:
- pitch: per-frame YIN estimator (numpy)
- notes: frequency -> note label (12-TET, A4 = 440 Hz), reference melodies
- stabilizer: debounces per-frame labels into NoteEvents
- session: note-by-note / full-melody practice state machine
- scoring: positional melody scoring
"""

from __future__ import annotations

from .errors import (
    CaptureUnavailable,
    InvalidNoteName,
    InvalidReferenceMelody,
    MicrophonePermissionDenied,
    SightSingingError,
)
from .notes import NoteEvent, NoteLabel, ReferenceMelody, note_from_frequency, parse_melody
from .scoring import ScoreResult, score_melody
from .session import PracticeMode, SessionController, SessionState

__all__ = [
    "__version__",
    "CaptureUnavailable",
    "InvalidNoteName",
    "InvalidReferenceMelody",
    "MicrophonePermissionDenied",
    "NoteEvent",
    "NoteLabel",
    "PracticeMode",
    "ReferenceMelody",
    "ScoreResult",
    "SessionController",
    "SessionState",
    "SightSingingError",
    "note_from_frequency",
    "parse_melody",
    "score_melody",
]
__version__ = "1.0.0"
