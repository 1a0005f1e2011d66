"""Practice-session state machine.

A session walks ``IDLE -> [COUNTDOWN ->] RECORDING -> EVALUATING -> FEEDBACK``
and back to ``IDLE`` on reset. Two practice modes are supported:

note-by-note
    Each committed note is judged against the next expected note right away.
    The index only advances on a correct note, so a finished run always
    scores 100 %.
full-melody
    After a 3-2-1 countdown the whole take is buffered and scored
    positionally once recording stops (manually, or automatically when as
    many notes as the melody has were sung).

The host delivers audio by calling :meth:`SessionController.process_frame`
once per frame. All state changes go through one re-entrant lock, so a
``stop()`` from the UI thread is seen before the next frame is analysed.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, List, Optional, Set, Union

from .audio import AudioFrame
from .capture import AudioCapture, MicrophoneCapture
from .errors import InvalidReferenceMelody, SightSingingError
from .exercises import Difficulty, Exercise, Melody
from .notes import MelodyNote, NoteEvent, NoteLabel, ReferenceMelody, note_from_frequency, parse_melody
from .pitch import YinPitchEstimator
from .progress import ProgressReporter
from .scoring import ScoreResult, score_melody, summary_message
from .stabilizer import NoteStabilizer, StabilizerConfig

logger = logging.getLogger(__name__)


class PracticeMode(Enum):
    NOTE_BY_NOTE = "note-by-note"
    FULL_MELODY = "full-melody"


class SessionState(Enum):
    IDLE = "idle"
    COUNTDOWN = "countdown"
    RECORDING = "recording"
    EVALUATING = "evaluating"
    FEEDBACK = "feedback"


class FeedbackKind(Enum):
    CORRECT = "correct"
    INCORRECT = "incorrect"
    COMPLETE = "complete"
    SUMMARY = "summary"
    NO_NOTES = "no-notes"


@dataclass(frozen=True)
class Feedback:
    kind: FeedbackKind
    message: str
    expected: Optional[NoteLabel] = None
    sung: Optional[NoteLabel] = None
    result: Optional[ScoreResult] = None


@dataclass(frozen=True)
class SessionConfig:
    countdown_from: int = 3
    countdown_interval: float = 1.0  # seconds per countdown tick
    # full-melody: stop on its own once len(melody) notes were committed
    auto_stop: bool = True
    stabilizer: StabilizerConfig = StabilizerConfig()


@dataclass
class RecordingSession:
    mode: PracticeMode
    events: List[NoteEvent] = field(default_factory=list)
    current_index: int = 0
    # events that advanced the index (note-by-note)
    accepted: List[NoteEvent] = field(default_factory=list)
    # exercise ids already handed to the progress reporter during this session
    reported: Set[str] = field(default_factory=set)


FrequencyEstimator = Callable[[AudioFrame], Optional[float]]
MelodyLike = Union[ReferenceMelody, str, Iterable[Union[str, NoteLabel, MelodyNote]]]


def _coerce_melody(melody: MelodyLike) -> ReferenceMelody:
    if isinstance(melody, ReferenceMelody):
        return melody
    if isinstance(melody, str):
        return parse_melody(melody)

    items = list(melody)
    if not items:
        raise InvalidReferenceMelody("reference melody must contain at least one note")
    if all(isinstance(i, str) for i in items):
        return parse_melody(items)

    notes = []
    for i in items:
        if isinstance(i, MelodyNote):
            notes.append(i)
        elif isinstance(i, NoteLabel):
            notes.append(MelodyNote(label=i))
        else:
            raise InvalidReferenceMelody(f"unsupported melody item: {i!r}")
    return ReferenceMelody(notes=tuple(notes))


def _noop(*_args) -> None:
    return None


class SessionController:
    def __init__(
        self,
        melody: MelodyLike,
        mode: PracticeMode = PracticeMode.NOTE_BY_NOTE,
        *,
        capture: Optional[AudioCapture] = None,
        estimator: Optional[FrequencyEstimator] = None,
        config: Optional[SessionConfig] = None,
        exercise: Optional[Exercise] = None,
        reporter: Optional[ProgressReporter] = None,
        on_note_event: Optional[Callable[[NoteEvent], None]] = None,
        on_feedback: Optional[Callable[[Feedback], None]] = None,
        on_state_change: Optional[Callable[[SessionState], None]] = None,
        on_countdown: Optional[Callable[[int], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
        timer_factory: Callable[..., threading.Timer] = threading.Timer,
    ) -> None:
        self.melody = _coerce_melody(melody)
        self.mode = PracticeMode(mode)
        self.config = config or SessionConfig()
        self.exercise = exercise or Exercise(
            name="Custom Melody",
            difficulty=Difficulty.MEDIUM,
            kind=Melody(self.melody),
        )
        self.reporter = reporter

        self._capture = capture if capture is not None else MicrophoneCapture()
        self._estimator = estimator or YinPitchEstimator()
        self._stabilizer = NoteStabilizer(self.config.stabilizer)
        self._timer_factory = timer_factory

        self._on_note_event = on_note_event or _noop
        self._on_feedback = on_feedback or _noop
        self._on_state_change = on_state_change or _noop
        self._on_countdown = on_countdown or _noop
        self._on_error = on_error

        self._lock = threading.RLock()
        self._state = SessionState.IDLE
        self._session: Optional[RecordingSession] = None
        self._result: Optional[ScoreResult] = None
        self._capture_open = False
        # released under the lock, closed by the releasing thread once the lock is dropped
        self._close_pending = False
        self._close_owner: Optional[int] = None
        self._timer: Optional[threading.Timer] = None
        self._countdown_gen = 0
        self._countdown_remaining = 0

    # ------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------
    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def session(self) -> Optional[RecordingSession]:
        return self._session

    @property
    def result(self) -> Optional[ScoreResult]:
        return self._result

    @property
    def countdown_remaining(self) -> int:
        return self._countdown_remaining

    @property
    def expected_label(self) -> Optional[NoteLabel]:
        """Next note to sing in note-by-note mode."""
        s = self._session
        if s is None or self.mode is not PracticeMode.NOTE_BY_NOTE:
            return None
        if s.current_index >= len(self.melody):
            return None
        return self.melody[s.current_index].label

    # ------------------------------------------------------------
    # Control path
    # ------------------------------------------------------------
    def start(self) -> None:
        """Begin a take.

        Raises CaptureUnavailable / MicrophonePermissionDenied without leaving
        IDLE. In full-melody mode the microphone is only opened once the
        countdown expires; failures at that point go to ``on_error``.
        """
        with self._lock:
            if self._state is not SessionState.IDLE:
                raise RuntimeError(f"cannot start from state {self._state.value}")

            self._capture.ensure_available()

            self._session = RecordingSession(mode=self.mode)
            self._result = None
            self._stabilizer.reset()

            if self.mode is PracticeMode.FULL_MELODY and self.config.countdown_from > 0:
                self._begin_countdown()
            else:
                self._enter_recording()

    def stop(self) -> Optional[ScoreResult]:
        """Stop and evaluate.

        Countdown: aborts before the microphone is opened. Full-melody
        recording: scores whatever was collected (possibly nothing).
        Note-by-note recording: ends the take without a score.
        """
        try:
            with self._lock:
                st = self._state
                if st is SessionState.COUNTDOWN:
                    self._abort()
                    return None
                if st is not SessionState.RECORDING:
                    return self._result

                try:
                    if self.mode is PracticeMode.FULL_MELODY:
                        self._set_state(SessionState.EVALUATING)
                        self._evaluate_full_melody()
                    else:
                        self._session = None
                        self._set_state(SessionState.IDLE)
                finally:
                    self._release_capture()
                return self._result
        finally:
            self._close_capture()

    def cancel(self) -> None:
        """Manual abort: drop the take without scoring."""
        try:
            with self._lock:
                if self._state in (SessionState.COUNTDOWN, SessionState.RECORDING):
                    self._abort()
        finally:
            self._close_capture()

    def reset(self) -> None:
        """Return to IDLE from any state, forgetting the session and its result."""
        try:
            with self._lock:
                try:
                    self._cancel_countdown()
                finally:
                    self._release_capture()
                self._session = None
                self._result = None
                if self._state is not SessionState.IDLE:
                    self._set_state(SessionState.IDLE)
        finally:
            self._close_capture()

    def __enter__(self) -> "SessionController":
        return self

    def __exit__(self, *exc) -> None:
        self.reset()

    # ------------------------------------------------------------
    # Frame delivery path
    # ------------------------------------------------------------
    def process_frame(self, frame: AudioFrame) -> Optional[NoteEvent]:
        """Analyse one frame; returns the NoteEvent it committed, if any."""
        try:
            with self._lock:
                if self._state is not SessionState.RECORDING:
                    return None

                f0 = self._estimator(frame)
                label = note_from_frequency(f0) if f0 is not None else None
                event = self._stabilizer.update(label, frame.time)
                if event is not None:
                    self.handle_note_event(event)
                return event
        finally:
            self._close_capture()

    def handle_note_event(self, event: NoteEvent) -> None:
        """Feed one committed NoteEvent into the session."""
        try:
            with self._lock:
                if self._state is not SessionState.RECORDING:
                    return
                session = self._session
                assert session is not None

                if session.events and event.start < session.events[-1].end:
                    raise ValueError(
                        f"NoteEvent at {event.start:.3f}s overlaps the previous event "
                        f"ending at {session.events[-1].end:.3f}s"
                    )
                session.events.append(event)
                self._on_note_event(event)

                if self.mode is PracticeMode.NOTE_BY_NOTE:
                    self._judge(session, event)
                elif self.config.auto_stop and len(session.events) >= len(self.melody):
                    logger.debug("all %d notes collected, stopping", len(self.melody))
                    try:
                        self._set_state(SessionState.EVALUATING)
                        self._evaluate_full_melody()
                    finally:
                        self._release_capture()
        finally:
            self._close_capture()

    def _close_capture(self) -> None:
        """Close a released capture. Must run with the lock dropped: closing
        waits for the delivery thread, which may be queued on the lock."""
        with self._lock:
            if not self._close_pending or self._close_owner != threading.get_ident():
                return
            self._close_pending = False
        self._capture.close()

    # ------------------------------------------------------------
    # Internals (lock held)
    # ------------------------------------------------------------
    def _set_state(self, state: SessionState) -> None:
        if state is self._state:
            return
        logger.info("session %s -> %s", self._state.value, state.value)
        self._state = state
        self._on_state_change(state)

    def _emit(self, fb: Feedback) -> None:
        logger.debug("feedback %s: %s", fb.kind.value, fb.message)
        self._on_feedback(fb)

    def _enter_recording(self) -> None:
        if self._close_pending:
            self._close_pending = False
            self._capture.close()
        try:
            self._capture.open(self.process_frame)
        except Exception:
            self._session = None
            self._set_state(SessionState.IDLE)
            raise
        self._capture_open = True
        self._set_state(SessionState.RECORDING)

    def _release_capture(self) -> None:
        if not self._capture_open:
            return
        self._capture_open = False
        self._stabilizer.reset()
        self._close_pending = True
        self._close_owner = threading.get_ident()

    def _abort(self) -> None:
        try:
            self._cancel_countdown()
        finally:
            self._release_capture()
        self._session = None
        self._set_state(SessionState.IDLE)

    def _begin_countdown(self) -> None:
        self._countdown_remaining = int(self.config.countdown_from)
        self._set_state(SessionState.COUNTDOWN)
        self._on_countdown(self._countdown_remaining)
        self._schedule_tick()

    def _schedule_tick(self) -> None:
        t = self._timer_factory(
            self.config.countdown_interval,
            self._tick,
            args=(self._countdown_gen,),
        )
        t.daemon = True
        self._timer = t
        t.start()

    def _cancel_countdown(self) -> None:
        self._countdown_gen += 1
        self._countdown_remaining = 0
        t, self._timer = self._timer, None
        if t is not None:
            t.cancel()

    def _tick(self, gen: int) -> None:
        with self._lock:
            if gen != self._countdown_gen or self._state is not SessionState.COUNTDOWN:
                return

            self._countdown_remaining -= 1
            if self._countdown_remaining > 0:
                self._on_countdown(self._countdown_remaining)
                self._schedule_tick()
                return

            self._timer = None
            try:
                self._enter_recording()
            except SightSingingError as e:
                logger.warning("could not open the microphone: %s", e)
                if self._on_error is None:
                    raise
                self._on_error(e)

    def _judge(self, session: RecordingSession, event: NoteEvent) -> None:
        expected = self.melody[session.current_index].label
        if not event.label.matches(expected):
            self._emit(
                Feedback(
                    kind=FeedbackKind.INCORRECT,
                    message=f"Try singing {expected} (you sang {event.label})",
                    expected=expected,
                    sung=event.label,
                )
            )
            return

        session.accepted.append(event)
        session.current_index += 1
        self._emit(
            Feedback(
                kind=FeedbackKind.CORRECT,
                message=f"Great! You sang {event.label} correctly!",
                expected=expected,
                sung=event.label,
            )
        )

        if session.current_index < len(self.melody):
            return

        try:
            self._set_state(SessionState.EVALUATING)
            # every accepted note matched, so this is always 100 %
            result = score_melody(self.melody, session.accepted)
            self._finish(session, result, FeedbackKind.COMPLETE, "Exercise completed! Great job!")
        finally:
            self._release_capture()

    def _evaluate_full_melody(self) -> None:
        session = self._session
        assert session is not None
        result = score_melody(self.melody, session.events)
        kind = FeedbackKind.NO_NOTES if result.no_notes_detected else FeedbackKind.SUMMARY
        self._finish(session, result, kind, summary_message(result))

    def _finish(
        self,
        session: RecordingSession,
        result: ScoreResult,
        kind: FeedbackKind,
        message: str,
    ) -> None:
        self._result = result
        self._set_state(SessionState.FEEDBACK)
        self._emit(Feedback(kind=kind, message=message, result=result))
        logger.info(
            "%s scored %d%% (%d/%d)",
            self.exercise.name, result.accuracy, result.correct_count, result.total,
        )
        self._report(session, result)

    def _report(self, session: RecordingSession, result: ScoreResult) -> None:
        if self.reporter is None or result.no_notes_detected:
            return
        key = self.exercise.exercise_id
        if key in session.reported:
            return
        session.reported.add(key)

        name = self.exercise.name
        if self.mode is PracticeMode.NOTE_BY_NOTE:
            name = f"{name} (Note-by-Note)"
        self.reporter.submit(self.exercise, result, display_name=name)
