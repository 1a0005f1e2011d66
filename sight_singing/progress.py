from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Dict, Iterable, List, Optional, Protocol, Tuple

from .exercises import Exercise
from .scoring import ScoreResult

logger = logging.getLogger(__name__)

MODULE_TYPE = "SightSinging"


class ProgressSink(Protocol):
    """Where finished scores go (a progress API, a database, ...)."""

    def record_completion(
        self,
        module_type: str,
        exercise_id: str,
        exercise_name: str,
        score: int,
        difficulty: str,
    ) -> None:
        ...

    def update_aggregate_progress(self, module_type: str, progress: int) -> None:
        ...


class LoggingProgressSink:
    def record_completion(self, module_type, exercise_id, exercise_name, score, difficulty) -> None:
        logger.info(
            "completion %s/%s %r score=%d difficulty=%s",
            module_type, exercise_id, exercise_name, score, difficulty,
        )

    def update_aggregate_progress(self, module_type, progress) -> None:
        logger.info("progress %s=%d", module_type, progress)


class InMemoryProgressSink:
    def __init__(self) -> None:
        self.completions: List[Tuple[str, str, str, int, str]] = []
        self.progress: Dict[str, int] = {}

    def record_completion(self, module_type, exercise_id, exercise_name, score, difficulty) -> None:
        self.completions.append((module_type, exercise_id, exercise_name, int(score), difficulty))

    def update_aggregate_progress(self, module_type, progress) -> None:
        self.progress[module_type] = int(progress)


def aggregate_progress(previous_scores: Iterable[int], score: int) -> int:
    """Rounded mean of all scores so far, including the new one."""
    scores = [int(s) for s in previous_scores] + [int(score)]
    return int(sum(scores) / len(scores) + 0.5)


class ProgressReporter:
    """Fire-and-forget handoff of ScoreResults to a ProgressSink.

    Calls run on a single worker thread so the caller never blocks on the
    sink. Sink failures are logged, never raised.
    """

    def __init__(
        self,
        sink: Optional[ProgressSink] = None,
        *,
        module_type: str = MODULE_TYPE,
        previous_scores: Iterable[int] = (),
        executor: Optional[ThreadPoolExecutor] = None,
    ) -> None:
        self.sink = sink if sink is not None else LoggingProgressSink()
        self.module_type = module_type
        self._scores = [int(s) for s in previous_scores]
        self._lock = threading.Lock()
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="progress"
        )

    @property
    def scores(self) -> List[int]:
        with self._lock:
            return list(self._scores)

    def submit(self, exercise: Exercise, result: ScoreResult, *, display_name: Optional[str] = None) -> Future:
        with self._lock:
            progress = aggregate_progress(self._scores, result.accuracy)
            self._scores.append(int(result.accuracy))

        return self._executor.submit(
            self._deliver,
            exercise.exercise_id,
            display_name or exercise.name,
            int(result.accuracy),
            exercise.difficulty.value,
            progress,
        )

    def _deliver(self, exercise_id: str, name: str, score: int, difficulty: str, progress: int) -> None:
        try:
            self.sink.record_completion(self.module_type, exercise_id, name, score, difficulty)
            self.sink.update_aggregate_progress(self.module_type, progress)
        except Exception:
            logger.exception("failed to record completion of %s", exercise_id)

    def close(self, wait: bool = True) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=wait)
