"""Per-task-type performance history.

Tracks success rates and durations for each execution mode with an
exponential moving average. Updated only by completed-route feedback;
this is the only way the router learns.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Iterable

from taskroute.schemas.routing import HistoricalPerformance, WorkerMode
from taskroute.schemas.task import TaskType

logger = logging.getLogger(__name__)

DEFAULT_SMOOTHING_FACTOR = 0.2


def ema(previous: float, observation: float, alpha: float) -> float:
    """One exponential-moving-average step."""
    return alpha * observation + (1 - alpha) * previous


class HistoryTracker:
    """EMA model of routing outcomes, keyed by task type."""

    def __init__(
        self,
        smoothing_factor: float = DEFAULT_SMOOTHING_FACTOR,
        failure_reason_limit: int = 20,
    ) -> None:
        if not 0 < smoothing_factor <= 1:
            raise ValueError(
                f"smoothing_factor must be in (0, 1], got {smoothing_factor}"
            )
        self._alpha = smoothing_factor
        self._reason_limit = failure_reason_limit
        self._records: dict[TaskType, HistoricalPerformance] = {}

    @property
    def records(self) -> dict[TaskType, HistoricalPerformance]:
        """Live mapping of task type to its performance record."""
        return self._records

    def get(self, task_type: TaskType) -> HistoricalPerformance | None:
        return self._records.get(task_type)

    def snapshot(self) -> dict[TaskType, HistoricalPerformance]:
        return copy.deepcopy(self._records)

    def load(self, records: Iterable[HistoricalPerformance]) -> None:
        """Insert or overwrite records, e.g. ones read from persistence."""
        for record in records:
            self._records[record.task_type] = record.model_copy(deep=True)

    def update(
        self,
        task_type: TaskType,
        mode: WorkerMode,
        success: bool,
        duration: float,
        failure_reason: str | None = None,
    ) -> HistoricalPerformance:
        """Fold one completed route into the history for ``task_type``.

        Only the fields of ``mode`` move; a hybrid outcome seeds the
        record without changing any rate.
        """
        record = self._records.get(task_type)
        if record is None:
            record = HistoricalPerformance(task_type=task_type)
            self._records[task_type] = record

        outcome = 1.0 if success else 0.0
        if mode == WorkerMode.LOCAL:
            record.local_success_rate = ema(record.local_success_rate, outcome, self._alpha)
            record.local_avg_duration = ema(record.local_avg_duration, duration, self._alpha)
            reasons = record.local_failure_reasons
        elif mode == WorkerMode.CODESPACE:
            record.codespace_success_rate = ema(
                record.codespace_success_rate, outcome, self._alpha,
            )
            record.codespace_avg_duration = ema(
                record.codespace_avg_duration, duration, self._alpha,
            )
            reasons = record.codespace_failure_reasons
        else:
            logger.debug("Hybrid outcome for %s does not move any rate", task_type)
            return record

        if not success and failure_reason:
            reasons.append(failure_reason)
            if len(reasons) > self._reason_limit:
                del reasons[: len(reasons) - self._reason_limit]

        logger.debug("Updated %s history for %s (success=%s)", mode, task_type, success)
        return record
