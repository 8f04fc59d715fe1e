"""Cost estimation for a task in a candidate execution mode.

Three components: remote compute (codespace and hybrid only), a
developer-time overhead charged regardless of mode, and the expected
cost of failure derived from the mode's historical success rate.
"""

from __future__ import annotations

from taskroute.schemas.config import WorkerConfig
from taskroute.schemas.routing import (
    CostEstimate,
    CostFactors,
    HistoricalPerformance,
    WorkerMode,
)
from taskroute.schemas.task import TaskProfile

# Value of one minute of developer time
DEFAULT_TIME_VALUE_PER_MINUTE = 0.5

# Share of a task's duration counted as scheduling overhead
_OVERHEAD_SHARE = 0.1


def estimate_cost(
    task: TaskProfile,
    mode: WorkerMode,
    config: WorkerConfig,
    history: HistoricalPerformance | None = None,
    time_value_per_minute: float = DEFAULT_TIME_VALUE_PER_MINUTE,
) -> CostEstimate:
    """Estimate the cost of running ``task`` in ``mode``.

    Args:
        task: Task being routed.
        mode: Candidate execution mode.
        config: Worker configuration; selects the remote hourly rate.
        history: Performance record for the task's type, if any. Without
            one the failure component is 0.
        time_value_per_minute: Value of one minute of developer time.

    Returns:
        CostEstimate whose ``codespace`` field holds the compute cost.
        Local execution carries no compute bill.
    """
    duration = task.estimated_duration

    compute = 0.0
    if mode in (WorkerMode.CODESPACE, WorkerMode.HYBRID):
        compute = (duration / 60) * config.codespace.hourly_rate

    time_cost = duration * time_value_per_minute * _OVERHEAD_SHARE

    failure = 0.0
    if history is not None:
        success_rate = (
            history.local_success_rate if mode == WorkerMode.LOCAL
            else history.codespace_success_rate
        )
        failure = (1 - success_rate) * duration * time_value_per_minute

    return CostEstimate(
        local=0.0,
        codespace=compute,
        factors=CostFactors(compute=compute, time=time_cost, failure=failure),
    )
