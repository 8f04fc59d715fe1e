"""taskroute schema definitions.

All Pydantic v2 models describing tasks, worker configuration and
routing decisions.
"""

from taskroute.schemas.config import (
    CodespaceWorkerConfig,
    LocalWorkerConfig,
    RouterSettings,
    WorkerConfig,
)
from taskroute.schemas.routing import (
    MAX_CONFIDENCE,
    AlternativeRoute,
    Contribution,
    CostEstimate,
    CostFactors,
    HistoricalPerformance,
    RoutingContext,
    RoutingDecision,
    RoutingFactor,
    SystemLoad,
    WorkerMode,
)
from taskroute.schemas.task import (
    Level,
    Priority,
    ResourceRequirements,
    TaskProfile,
    TaskType,
    create_task_profile,
)

__all__ = [
    "MAX_CONFIDENCE",
    "AlternativeRoute",
    "CodespaceWorkerConfig",
    "Contribution",
    "CostEstimate",
    "CostFactors",
    "HistoricalPerformance",
    "Level",
    "LocalWorkerConfig",
    "Priority",
    "ResourceRequirements",
    "RouterSettings",
    "RoutingContext",
    "RoutingDecision",
    "RoutingFactor",
    "SystemLoad",
    "TaskProfile",
    "TaskType",
    "WorkerConfig",
    "WorkerMode",
    "create_task_profile",
]
