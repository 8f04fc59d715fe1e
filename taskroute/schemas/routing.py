"""Routing decision schemas.

Defines the factors, alternatives, cost breakdown and final decision
produced by the router, along with the system load snapshot, the
per-task-type performance history and the mutable routing context.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from taskroute.schemas.config import WorkerConfig
from taskroute.schemas.task import TaskType

# Confidence is never reported above this value
MAX_CONFIDENCE = 0.95


class WorkerMode(StrEnum):
    """Execution environment a task can be placed on."""

    LOCAL = "local"
    CODESPACE = "codespace"
    HYBRID = "hybrid"


class Contribution(StrEnum):
    """Which environment a factor argues for."""

    LOCAL = "local"
    CODESPACE = "codespace"
    NEUTRAL = "neutral"


class RoutingFactor(BaseModel):
    """One weighted signal feeding a routing decision."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(description="Factor name (e.g. 'complexity')")
    weight: float = Field(ge=0.0, description="Weight of the factor in confidence scoring")
    value: float = Field(ge=0.0, le=1.0, description="Normalized factor value")
    contribution: Contribution = Field(description="Environment this factor favours")
    description: str = Field(default="", description="Human-readable explanation")


class AlternativeRoute(BaseModel):
    """A route the router did not pick, with its tradeoffs."""

    model_config = ConfigDict(frozen=True)

    mode: WorkerMode = Field(description="Alternative execution environment")
    reason: str = Field(description="Why this alternative is offered")
    confidence: float = Field(ge=0.0, le=1.0, description="Confidence in the alternative")
    tradeoffs: list[str] = Field(
        default_factory=list, description="What changes if this route is taken"
    )


class CostFactors(BaseModel):
    """Components of a cost estimate."""

    model_config = ConfigDict(frozen=True)

    compute: float = Field(default=0.0, ge=0.0, description="Remote compute cost")
    time: float = Field(default=0.0, ge=0.0, description="Developer-time overhead cost")
    failure: float = Field(default=0.0, ge=0.0, description="Expected cost of failure")


class CostEstimate(BaseModel):
    """Monetary and opportunity cost estimate for running a task in a mode."""

    model_config = ConfigDict(frozen=True)

    local: float = Field(default=0.0, ge=0.0, description="Local execution cost")
    codespace: float = Field(default=0.0, ge=0.0, description="Remote execution cost")
    factors: CostFactors = Field(
        default_factory=CostFactors, description="Breakdown of cost components"
    )


class RoutingDecision(BaseModel):
    """Final, immutable routing decision for one task."""

    model_config = ConfigDict(frozen=True)

    task_id: str = Field(description="Task the decision applies to")
    mode: WorkerMode = Field(description="Selected execution environment")
    reason: str = Field(description="Reason given by the matched rule")
    rule_id: str = Field(description="Identifier of the matched rule")
    confidence: float = Field(
        ge=0.0, le=MAX_CONFIDENCE, description="Confidence in the decision"
    )
    factors: list[RoutingFactor] = Field(
        default_factory=list, description="Evaluated factors, in evaluation order"
    )
    alternatives: list[AlternativeRoute] = Field(
        default_factory=list, description="Routes not taken"
    )
    estimated_cost: float = Field(ge=0.0, description="Local plus remote cost")
    estimated_duration: float = Field(gt=0, description="Estimated duration in minutes")
    cost: CostEstimate = Field(
        default_factory=CostEstimate, description="Full cost breakdown"
    )
    decided_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When the decision was made",
    )


class SystemLoad(BaseModel):
    """Snapshot of the local host's load."""

    cpu_usage: float = Field(default=0.0, ge=0.0, le=100.0, description="CPU usage in percent")
    memory_usage: float = Field(
        default=0.0, ge=0.0, le=100.0, description="Memory usage in percent"
    )
    active_tasks: int = Field(default=0, ge=0, description="Tasks currently running locally")
    queued_tasks: int = Field(default=0, ge=0, description="Tasks waiting locally")
    avg_task_duration: float = Field(
        default=15.0, ge=0.0, description="Average task duration in minutes"
    )


class HistoricalPerformance(BaseModel):
    """Learned success rates and durations for one task type."""

    task_type: TaskType = Field(description="Task type the record describes")
    local_success_rate: float = Field(default=0.8, ge=0.0, le=1.0)
    codespace_success_rate: float = Field(default=0.9, ge=0.0, le=1.0)
    local_avg_duration: float = Field(default=15.0, ge=0.0, description="Minutes")
    codespace_avg_duration: float = Field(default=20.0, ge=0.0, description="Minutes")
    local_failure_reasons: list[str] = Field(default_factory=list)
    codespace_failure_reasons: list[str] = Field(default_factory=list)


@dataclass
class RoutingContext:
    """Mutable state a router consults when deciding.

    Refreshed before every decision. ``historical_performance`` is the
    history tracker's live mapping; ``active_routes`` holds decisions for
    tasks still in flight.
    """

    system_load: SystemLoad = field(default_factory=SystemLoad)
    historical_performance: dict[TaskType, HistoricalPerformance] = field(
        default_factory=dict
    )
    active_routes: dict[str, RoutingDecision] = field(default_factory=dict)
    config: WorkerConfig = field(default_factory=WorkerConfig)

    def snapshot(self) -> RoutingContext:
        """Return a deep copy detached from the router's live state."""
        return copy.deepcopy(self)
