"""Routing factor evaluation.

Computes the independent weighted signals that explain a routing
decision and feed its confidence: complexity, duration, resources,
system load, historical success and priority.
"""

from __future__ import annotations

from taskroute.schemas.routing import Contribution, RoutingContext, RoutingFactor
from taskroute.schemas.task import Level, Priority, ResourceRequirements, TaskProfile

_LEVEL_SCORES: dict[Level, float] = {
    Level.LOW: 0.0,
    Level.MEDIUM: 0.5,
    Level.HIGH: 1.0,
}

_PRIORITY_SCORES: dict[Priority, float] = {
    Priority.CRITICAL: 1.0,
    Priority.HIGH: 0.7,
    Priority.MEDIUM: 0.4,
    Priority.LOW: 0.1,
}

# Factor weights; they sum to 1.0 when history is available
WEIGHTS: dict[str, float] = {
    "complexity": 0.2,
    "duration": 0.15,
    "resources": 0.25,
    "systemLoad": 0.15,
    "historicalSuccess": 0.15,
    "priority": 0.1,
}

# Durations at or above this many minutes saturate the duration factor
_DURATION_CEILING = 120.0

_LEAN_THRESHOLD = 0.5
_LOAD_THRESHOLD = 0.7


def resource_score(requirements: ResourceRequirements) -> float:
    """Collapse resource requirements into a single 0-1 score.

    The component weights sum to 1.0, so every demand at its maximum
    scores 1.0.
    """
    return (
        _LEVEL_SCORES[requirements.cpu] * 0.3
        + _LEVEL_SCORES[requirements.memory] * 0.3
        + _LEVEL_SCORES[requirements.disk] * 0.1
        + _LEVEL_SCORES[requirements.network] * 0.1
        + (0.1 if requirements.gpu else 0.0)
        + (0.1 if requirements.isolation else 0.0)
    )


def _lean(value: float) -> Contribution:
    return Contribution.CODESPACE if value > _LEAN_THRESHOLD else Contribution.LOCAL


def evaluate_factors(task: TaskProfile, context: RoutingContext) -> list[RoutingFactor]:
    """Evaluate every routing factor for a task, in a fixed order.

    The historical success factor is omitted when no history exists
    for the task's type. Priority never leans either way.
    """
    factors: list[RoutingFactor] = []

    complexity = _LEVEL_SCORES[task.complexity]
    factors.append(RoutingFactor(
        name="complexity",
        weight=WEIGHTS["complexity"],
        value=complexity,
        contribution=_lean(complexity),
        description=f"Task complexity is {task.complexity}",
    ))

    duration = min(task.estimated_duration / _DURATION_CEILING, 1.0)
    factors.append(RoutingFactor(
        name="duration",
        weight=WEIGHTS["duration"],
        value=duration,
        contribution=_lean(duration),
        description=f"Estimated {task.estimated_duration:g} minutes",
    ))

    req = task.resource_requirements
    resources = resource_score(req)
    factors.append(RoutingFactor(
        name="resources",
        weight=WEIGHTS["resources"],
        value=resources,
        contribution=_lean(resources),
        description=f"Resource requirements: CPU={req.cpu}, Memory={req.memory}",
    ))

    load = context.system_load
    load_value = (load.cpu_usage + load.memory_usage) / 200
    factors.append(RoutingFactor(
        name="systemLoad",
        weight=WEIGHTS["systemLoad"],
        value=load_value,
        contribution=(
            Contribution.CODESPACE if load_value > _LOAD_THRESHOLD
            else Contribution.NEUTRAL
        ),
        description=(
            f"System load: CPU={load.cpu_usage:.0f}%, "
            f"Memory={load.memory_usage:.0f}%"
        ),
    ))

    history = context.historical_performance.get(task.type)
    if history is not None:
        history_value = (
            1.0 if history.codespace_success_rate > history.local_success_rate else 0.0
        )
        factors.append(RoutingFactor(
            name="historicalSuccess",
            weight=WEIGHTS["historicalSuccess"],
            value=history_value,
            contribution=_lean(history_value),
            description=(
                f"Historical: Local={history.local_success_rate * 100:.0f}%, "
                f"Codespace={history.codespace_success_rate * 100:.0f}%"
            ),
        ))

    factors.append(RoutingFactor(
        name="priority",
        weight=WEIGHTS["priority"],
        value=_PRIORITY_SCORES[task.priority],
        contribution=Contribution.NEUTRAL,
        description=f"Task priority: {task.priority}",
    ))

    return factors
