"""Confidence scoring and alternative routes.

Confidence blends the matched rule's priority with how well the
evaluated factors agree with the rule's action. Alternatives describe
the routes not taken and what changes if a caller picks one instead.
"""

from __future__ import annotations

from taskroute.routing.rules import RoutingRule, RuleAction
from taskroute.schemas.routing import (
    MAX_CONFIDENCE,
    AlternativeRoute,
    Contribution,
    RoutingFactor,
    WorkerMode,
)
from taskroute.schemas.task import Level, TaskProfile

_PRIORITY_SHARE = 0.4
_ALIGNMENT_SHARE = 0.6

# Confidence assigned to the hybrid alternative
HYBRID_CONFIDENCE = 0.7

_HYBRID_TRADEOFFS = [
    "Flexible but less predictable",
    "May switch environments mid-task",
    "Good for uncertain workloads",
]


def _alignment(factors: list[RoutingFactor], contribution: Contribution) -> float:
    """Weighted share of factor value agreeing with ``contribution``.

    Neutral factors always agree. Returns 0.5 when the factors carry no
    weight at all.
    """
    total = sum(f.weight for f in factors)
    if total <= 0:
        return 0.5
    aligned = sum(
        f.weight * f.value
        for f in factors
        if f.contribution in (contribution, Contribution.NEUTRAL)
    )
    return aligned / total


def calculate_confidence(factors: list[RoutingFactor], rule: RoutingRule) -> float:
    """Confidence in a decision made by ``rule``, in [0, MAX_CONFIDENCE]."""
    expected = (
        Contribution.LOCAL if rule.action == RuleAction.LOCAL
        else Contribution.CODESPACE
    )
    score = (
        (rule.priority / 100) * _PRIORITY_SHARE
        + _alignment(factors, expected) * _ALIGNMENT_SHARE
    )
    return max(0.0, min(MAX_CONFIDENCE, score))


def _tradeoffs(task: TaskProfile, mode: WorkerMode) -> list[str]:
    if mode == WorkerMode.LOCAL:
        tradeoffs = ["Faster startup time", "Lower cost"]
        if task.resource_requirements.memory == Level.HIGH:
            tradeoffs.append("May hit memory limits")
        return tradeoffs
    return [
        "More reliable for complex tasks",
        "Better isolation",
        "Higher latency to start",
        "Additional cost",
    ]


def build_alternatives(
    task: TaskProfile,
    primary: WorkerMode,
    factors: list[RoutingFactor],
) -> list[AlternativeRoute]:
    """Build the routes not taken for a decision in ``primary`` mode.

    Always returns the opposite mode (local <-> codespace; a hybrid
    primary is opposed by local), followed by a hybrid route unless the
    primary mode is already hybrid.
    """
    opposite = WorkerMode.CODESPACE if primary == WorkerMode.LOCAL else WorkerMode.LOCAL
    alternatives = [
        AlternativeRoute(
            mode=opposite,
            reason=f"Alternative route to {opposite}",
            confidence=min(1.0, _alignment(factors, Contribution(opposite.value))),
            tradeoffs=_tradeoffs(task, opposite),
        ),
    ]

    if primary != WorkerMode.HYBRID:
        alternatives.append(AlternativeRoute(
            mode=WorkerMode.HYBRID,
            reason="Dynamic routing based on runtime conditions",
            confidence=HYBRID_CONFIDENCE,
            tradeoffs=list(_HYBRID_TRADEOFFS),
        ))

    return alternatives
