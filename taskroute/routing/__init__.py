"""Routing decision engine.

Priority-ordered rule matching, weighted factor scoring, confidence and
cost estimation, a TTL decision cache and EMA-based history learning.
"""

from taskroute.routing.cache import DecisionCache
from taskroute.routing.conditions import (
    AllOf,
    Always,
    AnyOf,
    Compare,
    Condition,
    Contains,
    Not,
    OneOf,
    Operator,
)
from taskroute.routing.confidence import build_alternatives, calculate_confidence
from taskroute.routing.cost import estimate_cost
from taskroute.routing.engine import TaskRouter, resolve_mode
from taskroute.routing.factors import evaluate_factors, resource_score
from taskroute.routing.history import HistoryTracker
from taskroute.routing.rules import (
    DEFAULT_ROUTING_RULES,
    RoutingRule,
    RuleAction,
    RuleEngine,
    load_rules,
)

__all__ = [
    "DEFAULT_ROUTING_RULES",
    "AllOf",
    "Always",
    "AnyOf",
    "Compare",
    "Condition",
    "Contains",
    "DecisionCache",
    "HistoryTracker",
    "Not",
    "OneOf",
    "Operator",
    "RoutingRule",
    "RuleAction",
    "RuleEngine",
    "TaskRouter",
    "build_alternatives",
    "calculate_confidence",
    "estimate_cost",
    "evaluate_factors",
    "load_rules",
    "resolve_mode",
    "resource_score",
]
