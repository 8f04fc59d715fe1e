"""taskroute: routing decision engine for agent task execution."""

__version__ = "0.1.0"

from .app import build_router, connect_store
from .routing import RoutingRule, RuleAction, TaskRouter
from .schemas import RoutingDecision, TaskProfile, create_task_profile

__all__ = [
    "RoutingDecision",
    "RoutingRule",
    "RuleAction",
    "TaskProfile",
    "TaskRouter",
    "build_router",
    "connect_store",
    "create_task_profile",
]
