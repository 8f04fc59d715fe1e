"""Routing rules and the priority-ordered rule engine.

Rules are data: an identifier, a priority, a declarative condition and
the action to take when it matches. The engine evaluates them from the
highest priority down and returns the first match. A catch-all default
rule at priority 0 guarantees that a match always exists.
"""

from __future__ import annotations

import logging
import tomllib
from collections.abc import Iterable
from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from taskroute.routing.conditions import (
    AllOf,
    Always,
    AnyOf,
    Compare,
    Condition,
    Contains,
    OneOf,
)
from taskroute.schemas.routing import RoutingContext
from taskroute.schemas.task import TaskProfile

logger = logging.getLogger(__name__)


class RuleAction(StrEnum):
    """What a matching rule asks the router to do.

    ``defer`` is accepted but always resolved to ``local`` in the
    final decision.
    """

    LOCAL = "local"
    CODESPACE = "codespace"
    DEFER = "defer"


class RoutingRule(BaseModel):
    """A single routing rule."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1, description="Unique rule identifier")
    name: str = Field(description="Human-friendly rule name")
    description: str = Field(default="", description="What the rule is for")
    priority: int = Field(description="Higher priorities are evaluated first")
    condition: Condition = Field(description="Predicate over task and context")
    action: RuleAction = Field(description="Action taken when the rule matches")
    reason: str = Field(description="Reason reported in the routing decision")

    def matches(self, task: TaskProfile, context: RoutingContext) -> bool:
        """Evaluate the rule's condition. May raise on malformed conditions."""
        return self.condition.evaluate(task, context)


DEFAULT_RULE_ID = "default-local"

DEFAULT_RULE = RoutingRule(
    id=DEFAULT_RULE_ID,
    name="Default Local",
    description="Default to local execution for efficiency",
    priority=0,
    condition=Always(),
    action=RuleAction.LOCAL,
    reason="Default routing for efficiency",
)

DEFAULT_ROUTING_RULES: list[RoutingRule] = [
    RoutingRule(
        id="gpu-required",
        name="GPU Required",
        description="Route GPU-intensive tasks to a codespace",
        priority=100,
        condition=Compare(field="task.resource_requirements.gpu", op="eq", value=True),
        action=RuleAction.CODESPACE,
        reason="GPU processing required",
    ),
    RoutingRule(
        id="security-isolation",
        name="Security Isolation",
        description="Route security-sensitive tasks to an isolated codespace",
        priority=95,
        condition=AnyOf(conditions=[
            Compare(field="task.resource_requirements.isolation", op="eq", value=True),
            Compare(field="task.type", op="eq", value="security"),
        ]),
        action=RuleAction.CODESPACE,
        reason="Security isolation required",
    ),
    RoutingRule(
        id="high-memory",
        name="High Memory",
        description="Route memory-intensive tasks to a codespace",
        priority=90,
        condition=Compare(field="task.resource_requirements.memory", op="eq", value="high"),
        action=RuleAction.CODESPACE,
        reason="High memory requirements (>8GB)",
    ),
    RoutingRule(
        id="long-running",
        name="Long Running",
        description="Route tasks over 60 minutes to a codespace for reliability",
        priority=85,
        condition=Compare(field="task.estimated_duration", op="gt", value=60),
        action=RuleAction.CODESPACE,
        reason="Long-running task benefits from isolated environment",
    ),
    RoutingRule(
        id="documentation-local",
        name="Documentation Local",
        description="Keep documentation tasks local for speed",
        priority=80,
        condition=Compare(field="task.type", op="eq", value="documentation"),
        action=RuleAction.LOCAL,
        reason="Documentation tasks are lightweight",
    ),
    RoutingRule(
        id="quick-fix-local",
        name="Quick Fix Local",
        description="Keep quick fixes local",
        priority=75,
        condition=AnyOf(conditions=[
            Contains(field="task.labels", value="quick-fix"),
            Compare(field="task.estimated_duration", op="lt", value=10),
        ]),
        action=RuleAction.LOCAL,
        reason="Quick task benefits from local execution speed",
    ),
    RoutingRule(
        id="system-overload",
        name="System Overload",
        description="Route to a codespace when the local host is overloaded",
        priority=70,
        condition=AnyOf(conditions=[
            Compare(field="load.cpu_usage", op="gt", value=80),
            Compare(field="load.memory_usage", op="gt", value=85),
        ]),
        action=RuleAction.CODESPACE,
        reason="Local system is under heavy load",
    ),
    RoutingRule(
        id="queue-overflow",
        name="Queue Overflow",
        description="Route to a codespace when the local queue is full",
        priority=65,
        condition=Compare(
            field="load.active_tasks",
            op="ge",
            value_from="config.local.max_concurrent_tasks",
        ),
        action=RuleAction.CODESPACE,
        reason="Local task queue is at capacity",
    ),
    RoutingRule(
        id="research-codespace",
        name="Research Codespace",
        description="Route research tasks to a clean codespace",
        priority=60,
        condition=Compare(field="task.type", op="eq", value="research"),
        action=RuleAction.CODESPACE,
        reason="Research tasks benefit from clean, isolated environment",
    ),
    RoutingRule(
        id="critical-priority",
        name="Critical Priority",
        description="Route critical tasks by historical success rate",
        priority=55,
        condition=AllOf(conditions=[
            Compare(field="task.priority", op="eq", value="critical"),
            Compare(
                field="history.codespace_success_rate",
                op="gt",
                value_from="history.local_success_rate",
            ),
        ]),
        action=RuleAction.CODESPACE,
        reason="Critical task routed to most reliable environment",
    ),
    RoutingRule(
        id="infrastructure-codespace",
        name="Infrastructure Codespace",
        description="Route infrastructure tasks to a codespace",
        priority=50,
        condition=OneOf(field="task.type", values=["infrastructure"]),
        action=RuleAction.CODESPACE,
        reason="Infrastructure changes benefit from isolated testing",
    ),
    DEFAULT_RULE,
]


class RuleEngine:
    """Priority-ordered, mutable set of routing rules.

    Rules are kept sorted by descending priority; rules sharing a
    priority keep the order in which they were added.
    """

    def __init__(
        self,
        rules: Iterable[RoutingRule] | None = None,
        include_defaults: bool = True,
    ) -> None:
        self._rules: list[RoutingRule] = []
        initial = [*DEFAULT_ROUTING_RULES] if include_defaults else []
        for rule in [*initial, *(rules or [])]:
            self._append(rule)
        self._sort()

    @property
    def rules(self) -> list[RoutingRule]:
        """Snapshot of the rules in evaluation order."""
        return list(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    def get(self, rule_id: str) -> RoutingRule | None:
        """Look up a rule by identifier."""
        return next((r for r in self._rules if r.id == rule_id), None)

    def add(self, rule: RoutingRule) -> None:
        """Register a rule and re-sort.

        Raises:
            ValueError: If a rule with the same id is already registered.
        """
        self._append(rule)
        self._sort()

    def remove(self, rule_id: str) -> RoutingRule | None:
        """Remove a rule by id. Returns the removed rule, or None if absent."""
        for index, rule in enumerate(self._rules):
            if rule.id == rule_id:
                return self._rules.pop(index)
        return None

    def match(self, task: TaskProfile, context: RoutingContext) -> RoutingRule:
        """Return the first rule whose condition holds for the task.

        A rule whose condition raises is logged and skipped. If nothing
        matches, the lowest-priority rule is returned; with no rules at
        all the built-in default rule is used.
        """
        for rule in self._rules:
            try:
                if rule.matches(task, context):
                    logger.debug("Rule matched: %s for task %s", rule.name, task.task_id)
                    return rule
            except Exception:
                logger.warning(
                    "Rule evaluation failed: %s", rule.name, exc_info=True,
                )

        if self._rules:
            return self._rules[-1]
        return DEFAULT_RULE

    def _append(self, rule: RoutingRule) -> None:
        if self.get(rule.id) is not None:
            raise ValueError(f"Routing rule '{rule.id}' is already registered")
        self._rules.append(rule)

    def _sort(self) -> None:
        # list.sort is stable, also with reverse=True
        self._rules.sort(key=lambda r: r.priority, reverse=True)


def load_rules(path: Path) -> list[RoutingRule]:
    """Load additional routing rules from a TOML file.

    Each rule is a ``[[rules]]`` table whose ``condition`` is an inline
    table using the condition language (``kind = "compare"`` etc.).

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file has no ``[[rules]]`` array.
        pydantic.ValidationError: If a rule is malformed.
    """
    if not path.exists():
        raise FileNotFoundError(f"Rules file not found: {path}")

    with open(path, "rb") as f:
        raw = tomllib.load(f)

    entries = raw.get("rules")
    if not entries or not isinstance(entries, list):
        raise ValueError(f"No [[rules]] entries found in {path}")

    return [RoutingRule.model_validate(entry) for entry in entries]
