"""Task routing engine.

Decides, for each task, whether it runs on the local executor or in a
remote codespace. A decision is the first matching rule in priority
order, explained by weighted factors, scored for confidence and cost,
and accompanied by the routes not taken. Decisions are cached per task
for a short lifetime and tracked as active until the task completes.
"""

from __future__ import annotations

import inspect
import logging
import threading
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

from taskroute.events import EventType, RouterEventEmitter
from taskroute.providers.load import LoadProvider, StaticLoadProvider
from taskroute.routing.cache import DecisionCache
from taskroute.routing.confidence import build_alternatives, calculate_confidence
from taskroute.routing.cost import estimate_cost
from taskroute.routing.factors import evaluate_factors
from taskroute.routing.history import HistoryTracker
from taskroute.routing.rules import RoutingRule, RuleAction, RuleEngine
from taskroute.schemas.config import RouterSettings, WorkerConfig
from taskroute.schemas.routing import (
    HistoricalPerformance,
    RoutingContext,
    RoutingDecision,
    WorkerMode,
)
from taskroute.schemas.task import TaskProfile, TaskType

logger = logging.getLogger(__name__)

ConfigProvider = Callable[[], WorkerConfig | Awaitable[WorkerConfig]]

_T = TypeVar("_T")


async def _resolve(value: _T | Awaitable[_T]) -> _T:
    if inspect.isawaitable(value):
        return await value
    return value


def resolve_mode(action: RuleAction) -> WorkerMode:
    """Map a rule action to the mode reported in a decision.

    ``defer`` has no execution semantics yet and resolves to local.
    """
    if action == RuleAction.CODESPACE:
        return WorkerMode.CODESPACE
    return WorkerMode.LOCAL


class TaskRouter:
    """Routes tasks to local or codespace execution.

    One router owns its rules, context, cache and history. Build it once
    per process (see ``taskroute.app.build_router``) and pass it to the
    code that needs it.

    Args:
        rules: Extra rules registered alongside the built-in ones.
        settings: Router tunables (cache lifetime, EMA factor, time value).
        load_provider: Returns the current SystemLoad (sync or async).
        config_provider: Returns the current WorkerConfig (sync or async).
        emitter: Receives route, history, rule and cache events.
        history: Pre-populated history tracker (e.g. loaded from storage).
        include_default_rules: Register the built-in rule set.
        clock: Monotonic time source for the decision cache.
    """

    def __init__(
        self,
        rules: list[RoutingRule] | None = None,
        *,
        settings: RouterSettings | None = None,
        load_provider: LoadProvider | None = None,
        config_provider: ConfigProvider | None = None,
        emitter: RouterEventEmitter | None = None,
        history: HistoryTracker | None = None,
        include_default_rules: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._settings = settings or RouterSettings()
        self._rules = RuleEngine(rules, include_defaults=include_default_rules)
        self._load_provider = load_provider or StaticLoadProvider()
        self._config_provider: ConfigProvider = config_provider or WorkerConfig
        self._emitter = emitter or RouterEventEmitter()
        self._history = history or HistoryTracker(
            smoothing_factor=self._settings.smoothing_factor,
            failure_reason_limit=self._settings.failure_reason_limit,
        )
        self._cache = DecisionCache(self._settings.cache_lifetime, clock=clock)
        self._context = RoutingContext(historical_performance=self._history.records)
        self._lock = threading.RLock()

    @property
    def settings(self) -> RouterSettings:
        return self._settings

    @property
    def rules(self) -> RuleEngine:
        return self._rules

    @property
    def emitter(self) -> RouterEventEmitter:
        return self._emitter

    @property
    def history(self) -> HistoryTracker:
        return self._history

    @property
    def cache(self) -> DecisionCache:
        return self._cache

    async def route(self, task: TaskProfile) -> RoutingDecision:
        """Make (or reuse) a routing decision for a task.

        A fresh cached decision for the same task id is returned as-is,
        without re-evaluating rules or emitting events.
        """
        with self._lock:
            cached = self._cache.get(task.task_id)
        if cached is not None:
            logger.debug("Using cached routing decision for task %s", task.task_id)
            return cached

        await self._refresh_context()

        with self._lock:
            context = self._context
            factors = evaluate_factors(task, context)
            rule = self._rules.match(task, context)
            mode = resolve_mode(rule.action)
            confidence = calculate_confidence(factors, rule)
            alternatives = build_alternatives(task, mode, factors)
            cost = estimate_cost(
                task,
                mode,
                context.config,
                context.historical_performance.get(task.type),
                self._settings.time_value_per_minute,
            )

            decision = RoutingDecision(
                task_id=task.task_id,
                mode=mode,
                reason=rule.reason,
                rule_id=rule.id,
                confidence=confidence,
                factors=factors,
                alternatives=alternatives,
                estimated_cost=cost.local + cost.codespace,
                estimated_duration=task.estimated_duration,
                cost=cost,
            )

            self._cache.put(task.task_id, decision)
            context.active_routes[task.task_id] = decision

        self._emitter.emit(EventType.ROUTE_DECIDED, task=task, decision=decision)
        logger.info(
            "Routed task %s to %s: %s (confidence=%.2f, est=$%.4f)",
            task.task_id,
            decision.mode.value,
            decision.reason,
            decision.confidence,
            decision.estimated_cost,
        )
        return decision

    def complete_route(self, task_id: str, success: bool) -> RoutingDecision | None:
        """Mark a routed task as finished.

        Removes it from the active routes and the cache so a later
        ``route`` call re-evaluates. Does not touch history; call
        ``update_historical_performance`` to learn from the outcome.

        Returns:
            The completed decision, or None if the task was not active.
        """
        with self._lock:
            decision = self._context.active_routes.pop(task_id, None)
            self._cache.invalidate(task_id)

        if decision is None:
            logger.debug("complete_route: task %s is not active", task_id)
            return None

        self._emitter.emit(
            EventType.ROUTE_COMPLETED,
            task_id=task_id,
            decision=decision,
            success=success,
        )
        logger.info("Completed route for task %s (success=%s)", task_id, success)
        return decision

    def update_historical_performance(
        self,
        task_type: TaskType,
        mode: WorkerMode,
        success: bool,
        duration: float,
        failure_reason: str | None = None,
    ) -> HistoricalPerformance:
        """Fold a completed task's outcome into the history for its type."""
        with self._lock:
            record = self._history.update(
                task_type, mode, success, duration, failure_reason,
            )
            snapshot = record.model_copy(deep=True)

        self._emitter.emit(
            EventType.PERFORMANCE_UPDATED, task_type=task_type, history=snapshot,
        )
        return snapshot

    def add_rule(self, rule: RoutingRule) -> None:
        """Register a routing rule.

        Raises:
            ValueError: If a rule with the same id already exists.
        """
        with self._lock:
            self._rules.add(rule)
        self._emitter.emit(EventType.RULE_ADDED, rule=rule)
        logger.info("Added routing rule: %s", rule.name)

    def remove_rule(self, rule_id: str) -> RoutingRule | None:
        """Remove a routing rule by id. Unknown ids are ignored."""
        with self._lock:
            removed = self._rules.remove(rule_id)
        if removed is not None:
            self._emitter.emit(EventType.RULE_REMOVED, rule=removed)
            logger.info("Removed routing rule: %s", removed.name)
        return removed

    def get_rules(self) -> list[RoutingRule]:
        """Snapshot of the rules in evaluation order."""
        with self._lock:
            return self._rules.rules

    def get_context(self) -> RoutingContext:
        """Deep-copied snapshot of the routing context."""
        with self._lock:
            return self._context.snapshot()

    def clear_cache(self) -> None:
        """Empty the decision cache. Active routes are kept."""
        with self._lock:
            cleared = self._cache.clear()
        self._emitter.emit(EventType.CACHE_CLEARED, entries=cleared)
        logger.debug("Cleared %d cached routing decisions", cleared)

    async def _refresh_context(self) -> None:
        """Pull a fresh load snapshot and worker configuration.

        ``active_tasks`` is raised to the number of in-flight routes
        when the provider reports fewer.
        """
        load = await _resolve(self._load_provider())
        config = await _resolve(self._config_provider())

        with self._lock:
            active = len(self._context.active_routes)
            if load.active_tasks < active:
                load = load.model_copy(update={"active_tasks": active})
            self._context.system_load = load
            self._context.config = config
