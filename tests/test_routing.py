"""Tests for the task routing engine.

Covers decisions end to end, caching, active-route tracking, the
history feedback loop, rule management, events and context providers.
"""

from __future__ import annotations

import asyncio
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import patch

import pytest

from taskroute.events import EventType, RouterEvent, RouterEventEmitter
from taskroute.providers.load import StaticLoadProvider
from taskroute.routing.conditions import Always, Compare
from taskroute.routing.engine import TaskRouter, resolve_mode
from taskroute.routing.rules import DEFAULT_ROUTING_RULES, RoutingRule, RuleAction
from taskroute.schemas.config import LocalWorkerConfig, RouterSettings, WorkerConfig
from taskroute.schemas.routing import MAX_CONFIDENCE, SystemLoad, WorkerMode
from taskroute.schemas.task import TaskType, create_task_profile

# ── Factories ──────────────────────────────────────────────────────


class FakeClock:
    """Settable clock; ``on_tick`` runs once on the next reading."""

    def __init__(self) -> None:
        self.now = 0.0
        self.on_tick = None

    def __call__(self) -> float:
        if self.on_tick is not None:
            hook, self.on_tick = self.on_tick, None
            hook()
        return self.now


def _make_router(**overrides) -> TaskRouter:
    return TaskRouter(**overrides)


def _make_rule(rule_id: str = "custom", priority: int = 200, **overrides) -> RoutingRule:
    defaults = {
        "id": rule_id,
        "name": rule_id.title(),
        "priority": priority,
        "condition": Always(),
        "action": RuleAction.CODESPACE,
        "reason": f"{rule_id} matched",
    }
    defaults.update(overrides)
    return RoutingRule(**defaults)


def _collect(router: TaskRouter) -> list[RouterEvent]:
    events: list[RouterEvent] = []
    router.emitter.add_listener(events.append)
    return events


# ── Decisions ──────────────────────────────────────────────────────


class TestResolveMode:
    def test_actions(self):
        assert resolve_mode(RuleAction.LOCAL) == WorkerMode.LOCAL
        assert resolve_mode(RuleAction.CODESPACE) == WorkerMode.CODESPACE
        assert resolve_mode(RuleAction.DEFER) == WorkerMode.LOCAL


class TestRoute:
    @pytest.mark.asyncio()
    async def test_default_task_runs_locally(self):
        router = _make_router()
        decision = await router.route(create_task_profile("t-1", "Add button"))

        assert decision.task_id == "t-1"
        assert decision.mode == WorkerMode.LOCAL
        assert decision.rule_id == "default-local"
        assert decision.reason == "Default routing for efficiency"
        assert decision.confidence == pytest.approx(0.6 * 0.2525 / 0.85)
        assert decision.estimated_cost == 0.0
        assert decision.estimated_duration == 30

    @pytest.mark.asyncio()
    async def test_gpu_task_goes_to_codespace(self):
        router = _make_router()
        task = create_task_profile("t-1", "Train model", resource_requirements={"gpu": True})
        decision = await router.route(task)

        assert decision.mode == WorkerMode.CODESPACE
        assert "GPU" in decision.reason
        assert decision.confidence >= 0.4
        assert decision.estimated_cost == pytest.approx(0.09)
        assert decision.cost.factors.compute == pytest.approx(0.09)

    @pytest.mark.asyncio()
    async def test_documentation_stays_local(self):
        router = _make_router()
        decision = await router.route(create_task_profile("t-1", "Docs", type="documentation"))
        assert decision.mode == WorkerMode.LOCAL
        assert decision.rule_id == "documentation-local"

    @pytest.mark.asyncio()
    async def test_decision_is_fully_explained(self):
        router = _make_router()
        decision = await router.route(create_task_profile("t-1", "x"))

        assert {f.name for f in decision.factors} >= {
            "complexity", "duration", "resources", "systemLoad", "priority",
        }
        assert [a.mode for a in decision.alternatives] == [
            WorkerMode.CODESPACE, WorkerMode.HYBRID,
        ]

    @pytest.mark.asyncio()
    async def test_defer_resolves_to_local(self):
        router = _make_router(rules=[_make_rule("deferred", action=RuleAction.DEFER)])
        decision = await router.route(create_task_profile("t-1", "x"))
        assert decision.rule_id == "deferred"
        assert decision.mode == WorkerMode.LOCAL

    @pytest.mark.asyncio()
    async def test_mode_is_never_hybrid_or_defer(self):
        router = _make_router()
        tasks = [
            create_task_profile(f"t-{t.value}", "x", type=t) for t in TaskType
        ] + [
            create_task_profile("gpu", "x", resource_requirements={"gpu": True}),
            create_task_profile("long", "x", estimated_duration=500),
        ]
        for task in tasks:
            decision = await router.route(task)
            assert decision.mode in (WorkerMode.LOCAL, WorkerMode.CODESPACE)
            assert 0.0 <= decision.confidence <= MAX_CONFIDENCE

    @pytest.mark.asyncio()
    async def test_raising_rule_does_not_break_routing(self):
        broken = _make_rule(
            "broken", 500, condition=Compare(field="task.title", op="gt", value=5),
        )
        router = _make_router(rules=[broken])
        decision = await router.route(create_task_profile("t-1", "x"))
        assert decision.rule_id == "default-local"

    @pytest.mark.asyncio()
    async def test_unknown_field_rule_is_skipped(self):
        broken = _make_rule("typo", 500, condition=Compare(field="task.nope", op="eq", value=1))
        router = _make_router(rules=[broken])
        decision = await router.route(create_task_profile("t-1", "x"))
        assert decision.rule_id == "default-local"


# ── Cache ──────────────────────────────────────────────────────────


class TestCaching:
    @pytest.mark.asyncio()
    async def test_second_route_uses_cache(self):
        router = _make_router()
        events = _collect(router)
        task = create_task_profile("t-1", "x")

        with patch.object(router.rules, "match", wraps=router.rules.match) as match:
            first = await router.route(task)
            second = await router.route(task)

        assert second is first
        assert match.call_count == 1
        assert [e.type for e in events] == [EventType.ROUTE_DECIDED]

    @pytest.mark.asyncio()
    async def test_cache_expires_after_lifetime(self):
        clock = FakeClock()
        router = _make_router(clock=clock, settings=RouterSettings(cache_lifetime=60))
        task = create_task_profile("t-1", "x")

        first = await router.route(task)
        clock.now = 59.9
        assert await router.route(task) is first
        clock.now = 60.0
        assert await router.route(task) is not first

    @pytest.mark.asyncio()
    async def test_clear_cache_keeps_active_routes(self):
        router = _make_router()
        events = _collect(router)
        await router.route(create_task_profile("a", "x"))
        await router.route(create_task_profile("b", "x"))

        router.clear_cache()

        assert len(router.cache) == 0
        assert set(router.get_context().active_routes) == {"a", "b"}
        assert events[-1].type == EventType.CACHE_CLEARED
        assert events[-1].data == {"entries": 2}

    @pytest.mark.asyncio()
    async def test_completion_during_stale_lookup(self):
        clock = FakeClock()
        router = _make_router(clock=clock)
        task = create_task_profile("t-1", "x")
        first = await router.route(task)

        clock.now = 120.0
        clock.on_tick = lambda: router.complete_route("t-1", success=True)
        second = await router.route(task)

        assert second is not first
        assert router.get_context().active_routes["t-1"] == second

    @pytest.mark.asyncio()
    async def test_clear_during_stale_lookup(self):
        clock = FakeClock()
        router = _make_router(clock=clock)
        task = create_task_profile("t-1", "x")
        await router.route(task)

        clock.now = 120.0
        clock.on_tick = router.clear_cache
        decision = await router.route(task)

        assert decision.task_id == "t-1"
        assert "t-1" in router.cache

    def test_threads_routing_and_completing(self):
        router = _make_router(settings=RouterSettings(cache_lifetime=0))
        task_ids = [f"t-{i}" for i in range(4)]

        def worker(task_id: str) -> None:
            task = create_task_profile(task_id, "x")
            for _ in range(25):
                asyncio.run(router.route(task))
                router.complete_route(task_id, success=True)
                router.clear_cache()

        with ThreadPoolExecutor(max_workers=len(task_ids)) as pool:
            for future in [pool.submit(worker, t) for t in task_ids]:
                future.result()

        assert router.get_context().active_routes == {}


# ── Active routes ──────────────────────────────────────────────────


class TestActiveRoutes:
    @pytest.mark.asyncio()
    async def test_route_is_tracked_until_completed(self):
        router = _make_router()
        events = _collect(router)
        task = create_task_profile("t-1", "x")
        decision = await router.route(task)

        assert router.get_context().active_routes["t-1"] == decision

        completed = router.complete_route("t-1", success=True)
        assert completed == decision
        assert "t-1" not in router.get_context().active_routes
        assert "t-1" not in router.cache
        assert events[-1].type == EventType.ROUTE_COMPLETED
        assert events[-1].data["success"] is True

        assert await router.route(task) is not decision

    def test_completing_unknown_task_is_a_noop(self):
        router = _make_router()
        events = _collect(router)
        assert router.complete_route("ghost", success=False) is None
        assert events == []

    @pytest.mark.asyncio()
    async def test_queue_overflow_from_active_routes(self):
        router = _make_router()
        for i in range(5):
            decision = await router.route(create_task_profile(f"t-{i}", "x"))
            assert decision.mode == WorkerMode.LOCAL

        overflow = await router.route(create_task_profile("t-5", "x"))
        assert overflow.rule_id == "queue-overflow"
        assert overflow.mode == WorkerMode.CODESPACE
        assert router.get_context().system_load.active_tasks == 5

    @pytest.mark.asyncio()
    async def test_queue_overflow_from_load_provider(self):
        router = _make_router(load_provider=StaticLoadProvider(SystemLoad(active_tasks=5)))
        decision = await router.route(create_task_profile("t-1", "x"))
        assert decision.rule_id == "queue-overflow"

    @pytest.mark.asyncio()
    async def test_concurrent_routes(self):
        router = _make_router(settings=RouterSettings(), include_default_rules=True)
        tasks = [create_task_profile(f"t-{i}", "x", type="documentation") for i in range(20)]
        decisions = await asyncio.gather(*(router.route(t) for t in tasks))
        assert {d.task_id for d in decisions} == {t.task_id for t in tasks}
        assert len(router.get_context().active_routes) == 20


# ── Providers ──────────────────────────────────────────────────────


class TestProviders:
    @pytest.mark.asyncio()
    async def test_async_load_provider(self):
        async def busy_host() -> SystemLoad:
            return SystemLoad(cpu_usage=95, memory_usage=40)

        router = _make_router(load_provider=busy_host)
        decision = await router.route(create_task_profile("t-1", "x"))
        assert decision.rule_id == "system-overload"
        factors = {f.name: f for f in decision.factors}
        assert factors["systemLoad"].value == pytest.approx(0.675)

    @pytest.mark.asyncio()
    async def test_config_provider_is_consulted_per_decision(self):
        capacity = {"value": 5}

        def config() -> WorkerConfig:
            return WorkerConfig(local=LocalWorkerConfig(max_concurrent_tasks=capacity["value"]))

        router = _make_router(config_provider=config)
        await router.route(create_task_profile("a", "x"))
        capacity["value"] = 1
        decision = await router.route(create_task_profile("b", "x"))
        assert decision.rule_id == "queue-overflow"
        assert router.get_context().config.local.max_concurrent_tasks == 1

    @pytest.mark.asyncio()
    async def test_static_provider_updates(self):
        load = StaticLoadProvider()
        router = _make_router(load_provider=load)
        load.set(memory_usage=90)
        decision = await router.route(create_task_profile("t-1", "x"))
        assert decision.rule_id == "system-overload"


# ── History feedback ───────────────────────────────────────────────


class TestHistoryFeedback:
    def test_update_returns_copy_and_emits(self):
        router = _make_router()
        events = _collect(router)
        record = router.update_historical_performance(
            TaskType.FEATURE, WorkerMode.LOCAL, True, 20,
        )
        assert record.local_success_rate == pytest.approx(0.84)

        record.local_success_rate = 0.0
        live = router.get_context().historical_performance[TaskType.FEATURE]
        assert live.local_success_rate == pytest.approx(0.84)

        assert events[-1].type == EventType.PERFORMANCE_UPDATED
        assert events[-1].data["task_type"] == TaskType.FEATURE

    @pytest.mark.asyncio()
    async def test_history_changes_later_decisions(self):
        router = _make_router()
        task = create_task_profile("t-1", "Hotfix", priority="critical")

        first = await router.route(task)
        assert first.rule_id == "default-local"
        router.complete_route("t-1", success=True)

        router.update_historical_performance(TaskType.FEATURE, WorkerMode.CODESPACE, True, 25)
        second = await router.route(task)
        assert second.rule_id == "critical-priority"
        assert second.mode == WorkerMode.CODESPACE
        assert any(f.name == "historicalSuccess" for f in second.factors)
        assert second.cost.factors.failure > 0

    def test_success_rate_converges(self):
        router = _make_router()
        for _ in range(30):
            record = router.update_historical_performance(
                TaskType.BUGFIX, WorkerMode.CODESPACE, True, 10,
            )
        assert record.codespace_success_rate == pytest.approx(1.0, abs=1e-3)

    def test_smoothing_factor_from_settings(self):
        router = _make_router(settings=RouterSettings(smoothing_factor=0.5))
        record = router.update_historical_performance(
            TaskType.TEST, WorkerMode.LOCAL, False, 10,
        )
        assert record.local_success_rate == pytest.approx(0.4)


# ── Rule management ────────────────────────────────────────────────


class TestRuleManagement:
    @pytest.mark.asyncio()
    async def test_add_rule_takes_effect(self):
        router = _make_router()
        events = _collect(router)
        router.add_rule(_make_rule("docs-remote", 150, condition=Compare(
            field="task.type", op="eq", value="documentation",
        )))

        assert events[-1].type == EventType.RULE_ADDED
        decision = await router.route(create_task_profile("t-1", "Docs", type="documentation"))
        assert decision.rule_id == "docs-remote"

    def test_duplicate_rule_rejected_without_event(self):
        router = _make_router()
        events = _collect(router)
        with pytest.raises(ValueError):
            router.add_rule(_make_rule("gpu-required"))
        assert events == []

    @pytest.mark.asyncio()
    async def test_remove_rule(self):
        router = _make_router()
        events = _collect(router)
        removed = router.remove_rule("gpu-required")

        assert removed is not None
        assert events[-1].type == EventType.RULE_REMOVED
        assert router.remove_rule("gpu-required") is None
        assert len(events) == 1

        task = create_task_profile("t-1", "Train", resource_requirements={"gpu": True})
        assert (await router.route(task)).rule_id == "default-local"

    def test_get_rules_order(self):
        router = _make_router(rules=[_make_rule("top", 1000)])
        rules = router.get_rules()
        assert rules[0].id == "top"
        assert len(rules) == len(DEFAULT_ROUTING_RULES) + 1

    @pytest.mark.asyncio()
    async def test_without_defaults_everything_is_local(self):
        router = _make_router(include_default_rules=False)
        task = create_task_profile("t-1", "x", resource_requirements={"gpu": True})
        decision = await router.route(task)
        assert decision.rule_id == "default-local"
        assert decision.mode == WorkerMode.LOCAL


class TestEvents:
    @pytest.mark.asyncio()
    async def test_route_decided_payload(self):
        emitter = RouterEventEmitter()
        router = _make_router(emitter=emitter)
        task = create_task_profile("t-1", "x")
        decision = await router.route(task)

        event = emitter.history[-1]
        assert event.type == EventType.ROUTE_DECIDED
        assert event.data["task"] == task
        assert event.data["decision"] is decision
