"""Composition root.

Builds the one router a process should share, wired to the configured
settings, worker configuration provider, extra rules and (optionally)
a persistent route store.
"""

from __future__ import annotations

import logging
from pathlib import Path

from taskroute.events import RouterEventEmitter
from taskroute.persistence.store import RouteStore
from taskroute.providers.load import LoadProvider
from taskroute.providers.registry import (
    EnvConfigProvider,
    load_router_settings,
    load_worker_config,
)
from taskroute.routing.engine import TaskRouter
from taskroute.routing.history import HistoryTracker
from taskroute.routing.rules import load_rules

logger = logging.getLogger(__name__)


def build_router(
    config_path: Path | None = None,
    rules_path: Path | None = None,
    load_provider: LoadProvider | None = None,
    emitter: RouterEventEmitter | None = None,
    history: HistoryTracker | None = None,
) -> TaskRouter:
    """Construct a fully configured TaskRouter.

    Args:
        config_path: TOML file with ``[router]`` and ``[workers]``
            sections. Defaults to the packaged defaults.toml.
        rules_path: Optional TOML file with extra ``[[rules]]``.
        load_provider: System load source. Defaults to an idle host.
        emitter: Event emitter to publish on.
        history: Pre-populated history tracker.
    """
    settings = load_router_settings(config_path)
    base_config = load_worker_config(config_path)
    extra_rules = load_rules(rules_path) if rules_path else []
    if extra_rules:
        logger.info("Loaded %d routing rules from %s", len(extra_rules), rules_path)

    return TaskRouter(
        extra_rules,
        settings=settings,
        load_provider=load_provider,
        config_provider=EnvConfigProvider(base_config),
        emitter=emitter,
        history=history or HistoryTracker(
            smoothing_factor=settings.smoothing_factor,
            failure_reason_limit=settings.failure_reason_limit,
        ),
    )


async def connect_store(router: TaskRouter, store: RouteStore) -> int:
    """Seed the router's history from ``store`` and persist its events.

    Returns the number of history records loaded.
    """
    records = await store.load_performance()
    router.history.load(records)
    store.attach(router.emitter)
    logger.debug("Loaded %d history records from the route store", len(records))
    return len(records)
