"""Context providers consulted by the router before each decision.

System load snapshots come from a load provider; worker configuration
comes from a configuration provider backed by defaults.toml and
environment overrides.
"""

from taskroute.providers.load import LoadProvider, StaticLoadProvider
from taskroute.providers.registry import (
    DEFAULT_CONFIG_PATH,
    EnvConfigProvider,
    apply_env_overrides,
    load_router_settings,
    load_worker_config,
)

__all__ = [
    "DEFAULT_CONFIG_PATH",
    "EnvConfigProvider",
    "LoadProvider",
    "StaticLoadProvider",
    "apply_env_overrides",
    "load_router_settings",
    "load_worker_config",
]
