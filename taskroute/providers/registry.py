"""Worker configuration and router settings loader.

Loads the router's tunables and the worker configuration from
defaults.toml, and provides the environment-aware configuration
provider the router refreshes before every decision.
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path
from typing import Any

from taskroute.schemas.config import RouterSettings, WorkerConfig

logger = logging.getLogger(__name__)

# Default config directory relative to the taskroute package
_CONFIG_DIR = Path(__file__).parent.parent / "config"

DEFAULT_CONFIG_PATH = _CONFIG_DIR / "defaults.toml"

# Environment overrides applied on every configuration refresh
ENV_MAX_CONCURRENT_TASKS = "TASKROUTE_LOCAL_MAX_CONCURRENT_TASKS"
ENV_CODESPACE_MACHINE = "TASKROUTE_CODESPACE_MACHINE"


def _read_toml(config_path: Path | None) -> tuple[Path, dict[str, Any]]:
    path = config_path or DEFAULT_CONFIG_PATH
    if not path.exists():
        raise FileNotFoundError(f"Configuration not found: {path}")
    with open(path, "rb") as f:
        return path, tomllib.load(f)


def load_router_settings(config_path: Path | None = None) -> RouterSettings:
    """Load router tunables from the ``[router]`` section.

    Missing keys fall back to RouterSettings defaults.

    Raises:
        FileNotFoundError: If the config file does not exist.
        ValueError: If ``[router]`` is not a table.
    """
    path, raw = _read_toml(config_path)
    section = raw.get("router", {})
    if not isinstance(section, dict):
        raise ValueError(f"[router] in {path} must be a table")
    return RouterSettings(**section)


def load_worker_config(config_path: Path | None = None) -> WorkerConfig:
    """Load the worker configuration from the ``[workers]`` section.

    Raises:
        FileNotFoundError: If the config file does not exist.
        ValueError: If ``[workers]`` is not a table.
    """
    path, raw = _read_toml(config_path)
    section = raw.get("workers", {})
    if not isinstance(section, dict):
        raise ValueError(f"[workers] in {path} must be a table")
    return WorkerConfig(**section)


def apply_env_overrides(
    config: WorkerConfig,
    environ: dict[str, str] | None = None,
) -> WorkerConfig:
    """Return a copy of ``config`` with environment overrides applied.

    An unparseable queue capacity is logged and ignored.
    """
    env = os.environ if environ is None else environ
    local = config.local
    codespace = config.codespace

    raw_capacity = env.get(ENV_MAX_CONCURRENT_TASKS)
    if raw_capacity:
        try:
            capacity = int(raw_capacity)
            if capacity < 1:
                raise ValueError(capacity)
        except ValueError:
            logger.warning(
                "Ignoring %s=%r: expected a positive integer",
                ENV_MAX_CONCURRENT_TASKS, raw_capacity,
            )
        else:
            local = local.model_copy(update={"max_concurrent_tasks": capacity})

    machine = env.get(ENV_CODESPACE_MACHINE)
    if machine:
        codespace = codespace.model_copy(update={"machine": machine})

    return config.model_copy(update={"local": local, "codespace": codespace})


class EnvConfigProvider:
    """Worker configuration provider honouring environment overrides.

    Called by the router before each decision, so changing an override
    affects the next decision without rebuilding the router.
    """

    def __init__(self, base: WorkerConfig | None = None) -> None:
        self._base = base or WorkerConfig()

    @property
    def base(self) -> WorkerConfig:
        return self._base

    def __call__(self) -> WorkerConfig:
        return apply_env_overrides(self._base)
