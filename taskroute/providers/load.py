"""System load providers.

The router does not measure the host itself; it asks a load provider
for a SystemLoad snapshot before each decision. Any callable returning
a SystemLoad, or an awaitable of one, can serve as a provider.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

from taskroute.schemas.routing import SystemLoad

LoadProvider = Callable[[], SystemLoad | Awaitable[SystemLoad]]


class StaticLoadProvider:
    """Provider returning a settable snapshot. Defaults to an idle host."""

    def __init__(self, load: SystemLoad | None = None) -> None:
        self._load = load or SystemLoad()

    def set(self, **fields: Any) -> None:
        """Update fields of the snapshot (validated)."""
        self._load = SystemLoad(**{**self._load.model_dump(), **fields})

    def __call__(self) -> SystemLoad:
        return self._load.model_copy()
