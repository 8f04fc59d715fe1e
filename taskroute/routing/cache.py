"""Short-lived memo of routing decisions, keyed by task id.

Entries expire by timestamp comparison when they are next read; there
is no background timer.
"""

from __future__ import annotations

import time
from collections.abc import Callable

from taskroute.schemas.routing import RoutingDecision

DEFAULT_CACHE_LIFETIME = 60.0


class DecisionCache:
    """TTL cache of routing decisions.

    Args:
        lifetime: Seconds an entry stays fresh.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        lifetime: float = DEFAULT_CACHE_LIFETIME,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._lifetime = lifetime
        self._clock = clock
        self._entries: dict[str, tuple[RoutingDecision, float]] = {}

    @property
    def lifetime(self) -> float:
        return self._lifetime

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._entries

    def get(self, task_id: str) -> RoutingDecision | None:
        """Return the fresh decision for ``task_id``, evicting a stale one."""
        entry = self._entries.get(task_id)
        if entry is None:
            return None
        decision, stored_at = entry
        if self._clock() - stored_at < self._lifetime:
            return decision
        # the entry may already be gone if it was invalidated meanwhile
        self._entries.pop(task_id, None)
        return None

    def put(self, task_id: str, decision: RoutingDecision) -> None:
        self._entries[task_id] = (decision, self._clock())

    def invalidate(self, task_id: str) -> bool:
        """Drop the entry for ``task_id``. Returns whether one existed."""
        return self._entries.pop(task_id, None) is not None

    def clear(self) -> int:
        """Drop every entry. Returns how many were dropped."""
        count = len(self._entries)
        self._entries.clear()
        return count
