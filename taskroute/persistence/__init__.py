"""taskroute persistence layer.

Provides SQLite-backed storage for the routing decision audit trail
and the learned per-task-type performance history.
"""

from taskroute.persistence.database import DEFAULT_DB_PATH, close_db, init_db
from taskroute.persistence.store import DecisionRecord, RouteStore

__all__ = [
    "DEFAULT_DB_PATH",
    "DecisionRecord",
    "RouteStore",
    "close_db",
    "init_db",
]
