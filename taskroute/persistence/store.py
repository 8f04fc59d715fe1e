"""Route store for the decision audit trail and learned history.

Provides the RouteStore class that wraps low-level database operations
with Pydantic schema serialization/deserialization, and can subscribe
to a router's events so every decision, completion and history update
is persisted as it happens.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime

import aiosqlite
from pydantic import BaseModel, Field

from taskroute.events import EventType, RouterEvent, RouterEventEmitter
from taskroute.schemas.routing import HistoricalPerformance, RoutingDecision, WorkerMode
from taskroute.schemas.task import TaskProfile, TaskType

logger = logging.getLogger(__name__)


class DecisionRecord(BaseModel):
    """A persisted routing decision and its outcome, if known."""

    task_id: str
    task_type: TaskType
    rule_id: str
    mode: WorkerMode
    reason: str = ""
    confidence: float = 0.0
    estimated_cost: float = 0.0
    estimated_duration: float = 0.0
    decided_at: datetime
    completed_at: datetime | None = None
    success: bool | None = Field(default=None, description="None while in flight")


class RouteStore:
    """Persistent routing store backed by SQLite.

    All methods are async and operate on an aiosqlite connection
    initialized by database.init_db().
    """

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def save_decision(self, task: TaskProfile, decision: RoutingDecision) -> None:
        """Append a routing decision to the audit trail."""
        await self._db.execute(
            """
            INSERT INTO route_decisions
                (task_id, task_type, rule_id, mode, reason, confidence,
                 estimated_cost, estimated_duration, decision_json, decided_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                decision.task_id,
                task.type.value,
                decision.rule_id,
                decision.mode.value,
                decision.reason,
                decision.confidence,
                decision.estimated_cost,
                decision.estimated_duration,
                decision.model_dump_json(),
                decision.decided_at.isoformat(),
            ),
        )
        await self._db.commit()
        logger.debug("Saved decision for task %s", decision.task_id)

    async def mark_completed(self, task_id: str, success: bool) -> bool:
        """Record the outcome of the most recent open decision for a task.

        Returns True if an open decision was found.
        """
        cursor = await self._db.execute(
            """
            UPDATE route_decisions
               SET completed_at = ?, success = ?
             WHERE id = (
                SELECT id FROM route_decisions
                 WHERE task_id = ? AND completed_at IS NULL
                 ORDER BY id DESC LIMIT 1
             )
            """,
            (datetime.now(UTC).isoformat(), int(success), task_id),
        )
        await self._db.commit()
        return cursor.rowcount > 0

    async def save_performance(self, record: HistoricalPerformance) -> None:
        """Insert or replace the history for one task type."""
        await self._db.execute(
            """
            INSERT OR REPLACE INTO historical_performance
                (task_type, local_success_rate, codespace_success_rate,
                 local_avg_duration, codespace_avg_duration,
                 local_failure_reasons, codespace_failure_reasons, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.task_type.value,
                record.local_success_rate,
                record.codespace_success_rate,
                record.local_avg_duration,
                record.codespace_avg_duration,
                json.dumps(record.local_failure_reasons),
                json.dumps(record.codespace_failure_reasons),
                datetime.now(UTC).isoformat(),
            ),
        )
        await self._db.commit()

    async def load_performance(self) -> list[HistoricalPerformance]:
        """Read every stored history record."""
        self._db.row_factory = aiosqlite.Row
        async with self._db.execute(
            "SELECT * FROM historical_performance ORDER BY task_type",
        ) as cursor:
            rows = await cursor.fetchall()

        return [
            HistoricalPerformance(
                task_type=TaskType(row["task_type"]),
                local_success_rate=row["local_success_rate"],
                codespace_success_rate=row["codespace_success_rate"],
                local_avg_duration=row["local_avg_duration"],
                codespace_avg_duration=row["codespace_avg_duration"],
                local_failure_reasons=json.loads(row["local_failure_reasons"]),
                codespace_failure_reasons=json.loads(row["codespace_failure_reasons"]),
            )
            for row in rows
        ]

    async def list_decisions(
        self,
        limit: int = 20,
        mode: WorkerMode | None = None,
    ) -> list[DecisionRecord]:
        """List decisions, most recent first, optionally filtered by mode."""
        query = "SELECT * FROM route_decisions"
        params: list[object] = []
        if mode is not None:
            query += " WHERE mode = ?"
            params.append(mode.value)
        query += " ORDER BY id DESC LIMIT ?"
        params.append(limit)

        self._db.row_factory = aiosqlite.Row
        async with self._db.execute(query, params) as cursor:
            rows = await cursor.fetchall()

        return [
            DecisionRecord(
                task_id=row["task_id"],
                task_type=TaskType(row["task_type"]),
                rule_id=row["rule_id"],
                mode=WorkerMode(row["mode"]),
                reason=row["reason"],
                confidence=row["confidence"],
                estimated_cost=row["estimated_cost"],
                estimated_duration=row["estimated_duration"],
                decided_at=datetime.fromisoformat(row["decided_at"]),
                completed_at=(
                    datetime.fromisoformat(row["completed_at"])
                    if row["completed_at"] else None
                ),
                success=None if row["success"] is None else bool(row["success"]),
            )
            for row in rows
        ]

    def attach(self, emitter: RouterEventEmitter) -> None:
        """Persist router events as they are emitted."""
        emitter.add_listener(self.handle_event)

    async def handle_event(self, event: RouterEvent) -> None:
        """Write one router event to the database, if it is persisted."""
        if event.type == EventType.ROUTE_DECIDED:
            await self.save_decision(event.data["task"], event.data["decision"])
        elif event.type == EventType.ROUTE_COMPLETED:
            await self.mark_completed(event.data["task_id"], event.data["success"])
        elif event.type == EventType.PERFORMANCE_UPDATED:
            await self.save_performance(event.data["history"])
