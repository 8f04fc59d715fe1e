"""SQLite database layer for routing persistence.

Manages the SQLite database connection and schema creation. Uses
aiosqlite for async access with WAL mode for concurrent read
performance.
"""

from __future__ import annotations

import logging
from pathlib import Path

import aiosqlite

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = "~/.taskroute/routes.db"

# SQL schema for the routing database
_SCHEMA = """
CREATE TABLE IF NOT EXISTS route_decisions (
    id                 INTEGER PRIMARY KEY AUTOINCREMENT,
    task_id            TEXT NOT NULL,
    task_type          TEXT NOT NULL,
    rule_id            TEXT NOT NULL,
    mode               TEXT NOT NULL,
    reason             TEXT NOT NULL DEFAULT '',
    confidence         REAL NOT NULL DEFAULT 0.0,
    estimated_cost     REAL NOT NULL DEFAULT 0.0,
    estimated_duration REAL NOT NULL DEFAULT 0.0,
    decision_json      TEXT NOT NULL,
    decided_at         TEXT NOT NULL,
    completed_at       TEXT,
    success            INTEGER
);

CREATE TABLE IF NOT EXISTS historical_performance (
    task_type                 TEXT PRIMARY KEY,
    local_success_rate        REAL NOT NULL,
    codespace_success_rate    REAL NOT NULL,
    local_avg_duration        REAL NOT NULL,
    codespace_avg_duration    REAL NOT NULL,
    local_failure_reasons     TEXT NOT NULL DEFAULT '[]',
    codespace_failure_reasons TEXT NOT NULL DEFAULT '[]',
    updated_at                TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_decisions_task ON route_decisions(task_id);
CREATE INDEX IF NOT EXISTS idx_decisions_decided ON route_decisions(decided_at);
"""


async def init_db(db_path: str = DEFAULT_DB_PATH) -> aiosqlite.Connection:
    """Initialize the database connection and create tables if needed.

    Creates parent directories if they don't exist, enables WAL mode,
    then runs the schema DDL.

    Args:
        db_path: Path to the SQLite database file. Supports ~ expansion
            and ``:memory:``.

    Returns:
        An open aiosqlite connection ready for use.
    """
    if db_path == ":memory:":
        target = db_path
    else:
        resolved = Path(db_path).expanduser()
        resolved.parent.mkdir(parents=True, exist_ok=True)
        target = str(resolved)

    db = await aiosqlite.connect(target)
    await db.execute("PRAGMA journal_mode=WAL")
    await db.executescript(_SCHEMA)
    await db.commit()

    logger.info("Routing database initialized at %s", target)
    return db


async def close_db(db: aiosqlite.Connection) -> None:
    """Close the database connection."""
    await db.close()
