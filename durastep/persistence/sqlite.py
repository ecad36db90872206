"""SQLite implementation of the workflow repository."""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Sequence, Tuple

from ..errors import StoreWriteFailure
from .models import SignalRecord, WorkflowExecution
from .repository import WorkflowRepository

logger = logging.getLogger(__name__)

Statement = Tuple[str, Sequence[Any]]


class SQLiteWorkflowRepository(WorkflowRepository):
    """Persist execution state using SQLite.

    Each execution is one row; its step records are stored as a JSON document
    so a save replaces the whole aggregate in a single statement.
    """

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        if self.db_path != ":memory:":
            cur.execute("PRAGMA journal_mode = WAL")
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS executions (
                id TEXT PRIMARY KEY,
                workflow_id TEXT NOT NULL,
                status TEXT NOT NULL,
                current_step TEXT,
                input TEXT,
                started_at TEXT NOT NULL,
                completed_at TEXT,
                steps_data TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS signals (
                execution_id TEXT NOT NULL,
                name TEXT NOT NULL,
                payload TEXT,
                received_at TEXT NOT NULL,
                PRIMARY KEY (execution_id, name)
            )
            """
        )
        cur.execute(
            "CREATE INDEX IF NOT EXISTS idx_executions_status ON executions(status)"
        )
        self._conn.commit()

    def close(self) -> None:
        self._conn.close()

    # ------------------------------------------------------------------
    # Helper methods
    def _write(self, *statements: Statement) -> None:
        with self._lock:
            try:
                with self._conn:
                    for query, params in statements:
                        self._conn.execute(query, params)
            except sqlite3.Error as exc:
                logger.error(f"SQLite write to {self.db_path} failed: {exc}")
                raise StoreWriteFailure(str(exc)) from exc

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchall()

    @staticmethod
    def _row_to_execution(row: sqlite3.Row) -> WorkflowExecution:
        return WorkflowExecution.model_validate(
            {
                "id": row["id"],
                "workflow_id": row["workflow_id"],
                "status": row["status"],
                "current_step": row["current_step"],
                "input": json.loads(row["input"]) if row["input"] else None,
                "started_at": datetime.fromisoformat(row["started_at"]),
                "completed_at": datetime.fromisoformat(row["completed_at"])
                if row["completed_at"]
                else None,
                "steps": json.loads(row["steps_data"]),
            }
        )

    # ------------------------------------------------------------------
    # Repository API
    async def save(self, execution: WorkflowExecution) -> None:
        data = execution.model_dump(mode="json")
        await asyncio.to_thread(
            self._write,
            (
                """
                INSERT OR REPLACE INTO executions
                (id, workflow_id, status, current_step, input, started_at, completed_at, steps_data)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    execution.id,
                    execution.workflow_id,
                    data["status"],
                    execution.current_step,
                    json.dumps(data["input"]),
                    execution.started_at.isoformat(),
                    execution.completed_at.isoformat()
                    if execution.completed_at
                    else None,
                    json.dumps(data["steps"]),
                ),
            ),
        )

    async def load(self, execution_id: str) -> WorkflowExecution | None:
        row = await asyncio.to_thread(
            self._fetchone, "SELECT * FROM executions WHERE id = ?", execution_id
        )
        if not row:
            return None
        return self._row_to_execution(row)

    async def list_all(self) -> list[WorkflowExecution]:
        rows = await asyncio.to_thread(
            self._fetchall, "SELECT * FROM executions ORDER BY started_at DESC"
        )
        return [self._row_to_execution(row) for row in rows]

    async def delete(self, execution_id: str) -> bool:
        existing = await asyncio.to_thread(
            self._fetchone, "SELECT id FROM executions WHERE id = ?", execution_id
        )
        await asyncio.to_thread(
            self._write,
            ("DELETE FROM signals WHERE execution_id = ?", (execution_id,)),
            ("DELETE FROM executions WHERE id = ?", (execution_id,)),
        )
        return existing is not None

    async def save_signal(self, execution_id: str, signal: SignalRecord) -> None:
        await asyncio.to_thread(
            self._write,
            (
                """
                INSERT OR REPLACE INTO signals (execution_id, name, payload, received_at)
                VALUES (?, ?, ?, ?)
                """,
                (
                    execution_id,
                    signal.name,
                    json.dumps(signal.model_dump(mode="json")["payload"]),
                    signal.received_at.isoformat(),
                ),
            ),
        )

    async def load_signals(self, execution_id: str) -> dict[str, SignalRecord]:
        rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT name, payload, received_at FROM signals WHERE execution_id = ?",
            execution_id,
        )
        return {
            row["name"]: SignalRecord(
                name=row["name"],
                payload=json.loads(row["payload"]) if row["payload"] else None,
                received_at=datetime.fromisoformat(row["received_at"]),
            )
            for row in rows
        }
