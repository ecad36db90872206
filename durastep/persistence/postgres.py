"""PostgreSQL implementation of the workflow repository."""

from __future__ import annotations

import json
import logging
from typing import Any

import asyncpg

from ..errors import StoreWriteFailure
from .models import SignalRecord, WorkflowExecution
from .repository import WorkflowRepository

logger = logging.getLogger(__name__)


def _jsonb(value: Any) -> Any:
    # asyncpg returns JSONB columns as text unless a codec is registered
    return json.loads(value) if isinstance(value, str) else value


class PostgresWorkflowRepository(WorkflowRepository):
    """Persist execution state using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        if not self._initialized:
            await self._ensure_schema(conn)
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS executions (
                id TEXT PRIMARY KEY,
                workflow_id TEXT NOT NULL,
                status TEXT NOT NULL,
                current_step TEXT,
                input JSONB,
                started_at TIMESTAMPTZ NOT NULL,
                completed_at TIMESTAMPTZ,
                steps_data JSONB NOT NULL
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS signals (
                execution_id TEXT NOT NULL,
                name TEXT NOT NULL,
                payload JSONB,
                received_at TIMESTAMPTZ NOT NULL,
                PRIMARY KEY (execution_id, name)
            )
            """
        )

    async def _write(self, query: str, *params: Any) -> None:
        try:
            conn = await self._connect()
        except (OSError, asyncpg.PostgresError) as exc:
            raise StoreWriteFailure(f"cannot connect to PostgreSQL: {exc}") from exc
        try:
            await conn.execute(query, *params)
        except asyncpg.PostgresError as exc:
            logger.error(f"PostgreSQL write failed: {exc}")
            raise StoreWriteFailure(str(exc)) from exc
        finally:
            await conn.close()

    @staticmethod
    def _row_to_execution(row: asyncpg.Record) -> WorkflowExecution:
        return WorkflowExecution.model_validate(
            {
                "id": row["id"],
                "workflow_id": row["workflow_id"],
                "status": row["status"],
                "current_step": row["current_step"],
                "input": _jsonb(row["input"]),
                "started_at": row["started_at"],
                "completed_at": row["completed_at"],
                "steps": _jsonb(row["steps_data"]),
            }
        )

    # ------------------------------------------------------------------
    async def save(self, execution: WorkflowExecution) -> None:
        data = execution.model_dump(mode="json")
        await self._write(
            """
            INSERT INTO executions
            (id, workflow_id, status, current_step, input, started_at, completed_at, steps_data)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
            ON CONFLICT (id) DO UPDATE SET
                status = EXCLUDED.status,
                current_step = EXCLUDED.current_step,
                input = EXCLUDED.input,
                completed_at = EXCLUDED.completed_at,
                steps_data = EXCLUDED.steps_data
            """,
            execution.id,
            execution.workflow_id,
            data["status"],
            execution.current_step,
            json.dumps(data["input"]),
            execution.started_at,
            execution.completed_at,
            json.dumps(data["steps"]),
        )

    async def load(self, execution_id: str) -> WorkflowExecution | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                "SELECT * FROM executions WHERE id = $1", execution_id
            )
        finally:
            await conn.close()
        if not row:
            return None
        return self._row_to_execution(row)

    async def list_all(self) -> list[WorkflowExecution]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                "SELECT * FROM executions ORDER BY started_at DESC"
            )
        finally:
            await conn.close()
        return [self._row_to_execution(r) for r in rows]

    async def delete(self, execution_id: str) -> bool:
        conn = await self._connect()
        try:
            async with conn.transaction():
                await conn.execute(
                    "DELETE FROM signals WHERE execution_id = $1", execution_id
                )
                status = await conn.execute(
                    "DELETE FROM executions WHERE id = $1", execution_id
                )
        except asyncpg.PostgresError as exc:
            raise StoreWriteFailure(str(exc)) from exc
        finally:
            await conn.close()
        return status != "DELETE 0"

    async def save_signal(self, execution_id: str, signal: SignalRecord) -> None:
        await self._write(
            """
            INSERT INTO signals (execution_id, name, payload, received_at)
            VALUES ($1, $2, $3, $4)
            ON CONFLICT (execution_id, name) DO UPDATE SET
                payload = EXCLUDED.payload,
                received_at = EXCLUDED.received_at
            """,
            execution_id,
            signal.name,
            json.dumps(signal.model_dump(mode="json")["payload"]),
            signal.received_at,
        )

    async def load_signals(self, execution_id: str) -> dict[str, SignalRecord]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                "SELECT name, payload, received_at FROM signals WHERE execution_id = $1",
                execution_id,
            )
        finally:
            await conn.close()
        return {
            r["name"]: SignalRecord(
                name=r["name"],
                payload=_jsonb(r["payload"]),
                received_at=r["received_at"],
            )
            for r in rows
        }
