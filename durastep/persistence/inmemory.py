"""In-memory implementation of the workflow repository."""

from __future__ import annotations

from typing import Dict

from .models import SignalRecord, WorkflowExecution
from .repository import WorkflowRepository


class InMemoryWorkflowRepository(WorkflowRepository):
    """Store execution state in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts. Records are copied on the way in and
    out so callers mutating a loaded execution never affect the stored one.
    """

    def __init__(self) -> None:
        self._executions: Dict[str, WorkflowExecution] = {}
        self._signals: Dict[str, Dict[str, SignalRecord]] = {}

    # ------------------------------------------------------------------
    async def save(self, execution: WorkflowExecution) -> None:
        self._executions[execution.id] = execution.model_copy(deep=True)

    async def load(self, execution_id: str) -> WorkflowExecution | None:
        execution = self._executions.get(execution_id)
        return execution.model_copy(deep=True) if execution else None

    async def list_all(self) -> list[WorkflowExecution]:
        executions = sorted(
            self._executions.values(), key=lambda e: e.started_at, reverse=True
        )
        return [e.model_copy(deep=True) for e in executions]

    async def delete(self, execution_id: str) -> bool:
        self._signals.pop(execution_id, None)
        return self._executions.pop(execution_id, None) is not None

    async def save_signal(self, execution_id: str, signal: SignalRecord) -> None:
        self._signals.setdefault(execution_id, {})[signal.name] = signal.model_copy(
            deep=True
        )

    async def load_signals(self, execution_id: str) -> dict[str, SignalRecord]:
        return {
            name: record.model_copy(deep=True)
            for name, record in self._signals.get(execution_id, {}).items()
        }
