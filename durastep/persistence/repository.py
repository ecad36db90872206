"""Repository abstraction for workflow execution persistence."""

from __future__ import annotations

from typing import Protocol

from .models import SignalRecord, WorkflowExecution


class WorkflowRepository(Protocol):
    """Protocol for execution store backends.

    Every write must be atomic per record: readers never observe a partially
    written execution.
    """

    async def save(self, execution: WorkflowExecution) -> None:
        """Insert or replace the execution keyed by its id."""

    async def load(self, execution_id: str) -> WorkflowExecution | None:
        """Retrieve the execution by id."""

    async def list_all(self) -> list[WorkflowExecution]:
        """Return all persisted executions, newest first."""

    async def delete(self, execution_id: str) -> bool:
        """Remove the execution and its signals. Returns ``False`` if absent."""

    async def save_signal(self, execution_id: str, signal: SignalRecord) -> None:
        """Insert or replace the signal named ``signal.name`` for the execution."""

    async def load_signals(self, execution_id: str) -> dict[str, SignalRecord]:
        """Return the execution's signals keyed by name."""
