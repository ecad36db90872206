"""Data models for persisted workflow state."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExecutionStatus(str, Enum):
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    RETRYING = "retrying"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({ExecutionStatus.COMPLETED, ExecutionStatus.FAILED})
ACTIVE_STEP_STATUSES = frozenset({StepStatus.RUNNING, StepStatus.RETRYING})


class LogEntry(BaseModel):
    """One line of a step's append-only attempt log."""

    timestamp: datetime = Field(default_factory=utcnow)
    message: str
    data: Any = None


class StepExecution(BaseModel):
    """Progress of a single step within one workflow execution."""

    step_id: str
    status: StepStatus = StepStatus.PENDING
    attempts: int = 0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error: Optional[str] = None
    output: Any = None
    logs: list[LogEntry] = Field(default_factory=list)

    def append_log(self, message: str, data: Any = None) -> LogEntry:
        entry = LogEntry(message=message, data=data)
        self.logs.append(entry)
        return entry


class WorkflowExecution(BaseModel):
    """Persisted run of a workflow definition."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    workflow_id: str
    status: ExecutionStatus = ExecutionStatus.RUNNING
    current_step: Optional[str] = None
    input: Any = None
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    steps: list[StepExecution] = Field(default_factory=list)

    @classmethod
    def new(
        cls, workflow_id: str, step_ids: list[str], initial_input: Any = None
    ) -> "WorkflowExecution":
        """Create a fresh execution with every step ``pending``."""
        return cls(
            workflow_id=workflow_id,
            input=initial_input,
            steps=[StepExecution(step_id=step_id) for step_id in step_ids],
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def output(self) -> Any:
        """Output of the final step once the execution has completed."""
        if self.status != ExecutionStatus.COMPLETED or not self.steps:
            return None
        return self.steps[-1].output

    def step(self, step_id: str) -> Optional[StepExecution]:
        return next((s for s in self.steps if s.step_id == step_id), None)

    def active_steps(self) -> list[StepExecution]:
        """Steps currently ``running`` or ``retrying``."""
        return [s for s in self.steps if s.status in ACTIVE_STEP_STATUSES]

    def failed_step(self) -> Optional[StepExecution]:
        return next((s for s in self.steps if s.status == StepStatus.FAILED), None)


class ExecutionSummary(BaseModel):
    """Lightweight listing view of an execution."""

    id: str
    workflow_id: str
    status: ExecutionStatus
    current_step: Optional[str] = None
    started_at: datetime
    completed_at: Optional[datetime] = None

    @classmethod
    def from_execution(cls, execution: WorkflowExecution) -> "ExecutionSummary":
        return cls(
            id=execution.id,
            workflow_id=execution.workflow_id,
            status=execution.status,
            current_step=execution.current_step,
            started_at=execution.started_at,
            completed_at=execution.completed_at,
        )


class SignalRecord(BaseModel):
    """Signal delivered to an execution, keyed by ``name``."""

    name: str
    payload: Any = None
    received_at: datetime = Field(default_factory=utcnow)
