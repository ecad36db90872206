"""Workflow dispatcher: the boundary API for starting, inspecting and signalling runs."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from .config import DurastepConfig, load_config
from .contracts import RetryPolicy, StepDefinition, WorkflowDefinition
from .execute import RetryExecutor
from .persistence import (
    ExecutionStatus,
    ExecutionSummary,
    StepStatus,
    WorkflowExecution,
    WorkflowRepository,
    get_repository,
)
from .registry import StepRegistry, WorkflowRegistry
from .scheduler import SignalResult, WorkflowScheduler
from .signals import SignalChannel

logger = logging.getLogger(__name__)


class StartedWorkflow(BaseModel):
    execution_id: str
    status: ExecutionStatus


class StepStats(BaseModel):
    total: int = 0
    successful: int = 0
    failed: int = 0


class WorkflowMetrics(BaseModel):
    """Aggregate view over every persisted execution."""

    total: int = 0
    running: int = 0
    paused: int = 0
    completed: int = 0
    failed: int = 0
    average_execution_seconds: float = 0.0
    step_stats: Dict[str, StepStats] = Field(default_factory=dict)


class WorkflowDispatcher:
    """Service owning the registries, the execution store and the scheduler.

    Args:
        repository: Execution store. Defaults to the configured backend.
        config: Loaded configuration; read from ``load_config`` when omitted.
    """

    def __init__(
        self,
        repository: Optional[WorkflowRepository] = None,
        config: Optional[DurastepConfig] = None,
    ) -> None:
        self.config = config or load_config()
        self.repository = repository or get_repository(config=self.config)
        self.steps = StepRegistry()
        self.workflows = WorkflowRegistry(self.steps)
        self.signals = SignalChannel(self.repository)
        default_policy = RetryPolicy(
            max_attempts=self.config.retry.max_attempts,
            backoff_base_ms=self.config.retry.backoff_base_ms,
        )
        self.scheduler = WorkflowScheduler(
            self.workflows,
            self.repository,
            executor=RetryExecutor(self.signals, default_policy),
            signals=self.signals,
        )

    # ------------------------------------------------------------------
    # Registration
    def register_step(self, step: StepDefinition) -> StepDefinition:
        return self.steps.register(step)

    def register_workflow(self, workflow: WorkflowDefinition) -> WorkflowDefinition:
        return self.workflows.register(workflow)

    # ------------------------------------------------------------------
    # Boundary operations
    async def start_workflow(self, workflow_id: str, input: Any = None) -> StartedWorkflow:
        """Start ``workflow_id`` and return without waiting for it to run.

        Raises:
            DefinitionNotFound: If no workflow is registered under the id.
        """
        execution = await self.scheduler.start(workflow_id, input)
        return StartedWorkflow(execution_id=execution.id, status=execution.status)

    async def get_execution(self, execution_id: str) -> Optional[WorkflowExecution]:
        return await self.repository.load(execution_id)

    async def list_executions(self) -> list[ExecutionSummary]:
        return [
            ExecutionSummary.from_execution(e) for e in await self.repository.list_all()
        ]

    async def signal(
        self, execution_id: str, signal_name: str, payload: Any = None
    ) -> SignalResult:
        """Deliver a signal. Unknown ids and finished executions are no-ops."""
        return await self.scheduler.resume(execution_id, signal_name, payload)

    async def purge(self, execution_id: str) -> bool:
        """Delete a finished execution together with its signal state."""
        execution = await self.repository.load(execution_id)
        if execution is None or not execution.is_terminal:
            return False
        logger.info(f"Purging execution_id={execution_id}")
        return await self.repository.delete(execution_id)

    async def get_metrics(self) -> WorkflowMetrics:
        executions = await self.repository.list_all()
        metrics = WorkflowMetrics(total=len(executions))
        durations = []
        for execution in executions:
            status = execution.status.value
            setattr(metrics, status, getattr(metrics, status) + 1)
            if execution.status == ExecutionStatus.COMPLETED and execution.completed_at:
                durations.append(
                    (execution.completed_at - execution.started_at).total_seconds()
                )
            for step in execution.steps:
                stats = metrics.step_stats.setdefault(step.step_id, StepStats())
                stats.total += 1
                if step.status == StepStatus.COMPLETED:
                    stats.successful += 1
                elif step.status == StepStatus.FAILED:
                    stats.failed += 1
        if durations:
            metrics.average_execution_seconds = round(sum(durations) / len(durations), 3)
        return metrics

    async def recover(self) -> list[str]:
        return await self.scheduler.recover()

    async def wait_for(self, execution_id: str) -> Optional[WorkflowExecution]:
        return await self.scheduler.wait_for(execution_id)
