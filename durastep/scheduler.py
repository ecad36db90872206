"""Workflow scheduler: drives executions through their steps."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from enum import Enum
from functools import partial
from typing import Any, AsyncIterator, Dict, Optional, Set

from .contracts import Pause, Success, WorkflowDefinition
from .errors import InvalidExecutionState
from .execute import RetryExecutor
from .persistence import WorkflowRepository
from .persistence.models import (
    ExecutionStatus,
    StepStatus,
    WorkflowExecution,
    utcnow,
)
from .registry import WorkflowRegistry
from .signals import SignalChannel

logger = logging.getLogger(__name__)


class SignalResult(str, Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    IGNORED = "ignored"


class WorkflowScheduler:
    """Runs workflow executions step by step and persists every transition.

    Only one coroutine drives a given execution at a time: ``execute``,
    ``resume`` and background runs all take the execution's lock and reload
    the latest persisted record once they hold it.
    """

    def __init__(
        self,
        workflows: WorkflowRegistry,
        repository: WorkflowRepository,
        executor: Optional[RetryExecutor] = None,
        signals: Optional[SignalChannel] = None,
    ) -> None:
        self._workflows = workflows
        self._repository = repository
        self._signals = signals or SignalChannel(repository)
        self._executor = executor or RetryExecutor(self._signals)
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}
        self._tasks: Dict[str, Set[asyncio.Task]] = {}

    # ------------------------------------------------------------------
    # Public API
    async def start(self, workflow_id: str, initial_input: Any = None) -> WorkflowExecution:
        """Persist a new execution and begin running it in the background."""
        definition = self._workflows.resolve(workflow_id)
        execution = WorkflowExecution.new(
            definition.id, definition.step_ids, initial_input
        )
        await self._repository.save(execution)
        logger.info(f"Started workflow {workflow_id} with execution_id={execution.id}")
        self._spawn(execution.id)
        return execution

    async def execute(
        self, execution: WorkflowExecution, initial_input: Any = None
    ) -> WorkflowExecution:
        """Advance ``execution`` until it completes, fails or pauses.

        Steps already ``completed`` are skipped and their stored output is
        carried forward, so calling this again after a restart re-runs only
        the unfinished steps. Executions that are not ``running`` are left
        untouched.

        When a record with the same id is already stored, the stored record is
        driven instead of ``execution`` and its final state is copied back
        onto ``execution``.
        """
        async with self._locked(execution.id):
            stored = await self._repository.load(execution.id)
            if stored is None:
                await self._drive(execution, initial_input)
                return execution
            await self._drive(
                stored, initial_input if initial_input is not None else stored.input
            )
        for field in type(execution).model_fields:
            setattr(execution, field, getattr(stored, field))
        return execution

    async def resume(
        self, execution_id: str, signal_name: str, payload: Any = None
    ) -> SignalResult:
        """Deliver a signal and continue the execution in the background.

        A ``running`` execution with a queued background run only records the
        signal; one left ``running`` with no run in flight is re-driven like a
        paused one.
        """
        async with self._locked(execution_id):
            execution = await self._repository.load(execution_id)
            if execution is None:
                logger.info(
                    f"Ignoring signal '{signal_name}' for unknown execution_id={execution_id}"
                )
                return SignalResult.NOT_FOUND
            if execution.is_terminal:
                logger.info(
                    f"Ignoring signal '{signal_name}' for execution_id={execution_id}"
                    f" in terminal status {execution.status.value}"
                )
                return SignalResult.IGNORED

            await self._signals.send(execution_id, signal_name, payload)

            if execution.status == ExecutionStatus.RUNNING and self._is_driven(execution_id):
                # the queued background run will see the signal
                return SignalResult.OK

            waiting = execution.step(execution.current_step) if execution.current_step else None
            if waiting is not None and waiting.status != StepStatus.COMPLETED:
                waiting.status = StepStatus.PENDING
                waiting.error = None
            execution.status = ExecutionStatus.RUNNING
            await self._repository.save(execution)
            logger.info(
                f"Resuming execution_id={execution_id} at step {execution.current_step}"
                f" after signal '{signal_name}'"
            )

        self._spawn(execution_id)
        return SignalResult.OK

    async def recover(self) -> list[str]:
        """Restart every persisted execution left ``running`` by a previous process."""
        recovered = []
        for execution in await self._repository.list_all():
            if execution.status != ExecutionStatus.RUNNING:
                continue
            if execution.workflow_id not in self._workflows:
                logger.warning(
                    f"Cannot recover execution_id={execution.id}: workflow"
                    f" {execution.workflow_id} is not registered"
                )
                continue
            logger.info(f"Recovering execution_id={execution.id}")
            self._spawn(execution.id)
            recovered.append(execution.id)
        return recovered

    async def wait_for(self, execution_id: str) -> Optional[WorkflowExecution]:
        """Wait for background runs of ``execution_id`` and return its latest state."""
        while self._tasks.get(execution_id):
            await asyncio.gather(*list(self._tasks[execution_id]), return_exceptions=True)
        return await self._repository.load(execution_id)

    async def wait_all(self) -> None:
        while self._tasks:
            tasks = [t for group in self._tasks.values() for t in group]
            await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Internals
    @asynccontextmanager
    async def _locked(self, execution_id: str) -> AsyncIterator[None]:
        """Hold the execution's lock; the lock is dropped once nobody waits on it."""
        lock = self._locks.get(execution_id)
        if lock is None:
            lock = self._locks[execution_id] = asyncio.Lock()
        self._lock_users[execution_id] = self._lock_users.get(execution_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[execution_id] -= 1
            if not self._lock_users[execution_id]:
                del self._lock_users[execution_id]
                del self._locks[execution_id]

    def _is_driven(self, execution_id: str) -> bool:
        return any(not task.done() for task in self._tasks.get(execution_id, ()))

    def _spawn(self, execution_id: str) -> asyncio.Task:
        task = asyncio.create_task(
            self._run(execution_id), name=f"durastep-execution-{execution_id}"
        )
        self._tasks.setdefault(execution_id, set()).add(task)
        task.add_done_callback(partial(self._on_task_done, execution_id))
        return task

    def _on_task_done(self, execution_id: str, task: asyncio.Task) -> None:
        group = self._tasks.get(execution_id)
        if group is not None:
            group.discard(task)
            if not group:
                del self._tasks[execution_id]
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                f"Execution {execution_id} aborted: {exc}. Last persisted state is kept.",
                exc_info=exc,
            )

    async def _run(self, execution_id: str) -> None:
        async with self._locked(execution_id):
            execution = await self._repository.load(execution_id)
            if execution is None:
                logger.warning(f"Execution {execution_id} disappeared before it could run")
                return
            await self._drive(execution, execution.input)

    async def _drive(self, execution: WorkflowExecution, initial_input: Any) -> None:
        if execution.status != ExecutionStatus.RUNNING:
            logger.debug(
                f"Execution {execution.id} is {execution.status.value}; nothing to do"
            )
            return

        definition = self._workflows.resolve(execution.workflow_id)
        self._check_shape(definition, execution)

        async def persist() -> None:
            await self._repository.save(execution)

        current_input = initial_input
        for step_def, step_execution in zip(definition.steps, execution.steps):
            if step_execution.status == StepStatus.COMPLETED:
                current_input = step_execution.output
                continue

            execution.current_step = step_def.id
            await persist()

            outcome = await self._executor.run(
                step_def, step_execution, execution.id, current_input, on_transition=persist
            )

            if isinstance(outcome, Success):
                current_input = outcome.output
                await persist()
                continue

            if isinstance(outcome, Pause):
                execution.status = ExecutionStatus.PAUSED
                await persist()
                logger.info(
                    f"Execution {execution.id} paused at step {step_def.id}"
                )
                return

            execution.status = ExecutionStatus.FAILED
            execution.completed_at = utcnow()
            await persist()
            logger.error(
                f"Execution {execution.id} failed at step {step_def.id}: {outcome.error}"
            )
            return

        execution.status = ExecutionStatus.COMPLETED
        execution.completed_at = utcnow()
        execution.current_step = None
        await persist()
        logger.info(f"Execution {execution.id} completed")

    @staticmethod
    def _check_shape(definition: WorkflowDefinition, execution: WorkflowExecution) -> None:
        recorded = [s.step_id for s in execution.steps]
        if recorded != definition.step_ids:
            raise InvalidExecutionState(
                f"Execution {execution.id} steps {recorded} do not match workflow"
                f" {definition.id} steps {definition.step_ids}"
            )
