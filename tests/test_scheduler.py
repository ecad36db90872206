"""Workflow scheduler tests."""

import pytest

from durastep import (
    DefinitionNotFound,
    Failure,
    RetryPolicy,
    SignalResult,
    StepDefinition,
    Success,
    WorkflowDefinition,
    WorkflowDispatcher,
)
from durastep.config import DurastepConfig
from durastep.persistence import (
    InMemoryWorkflowRepository,
    StepStatus,
    WorkflowExecution,
)

NO_BACKOFF = RetryPolicy(max_attempts=3, backoff_base_ms=0)


class RecordingRepository(InMemoryWorkflowRepository):
    """In-memory store that remembers how many steps were active on every save."""

    def __init__(self) -> None:
        super().__init__()
        self.active_counts: list[int] = []

    async def save(self, execution: WorkflowExecution) -> None:
        self.active_counts.append(len(execution.active_steps()))
        await super().save(execution)


def _dispatcher(repo=None) -> WorkflowDispatcher:
    return WorkflowDispatcher(
        repository=repo or InMemoryWorkflowRepository(), config=DurastepConfig()
    )


def _threading_workflow(calls: list[str]) -> WorkflowDefinition:
    async def emit(ctx):
        calls.append("a")
        return Success(output={"x": 1})

    async def increment(ctx):
        calls.append("b")
        return Success(output={"x": ctx.input["x"] + 1})

    async def multiply(ctx):
        calls.append("c")
        return Success(output={"x": ctx.input["x"] * 10})

    return WorkflowDefinition(
        id="threading",
        steps=(
            StepDefinition(id="a", handler=emit, retry_policy=NO_BACKOFF),
            StepDefinition(id="b", handler=increment, retry_policy=NO_BACKOFF),
            StepDefinition(id="c", handler=multiply, retry_policy=NO_BACKOFF),
        ),
    )


@pytest.mark.asyncio
async def test_output_threads_through_steps():
    calls: list[str] = []
    dispatcher = _dispatcher()
    dispatcher.register_workflow(_threading_workflow(calls))

    started = await dispatcher.start_workflow("threading", {})
    assert started.status == "running"

    execution = await dispatcher.wait_for(started.execution_id)
    assert execution.status == "completed"
    assert execution.output == {"x": 20}
    assert execution.current_step is None
    assert execution.completed_at is not None
    assert [s.status for s in execution.steps] == ["completed"] * 3
    assert calls == ["a", "b", "c"]


@pytest.mark.asyncio
async def test_start_returns_before_steps_run():
    calls: list[str] = []
    dispatcher = _dispatcher()
    dispatcher.register_workflow(_threading_workflow(calls))

    started = await dispatcher.start_workflow("threading", {})
    snapshot = await dispatcher.get_execution(started.execution_id)

    assert calls == []
    assert [s.status for s in snapshot.steps] == ["pending"] * 3
    await dispatcher.wait_for(started.execution_id)


@pytest.mark.asyncio
async def test_unknown_workflow_raises():
    dispatcher = _dispatcher()
    with pytest.raises(DefinitionNotFound):
        await dispatcher.start_workflow("nonexistent", {})


@pytest.mark.asyncio
async def test_signal_unknown_execution_is_noop():
    dispatcher = _dispatcher()
    result = await dispatcher.signal("nonexistent-id", "x", {})
    assert result == SignalResult.NOT_FOUND


@pytest.mark.asyncio
async def test_step_fails_after_max_attempts():
    attempts = []

    async def always_fails(ctx):
        attempts.append(ctx.attempt)
        raise RuntimeError("smtp unavailable")

    async def never_runs(ctx):
        raise AssertionError("should not be reached")

    dispatcher = _dispatcher()
    dispatcher.register_workflow(
        WorkflowDefinition(
            id="flaky",
            steps=(
                StepDefinition(id="send", handler=always_fails, retry_policy=NO_BACKOFF),
                StepDefinition(id="after", handler=never_runs, retry_policy=NO_BACKOFF),
            ),
        )
    )

    started = await dispatcher.start_workflow("flaky", {})
    execution = await dispatcher.wait_for(started.execution_id)

    assert execution.status == "failed"
    assert execution.completed_at is not None
    send = execution.step("send")
    assert send.status == "failed"
    assert send.attempts == 3
    assert send.error == "smtp unavailable"
    assert send.output is None
    assert attempts == [1, 2, 3]
    messages = [entry.message for entry in send.logs]
    assert "Attempt 1/3" in messages
    assert "Attempt 3 failed: smtp unavailable" in messages
    assert execution.step("after").status == "pending"


@pytest.mark.asyncio
async def test_step_recovers_on_retry():
    async def flaky(ctx):
        if ctx.attempt < 2:
            return Failure(error="transient")
        return Success(output={"attempt": ctx.attempt})

    dispatcher = _dispatcher()
    dispatcher.register_workflow(
        WorkflowDefinition(
            id="retrying",
            steps=(StepDefinition(id="flaky", handler=flaky, retry_policy=NO_BACKOFF),),
        )
    )

    started = await dispatcher.start_workflow("retrying")
    execution = await dispatcher.wait_for(started.execution_id)

    assert execution.status == "completed"
    step = execution.step("flaky")
    assert step.attempts == 2
    assert step.output == {"attempt": 2}
    assert step.error is None


@pytest.mark.asyncio
async def test_at_most_one_step_active_on_every_save():
    calls: list[str] = []
    repo = RecordingRepository()
    dispatcher = _dispatcher(repo)
    dispatcher.register_workflow(_threading_workflow(calls))

    started = await dispatcher.start_workflow("threading", {})
    await dispatcher.wait_for(started.execution_id)

    assert repo.active_counts
    assert max(repo.active_counts) == 1


@pytest.mark.asyncio
async def test_execute_skips_completed_steps():
    calls: list[str] = []
    dispatcher = _dispatcher()
    workflow = dispatcher.register_workflow(_threading_workflow(calls))

    execution = WorkflowExecution.new(workflow.id, workflow.step_ids, {})
    first = execution.step("a")
    first.status = StepStatus.COMPLETED
    first.output = {"x": 4}

    await dispatcher.scheduler.execute(execution, {})
    assert calls == ["b", "c"]
    assert execution.output == {"x": 50}

    snapshot = execution.model_dump()
    await dispatcher.scheduler.execute(execution, {})
    assert calls == ["b", "c"]
    assert execution.model_dump() == snapshot


@pytest.mark.asyncio
async def test_execute_on_earlier_returned_record_does_not_rerun_steps():
    calls: list[str] = []
    dispatcher = _dispatcher()
    dispatcher.register_workflow(_threading_workflow(calls))

    execution = await dispatcher.scheduler.start("threading", {})
    done = await dispatcher.wait_for(execution.id)
    assert calls == ["a", "b", "c"]
    assert execution.status == "running"

    returned = await dispatcher.scheduler.execute(execution, {})

    assert calls == ["a", "b", "c"]
    assert returned is execution
    assert execution.status == "completed"
    assert execution.output == {"x": 20}
    stored = await dispatcher.get_execution(execution.id)
    assert stored.completed_at == done.completed_at
    assert stored.model_dump() == done.model_dump()


@pytest.mark.asyncio
async def test_terminal_execution_is_not_mutated():
    async def boom(ctx):
        raise ValueError("bad input")

    dispatcher = _dispatcher()
    dispatcher.register_workflow(
        WorkflowDefinition(
            id="doomed",
            steps=(
                StepDefinition(
                    id="boom",
                    handler=boom,
                    retry_policy=RetryPolicy(max_attempts=1, backoff_base_ms=0),
                ),
            ),
        )
    )
    started = await dispatcher.start_workflow("doomed", {})
    failed = await dispatcher.wait_for(started.execution_id)
    assert failed.status == "failed"

    result = await dispatcher.signal(failed.id, "verified", {"ok": True})
    assert result == SignalResult.IGNORED

    await dispatcher.scheduler.execute(failed, {})
    after = await dispatcher.get_execution(failed.id)
    assert after.model_dump() == failed.model_dump()
    assert await dispatcher.signals.all(failed.id) == {}


@pytest.mark.asyncio
async def test_handler_returning_plain_value_fails():
    async def sloppy(ctx):
        return {"x": 1}

    dispatcher = _dispatcher()
    dispatcher.register_workflow(
        WorkflowDefinition(
            id="sloppy",
            steps=(
                StepDefinition(
                    id="sloppy",
                    handler=sloppy,
                    retry_policy=RetryPolicy(max_attempts=1, backoff_base_ms=0),
                ),
            ),
        )
    )
    started = await dispatcher.start_workflow("sloppy")
    execution = await dispatcher.wait_for(started.execution_id)

    assert execution.status == "failed"
    assert "expected an outcome" in execution.step("sloppy").error


@pytest.mark.asyncio
async def test_default_retry_policy_comes_from_config():
    attempts = []

    async def always_fails(ctx):
        attempts.append(ctx.attempt)
        return Failure(error="nope")

    config = DurastepConfig.model_validate(
        {"retry": {"max_attempts": 2, "backoff_base_ms": 0}}
    )
    dispatcher = WorkflowDispatcher(
        repository=InMemoryWorkflowRepository(), config=config
    )
    dispatcher.register_workflow(
        WorkflowDefinition(
            id="defaults", steps=(StepDefinition(id="s", handler=always_fails),)
        )
    )
    started = await dispatcher.start_workflow("defaults")
    execution = await dispatcher.wait_for(started.execution_id)

    assert attempts == [1, 2]
    assert execution.step("s").attempts == 2
