import pytest
from pydantic import ValidationError

from durastep import (
    DefinitionNotFound,
    DuplicateIdError,
    RetryPolicy,
    StepDefinition,
    StepRegistry,
    Success,
    WorkflowDefinition,
    WorkflowRegistry,
)


async def create_user(ctx):
    return Success(output={"userId": "u-1"})


async def send_email(ctx):
    return Success(output=ctx.input)


def test_step_registration_is_idempotent_for_identical_definitions():
    registry = StepRegistry()
    step = StepDefinition(id="create-user", name="Create user", handler=create_user)

    registry.register(step)
    registry.register(StepDefinition(id="create-user", name="Create user", handler=create_user))

    assert len(registry) == 1
    assert registry.resolve("create-user") is step


def test_step_registration_rejects_different_body():
    registry = StepRegistry()
    registry.register(StepDefinition(id="create-user", handler=create_user))

    with pytest.raises(DuplicateIdError):
        registry.register(StepDefinition(id="create-user", handler=send_email))

    with pytest.raises(DuplicateIdError):
        registry.register(
            StepDefinition(
                id="create-user",
                handler=create_user,
                retry_policy=RetryPolicy(max_attempts=5),
            )
        )


def test_resolve_unknown_id_raises():
    with pytest.raises(DefinitionNotFound) as excinfo:
        StepRegistry().resolve("missing")
    assert excinfo.value.definition_id == "missing"


def test_workflow_registry_registers_steps():
    workflows = WorkflowRegistry()
    workflow = WorkflowDefinition(
        id="user-signup",
        steps=(
            StepDefinition(id="create-user", handler=create_user),
            StepDefinition(id="send-email", handler=send_email),
        ),
    )

    workflows.register(workflow)

    assert "user-signup" in workflows
    assert workflows.resolve("user-signup").step_ids == ["create-user", "send-email"]
    assert workflows.steps.resolve("send-email").handler is send_email


def test_workflow_registry_rejects_conflicting_step():
    steps = StepRegistry()
    steps.register(StepDefinition(id="create-user", handler=send_email))
    workflows = WorkflowRegistry(steps)

    with pytest.raises(DuplicateIdError):
        workflows.register(
            WorkflowDefinition(
                id="user-signup",
                steps=(StepDefinition(id="create-user", handler=create_user),),
            )
        )


def test_rejected_workflow_leaves_no_steps_behind():
    steps = StepRegistry()
    steps.register(StepDefinition(id="send-email", handler=create_user))
    workflows = WorkflowRegistry(steps)

    with pytest.raises(DuplicateIdError):
        workflows.register(
            WorkflowDefinition(
                id="user-signup",
                steps=(
                    StepDefinition(id="create-user", handler=create_user),
                    StepDefinition(id="send-email", handler=send_email),
                ),
            )
        )

    assert "create-user" not in steps
    assert "user-signup" not in workflows
    assert len(steps) == 1


def test_workflow_definition_validation():
    with pytest.raises(ValidationError):
        WorkflowDefinition(id="empty", steps=())

    step = StepDefinition(id="create-user", handler=create_user)
    with pytest.raises(ValidationError):
        WorkflowDefinition(id="dup", steps=(step, step))


def test_retry_policy_defaults_and_bounds():
    policy = RetryPolicy()
    assert policy.max_attempts == 3
    assert policy.backoff_base_ms == 1000

    with pytest.raises(ValidationError):
        RetryPolicy(max_attempts=0)
