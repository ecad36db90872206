"""Core contracts for durastep workflow definitions and step handlers."""

from __future__ import annotations

from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    Literal,
    Optional,
    Tuple,
    Union,
)

from pydantic import BaseModel, ConfigDict, Field, field_validator

if TYPE_CHECKING:
    from .persistence.models import SignalRecord


class RetryPolicy(BaseModel):
    """Bounded-attempt policy with linear backoff (``backoff_base_ms * attempt``)."""

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=3, ge=1)
    backoff_base_ms: int = Field(default=1000, ge=0)


class Success(BaseModel):
    """The step finished; ``output`` becomes the next step's input."""

    kind: Literal["success"] = "success"
    output: Any = None


class Pause(BaseModel):
    """The step cannot proceed until ``signal_name`` is delivered."""

    kind: Literal["pause"] = "pause"
    signal_name: Optional[str] = None
    reason: str = ""


class Failure(BaseModel):
    """The attempt failed with ``error``; subject to the retry policy."""

    kind: Literal["failure"] = "failure"
    error: str


Outcome = Union[Success, Pause, Failure]


class StepContext:
    """Everything a step handler may touch while running one attempt."""

    def __init__(
        self,
        input: Any,
        step_id: str,
        execution_id: str,
        attempt: int,
        log: Callable[[str, Any], None],
        get_signal: Callable[[str], Awaitable[Optional["SignalRecord"]]],
        set_signal: Callable[[str, Any], Awaitable["SignalRecord"]],
    ) -> None:
        self.input = input
        self.step_id = step_id
        self.execution_id = execution_id
        self.attempt = attempt
        self._log = log
        self._get_signal = get_signal
        self._set_signal = set_signal

    def log(self, message: str, data: Any = None) -> None:
        """Append an entry to the step's attempt log."""
        self._log(message, data)

    async def get_signal(self, name: str) -> Optional["SignalRecord"]:
        """Return the signal recorded under ``name`` for this execution, if any."""
        return await self._get_signal(name)

    async def set_signal(self, name: str, value: Any) -> "SignalRecord":
        """Record ``value`` under ``name`` in this execution's signal state."""
        return await self._set_signal(name, value)


StepHandler = Callable[[StepContext], Awaitable[Outcome]]


class StepDefinition(BaseModel):
    """Defines one step of a workflow.

    ``retry_policy`` may be left unset, in which case the engine's configured
    default policy applies.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    name: str = ""
    handler: Callable[..., Awaitable[Any]]
    retry_policy: Optional[RetryPolicy] = None

    @property
    def display_name(self) -> str:
        return self.name or self.id


class WorkflowDefinition(BaseModel):
    """An ordered, non-branching sequence of steps."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    name: str = ""
    steps: Tuple[StepDefinition, ...]

    @field_validator("steps")
    @classmethod
    def _ensure_unique_steps(
        cls, v: Tuple[StepDefinition, ...]
    ) -> Tuple[StepDefinition, ...]:
        if not v:
            raise ValueError("workflow must contain at least one step")
        seen = set()
        for step in v:
            if step.id in seen:
                raise ValueError(f"step id '{step.id}' appears more than once")
            seen.add(step.id)
        return v

    @property
    def step_ids(self) -> list[str]:
        return [step.id for step in self.steps]
