"""Durable wait steps: suspend a workflow until an external signal arrives."""

from __future__ import annotations

from typing import Any, Callable, Mapping, Optional

from .contracts import Outcome, Pause, RetryPolicy, StepContext, StepDefinition, Success
from .persistence.models import SignalRecord

OutputBuilder = Callable[[Any, SignalRecord], Any]


def _as_dict(value: Any) -> dict:
    return dict(value) if isinstance(value, Mapping) else {}


def merge_signal(input: Any, record: SignalRecord) -> dict:
    """Default wait output: the input merged with the payload plus ``signaled_at``."""
    return {
        **_as_dict(input),
        **_as_dict(record.payload),
        "signaled_at": record.received_at.isoformat(),
    }


def _matches(payload: Any, input: Any, correlation_key: Optional[str]) -> bool:
    if correlation_key is None:
        return True
    if not isinstance(payload, Mapping) or not isinstance(input, Mapping):
        return False
    return correlation_key in payload and payload.get(correlation_key) == input.get(
        correlation_key
    )


def wait_for_signal(
    step_id: str,
    signal_name: str,
    name: Optional[str] = None,
    correlation_key: Optional[str] = None,
    build_output: Optional[OutputBuilder] = None,
) -> StepDefinition:
    """Build a step that pauses until ``signal_name`` is delivered.

    When ``correlation_key`` is given the signal only counts if its payload
    carries the same value for that key as the step input. On success the
    output is ``build_output(input, record)``, which defaults to
    :func:`merge_signal`. The step runs a single attempt; retrying cannot help
    until a signal lands.
    """
    builder = build_output or merge_signal

    async def handler(ctx: StepContext) -> Outcome:
        record = await ctx.get_signal(signal_name)
        if record is not None and _matches(record.payload, ctx.input, correlation_key):
            ctx.log("Signal received, proceeding", {"signal": signal_name})
            return Success(output=builder(ctx.input, record))
        if record is not None:
            ctx.log(
                "Signal does not match this execution, still waiting",
                {"signal": signal_name, "correlation_key": correlation_key},
            )
        else:
            ctx.log("Waiting for signal", {"signal": signal_name})
        return Pause(signal_name=signal_name)

    return StepDefinition(
        id=step_id,
        name=name or f"Wait for {signal_name}",
        handler=handler,
        retry_policy=RetryPolicy(max_attempts=1, backoff_base_ms=0),
    )
