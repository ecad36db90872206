"""Step execution with bounded retries for durastep workflows."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Optional

from .contracts import (
    Failure,
    Outcome,
    Pause,
    RetryPolicy,
    StepContext,
    StepDefinition,
    Success,
)
from .errors import PauseRequested
from .persistence.models import StepExecution, StepStatus, utcnow
from .signals import SignalChannel
from .utils import retry

logger = logging.getLogger(__name__)

TransitionHook = Callable[[], Awaitable[None]]


class RetryExecutor:
    """Runs a single step handler under its retry policy.

    The outcome is one of ``Success``, ``Pause`` or the last ``Failure``. A
    pause short-circuits the attempt loop and leaves the step ``running``.
    """

    def __init__(
        self, signals: SignalChannel, default_policy: Optional[RetryPolicy] = None
    ) -> None:
        self._signals = signals
        self._default_policy = default_policy or RetryPolicy()

    def policy_for(self, step: StepDefinition) -> RetryPolicy:
        return step.retry_policy or self._default_policy

    async def run(
        self,
        step: StepDefinition,
        step_execution: StepExecution,
        execution_id: str,
        input: Any,
        on_transition: Optional[TransitionHook] = None,
    ) -> Outcome:
        policy = self.policy_for(step)
        max_attempts = policy.max_attempts
        last_failure = Failure(error="Step failed after all retries")

        for attempt in range(1, max_attempts + 1):
            step_execution.attempts = attempt
            step_execution.status = (
                StepStatus.RUNNING if attempt == 1 else StepStatus.RETRYING
            )
            step_execution.started_at = utcnow()
            self._log(step_execution, f"Attempt {attempt}/{max_attempts}")
            if on_transition is not None:
                await on_transition()

            outcome = await self._invoke(step, step_execution, execution_id, input, attempt)

            if isinstance(outcome, Success):
                step_execution.status = StepStatus.COMPLETED
                step_execution.completed_at = utcnow()
                step_execution.error = None
                step_execution.output = outcome.output
                self._log(step_execution, "Step completed successfully")
                return outcome

            if isinstance(outcome, Pause):
                step_execution.status = StepStatus.RUNNING
                step_execution.error = None
                self._log(
                    step_execution,
                    "Paused, awaiting signal",
                    {"signal": outcome.signal_name} if outcome.signal_name else None,
                )
                logger.info(
                    f"Step {step.id} paused for execution_id={execution_id}"
                    f" awaiting signal {outcome.signal_name!r}"
                )
                return outcome

            last_failure = outcome
            step_execution.error = outcome.error
            self._log(step_execution, f"Attempt {attempt} failed: {outcome.error}")

            if attempt < max_attempts:
                logger.warning(
                    f"Step {step.id} attempt {attempt}/{max_attempts} failed for "
                    f"execution_id={execution_id}: {outcome.error}. Retrying."
                )
                if on_transition is not None:
                    await on_transition()
                await retry.schedule_retry(attempt, policy.backoff_base_ms)

        step_execution.status = StepStatus.FAILED
        step_execution.completed_at = utcnow()
        logger.error(
            f"Step {step.id} failed after {max_attempts} attempts for "
            f"execution_id={execution_id}: {last_failure.error}"
        )
        return last_failure

    async def _invoke(
        self,
        step: StepDefinition,
        step_execution: StepExecution,
        execution_id: str,
        input: Any,
        attempt: int,
    ) -> Outcome:
        async def get_signal(name: str):
            return await self._signals.get(execution_id, name)

        async def set_signal(name: str, value: Any):
            return await self._signals.send(execution_id, name, value)

        context = StepContext(
            input=input,
            step_id=step.id,
            execution_id=execution_id,
            attempt=attempt,
            log=lambda message, data=None: self._log(step_execution, message, data),
            get_signal=get_signal,
            set_signal=set_signal,
        )

        try:
            outcome = await step.handler(context)
        except PauseRequested as exc:
            return Pause(signal_name=exc.signal_name, reason=exc.reason)
        except Exception as exc:
            return Failure(error=str(exc) or type(exc).__name__)

        if not isinstance(outcome, (Success, Pause, Failure)):
            return Failure(
                error=f"Handler returned {type(outcome).__name__}, expected an outcome"
            )
        return outcome

    @staticmethod
    def _log(step_execution: StepExecution, message: str, data: Any = None) -> None:
        step_execution.append_log(message, data)
        logger.debug(f"[{step_execution.step_id}] {message}")
