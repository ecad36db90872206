"""Durastep: durable sequential workflow execution."""

from .contracts import (
    Failure,
    Outcome,
    Pause,
    RetryPolicy,
    StepContext,
    StepDefinition,
    Success,
    WorkflowDefinition,
)
from .dispatch import WorkflowDispatcher
from .errors import (
    DefinitionNotFound,
    DuplicateIdError,
    PauseRequested,
    StoreWriteFailure,
)
from .execute import RetryExecutor
from .persistence import get_repository
from .registry import StepRegistry, WorkflowRegistry
from .scheduler import SignalResult, WorkflowScheduler
from .wait import wait_for_signal

__version__ = "0.1.0"
__all__ = [
    "DefinitionNotFound",
    "DuplicateIdError",
    "Failure",
    "Outcome",
    "Pause",
    "PauseRequested",
    "RetryExecutor",
    "RetryPolicy",
    "SignalResult",
    "StepContext",
    "StepDefinition",
    "StepRegistry",
    "StoreWriteFailure",
    "Success",
    "WorkflowDefinition",
    "WorkflowDispatcher",
    "WorkflowRegistry",
    "WorkflowScheduler",
    "get_repository",
    "wait_for_signal",
]
