"""Exceptions raised by the durastep engine."""

from __future__ import annotations

from typing import Optional


class DurastepError(Exception):
    """Base class for all engine errors."""


class DuplicateIdError(DurastepError):
    """A different definition is already registered under the same id."""

    def __init__(self, kind: str, definition_id: str) -> None:
        super().__init__(f"{kind} '{definition_id}' is already registered")
        self.kind = kind
        self.definition_id = definition_id


class DefinitionNotFound(DurastepError, LookupError):
    """No step or workflow definition is registered under the requested id."""

    def __init__(self, kind: str, definition_id: str) -> None:
        super().__init__(f"{kind} '{definition_id}' not found")
        self.kind = kind
        self.definition_id = definition_id


class InvalidExecutionState(DurastepError):
    """A persisted execution no longer matches its workflow definition."""


class StoreWriteFailure(DurastepError):
    """The execution store could not persist or read a record."""


class PauseRequested(DurastepError):
    """Raised by a step handler to suspend the workflow until a signal arrives.

    Returning :class:`durastep.contracts.Pause` is the preferred form; this
    exception exists for handlers that need to bail out from deep inside
    helper code. The engine converts it into a ``Pause`` outcome and never
    surfaces it to callers.
    """

    def __init__(self, signal_name: Optional[str] = None, reason: str = "") -> None:
        super().__init__(reason or f"awaiting signal {signal_name!r}")
        self.signal_name = signal_name
        self.reason = reason


# Names used by the HTTP boundary and older callers.
DuplicateRegistration = DuplicateIdError
NotFoundError = DefinitionNotFound

__all__ = [
    "DurastepError",
    "DuplicateIdError",
    "DuplicateRegistration",
    "DefinitionNotFound",
    "NotFoundError",
    "InvalidExecutionState",
    "StoreWriteFailure",
    "PauseRequested",
]
