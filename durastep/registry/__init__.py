"""In-memory registries for step and workflow definitions.

Definitions are not persisted; applications re-register them at process
start before recovering or signalling executions.
"""

from __future__ import annotations

import logging
from typing import Dict, Generic, Iterator, TypeVar

from ..contracts import StepDefinition, WorkflowDefinition
from ..errors import DefinitionNotFound, DuplicateIdError

logger = logging.getLogger(__name__)

DefinitionT = TypeVar("DefinitionT", StepDefinition, WorkflowDefinition)


class _Registry(Generic[DefinitionT]):
    kind = "Definition"

    def __init__(self) -> None:
        self._definitions: Dict[str, DefinitionT] = {}

    def register(self, definition: DefinitionT) -> DefinitionT:
        """Store ``definition`` by id.

        Registering an identical definition again is a no-op; a different
        definition under an existing id raises ``DuplicateIdError``.
        """
        existing = self.check(definition)
        if existing is not None:
            return existing
        self._definitions[definition.id] = definition
        logger.debug(f"Registered {self.kind.lower()} {definition.id}")
        return definition

    def check(self, definition: DefinitionT) -> DefinitionT | None:
        """Return the identical registered definition, if any, or raise on a conflict."""
        existing = self._definitions.get(definition.id)
        if existing is not None and existing != definition:
            raise DuplicateIdError(self.kind, definition.id)
        return existing

    def resolve(self, definition_id: str) -> DefinitionT:
        try:
            return self._definitions[definition_id]
        except KeyError:
            raise DefinitionNotFound(self.kind, definition_id) from None

    def __contains__(self, definition_id: object) -> bool:
        return definition_id in self._definitions

    def __iter__(self) -> Iterator[DefinitionT]:
        return iter(list(self._definitions.values()))

    def __len__(self) -> int:
        return len(self._definitions)


class StepRegistry(_Registry[StepDefinition]):
    """Maps step ids to their handler and retry policy."""

    kind = "Step"


class WorkflowRegistry(_Registry[WorkflowDefinition]):
    """Maps workflow ids to their ordered step sequence.

    Registering a workflow also registers each of its steps in ``steps``.
    """

    kind = "Workflow"

    def __init__(self, steps: StepRegistry | None = None) -> None:
        super().__init__()
        self.steps = steps if steps is not None else StepRegistry()

    def register(self, definition: WorkflowDefinition) -> WorkflowDefinition:
        self.check(definition)
        for step in definition.steps:
            self.steps.check(step)
        for step in definition.steps:
            self.steps.register(step)
        return super().register(definition)


__all__ = ["StepRegistry", "WorkflowRegistry"]
