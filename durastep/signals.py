"""Per-execution signal state backed by the execution store."""

from __future__ import annotations

import logging
from typing import Any, Optional

from .persistence import SignalRecord, WorkflowRepository

logger = logging.getLogger(__name__)


class SignalChannel:
    """Key-value bag of signals scoped to one execution id.

    Signals live in the execution store's signal table, so they share the
    execution's lifetime and survive process restarts. A later signal with
    the same name replaces the earlier one.
    """

    def __init__(self, repository: WorkflowRepository) -> None:
        self._repository = repository

    async def send(self, execution_id: str, name: str, payload: Any = None) -> SignalRecord:
        record = SignalRecord(name=name, payload=payload)
        await self._repository.save_signal(execution_id, record)
        logger.info(f"Recorded signal '{name}' for execution_id={execution_id}")
        return record

    async def get(self, execution_id: str, name: str) -> Optional[SignalRecord]:
        signals = await self._repository.load_signals(execution_id)
        return signals.get(name)

    async def all(self, execution_id: str) -> dict[str, SignalRecord]:
        return await self._repository.load_signals(execution_id)
