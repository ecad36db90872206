"""Persistence layer for durastep executions."""

from __future__ import annotations

import os
from typing import Dict, Optional

from ..config import DurastepConfig, load_config
from .inmemory import InMemoryWorkflowRepository
from .models import (
    ExecutionStatus,
    ExecutionSummary,
    LogEntry,
    SignalRecord,
    StepExecution,
    StepStatus,
    WorkflowExecution,
)
from .repository import WorkflowRepository
from .sqlite import SQLiteWorkflowRepository

try:  # pragma: no cover - optional dependency
    from .postgres import PostgresWorkflowRepository
except ImportError:  # pragma: no cover - optional dependency
    PostgresWorkflowRepository = None  # type: ignore

_repositories: Dict[str, WorkflowRepository] = {}


def get_repository(
    database_url: Optional[str] = None, config: Optional[DurastepConfig] = None
) -> WorkflowRepository:
    """Factory function to obtain an execution store.

    The backend is selected based on ``database_url`` which can be provided
    explicitly, via environment variable ``DURASTEP_DATABASE_URL`` or
    ``DATABASE_URL``, or from loaded configuration. When no database is
    configured, a fresh in-memory repository is returned.

    Repositories for a database URL are reused per URL, so callers in one
    process share a connection while a changed URL selects a new store.
    """

    config = config or load_config()
    database_url = (
        database_url
        or os.getenv("DURASTEP_DATABASE_URL")
        or os.getenv("DATABASE_URL")
        or getattr(config, "database_url", None)
    )

    if not database_url:
        return InMemoryWorkflowRepository()

    repository = _repositories.get(database_url)
    if repository is not None:
        return repository

    if database_url.startswith("sqlite://"):
        path = database_url.replace("sqlite://", "", 1)
        repository = SQLiteWorkflowRepository(path)
    elif database_url.startswith("postgres://") or database_url.startswith(
        "postgresql://"
    ):
        if PostgresWorkflowRepository is None:
            raise RuntimeError("Postgres support not available")
        repository = PostgresWorkflowRepository(database_url)
    else:
        raise ValueError(f"Unsupported database backend: {database_url}")

    _repositories[database_url] = repository
    return repository


__all__ = [
    "ExecutionStatus",
    "ExecutionSummary",
    "LogEntry",
    "SignalRecord",
    "StepExecution",
    "StepStatus",
    "WorkflowExecution",
    "WorkflowRepository",
    "SQLiteWorkflowRepository",
    "PostgresWorkflowRepository",
    "InMemoryWorkflowRepository",
    "get_repository",
]
