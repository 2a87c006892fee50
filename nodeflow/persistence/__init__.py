"""Execution, log and schedule storage."""

from __future__ import annotations

from typing import Optional

from ..config import NodeflowConfig, load_config
from .inmemory import InMemoryExecutionRepository
from .models import (
    Execution,
    ExecutionLog,
    ExecutionStatus,
    LogStatus,
    ScheduledTask,
    Webhook,
)
from .postgres import PostgresExecutionRepository
from .repository import ExecutionRepository
from .sqlite import SQLiteExecutionRepository

_repository_instance: ExecutionRepository | None = None


def _from_url(database_url: str) -> ExecutionRepository:
    scheme, sep, rest = database_url.partition("://")
    if not sep:
        raise ValueError(f"Malformed database URL: {database_url}")
    if scheme == "sqlite":
        return SQLiteExecutionRepository(rest)
    if scheme in ("postgres", "postgresql"):
        return PostgresExecutionRepository(database_url)
    raise ValueError(f"Unsupported database backend: {scheme}")


def get_repository(
    database_url: Optional[str] = None, config: Optional[NodeflowConfig] = None
) -> ExecutionRepository:
    """Return the process-wide execution repository.

    The first call picks the backend from ``database_url``, the
    ``NODEFLOW_DATABASE_URL``/``DATABASE_URL`` environment variables or the
    config file, in that order, and falls back to in-memory storage. Later
    calls without arguments return the same instance; passing arguments
    builds and installs a new one.

    Supported URLs are ``sqlite://<path>`` and ``postgres[ql]://...``.
    """
    global _repository_instance
    if _repository_instance is not None and database_url is None and config is None:
        return _repository_instance

    if database_url is None:
        # load_config already folds the environment overrides in
        database_url = (config or load_config()).database_url

    _repository_instance = (
        _from_url(database_url) if database_url else InMemoryExecutionRepository()
    )
    return _repository_instance


def set_repository(repository: ExecutionRepository) -> None:
    """Install ``repository`` as the one :func:`get_repository` returns."""
    global _repository_instance
    _repository_instance = repository


def reset_repository() -> None:
    global _repository_instance
    _repository_instance = None


__all__ = [
    "Execution",
    "ExecutionLog",
    "ExecutionStatus",
    "LogStatus",
    "ScheduledTask",
    "Webhook",
    "ExecutionRepository",
    "SQLiteExecutionRepository",
    "PostgresExecutionRepository",
    "InMemoryExecutionRepository",
    "get_repository",
    "reset_repository",
    "set_repository",
]
