"""Persistence layer for stagegate executions."""

from __future__ import annotations

from typing import Optional

from ..config import StageGateConfig, load_config
from .inmemory import InMemoryExecutionStore
from .merge import apply_patch
from .sqlite import SQLiteExecutionStore
from .store import ExecutionStore


def get_store(
    database_url: Optional[str] = None, config: Optional[StageGateConfig] = None
) -> ExecutionStore:
    """Factory function to obtain an execution store.

    The backend is selected from ``database_url`` when given, otherwise from
    the loaded configuration (which honours ``STAGEGATE_DATABASE_URL`` and
    ``DATABASE_URL``). Without a database an in-memory store is returned.
    Every call builds a new store; callers share one by passing it around.
    """

    if database_url is None:
        config = config or load_config()
        database_url = config.database_url

    if not database_url or database_url == "memory://":
        return InMemoryExecutionStore()

    if database_url.startswith("sqlite://"):
        path = database_url.replace("sqlite://", "", 1)
        # sqlite:///abs/path keeps its leading slash, sqlite://rel/path does not
        return SQLiteExecutionStore(path or ":memory:")
    if database_url.startswith("postgres://") or database_url.startswith(
        "postgresql://"
    ):
        from .postgres import PostgresExecutionStore

        return PostgresExecutionStore(database_url)
    raise ValueError(f"Unsupported database backend: {database_url}")


__all__ = [
    "ExecutionStore",
    "InMemoryExecutionStore",
    "SQLiteExecutionStore",
    "apply_patch",
    "get_store",
]
