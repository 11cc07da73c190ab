"""Persistence layer for mdsflow execution records."""

from __future__ import annotations

import os
from typing import Optional

from ..config import MdsflowConfig, load_config
from .inmemory import InMemoryStateStore
from .models import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    Artifact,
    AwaitingInput,
    Checkpoint,
    ErrorEntry,
    ExecutionRecord,
    ExecutionStatus,
    HistoryEntry,
    StateFilter,
)
from .repository import StateStore
from .sqlite import SQLiteStateStore


def get_store(
    url: Optional[str] = None, config: Optional[MdsflowConfig] = None
) -> StateStore:
    """Factory function to build a state store.

    The backend is selected based on ``url`` which can be provided
    explicitly, via environment variable ``MDSFLOW_STORE_URL``, or from
    loaded configuration. When no store is configured, an in-memory store
    is returned. Every call builds a fresh instance; callers own it.
    """

    config = config or load_config()
    url = url or os.getenv("MDSFLOW_STORE_URL") or config.store.url

    if not url or url in ("memory://", "inmemory"):
        return InMemoryStateStore()

    if url.startswith("sqlite://"):
        path = url.replace("sqlite://", "", 1)
        return SQLiteStateStore(path)
    if url.startswith("postgres://") or url.startswith("postgresql://"):
        from .postgres import PostgresStateStore

        return PostgresStateStore(url)
    if url.startswith("redis://") or url.startswith("rediss://"):
        from .redis import RedisStateStore

        return RedisStateStore(url)
    raise ValueError(f"Unsupported store backend: {url}")


__all__ = [
    "ACTIVE_STATUSES",
    "TERMINAL_STATUSES",
    "Artifact",
    "AwaitingInput",
    "Checkpoint",
    "ErrorEntry",
    "ExecutionRecord",
    "ExecutionStatus",
    "HistoryEntry",
    "StateFilter",
    "StateStore",
    "InMemoryStateStore",
    "SQLiteStateStore",
    "get_store",
]
