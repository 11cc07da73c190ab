"""In-memory implementation of the state store."""

from __future__ import annotations

import asyncio
from typing import Dict, Optional

from .models import ExecutionRecord, StateFilter
from .repository import StateStore


class InMemoryStateStore(StateStore):
    """Store execution records in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts. Records are copied on the way in and
    out so callers never share mutable state with the store.
    """

    def __init__(self) -> None:
        self._records: Dict[str, ExecutionRecord] = {}
        self._lock = asyncio.Lock()

    async def get(self, execution_id: str) -> ExecutionRecord | None:
        async with self._lock:
            record = self._records.get(execution_id)
            return record.model_copy(deep=True) if record else None

    async def set(self, execution_id: str, record: ExecutionRecord) -> None:
        async with self._lock:
            self._records[execution_id] = record.model_copy(deep=True)

    async def delete(self, execution_id: str) -> None:
        async with self._lock:
            self._records.pop(execution_id, None)

    async def list(self, filter: Optional[StateFilter] = None) -> list[ExecutionRecord]:
        async with self._lock:
            records = list(self._records.values())
        if filter is not None:
            records = [r for r in records if filter.matches(r)]
        return [r.model_copy(deep=True) for r in records]
