"""Store abstraction for execution record persistence."""

from __future__ import annotations

from typing import Optional, Protocol

from .models import ExecutionRecord, StateFilter


class StateStore(Protocol):
    """Protocol for execution state persistence backends.

    Writes are whole-record replacements, last write wins per id. Backends
    that can fail raise ``StateStoreError``.
    """

    async def get(self, execution_id: str) -> ExecutionRecord | None:
        """Return the record for ``execution_id`` or ``None``."""

    async def set(self, execution_id: str, record: ExecutionRecord) -> None:
        """Persist ``record`` under ``execution_id``."""

    async def delete(self, execution_id: str) -> None:
        """Remove the record if present."""

    async def list(self, filter: Optional[StateFilter] = None) -> list[ExecutionRecord]:
        """Return all records matching ``filter``."""
