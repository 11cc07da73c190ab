"""SQLite implementation of the state store."""

from __future__ import annotations

import asyncio
import sqlite3
from pathlib import Path
from typing import Any, Optional

from ..errors import StateStoreError
from .models import ExecutionRecord, StateFilter
from .repository import StateStore


class SQLiteStateStore(StateStore):
    """Persist execution records using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        try:
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._ensure_schema()
        except sqlite3.Error as e:
            raise StateStoreError(f"Failed to open SQLite store {self.db_path}: {e}") from e

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS executions (
                id TEXT PRIMARY KEY,
                workflow_id TEXT NOT NULL,
                project_id TEXT NOT NULL,
                status TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                body TEXT NOT NULL
            )
            """
        )
        cur.execute(
            "CREATE INDEX IF NOT EXISTS idx_executions_workflow "
            "ON executions (workflow_id, project_id)"
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> None:
        try:
            cur = self._conn.cursor()
            cur.execute(query, params)
            self._conn.commit()
        except sqlite3.Error as e:
            self._conn.rollback()
            raise StateStoreError(f"SQLite write failed: {e}") from e

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        try:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchone()
        except sqlite3.Error as e:
            raise StateStoreError(f"SQLite read failed: {e}") from e

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        try:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchall()
        except sqlite3.Error as e:
            raise StateStoreError(f"SQLite read failed: {e}") from e

    def close(self) -> None:
        self._conn.close()

    # ------------------------------------------------------------------
    # Store API
    async def get(self, execution_id: str) -> ExecutionRecord | None:
        row = await asyncio.to_thread(
            self._fetchone, "SELECT body FROM executions WHERE id = ?", execution_id
        )
        if not row:
            return None
        return ExecutionRecord.from_json(row["body"])

    async def set(self, execution_id: str, record: ExecutionRecord) -> None:
        await asyncio.to_thread(
            self._execute,
            """
            INSERT OR REPLACE INTO executions
                (id, workflow_id, project_id, status, created_at, updated_at, body)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            execution_id,
            record.workflow_id,
            record.project_id,
            record.status.value,
            record.created_at.isoformat(),
            record.updated_at.isoformat(),
            record.to_json(),
        )

    async def delete(self, execution_id: str) -> None:
        await asyncio.to_thread(
            self._execute, "DELETE FROM executions WHERE id = ?", execution_id
        )

    async def list(self, filter: Optional[StateFilter] = None) -> list[ExecutionRecord]:
        clauses: list[str] = []
        params: list[Any] = []
        if filter is not None:
            if filter.status is not None:
                clauses.append("status = ?")
                params.append(filter.status.value)
            if filter.workflow_id is not None:
                clauses.append("workflow_id = ?")
                params.append(filter.workflow_id)
            if filter.project_id is not None:
                clauses.append("project_id = ?")
                params.append(filter.project_id)
        query = "SELECT body FROM executions"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY created_at"
        rows = await asyncio.to_thread(self._fetchall, query, *params)
        records = [ExecutionRecord.from_json(r["body"]) for r in rows]
        # ISO strings with mixed offsets do not sort reliably in SQL.
        if filter is not None and filter.since is not None:
            records = [r for r in records if filter.matches(r)]
        return records
