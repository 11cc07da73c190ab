"""PostgreSQL implementation of the state store."""

from __future__ import annotations

from typing import Any, Optional

import asyncpg

from ..errors import StateStoreError
from .models import ExecutionRecord, StateFilter
from .repository import StateStore


class PostgresStateStore(StateStore):
    """Persist execution records using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        try:
            conn = await asyncpg.connect(self._dsn)
            if not self._initialized:
                await self._ensure_schema(conn)
                self._initialized = True
        except (OSError, asyncpg.PostgresError) as e:
            raise StateStoreError(f"Failed to connect to Postgres store: {e}") from e
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS executions (
                id TEXT PRIMARY KEY,
                workflow_id TEXT NOT NULL,
                project_id TEXT NOT NULL,
                status TEXT NOT NULL,
                created_at TIMESTAMPTZ NOT NULL,
                updated_at TIMESTAMPTZ NOT NULL,
                body JSONB NOT NULL
            )
            """
        )
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_executions_workflow "
            "ON executions (workflow_id, project_id)"
        )

    # ------------------------------------------------------------------
    async def get(self, execution_id: str) -> ExecutionRecord | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                "SELECT body::text AS body FROM executions WHERE id = $1", execution_id
            )
        except asyncpg.PostgresError as e:
            raise StateStoreError(f"Postgres read failed: {e}") from e
        finally:
            await conn.close()
        if not row:
            return None
        return ExecutionRecord.from_json(row["body"])

    async def set(self, execution_id: str, record: ExecutionRecord) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                """
                INSERT INTO executions
                    (id, workflow_id, project_id, status, created_at, updated_at, body)
                VALUES ($1, $2, $3, $4, $5, $6, $7::jsonb)
                ON CONFLICT (id) DO UPDATE SET
                    status = EXCLUDED.status,
                    updated_at = EXCLUDED.updated_at,
                    body = EXCLUDED.body
                """,
                execution_id,
                record.workflow_id,
                record.project_id,
                record.status.value,
                record.created_at,
                record.updated_at,
                record.to_json(),
            )
        except asyncpg.PostgresError as e:
            raise StateStoreError(f"Postgres write failed: {e}") from e
        finally:
            await conn.close()

    async def delete(self, execution_id: str) -> None:
        conn = await self._connect()
        try:
            await conn.execute("DELETE FROM executions WHERE id = $1", execution_id)
        except asyncpg.PostgresError as e:
            raise StateStoreError(f"Postgres delete failed: {e}") from e
        finally:
            await conn.close()

    async def list(self, filter: Optional[StateFilter] = None) -> list[ExecutionRecord]:
        clauses: list[str] = []
        params: list[Any] = []
        if filter is not None:
            for column, value in (
                ("status", filter.status.value if filter.status else None),
                ("workflow_id", filter.workflow_id),
                ("project_id", filter.project_id),
            ):
                if value is not None:
                    params.append(value)
                    clauses.append(f"{column} = ${len(params)}")
            if filter.since is not None:
                params.append(filter.since)
                clauses.append(f"updated_at >= ${len(params)}")
        query = "SELECT body::text AS body FROM executions"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY created_at"

        conn = await self._connect()
        try:
            rows = await conn.fetch(query, *params)
        except asyncpg.PostgresError as e:
            raise StateStoreError(f"Postgres read failed: {e}") from e
        finally:
            await conn.close()
        return [ExecutionRecord.from_json(r["body"]) for r in rows]
