"""Redis implementation of the state store."""

from __future__ import annotations

from typing import Any, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from ..errors import StateStoreError
from .models import ExecutionRecord, StateFilter
from .repository import StateStore


class RedisStateStore(StateStore):
    """Persist execution records as JSON strings in Redis.

    Each record lives under ``<prefix>:execution:<id>``; the set
    ``<prefix>:executions`` indexes all known ids for ``list``.
    """

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        prefix: str = "mdsflow",
        client: Optional[Any] = None,
    ) -> None:
        self.url = url
        self.prefix = prefix
        self._redis = client

    def _client(self) -> Any:
        if self._redis is None:
            self._redis = redis.from_url(self.url, decode_responses=True)
        return self._redis

    def _key(self, execution_id: str) -> str:
        return f"{self.prefix}:execution:{execution_id}"

    @property
    def _index_key(self) -> str:
        return f"{self.prefix}:executions"

    async def disconnect(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

    async def get(self, execution_id: str) -> ExecutionRecord | None:
        try:
            raw = await self._client().get(self._key(execution_id))
        except RedisError as e:
            raise StateStoreError(f"Redis read failed: {e}") from e
        if raw is None:
            return None
        return ExecutionRecord.from_json(raw)

    async def set(self, execution_id: str, record: ExecutionRecord) -> None:
        client = self._client()
        try:
            async with client.pipeline(transaction=True) as pipe:
                pipe.set(self._key(execution_id), record.to_json())
                pipe.sadd(self._index_key, execution_id)
                await pipe.execute()
        except RedisError as e:
            raise StateStoreError(f"Redis write failed: {e}") from e

    async def delete(self, execution_id: str) -> None:
        client = self._client()
        try:
            async with client.pipeline(transaction=True) as pipe:
                pipe.delete(self._key(execution_id))
                pipe.srem(self._index_key, execution_id)
                await pipe.execute()
        except RedisError as e:
            raise StateStoreError(f"Redis delete failed: {e}") from e

    async def list(self, filter: Optional[StateFilter] = None) -> list[ExecutionRecord]:
        client = self._client()
        try:
            ids = sorted(await client.smembers(self._index_key))
            raws = await client.mget([self._key(i) for i in ids]) if ids else []
        except RedisError as e:
            raise StateStoreError(f"Redis read failed: {e}") from e
        records = [ExecutionRecord.from_json(raw) for raw in raws if raw is not None]
        if filter is not None:
            records = [r for r in records if filter.matches(r)]
        return sorted(records, key=lambda r: r.created_at)
