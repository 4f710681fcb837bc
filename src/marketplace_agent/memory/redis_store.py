"""Redis-backed conversation memory."""

import math
from typing import Sequence

import redis.asyncio as redis
from pydantic import ValidationError
from redis.asyncio.client import Pipeline
from redis.exceptions import RedisError, WatchError

from marketplace_agent.core.exceptions import MemoryStoreError
from marketplace_agent.memory.base import (
    Clock,
    MemoryEntry,
    MemoryStore,
    single_conversation,
    utcnow,
)
from marketplace_agent.utils.logging import get_logger


logger = get_logger(__name__)

MAX_WRITE_ATTEMPTS = 5


class RedisMemoryStore(MemoryStore):
    """
    Memory store with one Redis list per conversation.

    Entries are JSON documents appended with RPUSH and bounded with LTRIM.
    The key TTL follows the longest-lived entry so Redis garbage-collects
    idle conversations; reads still filter expired entries themselves.
    A companion set ``{key}:ids`` makes writes idempotent by entry id; ids and
    entries are written in the same MULTI under WATCH, so a failed write
    leaves neither behind.
    """

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        default_ttl: float | None = 7 * 24 * 3600,
        window_size: int = 20,
        max_entries: int = 500,
        prefix: str = "memory",
        clock: Clock = utcnow,
        client: redis.Redis | None = None,
    ):
        super().__init__(default_ttl=default_ttl, window_size=window_size, clock=clock)
        self.client = client or redis.Redis.from_url(url, decode_responses=True)
        self.max_entries = max_entries
        self.prefix = prefix

    def _key(self, conversation_id: str) -> str:
        return f"{self.prefix}:{conversation_id}"

    def _ids_key(self, conversation_id: str) -> str:
        return f"{self.prefix}:{conversation_id}:ids"

    @property
    def _index_key(self) -> str:
        return f"{self.prefix}:conversations"

    def _decode(self, raw: str) -> MemoryEntry | None:
        try:
            return MemoryEntry.model_validate_json(raw)
        except ValidationError:
            logger.warning("Skipping malformed memory entry", raw=raw[:200])
            return None

    async def window(self, conversation_id: str, limit: int | None = None) -> list[MemoryEntry]:
        try:
            raw_entries = await self.client.lrange(self._key(conversation_id), 0, -1)
        except RedisError as e:
            raise MemoryStoreError(f"Redis read failed: {e}") from e

        now = self.now()
        live = []
        for raw in raw_entries:
            entry = self._decode(raw)
            if entry is not None and not entry.is_expired(now):
                live.append(entry)
        live.sort(key=lambda e: e.created_at)
        if limit is not None:
            live = live[-limit:] if limit > 0 else []
        return live

    async def put_many(self, entries: Sequence[MemoryEntry]) -> int:
        conversation_id = single_conversation(entries)
        if conversation_id is None:
            return 0
        try:
            async with self.client.pipeline(transaction=True) as pipe:
                for _ in range(MAX_WRITE_ATTEMPTS):
                    try:
                        return await self._write(pipe, conversation_id, entries)
                    except WatchError:
                        logger.debug(
                            "Concurrent memory write, retrying",
                            conversation_id=conversation_id,
                        )
        except RedisError as e:
            raise MemoryStoreError(f"Redis write failed: {e}") from e
        raise MemoryStoreError(f"Redis write for {conversation_id} kept conflicting")

    async def _write(
        self,
        pipe: Pipeline,
        conversation_id: str,
        entries: Sequence[MemoryEntry],
    ) -> int:
        """One WATCH/MULTI round; raises WatchError if the keys changed meanwhile."""
        key = self._key(conversation_id)
        ids_key = self._ids_key(conversation_id)
        await pipe.watch(key, ids_key)

        fresh: list[MemoryEntry] = []
        for entry in entries:
            if any(e.entry_id == entry.entry_id for e in fresh):
                continue
            if not await pipe.sismember(ids_key, entry.entry_id):
                fresh.append(entry)
        if not fresh:
            return 0
        current_ttl = await pipe.ttl(key)

        pipe.multi()
        pipe.sadd(ids_key, *[entry.entry_id for entry in fresh])
        pipe.rpush(key, *[entry.model_dump_json() for entry in fresh])
        pipe.ltrim(key, -self.max_entries, -1)
        pipe.sadd(self._index_key, conversation_id)
        if any(entry.expires_at is None for entry in fresh):
            pipe.persist(key)
            pipe.persist(ids_key)
        else:
            seconds = max(
                math.ceil((entry.expires_at - self.now()).total_seconds()) for entry in fresh
            )
            # -2: key did not exist, -1: key holds a never-expiring entry
            if current_ttl == -2 or (current_ttl >= 0 and seconds > current_ttl):
                pipe.expire(key, max(seconds, 1))
                pipe.expire(ids_key, max(seconds, 1))
        await pipe.execute()
        return len(fresh)

    async def delete(self, conversation_id: str) -> None:
        try:
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.delete(self._key(conversation_id), self._ids_key(conversation_id))
                pipe.srem(self._index_key, conversation_id)
                await pipe.execute()
        except RedisError as e:
            raise MemoryStoreError(f"Redis delete failed: {e}") from e

    async def conversation_ids(self) -> list[str]:
        try:
            members = await self.client.smembers(self._index_key)
            result = []
            for conversation_id in sorted(members):
                if await self.client.exists(self._key(conversation_id)):
                    result.append(conversation_id)
            return result
        except RedisError as e:
            raise MemoryStoreError(f"Redis read failed: {e}") from e

    async def purge_expired(self) -> int:
        now = self.now()
        removed = 0
        try:
            for conversation_id in await self.client.smembers(self._index_key):
                key = self._key(conversation_id)
                raw_entries = await self.client.lrange(key, 0, -1)
                if not raw_entries:
                    await self.client.srem(self._index_key, conversation_id)
                    continue
                for raw in raw_entries:
                    entry = self._decode(raw)
                    if entry is None or entry.is_expired(now):
                        # LREM removes exact values, so concurrent appends survive
                        removed += await self.client.lrem(key, 1, raw)
                        if entry is not None:
                            await self.client.srem(self._ids_key(conversation_id), entry.entry_id)
        except RedisError as e:
            raise MemoryStoreError(f"Redis purge failed: {e}") from e

        if removed:
            logger.info("Purged expired memory entries", store="redis", removed=removed)
        return removed

    async def aclose(self) -> None:
        await self.client.aclose()
