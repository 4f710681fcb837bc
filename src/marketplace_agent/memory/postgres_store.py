"""PostgreSQL durable memory store.

Uses asyncpg for async PostgreSQL operations. The schema is bootstrapped
with CREATE TABLE IF NOT EXISTS on initialize(); no migrations.
"""

from __future__ import annotations

from typing import Sequence

import asyncpg

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


# =============================================================================
# SQL SCHEMA
# =============================================================================

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS agent_memory (
    entry_id TEXT PRIMARY KEY,
    conversation_id TEXT NOT NULL,
    role TEXT NOT NULL DEFAULT 'user',
    content TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    expires_at TIMESTAMPTZ
);

CREATE INDEX IF NOT EXISTS idx_agent_memory_conversation
    ON agent_memory(conversation_id, created_at);
CREATE INDEX IF NOT EXISTS idx_agent_memory_expiry
    ON agent_memory(expires_at)
    WHERE expires_at IS NOT NULL;
"""

INSERT_SQL = """
INSERT INTO agent_memory (
    entry_id, conversation_id, role, content, created_at, expires_at
) VALUES ($1, $2, $3, $4, $5, $6)
ON CONFLICT (entry_id) DO NOTHING
"""


class PostgresMemoryStore(MemoryStore):
    """
    Durable memory store in PostgreSQL.

    Call ``initialize()`` during startup and ``aclose()`` on shutdown.
    """

    def __init__(
        self,
        dsn: str,
        pool_size: int = 5,
        default_ttl: float | None = None,
        window_size: int = 20,
        clock: Clock = utcnow,
    ):
        super().__init__(default_ttl=default_ttl, window_size=window_size, clock=clock)
        self._dsn = dsn
        self._pool_size = pool_size
        self._pool: asyncpg.Pool | None = None

    async def initialize(self) -> None:
        """Create the connection pool and bootstrap the schema."""
        logger.info("Initializing memory storage...")
        try:
            self._pool = await asyncpg.create_pool(
                dsn=self._dsn,
                min_size=1,
                max_size=self._pool_size,
            )
            async with self._pool.acquire() as conn:
                await conn.execute(SCHEMA_SQL)
        except (OSError, asyncpg.PostgresError) as e:
            raise MemoryStoreError(f"Could not initialize memory database: {e}") from e
        logger.info("Memory storage initialized")

    async def aclose(self) -> None:
        """Close database connection pool."""
        if self._pool:
            await self._pool.close()
            self._pool = None
            logger.info("Memory storage closed")

    @property
    def pool(self) -> asyncpg.Pool:
        """Get connection pool."""
        if not self._pool:
            raise MemoryStoreError("Memory storage not initialized. Call initialize() first.")
        return self._pool

    @staticmethod
    def _row_to_entry(row: asyncpg.Record) -> MemoryEntry:
        return MemoryEntry(
            entry_id=row["entry_id"],
            conversation_id=row["conversation_id"],
            role=row["role"],
            content=row["content"],
            created_at=row["created_at"],
            expires_at=row["expires_at"],
        )

    async def window(self, conversation_id: str, limit: int | None = None) -> list[MemoryEntry]:
        if limit is not None and limit <= 0:
            return []
        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(
                    """
                    SELECT * FROM agent_memory
                    WHERE conversation_id = $1
                      AND (expires_at IS NULL OR expires_at > $2)
                    ORDER BY created_at DESC
                    LIMIT $3
                    """,
                    conversation_id,
                    self.now(),
                    limit,
                )
        except (OSError, asyncpg.PostgresError) as e:
            raise MemoryStoreError(f"Memory read failed: {e}") from e
        return [self._row_to_entry(row) for row in reversed(rows)]

    async def put_many(self, entries: Sequence[MemoryEntry]) -> int:
        if single_conversation(entries) is None:
            return 0
        inserted = 0
        try:
            async with self.pool.acquire() as conn:
                async with conn.transaction():
                    for entry in entries:
                        status = await conn.execute(
                            INSERT_SQL,
                            entry.entry_id,
                            entry.conversation_id,
                            entry.role,
                            entry.content,
                            entry.created_at,
                            entry.expires_at,
                        )
                        if status.endswith(" 1"):
                            inserted += 1
        except (OSError, asyncpg.PostgresError) as e:
            raise MemoryStoreError(f"Memory write failed: {e}") from e
        return inserted

    async def delete(self, conversation_id: str) -> None:
        try:
            async with self.pool.acquire() as conn:
                await conn.execute(
                    "DELETE FROM agent_memory WHERE conversation_id = $1", conversation_id
                )
        except (OSError, asyncpg.PostgresError) as e:
            raise MemoryStoreError(f"Memory delete failed: {e}") from e

    async def conversation_ids(self) -> list[str]:
        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(
                    """
                    SELECT DISTINCT conversation_id FROM agent_memory
                    WHERE expires_at IS NULL OR expires_at > $1
                    ORDER BY conversation_id
                    """,
                    self.now(),
                )
        except (OSError, asyncpg.PostgresError) as e:
            raise MemoryStoreError(f"Memory read failed: {e}") from e
        return [row["conversation_id"] for row in rows]

    async def purge_expired(self) -> int:
        try:
            async with self.pool.acquire() as conn:
                status = await conn.execute(
                    "DELETE FROM agent_memory WHERE expires_at IS NOT NULL AND expires_at <= $1",
                    self.now(),
                )
        except (OSError, asyncpg.PostgresError) as e:
            raise MemoryStoreError(f"Memory purge failed: {e}") from e

        removed = int(status.split()[-1]) if status else 0
        if removed:
            logger.info("Purged expired memory entries", store="postgres", removed=removed)
        return removed
