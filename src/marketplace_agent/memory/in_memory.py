"""Process-local memory store."""

import asyncio
from collections import defaultdict
from typing import Sequence

from marketplace_agent.memory.base import (
    Clock,
    MemoryEntry,
    MemoryStore,
    single_conversation,
    utcnow,
)


class InMemoryMemoryStore(MemoryStore):
    """
    Memory store backed by a dict of lists.

    ``max_entries`` bounds each conversation; the oldest entries are dropped
    first.
    """

    def __init__(
        self,
        default_ttl: float | None = None,
        window_size: int = 20,
        max_entries: int = 500,
        clock: Clock = utcnow,
    ):
        super().__init__(default_ttl=default_ttl, window_size=window_size, clock=clock)
        self.max_entries = max_entries
        self._entries: dict[str, list[MemoryEntry]] = defaultdict(list)
        self._ids: set[str] = set()
        self._lock = asyncio.Lock()

    async def window(self, conversation_id: str, limit: int | None = None) -> list[MemoryEntry]:
        now = self.now()
        async with self._lock:
            live = [e for e in self._entries.get(conversation_id, []) if not e.is_expired(now)]
        if limit is not None:
            live = live[-limit:] if limit > 0 else []
        return live

    async def put_many(self, entries: Sequence[MemoryEntry]) -> int:
        conversation_id = single_conversation(entries)
        if conversation_id is None:
            return 0
        async with self._lock:
            fresh = []
            for entry in entries:
                if entry.entry_id not in self._ids:
                    self._ids.add(entry.entry_id)
                    fresh.append(entry)
            if not fresh:
                return 0
            stored = self._entries[conversation_id]
            stored.extend(fresh)
            stored.sort(key=lambda e: e.created_at)
            while len(stored) > self.max_entries:
                dropped = stored.pop(0)
                self._ids.discard(dropped.entry_id)
            return len(fresh)

    async def delete(self, conversation_id: str) -> None:
        async with self._lock:
            for entry in self._entries.pop(conversation_id, []):
                self._ids.discard(entry.entry_id)

    async def conversation_ids(self) -> list[str]:
        async with self._lock:
            return [cid for cid, entries in self._entries.items() if entries]

    async def purge_expired(self) -> int:
        now = self.now()
        removed = 0
        async with self._lock:
            for conversation_id in list(self._entries):
                entries = self._entries[conversation_id]
                live = [e for e in entries if not e.is_expired(now)]
                removed += len(entries) - len(live)
                for entry in entries:
                    if entry.is_expired(now):
                        self._ids.discard(entry.entry_id)
                if live:
                    self._entries[conversation_id] = live
                else:
                    del self._entries[conversation_id]
        return removed
