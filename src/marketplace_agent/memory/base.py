"""Conversation memory model and store interface."""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Callable, Sequence
from uuid import uuid4

from pydantic import BaseModel, Field

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MemoryEntry(BaseModel):
    """
    One appended memory record.

    Entries are never updated. An entry whose ``expires_at`` is in the past
    is treated as absent by every read path, whether or not it has been
    physically purged yet.
    """

    entry_id: str = Field(default_factory=lambda: uuid4().hex)
    conversation_id: str
    role: str = "user"
    content: str
    created_at: datetime = Field(default_factory=utcnow)
    expires_at: datetime | None = None

    model_config = {"frozen": True}

    @classmethod
    def create(
        cls,
        conversation_id: str,
        content: str,
        role: str = "user",
        ttl: float | None = None,
        now: datetime | None = None,
    ) -> "MemoryEntry":
        created = now or utcnow()
        expires = created + timedelta(seconds=ttl) if ttl is not None else None
        return cls(
            conversation_id=conversation_id,
            role=role,
            content=content,
            created_at=created,
            expires_at=expires,
        )

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now


class MemoryStore(ABC):
    """
    Key/value conversation memory with TTL.

    Design Pattern: Repository Pattern

    Each operation is atomic per conversation key. ``store`` appends a new
    entry and ``store_many`` appends several as one all-or-nothing write;
    nothing is updated in place.
    """

    def __init__(
        self,
        default_ttl: float | None = None,
        window_size: int = 20,
        clock: Clock = utcnow,
    ):
        self.default_ttl = default_ttl
        self.window_size = window_size
        self._clock = clock

    def now(self) -> datetime:
        return self._clock()

    async def get(self, conversation_id: str) -> str | None:
        """Content of the latest live entry, or None."""
        entries = await self.window(conversation_id, limit=1)
        return entries[-1].content if entries else None

    async def store(
        self,
        conversation_id: str,
        data: str,
        ttl: float | None = None,
        role: str = "user",
    ) -> MemoryEntry:
        """
        Append a new entry.

        Args:
            conversation_id: Memory key
            data: Entry content
            ttl: Seconds until expiry (None uses the store default)
            role: Author role of the entry

        Returns:
            The stored entry
        """
        if not conversation_id:
            raise ValueError("conversation_id must not be empty")
        entry = MemoryEntry.create(
            conversation_id,
            data,
            role=role,
            ttl=ttl if ttl is not None else self.default_ttl,
            now=self.now(),
        )
        await self.put(entry)
        return entry

    async def store_many(
        self,
        conversation_id: str,
        items: Sequence[tuple[str, str]],
        ttl: float | None = None,
    ) -> list[MemoryEntry]:
        """
        Append several entries in one atomic write.

        Args:
            conversation_id: Memory key
            items: ``(role, data)`` pairs in conversation order
            ttl: Seconds until expiry (None uses the store default)

        Returns:
            The stored entries; either all of them were written or none
        """
        if not conversation_id:
            raise ValueError("conversation_id must not be empty")
        now = self.now()
        ttl = ttl if ttl is not None else self.default_ttl
        # Microsecond steps keep the pairs ordered on created_at
        entries = [
            MemoryEntry.create(
                conversation_id,
                data,
                role=role,
                ttl=ttl,
                now=now + timedelta(microseconds=n),
            )
            for n, (role, data) in enumerate(items)
        ]
        await self.put_many(entries)
        return entries

    @abstractmethod
    async def window(self, conversation_id: str, limit: int | None = None) -> list[MemoryEntry]:
        """
        Live entries, oldest first.

        Args:
            conversation_id: Memory key
            limit: Keep only the newest ``limit`` entries (None returns all)
        """
        ...

    async def put(self, entry: MemoryEntry) -> bool:
        """
        Insert an entry unless one with the same ``entry_id`` exists.

        Returns:
            True if the entry was inserted
        """
        return await self.put_many([entry]) == 1

    @abstractmethod
    async def put_many(self, entries: Sequence[MemoryEntry]) -> int:
        """
        Insert entries of one conversation as a single atomic write.

        Entries whose ``entry_id`` already exists are skipped. A failure
        leaves none of the entries stored.

        Returns:
            Number of entries inserted
        """
        ...

    @abstractmethod
    async def delete(self, conversation_id: str) -> None:
        """Remove every entry of a conversation."""
        ...

    @abstractmethod
    async def conversation_ids(self) -> list[str]:
        """Keys that currently hold entries."""
        ...

    @abstractmethod
    async def purge_expired(self) -> int:
        """Physically remove expired entries; returns how many were removed."""
        ...

    async def aclose(self) -> None:
        return None


def single_conversation(entries: Sequence[MemoryEntry]) -> str | None:
    """Conversation id shared by ``entries`` (None when empty)."""
    ids = {entry.conversation_id for entry in entries}
    if len(ids) > 1:
        raise ValueError("put_many entries must belong to one conversation")
    return ids.pop() if ids else None
