"""Conversation memory stores and reconciliation."""

from marketplace_agent.memory.base import MemoryEntry, MemoryStore
from marketplace_agent.memory.in_memory import InMemoryMemoryStore
from marketplace_agent.memory.reconciliation import (
    MemoryReconciler,
    ReconciliationScheduler,
    SyncReport,
)

__all__ = [
    "InMemoryMemoryStore",
    "MemoryEntry",
    "MemoryReconciler",
    "MemoryStore",
    "ReconciliationScheduler",
    "SyncReport",
]
