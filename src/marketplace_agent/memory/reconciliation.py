"""Reconciliation between the ephemeral and durable memory stores."""

import asyncio
from dataclasses import dataclass

from marketplace_agent.core.cancellation import CancellationToken
from marketplace_agent.core.exceptions import MemoryStoreError, OperationCancelled
from marketplace_agent.memory.base import MemoryStore
from marketplace_agent.utils.logging import get_logger


logger = get_logger(__name__)


@dataclass
class SyncReport:
    conversations: int = 0
    copied: int = 0


class MemoryReconciler:
    """
    Keeps the ephemeral store (Redis) consistent with the durable one.

    Both operations are idempotent: entries are copied by ``entry_id`` and
    purging an already clean store removes nothing.
    """

    def __init__(self, ephemeral: MemoryStore, durable: MemoryStore):
        self.ephemeral = ephemeral
        self.durable = durable

    async def sync_ephemeral_with_durable(
        self,
        cancellation: CancellationToken | None = None,
    ) -> SyncReport:
        """
        Copy live durable entries missing from the ephemeral store.

        Returns:
            How many conversations were visited and entries copied
        """
        token = cancellation or CancellationToken()
        report = SyncReport()

        for conversation_id in await token.guard(self.durable.conversation_ids()):
            token.raise_if_cancelled()
            durable_entries = await token.guard(self.durable.window(conversation_id))
            existing = {
                e.entry_id for e in await token.guard(self.ephemeral.window(conversation_id))
            }
            report.conversations += 1
            for entry in durable_entries:
                if entry.entry_id in existing:
                    continue
                if await token.guard(self.ephemeral.put(entry)):
                    report.copied += 1

        logger.info(
            "Ephemeral memory synced",
            conversations=report.conversations,
            copied=report.copied,
        )
        return report

    async def purge_expired(self, cancellation: CancellationToken | None = None) -> int:
        """Purge expired entries from both stores; returns the total removed."""
        token = cancellation or CancellationToken()
        removed = await token.guard(self.ephemeral.purge_expired())
        removed += await token.guard(self.durable.purge_expired())
        logger.info("Expired memory purged", removed=removed)
        return removed

    async def run_once(self, cancellation: CancellationToken | None = None) -> None:
        await self.sync_ephemeral_with_durable(cancellation)
        await self.purge_expired(cancellation)


class ReconciliationScheduler:
    """
    Runs reconciliation periodically on one dedicated task.

    The loop owns its cancellation token: ``stop()`` fires it, which ends
    the current interval sleep or abandons the in-flight pass. A failing
    pass is logged and the loop continues with the next interval.
    """

    def __init__(self, reconciler: MemoryReconciler, interval_seconds: float = 3600.0):
        self.reconciler = reconciler
        self.interval_seconds = interval_seconds
        self._token: CancellationToken | None = None
        self._task: asyncio.Task | None = None
        self.passes = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """
        Start the background loop.

        Should be called during application startup.
        """
        if self.running:
            logger.warning("Reconciliation scheduler already running")
            return
        self._token = CancellationToken()
        self._task = asyncio.create_task(self._loop(self._token), name="memory-reconciliation")
        logger.info("Reconciliation scheduler started", interval=self.interval_seconds)

    async def stop(self, timeout: float = 10.0) -> None:
        """
        Stop the loop gracefully.

        Should be called during application shutdown.
        """
        if not self._task or not self._token:
            return

        logger.info("Stopping reconciliation scheduler...")
        self._token.cancel("scheduler stopped")
        try:
            await asyncio.wait_for(self._task, timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("Scheduler shutdown timeout, cancelling...")
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        self._token = None
        logger.info("Reconciliation scheduler stopped")

    async def _loop(self, token: CancellationToken) -> None:
        """Run a pass, then sleep for the interval, until cancelled."""
        while not token.cancelled:
            try:
                await self.reconciler.run_once(token)
                self.passes += 1
            except OperationCancelled:
                break
            except MemoryStoreError as e:
                logger.error("Reconciliation pass failed", error=str(e))
            except Exception as e:
                logger.error("Reconciliation pass failed", error=str(e), exc_info=True)

            try:
                await token.sleep(self.interval_seconds)
            except OperationCancelled:
                break
