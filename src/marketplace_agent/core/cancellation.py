"""Cooperative cancellation tokens.

One token threads a whole pipeline invocation (or chat turn). Tools observe it
at their I/O boundary through ``guard``; the orchestrator checks it before
starting stages and sleeps through it during retry backoff.
"""

import asyncio
import weakref
from typing import Awaitable, TypeVar

from marketplace_agent.core.exceptions import OperationCancelled
from marketplace_agent.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class CancellationToken:
    """
    Cancellation signal shared between a caller and an operation.

    Design Pattern: Cancellation Token

    Cancelling is idempotent; the first reason wins. Tokens derived with
    ``child`` or ``linked`` fire when any parent fires, but cancelling a child
    does not affect its parents. Parents hold their children weakly, so a
    long-lived parent does not keep every derived token alive.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: str | None = None
        self._children: weakref.WeakSet["CancellationToken"] = weakref.WeakSet()

    @classmethod
    def none(cls) -> "CancellationToken":
        """Token that is never cancelled by anyone but its holder."""
        return cls()

    @classmethod
    def linked(cls, *tokens: "CancellationToken | None") -> "CancellationToken":
        """Create a token that fires when any of the given tokens fires."""
        linked = cls()
        for token in tokens:
            if token is None:
                continue
            token._children.add(linked)
            if token.cancelled:
                linked.cancel(token.reason)
        return linked

    def child(self) -> "CancellationToken":
        return CancellationToken.linked(self)

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str | None = None) -> None:
        if self._event.is_set():
            return
        self._reason = reason or "cancelled"
        self._event.set()
        for child in list(self._children):
            child.cancel(self._reason)

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled(self._reason)

    async def wait(self) -> None:
        """Wait until the token is cancelled."""
        await self._event.wait()

    async def sleep(self, seconds: float) -> None:
        """
        Sleep for ``seconds`` unless cancelled first.

        Raises:
            OperationCancelled: If the token fires before or during the sleep
        """
        self.raise_if_cancelled()
        if seconds <= 0:
            return
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        raise OperationCancelled(self._reason)

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """
        Await ``awaitable``, abandoning it when the token fires.

        Args:
            awaitable: Coroutine or future performing I/O

        Returns:
            The awaitable's result

        Raises:
            OperationCancelled: If the token fires before the awaitable completes
        """
        if self._event.is_set():
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise OperationCancelled(self._reason)

        work = asyncio.ensure_future(awaitable)
        watcher = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait(
                {work, watcher}, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            work.cancel()
            watcher.cancel()
            await asyncio.gather(work, watcher, return_exceptions=True)
            raise

        if work in done:
            watcher.cancel()
            return work.result()

        work.cancel()
        try:
            await work
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.debug("Abandoned call failed after cancellation", error=str(e))
        raise OperationCancelled(self._reason)
