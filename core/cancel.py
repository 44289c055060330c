"""
cancel.py – cooperative cancellation shared by every blocking call of a run.

One :class:`CancellationToken` is created per run and handed explicitly to
fetchers, the scheduler and the HTTP client.  Each suspension point either
checks it (:meth:`raise_if_cancelled`), sleeps on it (:meth:`sleep`) or races
an awaitable against it (:meth:`guard`).
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Optional, TypeVar

from .errors import OperationCancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_REASON = "Operation cancelled"


class CancellationToken:
    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason or DEFAULT_REASON

    def cancel(self, reason: str = DEFAULT_REASON) -> None:
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()
        logger.info("Cancellation requested: %s", reason)

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled(self.reason)

    async def wait(self) -> None:
        await self._event.wait()

    async def sleep(self, seconds: float) -> None:
        """Sleep for *seconds* unless cancelled first."""
        self.raise_if_cancelled()
        if seconds <= 0:
            return
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        raise OperationCancelled(self.reason)

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await *awaitable*, abandoning it as soon as the token fires."""
        self.raise_if_cancelled()
        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait(
                {work, waiter}, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            work.cancel()
            raise
        finally:
            waiter.cancel()

        if work in done:
            return work.result()

        work.cancel()
        await asyncio.gather(work, return_exceptions=True)
        raise OperationCancelled(self.reason)


async def sleep(seconds: float, token: Optional[CancellationToken] = None) -> None:
    """``asyncio.sleep`` that honours *token* when one is given."""
    if token is not None:
        await token.sleep(seconds)
    elif seconds > 0:
        await asyncio.sleep(seconds)


def raise_if_cancelled(token: Optional[CancellationToken]) -> None:
    if token is not None:
        token.raise_if_cancelled()
