"""
am-i.exposed - Cancellation
Cooperative cancellation shared by every suspension point of an analysis.
"""
import asyncio
from typing import Awaitable, Optional, TypeVar

T = TypeVar("T")


class AnalysisCancelled(Exception):
    """The analysis was superseded. Not an error."""


class CancellationToken:
    """One-shot cancellation flag that waiters can block on."""

    def __init__(self):
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self):
        self._event.set()

    def raise_if_cancelled(self):
        if self._event.is_set():
            raise AnalysisCancelled()

    async def wait(self):
        await self._event.wait()


async def sleep(delay: float, token: Optional[CancellationToken] = None):
    """Sleep for `delay` seconds, waking early with AnalysisCancelled on cancel."""
    if token is None:
        await asyncio.sleep(delay)
        return
    token.raise_if_cancelled()
    try:
        await asyncio.wait_for(token.wait(), timeout=delay)
    except asyncio.TimeoutError:
        return
    raise AnalysisCancelled()


async def guard(aw: Awaitable[T], token: Optional[CancellationToken] = None) -> T:
    """Await `aw`, abandoning it as soon as the token is cancelled."""
    if token is None:
        return await aw
    if token.cancelled:
        if asyncio.iscoroutine(aw):
            aw.close()
        raise AnalysisCancelled()

    task = asyncio.ensure_future(aw)
    waiter = asyncio.ensure_future(token.wait())
    try:
        done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        waiter.cancel()
    if task in done:
        return task.result()
    task.cancel()
    try:
        await task
    except (asyncio.CancelledError, Exception):
        pass
    raise AnalysisCancelled()
