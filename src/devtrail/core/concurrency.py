"""Concurrency control utilities for async fan-out."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Iterable, TypeVar

T = TypeVar("T")


@dataclass
class ConcurrencyLimiter:
    """Caps how many coroutines run at once.

    Judge fan-out grows with the number of discovered items; the limiter keeps the
    number of in-flight collaborator calls bounded regardless.
    """

    max_concurrent: int
    _semaphore: asyncio.Semaphore = field(init=False)

    def __post_init__(self) -> None:
        if self.max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        self._semaphore = asyncio.Semaphore(self.max_concurrent)

    async def acquire(self) -> None:
        await self._semaphore.acquire()

    def release(self) -> None:
        self._semaphore.release()

    async def __aenter__(self) -> "ConcurrencyLimiter":
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()

    async def run(self, coro: Awaitable[T]) -> T:
        try:
            await self.acquire()
        except BaseException:
            # cancelled while queued; the coroutine never started
            if asyncio.iscoroutine(coro):
                coro.close()
            raise
        try:
            return await coro
        finally:
            self.release()

    async def gather(self, coros: Iterable[Awaitable[T]]) -> list[T]:
        """Run coroutines concurrently under the limit, preserving input order.

        The first exception cancels every coroutine still running or queued and is
        re-raised once they have all settled. Callers that want per-task isolation
        handle errors inside each coroutine.
        """

        return await gather_or_cancel([self.run(c) for c in coros])


async def cancel_and_wait(tasks: Iterable[asyncio.Future[Any]]) -> None:
    """Cancel whatever has not finished and wait until every task has settled."""

    pending = list(tasks)
    for task in pending:
        if not task.done():
            task.cancel()
    await asyncio.gather(*pending, return_exceptions=True)


async def gather_or_cancel(aws: Iterable[Awaitable[T]]) -> list[T]:
    """Like :func:`asyncio.gather`, but a failure (or cancellation) takes the siblings down.

    Results keep input order. No task outlives the call.
    """

    tasks = [asyncio.ensure_future(a) for a in aws]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        await cancel_and_wait(tasks)
        raise
