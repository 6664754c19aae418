import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator

from ..errors import DeadlineExceeded


class ConversionGate:
    """Global bound on concurrently running renderer processes.

    There is no wait budget of its own: a caller queues until a permit frees,
    its absolute ``deadline`` (event loop time) passes, or its task is
    cancelled.
    """

    def __init__(self, limit: int = 3) -> None:
        if limit < 1:
            raise ValueError("limit must be at least 1")
        self._limit = limit
        self._sem = asyncio.Semaphore(limit)
        self._outstanding = 0

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def outstanding(self) -> int:
        return self._outstanding

    async def acquire(self, deadline: float | None = None) -> None:
        try:
            async with asyncio.timeout_at(deadline):
                await self._sem.acquire()
        except TimeoutError:
            raise DeadlineExceeded("deadline passed while waiting for a conversion permit") from None
        self._outstanding += 1

    def release(self) -> None:
        self._outstanding -= 1
        self._sem.release()

    @asynccontextmanager
    async def permit(self, deadline: float | None = None) -> AsyncIterator[None]:
        await self.acquire(deadline)
        try:
            yield
        finally:
            self.release()
